"""Webhook subscription handshake answered by the proxy itself."""

import logging
import secrets
from typing import Mapping, Optional

from .config import Config

logger = logging.getLogger("tunnelrelay-server")

SUBSCRIBE_MODE = "subscribe"


def match_handshake(method: str, path: str, query_params: Mapping[str, str],
                    webhook_path: Optional[str] = None, verify_token: Optional[str] = None) -> Optional[str]:
    """
    Return the challenge to echo back if this request is a valid verification handshake.

    A handshake is a GET on the webhook path carrying hub.mode, hub.verify_token
    and hub.challenge, with mode 'subscribe' and the configured verify token.
    Anything else returns None and is proxied like any other request.
    """
    webhook_path = webhook_path or Config.WEBHOOK_PATH
    verify_token = verify_token if verify_token is not None else Config.WEBHOOK_VERIFY_TOKEN

    if method.upper() != "GET" or path != webhook_path:
        return None

    mode = query_params.get("hub.mode")
    token = query_params.get("hub.verify_token")
    challenge = query_params.get("hub.challenge")
    if mode is None or token is None or challenge is None:
        return None

    if mode == SUBSCRIBE_MODE and secrets.compare_digest(token.encode(), verify_token.encode()):
        logger.info("Proxy-level webhook verification successful")
        return challenge

    return None
