"""Publish a tunnel's current address to a running proxy."""

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("tunnelrelay-client")

REGISTER_PATH = "/_proxy/register"


class RegistrationError(Exception):
    """The proxy refused the registration or could not be reached."""

    def __init__(self, message: str, status_code: int = 0, help: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.help = help


async def register_tunnel(proxy_url: str, tunnel_url: str, token: str, timeout: float = 30.0,
                          transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
    """
    POST the tunnel address to the proxy's registration endpoint.

    Returns:
        The proxy's success payload (status, registeredUrl, timestamp)

    Raises:
        RegistrationError: on a non-2xx answer or a transport failure
    """
    endpoint = f"{proxy_url.rstrip('/')}{REGISTER_PATH}"
    logger.debug(f"Registering {tunnel_url} with {endpoint}")

    try:
        async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
            response = await client.post(endpoint, json={"url": tunnel_url, "token": token})
    except httpx.RequestError as e:
        raise RegistrationError(f"Could not reach proxy at {endpoint}: {e}") from e

    try:
        payload = response.json()
    except ValueError:
        payload = {"error": response.text}

    if response.status_code >= 400:
        raise RegistrationError(
            payload.get("error", f"Registration failed with status {response.status_code}"),
            status_code=response.status_code,
            help=payload.get("help", ""),
        )

    logger.info(f"Registered {payload.get('registeredUrl')} at {payload.get('timestamp')}")
    return payload
