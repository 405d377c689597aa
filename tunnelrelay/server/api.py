import json
import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Config
from .errors import AuthorizationFailure, ProxyError, ValidationFailure
from .store import RegistrationStore
from ..utils import references_loopback

logger = logging.getLogger("tunnelrelay-server")

# Create registration router
api_router = APIRouter(tags=["registration"])

# Global store instance (set by app.py)
_store: Optional[RegistrationStore] = None


def set_store(store: RegistrationStore):
    """Set the global registration store"""
    global _store
    _store = store


def get_store() -> RegistrationStore:
    """Get the global registration store"""
    if _store is None:
        raise RuntimeError("Registration store not initialized")
    return _store


# Request/Response models
class RegistrationRequest(BaseModel):
    url: Optional[Any] = Field(None, description="Public address of the tunnel, e.g. https://abc.example.link")
    token: Optional[Any] = Field(None, description="Registration secret (PROXY_AUTH_TOKEN)")


class RegistrationResponse(BaseModel):
    status: str = Field("success", description="Always 'success'")
    registeredUrl: str = Field(..., description="The accepted backend address")
    timestamp: str = Field(..., description="When the registration was persisted (ISO-8601, UTC)")


async def read_registration(request: Request) -> RegistrationRequest:
    """Parse the JSON body; anything unparsable counts as an empty registration."""
    try:
        payload = json.loads(await request.body() or b"{}")
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return RegistrationRequest(url=payload.get("url"), token=payload.get("token"))


def validate_registration(registration: RegistrationRequest, secret: str) -> str:
    """
    Check a registration in order: token, URL shape, loopback host.

    Returns:
        The accepted address

    Raises:
        AuthorizationFailure: the token does not match the secret
        ValidationFailure: the URL is missing, not http(s), or points at loopback
    """
    token = registration.token
    if not isinstance(token, str) or not secrets.compare_digest(token.encode(), secret.encode()):
        raise AuthorizationFailure("Unauthorized registration")

    url = registration.url
    if not isinstance(url, str) or not url.startswith(("http://", "https://")):
        raise ValidationFailure("Invalid tunnel URL")

    if references_loopback(url):
        raise ValidationFailure(
            "Cannot register localhost as a tunnel URL.",
            help="The proxy cannot reach your computer via 'localhost'. "
                 "Register the public URL your tunnel provider assigned instead.",
        )

    return url


@api_router.post(Config.REGISTER_PATH, response_model=RegistrationResponse)
async def register_backend(request: Request):
    """Point the proxy at a new backend tunnel"""
    registration = await read_registration(request)
    try:
        url = validate_registration(registration, Config.PROXY_AUTH_TOKEN)
        result = await get_store().set_backend(url)
    except ProxyError as e:
        logger.warning(f"Registration rejected ({e.status_code}): {e.error}")
        return e.to_response()

    logger.info(f"Registered local tunnel: {result.address} at {result.registered_at}")
    body: Dict[str, Any] = RegistrationResponse(
        registeredUrl=result.address,
        timestamp=result.registered_at,
    ).model_dump()
    return JSONResponse(content=body)
