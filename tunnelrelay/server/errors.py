"""Error taxonomy for the proxy. Each error knows the HTTP response it maps to."""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


class ProxyError(Exception):
    """Base class for failures that terminate a request with a JSON error body."""

    status_code = 500

    def __init__(self, error: str, help: Optional[str] = None, **extra: Any):
        super().__init__(error)
        self.error = error
        self.help = help
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        body.update(self.extra)
        if self.help:
            body["help"] = self.help
        return body

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class AuthorizationFailure(ProxyError):
    status_code = 401


class ValidationFailure(ProxyError):
    status_code = 400


class StoreFailure(ProxyError):
    status_code = 500


class NoBackendRegistered(ProxyError):
    status_code = 503


class BackendUnreachable(ProxyError):
    status_code = 502


class RelayFailure(ProxyError):
    status_code = 500
