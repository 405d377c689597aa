import asyncio
import logging
import time
from typing import List, Optional, Tuple

import httpx
from fastapi import BackgroundTasks, Request
from fastapi.responses import Response

from .audit import AuditLog, redact_query_string
from .config import Config
from .errors import BackendUnreachable, NoBackendRegistered, RelayFailure
from .store import RegistrationStore

logger = logging.getLogger("tunnelrelay-server")

# Response headers that describe the backend's transport framing, not the content
SKIP_RESPONSE_HEADERS = {"content-encoding", "transfer-encoding", "connection"}

# Request headers that are not relayed; httpx frames the buffered body itself
SKIP_REQUEST_HEADERS = {b"host", b"content-length", b"transfer-encoding", b"connection", b"keep-alive"}


def build_target_url(backend: str, path: str, query: str = "") -> str:
    """Backend address + request path + raw query string"""
    target = f"{backend.rstrip('/')}{path}"
    if query:
        target += f"?{query}"
    return target


def rewrite_request_headers(headers: List[Tuple[bytes, bytes]], backend: str) -> List[Tuple[bytes, bytes]]:
    """
    Raw inbound header pairs minus hop-by-hop framing, with Host set to the backend's own host.

    Values stay bytes so non-ASCII header values are relayed untouched.
    Tunnel providers route on the Host header.
    """
    backend_host = httpx.URL(backend).netloc
    rewritten = [(key, value) for key, value in headers if key.lower() not in SKIP_REQUEST_HEADERS]
    rewritten.append((b"host", backend_host))
    return rewritten


class Forwarder:
    """Relays requests to whichever backend is registered at the moment they arrive."""

    def __init__(self, store: RegistrationStore, audit_log: AuditLog,
                 timeout: float = Config.RELAY_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.store = store
        self.audit_log = audit_log
        self.timeout = timeout
        self.transport = transport

    async def resolve_backend(self) -> str:
        backend = await self.store.get_backend()
        if not backend:
            last_registered = await self.store.get_last_registered_at()
            raise NoBackendRegistered(
                "No local development tunnel is currently registered.",
                help="Run your local tunnel script to register a backend with POST /_proxy/register.",
                lastActivity=last_registered or "none",
            )
        return backend

    async def relay(self, backend: str, method: str, target_url: str,
                    headers: List[Tuple[bytes, bytes]], body: bytes) -> httpx.Response:
        """
        Send one request to the backend and read the whole response.

        Redirects are returned rather than followed and every status code is accepted.

        Raises:
            BackendUnreachable: the backend host could not be resolved or connected to
            RelayFailure: timeout or any other failure while relaying
        """
        try:
            async with httpx.AsyncClient(transport=self.transport, follow_redirects=False,
                                         timeout=httpx.Timeout(self.timeout)) as client:
                return await asyncio.wait_for(
                    client.request(
                        method=method,
                        url=target_url,
                        headers=rewrite_request_headers(headers, backend),
                        content=body,
                    ),
                    timeout=self.timeout,
                )
        except httpx.ConnectError as e:
            logger.error(f"Proxy error: backend {backend} unreachable: {e}")
            raise BackendUnreachable(
                "Local tunnel is unreachable. It may have expired or restarted.",
                help="Restart your local backend to register a new tunnel URL.",
                message=str(e),
                registeredUrl=backend,
            ) from e
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"Proxy error: backend {backend} did not respond within {self.timeout:.0f}s")
            raise RelayFailure(
                "Failed to forward request to local tunnel.",
                message=f"Backend did not respond within {self.timeout:.0f} seconds",
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Proxy error: {e}")
            raise RelayFailure("Failed to forward request to local tunnel.", message=str(e)) from e
        except Exception as e:
            logger.exception(f"Proxy error: unexpected failure relaying to {backend}: {e}")
            raise RelayFailure("Failed to forward request to local tunnel.", message=str(e)) from e

    def build_response(self, upstream: httpx.Response, method: str = "GET") -> Response:
        """Copy status, body and headers, minus the transport-specific ones."""
        response = Response(content=upstream.content, status_code=upstream.status_code)
        for key, value in upstream.headers.multi_items():
            lowered = key.lower()
            if lowered in SKIP_RESPONSE_HEADERS:
                continue
            if lowered == "content-length":
                # A HEAD response has no body to measure, keep the backend's length
                if method.upper() == "HEAD":
                    response.headers["content-length"] = value
                # Otherwise Response computed it from the decoded body
                continue
            response.headers.append(key, value)
        return response

    async def forward(self, request: Request, background_tasks: Optional[BackgroundTasks] = None) -> Response:
        backend = await self.resolve_backend()

        path = request.url.path
        query = request.url.query
        target_url = build_target_url(backend, path, query)
        logger.debug(f"Proxying {request.method} {path} -> {target_url}")

        body = await request.body()
        start_time = time.time()
        upstream = await self.relay(backend, request.method, target_url, list(request.headers.raw), body)
        duration_ms = (time.time() - start_time) * 1000

        display_path = f"{path}?{redact_query_string(query)}" if query else path
        logger.info(self.audit_log.format_access_log(request.method, display_path, upstream.status_code, duration_ms))

        if background_tasks is not None:
            entry = self.audit_log.response_entry(
                upstream.status_code,
                display_path,
                upstream.content,
                upstream.headers.get("content-type"),
            )
            background_tasks.add_task(self.audit_log.append, entry)

        return self.build_response(upstream, request.method)
