import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from redis.asyncio import Redis

from .api import api_router, set_store as set_api_store
from .audit import AuditLog
from .config import Config
from .dashboard import render_dashboard
from .errors import ProxyError
from .forwarder import Forwarder
from .handshake import match_handshake
from .store import RegistrationStore, create_redis


logger = logging.getLogger("tunnelrelay-server")

redis_client: Optional[Redis] = None
store: Optional[RegistrationStore] = None
audit_log: Optional[AuditLog] = None
forwarder: Optional[Forwarder] = None


def configure(redis: Optional[Redis] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
    """Wire the store, audit log and forwarder onto a Redis client."""
    global redis_client, store, audit_log, forwarder
    redis_client = redis if redis is not None else create_redis()
    store = RegistrationStore(redis_client)
    audit_log = AuditLog(redis_client)
    forwarder = Forwarder(store, audit_log, transport=transport)
    set_api_store(store)


async def record_request(request: Request, background_tasks: BackgroundTasks):
    """Log every inbound request to the console and, in the background, to the audit log."""
    if audit_log is None:
        return

    body = await request.body()
    logger.info(f"Incoming {request.method} {request.url.path}")
    entry = audit_log.request_entry(
        request.method,
        request.url.path,
        request.query_params,
        body,
        request.headers.get("content-type"),
    )
    if "query" in entry:
        logger.debug(f"Query: {entry['query']}")
    if "body" in entry:
        logger.debug(f"Body: {str(entry['body'])[:1024]}")
    background_tasks.add_task(audit_log.append, entry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(title="Tunnelrelay", lifespan=lifespan, dependencies=[Depends(record_request)])

app.include_router(api_router)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    return exc.to_response()


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error for {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal proxy error", "message": str(exc)})


@app.get("/", response_class=HTMLResponse)
async def home_page(request: Request):
    """Status dashboard"""
    backend = await store.get_backend()
    last_registered = await store.get_last_registered_at()
    entries = await audit_log.entries()

    host = request.headers.get("host", "localhost")
    callback_url = Config.get_callback_url(host, use_https=request.url.scheme == "https")
    return HTMLResponse(content=render_dashboard(backend, last_registered, entries, callback_url))


@app.get("/_health")
async def health_check():
    store_ok = await store.ping()
    backend = await store.get_backend() if store_ok else None
    return JSONResponse(
        status_code=200 if store_ok else 503,
        content={
            "status": "healthy" if store_ok else "degraded",
            "store": store_ok,
            "backend_registered": bool(backend),
        },
    )


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
async def proxy_request(request: Request, path: str, background_tasks: BackgroundTasks):
    challenge = match_handshake(request.method, request.url.path, request.query_params)
    if challenge is not None:
        return PlainTextResponse(content=challenge, status_code=200)

    try:
        return await forwarder.forward(request, background_tasks)
    except ProxyError as e:
        return e.to_response()


def run_server(host: str = "0.0.0.0", port: int = 3000, redis_url: Optional[str] = None, log_level: str = "INFO"):
    # Validate configuration
    Config.validate()

    configure(create_redis(redis_url))

    logger.info(f"     Webhook handshake path: {Config.WEBHOOK_PATH}")
    logger.info(f"     Registration TTL: {Config.REGISTRATION_TTL_SECONDS}s, relay timeout: {Config.RELAY_TIMEOUT_SECONDS:.0f}s")
    logger.info(f"     Starting tunnelrelay on {host}:{port}")

    # Configure uvicorn with custom logging
    uvicorn.run(
        app,
        host=host,
        port=port,
        access_log=False,  # The proxy writes its own access lines
        log_config={
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                },
            },
            "handlers": {
                "default": {
                    "formatter": "default",
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": "INFO",
                "handlers": ["default"],
            },
            "loggers": {
                "tunnelrelay-server": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn": {"handlers": ["default"], "level": "WARNING"},
                "uvicorn.error": {"handlers": ["default"], "level": "WARNING"},
                "uvicorn.access": {"handlers": [], "level": "INFO"},
            },
        }
    )
