"""Bounded request/response audit log stored in Redis."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .config import Config
from ..utils import is_binary_content, is_json_content

logger = logging.getLogger("tunnelrelay-server")

REQUEST = "REQUEST"
RESPONSE = "RESPONSE"

# Secrets that must never reach the dashboard
REDACTED_FIELDS = {"token", "hub.verify_token"}
REDACTED = "***"


def redact(values: Any) -> Any:
    """Mask secret fields of a query mapping or a top-level JSON object."""
    if not isinstance(values, Mapping):
        return values
    return {key: REDACTED if key in REDACTED_FIELDS else value for key, value in values.items()}


def redact_query_string(query: str) -> str:
    """Same masking for a raw query string; left byte-for-byte alone when nothing is secret."""
    pairs = parse_qsl(query, keep_blank_values=True)
    if not any(key in REDACTED_FIELDS for key, _ in pairs):
        return query
    return urlencode([(key, REDACTED if key in REDACTED_FIELDS else value) for key, value in pairs], safe="*")


def summarize_body(body: bytes, content_type: Optional[str], max_chars: Optional[int] = None) -> Any:
    """
    Turn a raw body into something worth storing in an audit entry.

    JSON bodies are parsed, text is decoded, binary data becomes a short
    placeholder. Returns None for an empty body.
    """
    if not body:
        return None

    if max_chars is None:
        max_chars = Config.AUDIT_MAX_BODY

    if is_binary_content(content_type):
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            return f"[Binary data: {len(body)} bytes]"
    else:
        text = body.decode("utf-8", errors="replace")

    if len(text) > max_chars:
        return text[:max_chars] + f"... [truncated {len(text) - max_chars} chars]"

    if is_json_content(content_type) or text.lstrip().startswith(("{", "[")):
        try:
            return json.loads(text)
        except ValueError:
            pass

    return text


class AuditLog:
    """Most-recent-first list of request and response summaries, capped at a fixed size."""

    def __init__(self, redis: Redis, capacity: int = Config.AUDIT_LOG_CAPACITY):
        self.redis = redis
        self.capacity = capacity
        self.key = Config.key("request_logs")

    def request_entry(self, method: str, path: str, query_params: Optional[Mapping[str, str]] = None,
                      body: bytes = b"", content_type: Optional[str] = None) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "type": REQUEST,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "path": path,
        }
        if query_params:
            entry["query"] = redact(dict(query_params))
        summary = redact(summarize_body(body, content_type))
        if summary is not None:
            entry["body"] = summary
        return entry

    def response_entry(self, status_code: int, path: str, body: bytes = b"",
                       content_type: Optional[str] = None) -> Dict[str, Any]:
        return {
            "type": RESPONSE,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": status_code,
            "body": summarize_body(body, content_type),
            "path": path,
        }

    async def append(self, entry: Dict[str, Any]) -> None:
        """
        Push an entry and trim the list back to capacity.

        Runs as a background task: failures are logged and never raised.
        """
        try:
            payload = json.dumps(entry, default=str)
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lpush(self.key, payload)
                pipe.ltrim(self.key, 0, self.capacity - 1)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to add log: {e}")

    async def entries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Stored entries, most recent first. Returns [] when the store is unreadable."""
        limit = min(limit or self.capacity, self.capacity)
        try:
            raw_entries = await self.redis.lrange(self.key, 0, limit - 1)
        except RedisError as e:
            logger.error(f"Failed to fetch logs: {e}")
            return []

        result = []
        for raw in raw_entries:
            try:
                result.append(json.loads(raw))
            except (ValueError, TypeError):
                logger.warning(f"Skipping unreadable log entry: {raw!r:.80}")
        return result

    @staticmethod
    def format_access_log(method: str, path: str, status_code: int, duration_ms: Optional[float] = None) -> str:
        """Format a concise access log line for console output.

        Format: [timestamp] METHOD /path -> status_code (duration)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        duration_str = f" {duration_ms:.0f}ms" if duration_ms is not None else ""
        return f"[{timestamp}] {method} {path} -> {status_code}{duration_str}"
