#!/usr/bin/env python3
"""Tests for the bounded audit log."""

import pytest

from tunnelrelay.server.audit import REQUEST, RESPONSE, AuditLog, redact_query_string, summarize_body
from tunnelrelay.server.config import Config


@pytest.mark.asyncio
async def test_keeps_fifty_most_recent_entries_newest_first(redis):
    audit_log = AuditLog(redis)

    for i in range(55):
        entry = audit_log.request_entry("GET", f"/event/{i}")
        await audit_log.append(entry)

    entries = await audit_log.entries()

    assert len(entries) == 50
    assert [e["path"] for e in entries] == [f"/event/{i}" for i in range(54, 4, -1)]
    assert await redis.llen(Config.key("request_logs")) == 50


@pytest.mark.asyncio
async def test_entries_limit(redis):
    audit_log = AuditLog(redis)
    for i in range(10):
        await audit_log.append(audit_log.request_entry("GET", f"/event/{i}"))

    entries = await audit_log.entries(limit=3)

    assert [e["path"] for e in entries] == ["/event/9", "/event/8", "/event/7"]


@pytest.mark.asyncio
async def test_request_and_response_entries(redis):
    audit_log = AuditLog(redis)

    request = audit_log.request_entry(
        "POST", "/api/social/webhook", {"page": "1"}, b'{"object": "page"}', "application/json"
    )
    response = audit_log.response_entry(200, "/api/social/webhook", b"EVENT_RECEIVED", "text/plain")
    await audit_log.append(request)
    await audit_log.append(response)

    newest, oldest = await audit_log.entries()

    assert newest["type"] == RESPONSE
    assert newest["status"] == 200
    assert newest["body"] == "EVENT_RECEIVED"
    assert newest["path"] == "/api/social/webhook"
    assert oldest["type"] == REQUEST
    assert oldest["method"] == "POST"
    assert oldest["query"] == {"page": "1"}
    assert oldest["body"] == {"object": "page"}


def test_request_entry_masks_secrets(redis):
    audit_log = AuditLog(redis)

    registration = audit_log.request_entry(
        "POST", "/_proxy/register", None, b'{"url": "https://abc.tunnel.example", "token": "s3cret"}',
        "application/json",
    )
    handshake = audit_log.request_entry(
        "GET", "/api/social/webhook", {"hub.mode": "subscribe", "hub.verify_token": "v3rify"}
    )

    assert registration["body"] == {"url": "https://abc.tunnel.example", "token": "***"}
    assert handshake["query"] == {"hub.mode": "subscribe", "hub.verify_token": "***"}


def test_redact_query_string():
    assert redact_query_string("a=1&b=two+words") == "a=1&b=two+words"
    assert redact_query_string("hub.mode=subscribe&hub.verify_token=v3rify") == (
        "hub.mode=subscribe&hub.verify_token=***"
    )


def test_request_entry_omits_empty_query_and_body(redis):
    entry = AuditLog(redis).request_entry("GET", "/")

    assert "query" not in entry
    assert "body" not in entry
    assert entry["timestamp"]


@pytest.mark.asyncio
async def test_append_failure_is_absorbed(broken_redis):
    audit_log = AuditLog(broken_redis)

    await audit_log.append(audit_log.request_entry("GET", "/"))

    assert await audit_log.entries() == []


@pytest.mark.asyncio
async def test_unreadable_entries_are_skipped(redis):
    audit_log = AuditLog(redis)
    await audit_log.append(audit_log.request_entry("GET", "/ok"))
    await redis.lpush(Config.key("request_logs"), "not json {")

    entries = await audit_log.entries()

    assert [e["path"] for e in entries] == ["/ok"]


def test_summarize_body():
    assert summarize_body(b"", "application/json") is None
    assert summarize_body(b'{"a": 1}', "application/json") == {"a": 1}
    assert summarize_body(b'[1, 2]', "application/vnd.api+json") == [1, 2]
    assert summarize_body(b"hello", "text/plain") == "hello"
    assert summarize_body(b"{broken", "application/json") == "{broken"
    assert summarize_body(b"\x89PNG\r\n\x1a\n\x00\xff", "image/png") == "[Binary data: 10 bytes]"


def test_summarize_body_truncates_long_text():
    summary = summarize_body(b"x" * 100, "text/plain", max_chars=10)

    assert summary.startswith("x" * 10)
    assert summary.endswith("[truncated 90 chars]")


def test_format_access_log():
    line = AuditLog.format_access_log("POST", "/api/social/webhook?x=1", 200, 45.3)

    assert line.endswith("POST /api/social/webhook?x=1 -> 200 45ms")
