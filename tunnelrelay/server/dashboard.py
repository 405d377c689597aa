"""HTML status page: current target, last registration and recent traffic."""

import json
from html import escape
from typing import Any, Dict, List, Optional

from .audit import REQUEST

REQUEST_COLOR = "#3b82f6"
SUCCESS_COLOR = "#10b981"
ERROR_COLOR = "#ef4444"


def _pretty(value: Any) -> str:
    if isinstance(value, str):
        return escape(value)
    return escape(json.dumps(value, indent=2, default=str))


def render_log_entry(entry: Dict[str, Any]) -> str:
    is_request = entry.get("type") == REQUEST
    status = entry.get("status")
    is_error = isinstance(status, int) and status >= 400

    if is_request:
        color = REQUEST_COLOR
        icon = "&#128229;"
    else:
        color = ERROR_COLOR if is_error else SUCCESS_COLOR
        icon = "&#128228;"

    parts = [f"""
            <div class="log" style="border-left: 4px solid {color};">
                <div class="log-header">
                    <span style="color: {color}; font-weight: bold;">{icon} {escape(str(entry.get("type", "?")))}</span>
                    <span class="muted">{escape(str(entry.get("timestamp", "")))}</span>
                </div>"""]

    if entry.get("method"):
        parts.append(f"""
                <div><span class="method">{escape(str(entry["method"]))}</span> <span class="path">{escape(str(entry.get("path", "")))}</span></div>""")
    elif entry.get("path"):
        parts.append(f"""
                <div class="path">{escape(str(entry["path"]))}</div>""")

    if status is not None:
        status_color = ERROR_COLOR if is_error else SUCCESS_COLOR
        parts.append(f"""
                <div>Status: <span style="color: {status_color}">{escape(str(status))}</span></div>""")

    if entry.get("query"):
        parts.append(f"""
                <div class="query">Query: {_pretty(entry["query"])}</div>""")

    if entry.get("body") is not None:
        parts.append(f"""
                <pre>{_pretty(entry["body"])}</pre>""")

    parts.append("""
            </div>""")
    return "".join(parts)


def render_dashboard(backend: Optional[str], last_registered: Optional[str],
                     entries: List[Dict[str, Any]], callback_url: str) -> str:
    """Render the status page as a complete HTML document."""
    logs_html = "".join(render_log_entry(entry) for entry in entries)
    if not logs_html:
        logs_html = '<p class="muted" style="text-align: center;">No logs found yet.</p>'

    status_color = SUCCESS_COLOR if backend else ERROR_COLOR
    status_text = "ACTIVE" if backend else "IDLE"

    return f"""<!DOCTYPE html>
<html>
<head>
    <title>Tunnelrelay</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            padding: 2rem;
            background: #0f172a;
            color: white;
            max-width: 1000px;
            margin: 0 auto;
        }}
        .grid {{
            display: grid;
            grid-template-columns: 1fr 1fr;
            gap: 20px;
            margin-bottom: 2rem;
        }}
        .card {{
            background: #1e293b;
            padding: 1.5rem;
            border-radius: 8px;
        }}
        .card h3 {{
            margin-top: 0;
        }}
        .logs {{
            background: #020617;
            padding: 1rem;
            border-radius: 8px;
            border: 1px solid #1e293b;
        }}
        .log {{
            background: #1e293b;
            padding: 10px;
            margin-bottom: 10px;
            font-family: monospace;
            font-size: 0.9rem;
        }}
        .log-header {{
            display: flex;
            justify-content: space-between;
            margin-bottom: 5px;
        }}
        .log pre {{
            background: #0f172a;
            padding: 5px;
            overflow-x: auto;
            color: #e2e8f0;
            margin: 5px 0 0 0;
        }}
        .muted {{ color: #94a3b8; }}
        .method {{ color: #cbd5e1; }}
        .path {{ color: #64748b; }}
        .query {{ margin-top: 5px; color: #a1a1aa; }}
        code {{ word-break: break-all; }}
    </style>
</head>
<body>
    <h1>Tunnelrelay</h1>

    <div class="grid">
        <div class="card">
            <h3>Status</h3>
            <p>Status: <span style="color: {status_color}; font-weight: bold;">{status_text}</span></p>
            <p>Target: <code>{escape(backend or "none")}</code></p>
            <p>Last Activity: <span class="muted">{escape(last_registered or "never")}</span></p>
        </div>
        <div class="card">
            <h3>Configuration</h3>
            <p><b>Callback URL:</b><br><code>{escape(callback_url)}</code></p>
        </div>
    </div>

    <h3>Recent Traffic Logs (Last {len(entries)})</h3>
    <div class="logs">
        {logs_html}
    </div>
</body>
</html>
"""
