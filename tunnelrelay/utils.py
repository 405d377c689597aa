"""Common utility functions for tunnelrelay."""

import ipaddress
from typing import Optional
from urllib.parse import urlparse

LOOPBACK_NAMES = ("localhost", "127.0.0.1")

# Text-based MIME types outside text/* that should never be treated as binary
TEXT_TYPES = {
    'application/json', 'application/javascript', 'application/xml',
    'application/xhtml+xml', 'application/rss+xml', 'application/atom+xml',
    'application/x-www-form-urlencoded', 'application/x-javascript',
    'application/ld+json', 'application/manifest+json',
    'application/graphql', 'application/x-yaml', 'application/ecmascript',
    'application/sql', 'message/rfc822', 'message/http',
}

TEXT_KEYWORDS = ('json', 'xml', 'javascript', 'ecmascript', 'yaml', 'csv', 'text')


def is_binary_content(content_type: Optional[str]) -> bool:
    """
    Determine if a content-type header value indicates binary data.

    Args:
        content_type: The content-type header value (e.g., 'application/pdf')

    Returns:
        True if the content is binary, False if it's text-based
    """
    if not content_type:
        # No content type: assume binary to be safe
        return True

    # Normalize content type (remove parameters like charset)
    base_type = content_type.split(';')[0].strip().lower()

    if base_type in TEXT_TYPES or base_type.startswith('text/'):
        return False

    for keyword in TEXT_KEYWORDS:
        if keyword in base_type:
            return False

    return True


def is_json_content(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    base_type = content_type.split(';')[0].strip().lower()
    return base_type == 'application/json' or base_type.endswith('+json')


def references_loopback(url: str) -> bool:
    """
    Check whether a URL points at the local machine.

    Any mention of 'localhost' or '127.0.0.1' counts, as does a host that
    parses as a loopback IP address such as [::1] or 127.0.0.2.
    """
    lowered = url.lower()
    if any(name in lowered for name in LOOPBACK_NAMES):
        return True

    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return False
    if not hostname:
        return False

    try:
        return ipaddress.ip_address(hostname).is_loopback
    except ValueError:
        return False
