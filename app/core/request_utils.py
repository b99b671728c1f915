"""Client identification, cookie parsing and filename helpers."""

import re

from starlette.requests import Request, cookie_parser

UNKNOWN_CLIENT_IP = "unknown"

# Checked in order when the deployment sits behind a trusted proxy.
PROXY_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_\-.]")


def get_client_ip(request: Request, trust_proxy: bool) -> str:
    """
    Return the caller's IP address.

    Forwarding headers are only honoured when trust_proxy is set; otherwise a
    client could spoof its address (and defeat session IP binding and rate
    limits) by sending them. X-Forwarded-For may hold a chain; the first entry
    is the original client.
    """
    if trust_proxy:
        for header in PROXY_IP_HEADERS:
            value = request.headers.get(header)
            if value:
                first = value.split(",")[0].strip()
                if first:
                    return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_IP


def parse_cookies(cookie_header: str | None) -> dict[str, str]:
    """Parse a raw Cookie header into a dict; malformed pairs are skipped."""
    if not cookie_header:
        return {}
    return cookie_parser(cookie_header)


def get_cookie(cookie_header: str | None, name: str) -> str | None:
    value = parse_cookies(cookie_header).get(name)
    return value or None


def sanitize_filename(name: str) -> str:
    """Replace anything outside [A-Za-z0-9_.-] so the value is safe in Content-Disposition."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name)
