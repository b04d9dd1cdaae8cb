"""
resetai/services/url_normalizer.py
----------------------------------
Canonical dedup keys for captured URLs.

    normalize_url("HTTPS://Example.com/Page/?q=1#top")  → "https://example.com/page"

The function is total: malformed input falls back to the lower-cased raw
string, and an empty or missing URL yields "" (dedup disabled for that sample).
normalize_url(normalize_url(u)) == normalize_url(u) for every string.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}
_HOST_REQUIRED = {"http", "https", "ws", "wss", "ftp"}


def _trim_tail(text: str) -> str:
    # whitespace left in front of a dropped query or fragment, then slashes
    trimmed = text.rstrip().rstrip("/")
    while trimmed != text:
        text, trimmed = trimmed, trimmed.rstrip().rstrip("/")
    return text


def _canonical(raw: str) -> str:
    parts = urlsplit(raw.strip())
    scheme = parts.scheme
    if not scheme:
        raise ValueError("relative URL")

    port = parts.port  # raises ValueError on a malformed port
    path = _trim_tail(parts.path)
    host = parts.hostname or ""
    if not path:
        host = host.rstrip()
    if ":" in host:
        host = f"[{host}]"
    if scheme in _HOST_REQUIRED and not host:
        raise ValueError(f"{scheme} URL without host")

    if not host:
        if scheme == "file" and path and not path.startswith("/"):
            path = "/" + path
        if path.startswith("/") or scheme == "file":
            return f"{scheme}://{path}"
        # opaque form, e.g. about:blank or mailto:someone@example.com
        return f"{scheme}:{path}"

    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"
    return f"{scheme}://{host}{path}"


def normalize_url(url: Optional[str]) -> str:
    if not url:
        return ""
    lowered = str(url).lower()
    try:
        return _canonical(lowered)
    except ValueError:
        return lowered


def domain_of(url: Optional[str]) -> str:
    """Hostname without a leading "www.", or "unknown" when there is none."""
    try:
        host = urlsplit((url or "").strip()).hostname
    except ValueError:
        return "unknown"
    if not host:
        return "unknown"
    return host.removeprefix("www.")
