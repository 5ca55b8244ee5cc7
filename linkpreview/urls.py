"""
First-link discovery for free text. Pure functions, no I/O; shared by the
server route and the client controller.
"""

import re
from typing import Optional
from urllib.parse import SplitResult, urlsplit

# A dot-bearing token with no whitespace, quotes or brackets, optionally
# led by an explicit http(s) scheme.
FIRST_LINK_RE = re.compile(r"(?:https?://)?[^\s<>\"'()]+\.[^\s<>\"'()]+", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def find_first_link(text: str) -> Optional[str]:
    """Return the raw first URL-like token in *text*, or None."""
    if not text:
        return None
    m = FIRST_LINK_RE.search(text)
    return m.group(0) if m else None


def normalize_url(raw: str) -> str:
    """
    Default the scheme to https. Tokens that already carry a ``scheme://``
    prefix are returned unchanged, so this is idempotent and ``ftp://...``
    stays ftp for the scheme check to reject.
    """
    raw = (raw or "").strip()
    if not raw:
        return raw
    if _SCHEME_RE.match(raw):
        return raw
    return f"https://{raw}"


def parse_candidate(url: str) -> Optional[SplitResult]:
    """Split *url*; None when it does not parse or carries no host."""
    try:
        parts = urlsplit(url)
        # .port raises on garbage like "host:abc"
        parts.port
    except ValueError:
        return None
    if not parts.hostname:
        return None
    return parts


def extract_preview_url(text: str) -> Optional[str]:
    """First link in *text*, normalized, or None when nothing usable exists."""
    raw = find_first_link(text)
    if raw is None:
        return None
    url = normalize_url(raw)
    if parse_candidate(url) is None:
        return None
    return url
