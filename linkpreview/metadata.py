"""
Title / description / image extraction from fetched documents.

Each field has an ordered list of strategies; the first one that returns a
non-empty value wins. Input may be truncated, malformed or not HTML at all
and never raises: the worst case is a record with only ``url`` set.
"""

import codecs
import re
import unicodedata
from typing import Callable, List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from . import config
from .models import PreviewMetadata

Strategy = Callable[[BeautifulSoup], Optional[str]]

# Image values are URLs: too long means drop, never truncate.
IMAGE_MAX_CHARS = 2048
IMAGE_SCHEMES = {"http", "https"}

_META_CHARSET_RE = re.compile(rb"<meta[^>]+charset\s*=\s*[\"']?\s*([\w.:-]+)", re.IGNORECASE)
_SPACE_RE = re.compile(r"\s+")


# ------------------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------------------
def _known_codec(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    try:
        info = codecs.lookup(name)
    except LookupError:
        return None
    # hex, base64, rot13 and the like are bytes-to-bytes transforms.
    if not getattr(info, "_is_text_encoding", True):
        return None
    return info.name


def decode_body(body: bytes, declared: Optional[str] = None) -> str:
    """Declared charset, then a sniffed <meta charset>, then UTF-8; never raises."""
    encoding = _known_codec(declared)
    if encoding is None:
        m = _META_CHARSET_RE.search(body[:1024])
        encoding = _known_codec(m.group(1).decode("ascii", "ignore")) if m else None
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except (LookupError, UnicodeError):
        # idna and friends refuse errors="replace".
        return body.decode("utf-8", errors="replace")


# ------------------------------------------------------------------------------
# Strategies
# ------------------------------------------------------------------------------
def meta_content(*keys: str) -> Strategy:
    """Match <meta property=KEY> or <meta name=KEY>, case-insensitively."""
    wanted = {k.lower() for k in keys}

    def strategy(soup: BeautifulSoup) -> Optional[str]:
        for tag in soup.find_all("meta"):
            key = tag.get("property") or tag.get("name") or ""
            if isinstance(key, list):
                key = " ".join(key)
            if key.strip().lower() in wanted:
                content = tag.get("content")
                if content and content.strip():
                    return content
        return None

    strategy.__name__ = f"meta_content({', '.join(keys)})"
    return strategy


def title_element(soup: BeautifulSoup) -> Optional[str]:
    if soup.title is None:
        return None
    return soup.title.get_text(" ", strip=True) or None


def link_href(rel: str) -> Strategy:
    def strategy(soup: BeautifulSoup) -> Optional[str]:
        for tag in soup.find_all("link"):
            rels = tag.get("rel") or []
            if isinstance(rels, str):
                rels = rels.split()
            if rel in (r.lower() for r in rels) and tag.get("href"):
                return tag["href"]
        return None

    strategy.__name__ = f"link_href({rel})"
    return strategy


TITLE_STRATEGIES: List[Strategy] = [
    meta_content("og:title"),
    meta_content("twitter:title"),
    title_element,
]

DESCRIPTION_STRATEGIES: List[Strategy] = [
    meta_content("og:description"),
    meta_content("twitter:description"),
    meta_content("description"),
]

IMAGE_STRATEGIES: List[Strategy] = [
    meta_content("og:image", "og:image:url", "og:image:secure_url"),
    meta_content("twitter:image", "twitter:image:src"),
    link_href("image_src"),
]


def first_match(soup: BeautifulSoup, strategies: List[Strategy]) -> Optional[str]:
    for strategy in strategies:
        value = strategy(soup)
        if value:
            return value
    return None


# ------------------------------------------------------------------------------
# Cleaning
# ------------------------------------------------------------------------------
def clean_text(value: Optional[str], max_chars: int = config.PREVIEW_FIELD_MAX_CHARS) -> str:
    """Strip control characters, collapse whitespace, trim and cap at *max_chars*."""
    if not value:
        return ""
    value = "".join(" " if unicodedata.category(ch) == "Cc" else ch for ch in value)
    value = _SPACE_RE.sub(" ", value).strip()
    if len(value) > max_chars:
        value = value[:max_chars].rstrip()
    return value


def clean_image(value: Optional[str], base_url: str) -> str:
    """
    Resolve against *base_url* and keep only http(s) targets. ``data:``,
    ``javascript:`` and friends are dropped. The server never fetches the
    image, so there is no address check here; the browser loads it.
    """
    value = clean_text(value, max_chars=IMAGE_MAX_CHARS + 1)
    if not value or len(value) > IMAGE_MAX_CHARS:
        return ""
    try:
        absolute = urljoin(base_url, value)
        parts = urlsplit(absolute)
    except ValueError:
        return ""
    if parts.scheme.lower() not in IMAGE_SCHEMES or not parts.netloc:
        return ""
    return absolute


# ------------------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------------------
def extract_metadata(
    url: str,
    body: bytes,
    *,
    final_url: Optional[str] = None,
    charset: Optional[str] = None,
    max_chars: int = config.PREVIEW_FIELD_MAX_CHARS,
) -> PreviewMetadata:
    if not body:
        return PreviewMetadata(url=url)
    # html.parser never runs scripts and copes with unclosed tags.
    soup = BeautifulSoup(decode_body(body, charset), "html.parser")
    return PreviewMetadata(
        url=url,
        title=clean_text(first_match(soup, TITLE_STRATEGIES), max_chars),
        description=clean_text(first_match(soup, DESCRIPTION_STRATEGIES), max_chars),
        image=clean_image(first_match(soup, IMAGE_STRATEGIES), final_url or url),
    )
