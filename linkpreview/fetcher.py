"""
Bounded outbound GET for link previews.

Redirects are followed by hand so that every hop goes back through
:func:`linkpreview.safety.check_url` before a connection is opened. The
whole exchange, redirects included, runs under one wall-clock deadline
and the body is read incrementally against a byte cap.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx

from . import config
from .errors import BadStatus, BodyTooLarge, ConnectFailed, DisallowedTarget, FetchTimeout, TooManyRedirects
from .logger import log
from .safety import DISALLOWED_ADDRESS_RANGE, INVALID_URL, Resolver, check_url_async, is_public_address

REDIRECT_CODES = {301, 302, 303, 307, 308}
HTML_TYPES = {"text/html", "application/xhtml+xml"}

HEADERS = {
    "User-Agent": config.PREVIEW_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5",
    "Accept-Language": "en-US,en;q=0.9",
}

_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


@dataclass
class FetchedDocument:
    url: str
    final_url: str
    status_code: int
    content_type: str = ""
    charset: Optional[str] = None
    body: bytes = b""

    @property
    def is_html(self) -> bool:
        return not self.content_type or self.content_type in HTML_TYPES


def parse_content_type(header: str) -> Tuple[str, Optional[str]]:
    """('text/html', 'utf-8') from 'text/html; charset=UTF-8'."""
    if not header:
        return "", None
    media = header.split(";", 1)[0].strip().lower()
    m = _CHARSET_RE.search(header)
    return media, (m.group(1).lower() if m else None)


def strip_userinfo(url: str) -> str:
    """Drop ``user:pass@`` so no credentials ride along to a third party."""
    try:
        parts = urlsplit(url)
    except ValueError:
        # Left for check_url to reject as invalid-url.
        return url
    if "@" not in parts.netloc:
        return url
    return urlunsplit(parts._replace(netloc=parts.netloc.rsplit("@", 1)[1]))


def _check_peer(resp: httpx.Response, url: str) -> None:
    # Re-check the address actually connected to; DNS may have changed
    # since check_url ran.
    stream = resp.extensions.get("network_stream")
    if stream is None:
        return
    peer = stream.get_extra_info("server_addr")
    if not peer:
        return
    addr = str(peer[0])
    if not is_public_address(addr):
        raise DisallowedTarget(DISALLOWED_ADDRESS_RANGE, url, urlsplit(url).hostname or "", (addr,))


async def _read_capped(resp: httpx.Response, url: str, max_bytes: int) -> bytes:
    declared = resp.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        raise BodyTooLarge(url, f"declared {declared} bytes, cap {max_bytes}")
    buf = bytearray()
    async for chunk in resp.aiter_bytes():
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise BodyTooLarge(url, f"more than {max_bytes} bytes")
    return bytes(buf)


async def _follow(
    client: httpx.AsyncClient,
    url: str,
    max_redirects: int,
    max_bytes: int,
    resolver: Optional[Resolver],
) -> FetchedDocument:
    current = url
    for hop in range(max_redirects + 1):
        verdict = await check_url_async(current, resolver)
        if not verdict.ok:
            raise DisallowedTarget(verdict.reason, current, verdict.host, verdict.addresses)

        log.debug("hop %d: GET %s (%s)", hop, current, ", ".join(verdict.addresses))
        # Cookies set by an earlier hop are not forwarded to the next host.
        client.cookies.clear()
        try:
            async with client.stream("GET", current) as resp:
                _check_peer(resp, current)
                location = resp.headers.get("location")
                if resp.status_code in REDIRECT_CODES and location:
                    try:
                        current = strip_userinfo(urljoin(current, location.strip()))
                    except ValueError as e:
                        raise DisallowedTarget(INVALID_URL, location.strip()) from e
                    continue
                if not resp.is_success:
                    raise BadStatus(current, resp.status_code)

                media, charset = parse_content_type(resp.headers.get("content-type", ""))
                doc = FetchedDocument(
                    url=url,
                    final_url=current,
                    status_code=resp.status_code,
                    content_type=media,
                    charset=charset,
                )
                # Non-HTML bodies are never parsed, so they are never read.
                if doc.is_html:
                    doc.body = await _read_capped(resp, current, max_bytes)
                return doc
        except httpx.TimeoutException as e:
            raise FetchTimeout(current, str(e) or type(e).__name__) from e
        except httpx.RequestError as e:
            raise ConnectFailed(current, str(e) or type(e).__name__) from e
        except httpx.InvalidURL as e:
            raise ConnectFailed(current, f"invalid url: {e}") from e

    raise TooManyRedirects(url, f"more than {max_redirects} redirects")


async def fetch_document(
    url: str,
    *,
    timeout: float = config.PREVIEW_TIMEOUT_SEC,
    max_redirects: int = config.PREVIEW_MAX_REDIRECTS,
    max_bytes: int = config.PREVIEW_MAX_BYTES,
    resolver: Optional[Resolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FetchedDocument:
    """
    GET *url* under the configured limits.

    Raises a :class:`~linkpreview.errors.PreviewError` subclass on any
    failure; a redirect into a disallowed range fails the whole fetch.
    """
    url = strip_userinfo(url)
    try:
        async with asyncio.timeout(timeout):
            # Fresh client per fetch: no shared cookies, no env proxies/netrc.
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=False,
                trust_env=False,
                headers=HEADERS,
                transport=transport,
            ) as client:
                return await _follow(client, url, max_redirects, max_bytes, resolver)
    except TimeoutError as e:
        raise FetchTimeout(url, f"exceeded {timeout}s") from e
