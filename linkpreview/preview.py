from typing import Optional

import httpx

from .errors import DisallowedTarget, PreviewError
from .fetcher import fetch_document
from .logger import log
from .metadata import extract_metadata
from .models import PreviewMetadata
from .safety import Resolver
from .urls import normalize_url


async def build_preview(
    raw_url: str,
    *,
    resolver: Optional[Resolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **limits,
) -> PreviewMetadata:
    """
    Fetch *raw_url* and extract its preview card.

    Safety rejections and transport failures are logged here with full
    detail and re-raised; callers should answer with an opaque error.
    """
    url = normalize_url(raw_url)
    try:
        doc = await fetch_document(url, resolver=resolver, transport=transport, **limits)
    except DisallowedTarget as e:
        log.warning(
            "preview blocked [%s] url=%s host=%s addresses=%s",
            e.reason, e.url, e.host, ",".join(e.addresses) or "-",
        )
        raise
    except PreviewError as e:
        log.warning("preview fetch failed [%s] %s", e.code, e)
        raise

    meta = extract_metadata(url, doc.body, final_url=doc.final_url, charset=doc.charset)
    log.debug("preview ok url=%s final=%s type=%s title=%r", url, doc.final_url, doc.content_type, meta.title)
    return meta
