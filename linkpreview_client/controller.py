"""
Client-side lifecycle of one note's link preview.

At most one request is in flight per controller. Every attempt gets a
:class:`CancelToken`; superseding an attempt cancels its task (which aborts
the HTTP request) and a result is only committed while its token is still
the current one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx

from linkpreview.logger import client_log as log
from linkpreview.models import PreviewMetadata
from linkpreview.urls import extract_preview_url

from .prefs import PreferenceStore, hidden_key

PREVIEW_ENDPOINT = "/api/link/preview"


class PreviewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    FAILED = "failed"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class PreviewView:
    state: PreviewState
    url: Optional[str] = None
    preview: Optional[PreviewMetadata] = None
    reason: str = ""


class CancelToken:
    def __init__(self, url: str):
        self.url = url
        self.cancelled = False
        self.task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()


class PreviewController:
    def __init__(
        self,
        note_id: str,
        client: httpx.AsyncClient,
        prefs: PreferenceStore,
        *,
        endpoint: str = PREVIEW_ENDPOINT,
        on_change: Optional[Callable[[PreviewView], None]] = None,
    ):
        self.note_id = note_id
        self.endpoint = endpoint
        self.on_change = on_change
        self.state = PreviewView(PreviewState.IDLE)
        self._client = client
        self._prefs = prefs
        self._url: Optional[str] = None
        self._token: Optional[CancelToken] = None
        self._mounted = False

    # -- public -------------------------------------------------------------
    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def hidden(self) -> bool:
        return bool(self._prefs.get(hidden_key(self.note_id), False))

    def mount(self, text: str = "") -> None:
        self._mounted = True
        self._url = extract_preview_url(text)
        self._refresh()

    def set_text(self, text: str) -> None:
        url = extract_preview_url(text)
        if url == self._url:
            return
        self._url = url
        self._refresh()

    def hide(self) -> None:
        self._prefs.set(hidden_key(self.note_id), True)
        self._cancel()
        self._set(PreviewView(PreviewState.HIDDEN, self._url))

    def show(self) -> None:
        self._prefs.set(hidden_key(self.note_id), False)
        self._refresh()

    async def wait(self) -> None:
        """Block until the current attempt, if any, has settled."""
        token = self._token
        if token is not None and token.task is not None:
            await asyncio.gather(token.task, return_exceptions=True)

    async def close(self) -> None:
        self._mounted = False
        token = self._cancel()
        if token is not None and token.task is not None:
            await asyncio.gather(token.task, return_exceptions=True)

    # -- internals ----------------------------------------------------------
    def _cancel(self) -> Optional[CancelToken]:
        token, self._token = self._token, None
        if token is not None:
            token.cancel()
        return token

    def _refresh(self) -> None:
        self._cancel()
        if not self._mounted:
            return
        # Hidden means "do not contact this third party": no request at all.
        if self.hidden:
            self._set(PreviewView(PreviewState.HIDDEN, self._url))
            return
        if self._url is None:
            self._set(PreviewView(PreviewState.IDLE))
            return
        token = CancelToken(self._url)
        self._token = token
        self._set(PreviewView(PreviewState.LOADING, token.url))
        token.task = asyncio.create_task(self._run(token))

    async def _run(self, token: CancelToken) -> None:
        try:
            resp = await self._client.get(self.endpoint, params={"url": token.url})
            resp.raise_for_status()
            preview = PreviewMetadata.model_validate(resp.json())
        except asyncio.CancelledError:
            log.debug("preview %s: request for %s cancelled", self.note_id, token.url)
            raise
        except (httpx.HTTPError, ValueError) as e:
            self._commit(token, PreviewView(PreviewState.FAILED, token.url, reason=str(e) or type(e).__name__))
            return
        self._commit(token, PreviewView(PreviewState.SUCCESS, token.url, preview=preview))

    def _commit(self, token: CancelToken, view: PreviewView) -> None:
        if token.cancelled or token is not self._token:
            log.debug("preview %s: dropping stale result for %s", self.note_id, token.url)
            return
        self._set(view)

    def _set(self, view: PreviewView) -> None:
        self.state = view
        if self.on_change is not None:
            self.on_change(view)
