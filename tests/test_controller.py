"""
Preview controller lifecycle: one request per note, newest wins, hidden
means no traffic at all.
"""

import asyncio

import httpx
import pytest

from linkpreview_client.controller import PreviewController, PreviewState
from linkpreview_client.prefs import JsonFilePreferenceStore, MemoryPreferenceStore, hidden_key


async def _until(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition never became true")


def _payload(url, title):
    return {"url": url, "title": title, "description": "", "image": ""}


class Upstream:
    """Mock preview endpoint; URLs listed in ``gates`` block until released."""

    def __init__(self):
        self.calls = []
        self.cancelled = []
        self.gates = {}
        self.status = 200

    async def handler(self, request):
        url = request.url.params["url"]
        self.calls.append(url)
        gate = self.gates.get(url)
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(url)
                raise
        if self.status != 200:
            return httpx.Response(self.status, json={"detail": "failed to fetch metadata"})
        return httpx.Response(200, json=_payload(url, f"title of {url}"))

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), base_url="http://notes.test")


@pytest.mark.asyncio
async def test_success():
    up = Upstream()
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
        ctl.mount("check example.com/a please")
        assert ctl.state.state is PreviewState.LOADING
        await ctl.wait()
    assert ctl.state.state is PreviewState.SUCCESS
    assert ctl.state.preview.title == "title of https://example.com/a"
    assert up.calls == ["https://example.com/a"]


@pytest.mark.asyncio
async def test_no_url_stays_idle():
    up = Upstream()
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
        ctl.mount("nothing to see")
        await ctl.wait()
    assert ctl.state.state is PreviewState.IDLE
    assert up.calls == []


@pytest.mark.asyncio
async def test_newer_url_supersedes_in_flight_request():
    up = Upstream()
    a, b = "https://a.example.com", "https://b.example.com"
    up.gates[a] = asyncio.Event()
    seen = []
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore(), on_change=seen.append)
        ctl.mount("a.example.com")
        await _until(lambda: a in up.calls)
        ctl.set_text("now b.example.com")
        await ctl.wait()
        up.gates[a].set()
        await asyncio.sleep(0.01)
    assert up.cancelled == [a]
    assert ctl.state.state is PreviewState.SUCCESS
    assert ctl.state.url == b
    assert all(v.url != a for v in seen if v.state is PreviewState.SUCCESS)


class _StubbornClient:
    """Transport that ignores aborts and still delivers A's answer late."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = []

    async def get(self, endpoint, params):
        url = params["url"]
        self.calls.append(url)
        if url.startswith("https://a."):
            try:
                await self.release.wait()
            except asyncio.CancelledError:
                await self.release.wait()
        request = httpx.Request("GET", "http://notes.test" + endpoint, params=params)
        return httpx.Response(200, json=_payload(url, url), request=request)


@pytest.mark.asyncio
async def test_late_result_from_superseded_request_is_discarded():
    client = _StubbornClient()
    ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
    ctl.mount("a.example.com")
    await _until(lambda: client.calls)
    stale = ctl._token
    ctl.set_text("b.example.com")
    await ctl.wait()
    assert ctl.state.url == "https://b.example.com"

    client.release.set()
    await asyncio.gather(stale.task, return_exceptions=True)
    assert stale.cancelled
    assert ctl.state.state is PreviewState.SUCCESS
    assert ctl.state.url == "https://b.example.com"


@pytest.mark.asyncio
async def test_hidden_issues_no_request():
    up = Upstream()
    prefs = MemoryPreferenceStore({hidden_key("memos/1"): True})
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, prefs)
        ctl.mount("example.com")
        ctl.set_text("example.org")
        await ctl.wait()
        assert ctl.state.state is PreviewState.HIDDEN
        assert up.calls == []

        ctl.show()
        await ctl.wait()
    assert prefs.get(hidden_key("memos/1")) is False
    assert ctl.state.state is PreviewState.SUCCESS
    assert up.calls == ["https://example.org"]


@pytest.mark.asyncio
async def test_hide_cancels_loading():
    up = Upstream()
    up.gates["https://example.com"] = asyncio.Event()
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
        ctl.mount("example.com")
        await _until(lambda: up.calls)
        ctl.hide()
        await asyncio.sleep(0.01)
    assert up.cancelled == ["https://example.com"]
    assert ctl.state.state is PreviewState.HIDDEN


@pytest.mark.asyncio
async def test_failure_is_not_retried():
    up = Upstream()
    up.status = 400
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
        ctl.mount("example.com")
        await ctl.wait()
        await asyncio.sleep(0.01)
    assert ctl.state.state is PreviewState.FAILED
    assert "400" in ctl.state.reason
    assert up.calls == ["https://example.com"]


@pytest.mark.asyncio
async def test_hide_then_show_retries_after_failure():
    up = Upstream()
    up.status = 400
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
        ctl.mount("example.com")
        await ctl.wait()
        up.status = 200
        ctl.hide()
        ctl.show()
        await ctl.wait()
    assert ctl.state.state is PreviewState.SUCCESS
    assert len(up.calls) == 2


@pytest.mark.asyncio
async def test_same_url_does_not_refetch():
    up = Upstream()
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
        ctl.mount("example.com is nice")
        await ctl.wait()
        ctl.set_text("example.com is still nice")
        await ctl.wait()
    assert up.calls == ["https://example.com"]


@pytest.mark.asyncio
async def test_close_cancels_in_flight():
    up = Upstream()
    up.gates["https://example.com"] = asyncio.Event()
    async with up.client() as client:
        ctl = PreviewController("memos/1", client, MemoryPreferenceStore())
        ctl.mount("example.com")
        await _until(lambda: up.calls)
        await ctl.close()
    assert up.cancelled == ["https://example.com"]
    assert ctl.state.state is PreviewState.LOADING


@pytest.mark.asyncio
async def test_hidden_flag_persists_per_note(tmp_path):
    up = Upstream()
    prefs = JsonFilePreferenceStore(tmp_path / "prefs.json")
    async with up.client() as client:
        first = PreviewController("memos/1", client, prefs)
        first.mount("example.com")
        first.hide()
        await first.close()

        again = PreviewController("memos/1", client, JsonFilePreferenceStore(tmp_path / "prefs.json"))
        other = PreviewController("memos/2", client, prefs)
        again.mount("example.com")
        other.mount("example.com")
        await again.wait()
        await other.wait()
    assert again.state.state is PreviewState.HIDDEN
    assert other.state.state is PreviewState.SUCCESS
