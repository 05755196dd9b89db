# Shared fakes for the render backend and the PageSpeed provider.

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from render_audit_bridge.backends import DeviceProfile, RenderBackend, RenderFailed, RenderSession
from render_audit_bridge.extract import extract_from_html
from render_audit_bridge.models import ExtractedMeta


def make_page(body_text_bytes: int = 4000) -> str:
    filler = ("<p>" + "lorem ipsum dolor sit amet " * 4 + "</p>\n") * (
        body_text_bytes // 120 + 1
    )
    return (
        "<!DOCTYPE html><html lang=\"en\"><head>"
        "<title>Example Domain</title>"
        "<meta name=\"description\" content=\"An example page\">"
        "<meta property=\"og:title\" content=\"Example OG\">"
        "<script>var tracking = 1;</script>"
        "<style>body { color: red; }</style>"
        "</head><body class=\"home\">"
        "<h1> Welcome </h1><h2>First</h2><h2>Second</h2>"
        "<img src=\"/logo.png\" alt=\" Logo \">"
        f"{filler}"
        "</body></html>"
    )


class FakeSession(RenderSession):
    def __init__(self, backend: "FakeBackend", device: DeviceProfile):
        self.backend = backend
        self.device = device
        self._url = ""

    async def __aenter__(self) -> "FakeSession":
        self.backend.opened += 1
        self.backend.devices.append(self.device)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.backend.closed += 1

    async def navigate(self, url: str, timeout_ms: int) -> bool:
        self.backend.navigations.append((url, timeout_ms))
        if self.backend.fail_on == "navigate":
            raise RenderFailed("net::ERR_NAME_NOT_RESOLVED", url)
        if self.backend.fail_on == "crash":
            raise RuntimeError("driver crashed")
        self._url = self.backend.final_url or url
        return True

    async def wait_for_quiet(self, timeout_ms: int) -> None:
        self.backend.idle_waits.append(timeout_ms)

    @property
    def current_url(self) -> str:
        return self._url

    async def content(self) -> str:
        if self.backend.fail_on == "content":
            raise RenderFailed("Capture failed: target closed", self._url)
        return self.backend.html

    async def extract(self) -> ExtractedMeta:
        self.backend.extract_calls += 1
        return extract_from_html(self.backend.html, self._url)


class FakeBackend(RenderBackend):
    name = "fake"

    def __init__(self, html: str = "", final_url: str | None = None, fail_on: str | None = None):
        self.html = html
        self.final_url = final_url
        self.fail_on = fail_on
        self.opened = 0
        self.closed = 0
        self.extract_calls = 0
        self.devices: list[DeviceProfile] = []
        self.navigations: list[tuple[str, int]] = []
        self.idle_waits: list[int] = []

    def session(self, device: DeviceProfile) -> FakeSession:
        return FakeSession(self, device)


class FakeProvider:
    """Replays response factories for successive PSI requests; the last one repeats."""

    def __init__(self, responses: list[Any]):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.responses) - 1)
        return self.responses[index](request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def psi_report(scores: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": "https://example.com/",
        "analysisUTCTimestamp": "2026-10-19T10:00:00.000Z",
        "lighthouseResult": {
            "finalDisplayedUrl": "https://example.com/",
            "fetchTime": "2026-10-19T10:00:01.000Z",
            "environment": {"hostUserAgent": "HeadlessChrome/120"},
            "categories": {name: {"id": name, "score": s} for name, s in scores.items()},
        },
    }


def json_response(status: int, payload: Any):
    return lambda request: httpx.Response(status, content=json.dumps(payload).encode("utf-8"))


def text_response(status: int, text: str = ""):
    return lambda request: httpx.Response(status, text=text)


def raising(exc_type: type[httpx.RequestError], message: str):
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type(message, request=request)

    return handler


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()
