from __future__ import annotations

import asyncio

from conftest import FakeBackend, make_page

from render_audit_bridge.backends import DESKTOP_UA, MOBILE_UA
from render_audit_bridge.config import BridgeConfig
from render_audit_bridge.models import RENDER_FAILED
from render_audit_bridge.render import render_page, resolve_render_options

CONFIG = BridgeConfig()


def _render(backend: FakeBackend, params: dict | None = None, url: str = "https://example.com"):
    return asyncio.run(render_page(url, params or {}, backend, CONFIG))


def test_resolve_render_options_defaults():
    opts = resolve_render_options("https://example.com", {}, CONFIG)
    assert opts.device.viewport == "desktop"
    assert (opts.device.width, opts.device.height) == (1366, 768)
    assert opts.device.user_agent == DESKTOP_UA
    assert opts.timeout_ms == 30000
    assert opts.idle_timeout_ms == 15000
    assert opts.body_kb == 8 and opts.head_kb == 8
    assert opts.strip_scripts is True
    assert opts.return_extracted is True


def test_resolve_render_options_mobile_and_overrides():
    opts = resolve_render_options(
        "https://example.com",
        {
            "viewport": "Mobile",
            "timeout_ms": "5000",
            "html_body_kb": "2",
            "head_limit_kb": "-1",
            "strip_scripts": "false",
            "return_extracted": "0",
        },
        CONFIG,
    )
    assert opts.device.viewport == "mobile"
    assert (opts.device.width, opts.device.height) == (390, 844)
    assert opts.device.user_agent == MOBILE_UA
    assert opts.timeout_ms == 5000
    assert opts.idle_timeout_ms == 5000
    assert opts.body_kb == 2
    assert opts.head_kb == 8
    assert opts.strip_scripts is False
    assert opts.return_extracted is False


def test_render_success_builds_bounded_excerpt_and_metadata():
    backend = FakeBackend(html=make_page(5000), final_url="https://www.example.com/")
    result = _render(backend, {"html_body_kb": 1})

    assert result.rendered is True
    assert result.final_url == "https://www.example.com/"
    assert result.user_agent == DESKTOP_UA
    assert result.truncated is True
    assert result.error is None
    assert result.original_length == len(backend.html)
    assert result.excerpt_length == len(result.html_excerpt)
    assert result.excerpt_length < 1024 + 8 * 1024 + 200
    assert "<!-- [body truncated… kept ~1KB] -->" in result.html_excerpt
    assert "<script" not in result.html_excerpt
    assert result.extracted is not None
    assert result.extracted.title == "Example Domain"
    assert result.extracted.h1 == "Welcome"
    assert result.extracted.images[0].src == "https://www.example.com/logo.png"
    assert backend.idle_waits == [15000]


def test_session_is_released_exactly_once_on_success():
    backend = FakeBackend(html=make_page())
    _render(backend)
    assert backend.opened == 1
    assert backend.closed == 1


def test_navigation_failure_is_reported_and_session_released():
    backend = FakeBackend(html=make_page(), fail_on="navigate")
    result = _render(backend, {"viewport": "mobile"})

    assert backend.opened == 1
    assert backend.closed == 1
    assert result.rendered is False
    assert result.truncated is False
    assert result.html_excerpt == ""
    assert result.user_agent == MOBILE_UA
    assert result.final_url == "https://example.com"
    assert result.error is not None
    assert result.error.kind == RENDER_FAILED
    assert "ERR_NAME_NOT_RESOLVED" in result.error.message


def test_capture_failure_keeps_best_known_final_url():
    backend = FakeBackend(html=make_page(), final_url="https://redirected.example/", fail_on="content")
    result = _render(backend)
    assert backend.closed == 1
    assert result.rendered is False
    assert result.final_url == "https://redirected.example/"
    assert result.error.kind == RENDER_FAILED


def test_unexpected_backend_error_is_still_a_render_failure():
    backend = FakeBackend(html=make_page(), fail_on="crash")
    result = _render(backend)
    assert backend.closed == 1
    assert result.rendered is False
    assert result.error.message == "driver crashed"


def test_extraction_skipped_when_not_requested():
    backend = FakeBackend(html=make_page())
    result = _render(backend, {"return_extracted": "false"})
    assert backend.extract_calls == 0
    assert result.extracted is None
    assert "extracted" not in result.to_dict()


def test_scripts_kept_when_strip_disabled():
    backend = FakeBackend(html=make_page())
    result = _render(backend, {"strip_scripts": False})
    assert "<script>var tracking = 1;</script>" in result.html_excerpt
    assert result.to_dict()["strip_flags"] == {"scripts": False, "styles": False}


def test_to_dict_shape_on_failure():
    backend = FakeBackend(fail_on="navigate")
    payload = _render(backend).to_dict()
    assert payload["rendered"] is False
    assert payload["error"]["kind"] == "render_failed"
    assert payload["caps"] == {"body_kb": 8, "head_kb": 8}
    assert "extracted" not in payload
