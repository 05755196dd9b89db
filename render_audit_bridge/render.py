# render_audit_bridge/render.py
"""
Render & extract engine.

Resolves request options, drives one backend session, and turns the captured
document into a bounded RenderResult. Navigation and capture failures are
reported inside the result (`rendered=False`, `error.kind="render_failed"`);
they never propagate to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from render_audit_bridge.backends import DEVICES, DeviceProfile, RenderBackend, RenderFailed
from render_audit_bridge.config import BridgeConfig
from render_audit_bridge.excerpt import build_excerpt
from render_audit_bridge.models import (
    RENDER_FAILED,
    Caps,
    ErrorInfo,
    ExtractedMeta,
    RenderResult,
)
from render_audit_bridge.params import clamp_kb, resolve_viewport, to_bool, to_int

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderOptions:
    url: str
    device: DeviceProfile
    timeout_ms: int
    idle_timeout_ms: int
    body_kb: float
    head_kb: float
    strip_scripts: bool
    return_extracted: bool


def resolve_render_options(
    url: str, params: Mapping[str, Any], config: BridgeConfig
) -> RenderOptions:
    timeout_ms = to_int(params.get("timeout_ms"), config.render_timeout_ms)
    return RenderOptions(
        url=url,
        device=DEVICES[resolve_viewport(params)],
        timeout_ms=timeout_ms,
        idle_timeout_ms=min(timeout_ms, config.network_idle_cap_ms),
        body_kb=clamp_kb(params.get("html_body_kb"), config.html_body_kb),
        head_kb=clamp_kb(params.get("head_limit_kb"), config.html_head_kb),
        strip_scripts=to_bool(params.get("strip_scripts"), True),
        return_extracted=to_bool(params.get("return_extracted"), True),
    )


async def render_page(
    url: str,
    params: Mapping[str, Any],
    backend: RenderBackend,
    config: BridgeConfig,
) -> RenderResult:
    """Render `url` with `backend` and return a bounded excerpt of the document."""
    opts = resolve_render_options(url, params, config)
    caps = Caps(body_kb=opts.body_kb, head_kb=opts.head_kb)
    final_url = url
    rendered = False
    html = ""
    extracted: ExtractedMeta | None = None

    log.info(
        "Render %s via %s (viewport=%s, timeout=%dms, body=%sKB, head=%sKB)",
        url,
        backend.name,
        opts.device.viewport,
        opts.timeout_ms,
        opts.body_kb,
        opts.head_kb,
    )

    try:
        async with backend.session(opts.device) as session:
            rendered = await session.navigate(url, opts.timeout_ms)
            final_url = session.current_url or url
            await session.wait_for_quiet(opts.idle_timeout_ms)
            final_url = session.current_url or final_url
            html = await session.content()
            if opts.return_extracted:
                extracted = await session.extract()
    except RenderFailed as e:
        log.warning("Render failed for %s: %s", url, e)
        return _failed(opts, caps, e.final_url or final_url, str(e))
    except Exception as e:
        log.error("An exception occurred while rendering %s: %s", url, e, exc_info=True)
        return _failed(opts, caps, final_url, str(e))

    excerpt = build_excerpt(
        html,
        head_kb=opts.head_kb,
        body_kb=opts.body_kb,
        strip_scripts=opts.strip_scripts,
    )
    log.info(
        "Rendered %s: %d chars captured, %d chars kept.",
        final_url,
        len(html),
        len(excerpt.html),
    )
    return RenderResult(
        rendered=rendered,
        final_url=final_url,
        user_agent=opts.device.user_agent,
        html_excerpt=excerpt.html,
        original_length=len(html),
        excerpt_length=len(excerpt.html),
        truncated=True,
        caps=caps,
        strip_scripts=opts.strip_scripts,
        extracted=extracted,
        return_extracted=opts.return_extracted,
    )


def _failed(opts: RenderOptions, caps: Caps, final_url: str, message: str) -> RenderResult:
    return RenderResult(
        rendered=False,
        final_url=final_url,
        user_agent=opts.device.user_agent,
        html_excerpt="",
        original_length=0,
        excerpt_length=0,
        truncated=False,
        caps=caps,
        strip_scripts=opts.strip_scripts,
        return_extracted=opts.return_extracted,
        error=ErrorInfo(kind=RENDER_FAILED, message=message),
    )
