"""Rendered Audit Bridge HTTP surface: FastAPI app exposing the two agent tools."""

from __future__ import annotations

import logging
from typing import Any, Iterable
from urllib.parse import parse_qsl

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from render_audit_bridge.__about__ import __version__
from render_audit_bridge.audit import AuditClient
from render_audit_bridge.backends import RenderBackend, backend_from_config
from render_audit_bridge.config import BridgeConfig, load_config
from render_audit_bridge.discovery import AUDIT_ENDPOINT, RENDER_ENDPOINT, build_manifest
from render_audit_bridge.params import extract_params, require_url
from render_audit_bridge.render import render_page
from render_audit_bridge.shaper import (
    shape_audit,
    shape_render,
    unexpected_error,
    validation_error,
)

log = logging.getLogger(__name__)

APP_NAME = "Rendered Audit Bridge"


async def read_params(request: Request) -> dict[str, Any]:
    """Flatten body (JSON, JSON-as-text or form fields) and query into one dict."""
    raw = await request.body()
    content_type = request.headers.get("content-type", "").lower()
    body: Any = raw
    if content_type.startswith("application/x-www-form-urlencoded"):
        body = group_query(
            parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True)
        )
    return extract_params(body, group_query(request.query_params.multi_items()))


def group_query(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Single values stay strings; repeated keys become lists in arrival order."""
    grouped: dict[str, Any] = {}
    for key, value in items:
        if key not in grouped:
            grouped[key] = value
        elif isinstance(grouped[key], list):
            grouped[key].append(value)
        else:
            grouped[key] = [grouped[key], value]
    return grouped


def _log_startup(config: BridgeConfig, backend: RenderBackend) -> None:
    log.info("[Startup] %s v%s", APP_NAME, __version__)
    log.info("  PSI_API_KEY found: %s", "yes" if config.psi_api_key else "no")
    log.info(
        "  PSI timeout=%dms retries=%d alt=%s",
        config.psi_timeout_ms,
        config.psi_retries,
        "on" if config.psi_use_alt else "off",
    )
    log.info("  Renderer: %s", backend.name)
    if not config.psi_api_key:
        log.warning("No PSI_API_KEY configured; PageSpeed quota will be limited.")


def create_app(
    config: BridgeConfig | None = None,
    *,
    backend: RenderBackend | None = None,
    audit_client: AuditClient | None = None,
) -> FastAPI:
    """Build the app. Backend and audit client are fixed for the process lifetime."""
    config = config or load_config()
    backend = backend or backend_from_config(config)
    audit_client = audit_client or AuditClient(config)
    _log_startup(config, backend)

    app = FastAPI(
        title=APP_NAME,
        description="Rendered HTML excerpts and PageSpeed summaries for agents",
        version=__version__,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root() -> dict[str, Any]:
        return {"ok": True, "name": APP_NAME}

    @app.get("/discovery")
    @app.get("/.well-known/op-tool-discovery")
    def discovery() -> dict[str, Any]:
        return build_manifest(config.tool_suffix)

    @app.post(RENDER_ENDPOINT)
    async def get_rendered_html(request: Request) -> JSONResponse:
        try:
            params = await read_params(request)
            url = require_url(params)
            if not url:
                status, body = validation_error()
            else:
                result = await render_page(url, params, backend, config)
                status, body = shape_render(result)
        except Exception as e:
            log.error("Unexpected error in %s: %s", RENDER_ENDPOINT, e, exc_info=True)
            status, body = unexpected_error(e)
        return JSONResponse(status_code=status, content=body)

    @app.post(AUDIT_ENDPOINT)
    async def run_lighthouse(request: Request) -> JSONResponse:
        params = await read_params(request)
        url = require_url(params)
        if not url:
            status, body = validation_error()
        else:
            status, body = shape_audit(await audit_client.run(url, params))
        return JSONResponse(status_code=status, content=body)

    return app
