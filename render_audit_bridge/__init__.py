# Entrypoint for the render_audit_bridge package.
# This file makes the public API available to programmers.

from __future__ import annotations

from render_audit_bridge.__about__ import __version__
from render_audit_bridge.audit import AuditClient
from render_audit_bridge.backends import PlaywrightBackend, RenderBackend, StaticBackend
from render_audit_bridge.config import BridgeConfig, load_config
from render_audit_bridge.models import AuditDegraded, AuditSuccess, RenderResult
from render_audit_bridge.params import extract_params
from render_audit_bridge.render import render_page

__all__ = [
    "AuditClient",
    "AuditDegraded",
    "AuditSuccess",
    "BridgeConfig",
    "PlaywrightBackend",
    "RenderBackend",
    "RenderResult",
    "StaticBackend",
    "extract_params",
    "load_config",
    "render_page",
    "__version__",
]
