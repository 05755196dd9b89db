# render_audit_bridge/discovery.py
# Tool discovery manifest that calling agents fetch to learn the tool surface.

from __future__ import annotations

from typing import Any

RENDER_ENDPOINT = "/tools/get-rendered-html"
AUDIT_ENDPOINT = "/tools/run-lighthouse"


def _param(name: str, type_: str, description: str, required: bool = False) -> dict[str, Any]:
    return {
        "name": name,
        "type": type_,
        "required": required,
        "description": description,
    }


def build_manifest(tool_suffix: str = "") -> dict[str, Any]:
    """Describe both tools. `tool_suffix` separates deployments, e.g. "_prod"."""
    return {
        "functions": [
            {
                "name": f"get_rendered_html{tool_suffix}",
                "description": (
                    "Render URL (Chromium). Returns a slim HTML excerpt + parsed meta."
                ),
                "endpoint": RENDER_ENDPOINT,
                "http_method": "POST",
                "parameters": [
                    _param("url", "string", "Target URL (http/https)", required=True),
                    _param("viewport", "string", "desktop | mobile (default desktop)"),
                    _param("timeout_ms", "number", "Navigation timeout in ms (default 30000)"),
                    _param("html_body_kb", "number", "Body excerpt cap in KB (default 8)"),
                    _param("head_limit_kb", "number", "Head excerpt cap in KB (default 8)"),
                    _param(
                        "strip_scripts",
                        "boolean",
                        "Remove <script>/<style> blocks (default true)",
                    ),
                    _param(
                        "return_extracted",
                        "boolean",
                        "Include parsed fields (title, og, twitter, h1, etc.) (default true)",
                    ),
                ],
                "auth_requirements": [],
            },
            {
                "name": f"run_lighthouse{tool_suffix}",
                "description": "Fetch Lighthouse/PageSpeed data (compact summary only).",
                "endpoint": AUDIT_ENDPOINT,
                "http_method": "POST",
                "parameters": [
                    _param("url", "string", "Target URL (http/https)", required=True),
                    _param(
                        "categories",
                        "string",
                        "Comma-separated: performance, accessibility, best-practices, seo",
                    ),
                    _param("viewport", "string", "desktop | mobile (default desktop)"),
                    _param(
                        "psi_api_key",
                        "string",
                        "Optional PSI API key (or set PSI_API_KEY env var)",
                    ),
                    _param(
                        "include_full",
                        "boolean",
                        "Include the full provider report under `psi` (default false)",
                    ),
                ],
                "auth_requirements": [],
            },
        ]
    }
