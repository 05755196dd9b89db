# render_audit_bridge/config.py
"""
Centralized configuration management.

Handles loading defaults, merging in settings from pyproject.toml,
applying environment overrides, and freezing the result into a
BridgeConfig that is built once at startup and handed to every component.
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import httpx
import tomli

log = logging.getLogger(__name__)

PRIMARY_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
ALT_ENDPOINT = (
    "https://pagespeedonline.googleapis.com/pagespeedonline/v5/runPagespeed"
)

# This is the baseline configuration dictionary.
DEFAULT_CONFIG: dict[str, Any] = {
    # --- Renderer ---
    "renderer": "playwright",  # "playwright" | "static"
    "browser_ws_endpoint": None,  # connect over CDP instead of launching
    "headless": True,
    "render_timeout_ms": 30_000,
    "network_idle_cap_ms": 15_000,
    "html_body_kb": 8,
    "html_head_kb": 8,
    # --- PageSpeed Insights ---
    "psi_api_key": None,
    "psi_timeout_ms": 20_000,
    "psi_retries": 0,  # clamped to 0..2
    "psi_use_alt": False,
    "psi_primary_endpoint": PRIMARY_ENDPOINT,
    "psi_alt_endpoint": ALT_ENDPOINT,
    "force_ipv4": False,
    # --- Server ---
    "tool_suffix": "",
    "host": "0.0.0.0",
    "port": 8000,
}

# env var -> (config key, converter)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "RENDERER": ("renderer", "str"),
    "BROWSER_WS_ENDPOINT": ("browser_ws_endpoint", "str"),
    "RENDER_TIMEOUT_MS": ("render_timeout_ms", "int"),
    "HTML_BODY_KB": ("html_body_kb", "float"),
    "HTML_HEAD_KB": ("html_head_kb", "float"),
    "PSI_API_KEY": ("psi_api_key", "str"),
    "PSI_TIMEOUT_MS": ("psi_timeout_ms", "int"),
    "PSI_RETRIES": ("psi_retries", "int"),
    "PSI_USE_ALT": ("psi_use_alt", "bool"),
    "FORCE_IPV4": ("force_ipv4", "bool"),
    "TOOL_SUFFIX": ("tool_suffix", "str"),
    "HOST": ("host", "str"),
    "PORT": ("port", "int"),
}


@dataclass(frozen=True)
class BridgeConfig:
    """Immutable process-wide settings. Per-request parameters override some of these."""

    renderer: str = "playwright"
    browser_ws_endpoint: str | None = None
    headless: bool = True
    render_timeout_ms: int = 30_000
    network_idle_cap_ms: int = 15_000
    html_body_kb: float = 8
    html_head_kb: float = 8
    psi_api_key: str | None = None
    psi_timeout_ms: int = 20_000
    psi_retries: int = 0
    psi_use_alt: bool = False
    psi_primary_endpoint: str = PRIMARY_ENDPOINT
    psi_alt_endpoint: str = ALT_ENDPOINT
    force_ipv4: bool = False
    tool_suffix: str = ""
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "BridgeConfig":
        renderer = str(raw.get("renderer") or "playwright").lower()
        if renderer not in ("playwright", "static"):
            log.warning("Unknown renderer %r; using playwright.", renderer)
            renderer = "playwright"
        return cls(
            renderer=renderer,
            browser_ws_endpoint=raw.get("browser_ws_endpoint") or None,
            headless=bool(raw.get("headless", True)),
            render_timeout_ms=int(raw.get("render_timeout_ms", 30_000)),
            network_idle_cap_ms=int(raw.get("network_idle_cap_ms", 15_000)),
            html_body_kb=_positive(raw.get("html_body_kb"), 8),
            html_head_kb=_positive(raw.get("html_head_kb"), 8),
            psi_api_key=raw.get("psi_api_key") or None,
            psi_timeout_ms=int(raw.get("psi_timeout_ms", 20_000)),
            psi_retries=min(2, max(0, int(raw.get("psi_retries", 0)))),
            psi_use_alt=bool(raw.get("psi_use_alt", False)),
            psi_primary_endpoint=str(
                raw.get("psi_primary_endpoint") or PRIMARY_ENDPOINT
            ),
            psi_alt_endpoint=str(raw.get("psi_alt_endpoint") or ALT_ENDPOINT),
            force_ipv4=bool(raw.get("force_ipv4", False)),
            tool_suffix=str(raw.get("tool_suffix") or ""),
            host=str(raw.get("host") or "0.0.0.0"),
            port=int(raw.get("port", 8000)),
        )


def make_transport(force_ipv4: bool) -> httpx.AsyncHTTPTransport | None:
    """An httpx transport bound to IPv4 when `force_ipv4` is set, else None (httpx default)."""
    if not force_ipv4:
        return None
    return httpx.AsyncHTTPTransport(local_address="0.0.0.0")


def _positive(value: Any, default: float) -> float:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(num) or num <= 0:
        return default
    return num


def _deep_merge_dict(
    base: MutableMapping[str, Any], overrides: Mapping[str, Any]
) -> MutableMapping[str, Any]:
    """Recursively merge dicts."""
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), MutableMapping):
            base[key] = _deep_merge_dict(base[key], value)
        else:
            base[key] = value
    return base


def _convert(raw: str, kind: str) -> Any:
    if kind == "int":
        return int(raw)
    if kind == "float":
        return float(raw)
    if kind == "bool":
        return raw.strip().lower() in ("1", "true", "yes")
    return raw


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name, (key, kind) in _ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            overrides[key] = _convert(raw, kind)
        except ValueError:
            log.warning("Ignoring invalid value for %s: %r", name, raw)
    return overrides


def load_config_dict(
    pyproject_path: Path | None = None, env: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """
    Loads configuration as a plain dict.

    1. Starts with DEFAULT_CONFIG.
    2. If `pyproject.toml` is found, merges `[tool.render_audit_bridge]`.
    3. Applies environment variable overrides.
    """
    config = DEFAULT_CONFIG.copy()

    if pyproject_path is None:
        pyproject_path = Path.cwd() / "pyproject.toml"

    if not pyproject_path.exists():
        log.debug(
            "No pyproject.toml found at %s. Using default config.", pyproject_path
        )
    else:
        try:
            with pyproject_path.open("rb") as f:
                toml_data = tomli.load(f)

            project_config = toml_data.get("tool", {}).get("render_audit_bridge", {})
            if project_config:
                log.info("Loading config from %s", pyproject_path)
                config = _deep_merge_dict(config, project_config)  # type: ignore
            else:
                log.debug("No [tool.render_audit_bridge] section in %s.", pyproject_path)
        except (OSError, tomli.TOMLDecodeError) as e:
            log.warning(
                "Failed to load or parse %s: %s. Using default config.",
                pyproject_path,
                e,
            )

    env_config = _env_overrides(os.environ if env is None else env)
    if env_config:
        log.debug("Applying environment overrides: %s", sorted(env_config))
        config = _deep_merge_dict(config, env_config)  # type: ignore

    return config


def load_config(
    pyproject_path: Path | None = None, env: Mapping[str, str] | None = None
) -> BridgeConfig:
    """Load and freeze the process-wide configuration."""
    return BridgeConfig.from_mapping(load_config_dict(pyproject_path, env))
