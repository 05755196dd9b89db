# render_audit_bridge/params.py
"""
Request parameter normalization shared by both tools.

Callers post parameters in several shapes: a flat JSON object, a JSON
string, form fields, or an object that nests the real parameters under a
wrapper key such as "parameters" or "input". Everything is flattened into a
single dict here; query-string values win over body values.
"""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Mapping

from render_audit_bridge.models import Viewport

log = logging.getLogger(__name__)

WRAPPER_KEYS = ("parameters", "params", "data", "payload", "input", "body")


def _decode_body(body: Any) -> dict[str, Any]:
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        if not body.strip():
            return {}
        try:
            body = json.loads(body)
        except ValueError:
            log.debug("Request body is not valid JSON; ignoring it.")
            return {}
    if isinstance(body, Mapping):
        return dict(body)
    return {}


def extract_params(
    body: Any = None, query: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """
    Merge body and query parameters into one flat dict. Never raises.

    Nested wrapper objects are merged over the flat body in WRAPPER_KEYS
    order, then query parameters override everything. Unknown keys are kept.
    """
    params = _decode_body(body)
    for key in WRAPPER_KEYS:
        nested = params.get(key)
        if isinstance(nested, Mapping):
            params = {**params, **nested}
    if query:
        params = {**params, **dict(query)}
    return params


def to_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes")


def clamp_kb(value: Any, default: float) -> float:
    """Return `value` as a finite positive number, else `default`."""
    if isinstance(value, bool):
        return default
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(num) or num <= 0:
        return default
    return num


def to_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(num) or num <= 0:
        return default
    return int(num)


def resolve_viewport(params: Mapping[str, Any]) -> Viewport:
    raw = params.get("viewport")
    if raw is None:
        raw = params.get("form_factor")
    if raw is None:
        raw = params.get("formFactor")
    return "mobile" if str(raw or "").strip().lower() == "mobile" else "desktop"


def require_url(params: Mapping[str, Any]) -> str | None:
    """The trimmed target URL, or None when it is missing or blank."""
    raw = params.get("url")
    if raw is None:
        return None
    url = str(raw).strip()
    return url or None
