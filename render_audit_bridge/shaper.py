# render_audit_bridge/shaper.py
# Wraps engine and client outcomes into the JSON envelopes served over HTTP.
# Recoverable failures keep a 200 status; callers branch on ok/rendered/note.

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from render_audit_bridge.models import (
    UNEXPECTED,
    VALIDATION_ERROR,
    AuditDegraded,
    AuditOutcome,
    RenderResult,
)

Shaped = tuple[int, dict[str, Any]]


def shape_render(result: RenderResult) -> Shaped:
    return 200, {"ok": True, **result.to_dict()}


def shape_audit(outcome: AuditOutcome) -> Shaped:
    if isinstance(outcome, AuditDegraded):
        body: dict[str, Any] = {
            "ok": True,
            "note": outcome.note,
            "input": asdict(outcome.input),
            "error": outcome.error,
        }
        if outcome.summary is not None:
            body["summary"] = asdict(outcome.summary)
        return 200, body

    body = {
        "ok": True,
        "input": asdict(outcome.input),
        "summary": asdict(outcome.summary),
    }
    if outcome.raw is not None:
        body["psi"] = outcome.raw
    return 200, body


def validation_error(message: str = "Missing URL") -> Shaped:
    return 400, {"ok": False, "error": {"kind": VALIDATION_ERROR, "message": message}}


def unexpected_error(exc: BaseException) -> Shaped:
    return 500, {"ok": False, "error": {"kind": UNEXPECTED, "message": str(exc)}}
