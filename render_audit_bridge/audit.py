# render_audit_bridge/audit.py
"""
PageSpeed Insights (Lighthouse) client.

Turns an unreliable third-party HTTP dependency into an outcome that is
always well-formed: AuditSuccess with a compact score summary, or
AuditDegraded describing the last failure. Nothing raises past `run`.

The attempt loop is a small state machine:

    Trying(endpoint, index) --ok--------------------> Succeeded(attempt)
    Trying(endpoint, index) --429/5xx/timeout-------> Trying(next) | Degraded
    Trying(endpoint, index) --other status/network--> Degraded

The attempt plan is: primary, primary x retries, then the alternate
endpoint when enabled. Backoff between attempts is linear
(1s x attempt number) and only applies when retries or the alternate are on.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from render_audit_bridge.config import BridgeConfig, make_transport
from render_audit_bridge.models import (
    Attempt,
    AttemptOutcome,
    AuditDegraded,
    AuditInput,
    AuditOutcome,
    AuditSuccess,
    AuditSummary,
)
from render_audit_bridge.params import resolve_viewport, to_bool

log = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("accessibility",)
VALID_CATEGORIES = ("performance", "accessibility", "best-practices", "seo")
BODY_EXCERPT_CHARS = 500
BACKOFF_STEP_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[None]]


def resolve_categories(raw: Any) -> list[str]:
    """Normalize a list or CSV of categories; never returns an empty list."""
    if isinstance(raw, (list, tuple)):
        items = list(raw)
    elif isinstance(raw, str):
        items = [part.strip() for part in raw.split(",") if part.strip()]
    else:
        items = []
    categories: list[str] = []
    for item in items:
        cat = str(item or "").strip().lower().replace("_", "-")
        if cat in VALID_CATEGORIES and cat not in categories:
            categories.append(cat)
    return categories or list(DEFAULT_CATEGORIES)


def build_url(
    endpoint: str, *, url: str, strategy: str, categories: Sequence[str], key: str | None
) -> str:
    query: list[tuple[str, str]] = [("url", url), ("strategy", strategy)]
    query.extend(("category", c) for c in categories)
    if key:
        query.append(("key", key))
    return f"{endpoint}?{urlencode(query)}"


def redact_key(request_url: str) -> str:
    parts = urlsplit(request_url)
    query = [
        (k, "REDACTED" if k == "key" else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query)))


def plan_attempts(primary: str, alternate: str, retries: int, use_alt: bool) -> list[str]:
    plan = [primary] * (1 + min(2, max(0, retries)))
    if use_alt:
        plan.append(alternate)
    return plan


def classify_status(status: int) -> AttemptOutcome:
    if 200 <= status < 300:
        return "ok"
    if status == 429 or 500 <= status < 600:
        return "transient_error"
    return "fatal_error"


def js_round(value: float) -> int:
    """Round half up, matching how the provider's own tooling rounds scores."""
    return int(math.floor(value + 0.5))


# --- state machine -----------------------------------------------------------


@dataclass(frozen=True)
class Trying:
    endpoint: str
    index: int


@dataclass(frozen=True)
class Succeeded:
    attempt: Attempt


@dataclass(frozen=True)
class Degraded:
    error: dict[str, Any]


State = Union[Trying, Succeeded, Degraded]


def failure_detail(attempt: Attempt, timeout_ms: int) -> dict[str, Any]:
    """Describe a failed attempt for the degraded response body."""
    common = {
        "psi_url": redact_key(attempt.target_endpoint),
        "timeout_ms": timeout_ms,
        "attempt": attempt.index + 1,
    }
    if attempt.status is not None:
        return {
            "type": "http_error",
            "status": attempt.status,
            "status_text": attempt.status_text,
            "body_excerpt": attempt.body[:BODY_EXCERPT_CHARS],
            **common,
        }
    kind = "timeout" if attempt.outcome == "timeout" else "fetch_error"
    return {"type": kind, "message": attempt.message, **common}


def step(plan: Sequence[str], attempt: Attempt, timeout_ms: int) -> State:
    """Next state after `attempt`, the attempt at position `attempt.index` of `plan`."""
    if attempt.outcome == "ok":
        return Succeeded(attempt)
    if attempt.outcome == "fatal_error":
        return Degraded(failure_detail(attempt, timeout_ms))
    next_index = attempt.index + 1
    if next_index < len(plan):
        return Trying(plan[next_index], next_index)
    return Degraded(failure_detail(attempt, timeout_ms))


def summarize(data: Any, url: str) -> AuditSummary:
    """Reduce a full provider report to final URL, fetch time, UA and 0-100 scores."""
    data = data if isinstance(data, dict) else {}
    lr = data.get("lighthouseResult") or {}
    if not isinstance(lr, dict):
        lr = {}
    category_scores: dict[str, int] = {}
    for name, cat in (lr.get("categories") or {}).items():
        if not isinstance(cat, dict):
            continue
        score = cat.get("score")
        if isinstance(score, (int, float)) and not isinstance(score, bool):
            category_scores[name] = js_round(score * 100)
    env = lr.get("environment") or {}
    return AuditSummary(
        final_url=lr.get("finalDisplayedUrl") or lr.get("finalUrl") or data.get("id") or url,
        fetch_time=lr.get("fetchTime") or data.get("analysisUTCTimestamp") or None,
        user_agent=lr.get("userAgent")
        or env.get("hostUserAgent")
        or env.get("networkUserAgent")
        or None,
        category_scores=category_scores,
    )


def _fallback_input() -> AuditInput:
    return AuditInput(url=None, viewport="desktop", categories=list(DEFAULT_CATEGORIES))


class AuditClient:
    """Runs one audit per call; holds only immutable settings between calls."""

    def __init__(
        self,
        config: BridgeConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self.transport = transport
        self.sleep = sleep
        self.timeout_ms = config.psi_timeout_ms

    async def run(self, url: str, params: Mapping[str, Any]) -> AuditOutcome:
        """Audit `url`. Returns AuditSuccess or AuditDegraded; never raises."""
        audit_input: AuditInput | None = None
        try:
            viewport = resolve_viewport(params)
            audit_input = AuditInput(
                url=url,
                viewport=viewport,
                categories=resolve_categories(params.get("categories")),
            )
            return await self._run(audit_input, params)
        except Exception as e:
            log.error("Unexpected error during audit of %s: %s", url, e, exc_info=True)
            return AuditDegraded(
                input=audit_input or _fallback_input(),
                error={"type": "unexpected", "message": str(e)},
                summary=AuditSummary(None, None, None, {}),
            )

    async def _run(self, audit_input: AuditInput, params: Mapping[str, Any]) -> AuditOutcome:
        url = audit_input.url or ""
        strategy = audit_input.viewport.upper()
        include_full = to_bool(params.get("include_full"), False)
        key = str(params.get("psi_api_key") or "").strip() or self.config.psi_api_key

        primary = build_url(
            self.config.psi_primary_endpoint,
            url=url, strategy=strategy, categories=audit_input.categories, key=key,
        )
        alternate = build_url(
            self.config.psi_alt_endpoint,
            url=url, strategy=strategy, categories=audit_input.categories, key=key,
        )
        log.info(
            "[PSI] %s %s key? %s timeout=%dms retries=%d alt=%s",
            strategy,
            url,
            bool(key),
            self.timeout_ms,
            self.config.psi_retries,
            "on" if self.config.psi_use_alt else "off",
        )

        plan = plan_attempts(
            primary, alternate, self.config.psi_retries, self.config.psi_use_alt
        )
        state = await self._execute(plan)
        if not isinstance(state, Succeeded):
            log.warning("PSI unavailable for %s: %s", url, state.error.get("type"))
            return AuditDegraded(input=audit_input, error=state.error)
        try:
            data = json.loads(state.attempt.body)
        except ValueError as e:
            log.warning("PSI returned unparseable JSON for %s: %s", url, e)
            return AuditDegraded(
                input=audit_input, error={"type": "parse_error", "message": str(e)}
            )

        summary = summarize(data, url)
        log.info("PSI scores for %s: %s", url, summary.category_scores)
        return AuditSuccess(
            input=audit_input,
            summary=summary,
            raw=data if include_full else None,
        )

    async def _execute(self, plan: Sequence[str]) -> Union[Succeeded, Degraded]:
        backoff = len(plan) > 1
        state: State = Trying(plan[0], 0)
        async with httpx.AsyncClient(
            transport=self.transport or make_transport(self.config.force_ipv4),
            timeout=self.timeout_ms / 1000,
            follow_redirects=True,
        ) as client:
            while isinstance(state, Trying):
                if backoff and state.index > 0:
                    await self.sleep(BACKOFF_STEP_SECONDS * state.index)
                attempt = await self._attempt(client, state.endpoint, state.index)
                log.debug(
                    "PSI attempt %d -> %s (status=%s, %.2fs)",
                    attempt.index + 1,
                    attempt.outcome,
                    attempt.status,
                    attempt.elapsed,
                )
                state = step(plan, attempt, self.timeout_ms)
        return state

    async def _attempt(self, client: httpx.AsyncClient, target: str, index: int) -> Attempt:
        started = time.monotonic()
        try:
            resp = await asyncio.wait_for(client.get(target), timeout=self.timeout_ms / 1000)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            return Attempt(
                target_endpoint=target,
                index=index,
                elapsed=time.monotonic() - started,
                outcome="timeout",
                message=str(e) or f"Timed out after {self.timeout_ms}ms",
            )
        except httpx.RequestError as e:
            return Attempt(
                target_endpoint=target,
                index=index,
                elapsed=time.monotonic() - started,
                outcome="fatal_error",
                message=str(e) or e.__class__.__name__,
            )
        return Attempt(
            target_endpoint=target,
            index=index,
            elapsed=time.monotonic() - started,
            outcome=classify_status(resp.status_code),
            status=resp.status_code,
            status_text=resp.reason_phrase,
            body=resp.text,
        )
