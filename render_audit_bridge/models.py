# Data structures shared by the render engine, the audit client and the shaper.

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Union

Viewport = Literal["desktop", "mobile"]
AttemptOutcome = Literal["ok", "transient_error", "fatal_error", "timeout"]
AuditErrorType = Literal[
    "timeout", "fetch_error", "http_error", "parse_error", "unexpected"
]

RENDER_FAILED = "render_failed"
VALIDATION_ERROR = "validation_error"
UNEXPECTED = "unexpected"
PROVIDER_UNAVAILABLE = "psi_unavailable"


@dataclass(frozen=True)
class ImageRef:
    alt: str
    src: str


@dataclass(frozen=True)
class ExtractedMeta:
    """Structured fields derived from the rendered DOM."""

    title: str | None = None
    meta_description: str | None = None
    robots: str | None = None
    canonical: str | None = None
    viewport: str | None = None
    lang: str | None = None
    og: dict[str, str] = field(default_factory=dict)
    twitter: dict[str, str] = field(default_factory=dict)
    h1: str | None = None
    h2: list[str] = field(default_factory=list)
    intro_text: str = ""
    images: list[ImageRef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "ExtractedMeta":
        """Build from the plain dict returned by the in-page extraction script."""
        raw = raw or {}
        images = [
            ImageRef(alt=str(img.get("alt") or ""), src=str(img.get("src") or ""))
            for img in (raw.get("images") or [])
            if isinstance(img, dict)
        ]
        return cls(
            title=raw.get("title") or None,
            meta_description=raw.get("meta_description"),
            robots=raw.get("robots"),
            canonical=raw.get("canonical"),
            viewport=raw.get("viewport"),
            lang=raw.get("lang") or None,
            og={str(k): str(v or "") for k, v in (raw.get("og") or {}).items()},
            twitter={
                str(k): str(v or "") for k, v in (raw.get("twitter") or {}).items()
            },
            h1=raw.get("h1"),
            h2=[str(h) for h in (raw.get("h2") or [])][:6],
            intro_text=str(raw.get("intro_text") or ""),
            images=images[:8],
        )


@dataclass(frozen=True)
class Caps:
    body_kb: float
    head_kb: float


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str


@dataclass(frozen=True)
class RenderResult:
    """The outcome of one render call. `error` is set only when rendering failed."""

    rendered: bool
    final_url: str
    user_agent: str
    html_excerpt: str
    original_length: int
    excerpt_length: int
    truncated: bool
    caps: Caps
    strip_scripts: bool = True
    extracted: ExtractedMeta | None = None
    return_extracted: bool = True
    error: ErrorInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "rendered": self.rendered,
            "final_url": self.final_url,
            "user_agent": self.user_agent,
            "html_excerpt": self.html_excerpt,
            "original_length": self.original_length,
            "excerpt_length": self.excerpt_length,
            "truncated": self.truncated,
            "caps": asdict(self.caps),
            "strip_flags": {
                "scripts": self.strip_scripts,
                "styles": self.strip_scripts,
            },
        }
        if self.return_extracted and self.error is None:
            payload["extracted"] = asdict(self.extracted) if self.extracted else None
        if self.error is not None:
            payload["error"] = asdict(self.error)
        return payload


@dataclass(frozen=True)
class AuditInput:
    url: str | None
    viewport: Viewport
    categories: list[str]


@dataclass(frozen=True)
class AuditSummary:
    final_url: str | None
    fetch_time: str | None
    user_agent: str | None
    category_scores: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditSuccess:
    input: AuditInput
    summary: AuditSummary
    raw: dict[str, Any] | None = None


@dataclass(frozen=True)
class AuditDegraded:
    """The provider could not produce a report; `error` describes the last failure."""

    input: AuditInput
    error: dict[str, Any]
    summary: AuditSummary | None = None
    note: str = PROVIDER_UNAVAILABLE


AuditOutcome = Union[AuditSuccess, AuditDegraded]


@dataclass(frozen=True)
class Attempt:
    """One outbound call made by the audit retry loop."""

    target_endpoint: str
    index: int
    elapsed: float
    outcome: AttemptOutcome
    status: int | None = None
    status_text: str = ""
    body: str = ""
    message: str = ""
