# render_audit_bridge/excerpt.py
"""
Bounded excerpt construction for rendered markup.

The excerpt keeps the structurally useful parts of a document: the whole
<head> block (up to its own cap) and the first chunk of markup after the
opening <body> tag. Script and style blocks are stripped on request.
Caps are measured in UTF-8 bytes; lengths reported to callers are in
characters.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

HARD_BACKSTOP_CHARS = 80_000
MIN_CAP_BYTES = 1024

_SCRIPT_RE = re.compile(r"<script\b[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_HEAD_RE = re.compile(r"<head\b[^>]*>[\s\S]*?</head>", re.IGNORECASE)
_BODY_OPEN_RE = re.compile(r"<body\b[^>]*>", re.IGNORECASE)


@dataclass(frozen=True)
class Excerpt:
    html: str
    head_found: bool
    body_found: bool
    fallback: bool


def cap_bytes(kb: float) -> int:
    return max(MIN_CAP_BYTES, int(kb * 1024))


def format_kb(kb: float) -> str:
    return f"{kb:g}"


def strip_heavy(html: str, strip_scripts: bool = True) -> str:
    """Remove <script> and <style> blocks when `strip_scripts` is set."""
    out = html or ""
    if strip_scripts:
        out = _SCRIPT_RE.sub("", out)
        out = _STYLE_RE.sub("", out)
    return out


def truncate_bytes(text: str, limit: int) -> str:
    """Cut `text` to at most `limit` UTF-8 bytes without splitting a character."""
    # A character is at least one byte, so the char slice is an upper bound.
    candidate = text[:limit]
    encoded = candidate.encode("utf-8")
    if len(encoded) <= limit:
        return candidate
    return encoded[:limit].decode("utf-8", errors="ignore")


def build_excerpt(
    html: str,
    *,
    head_kb: float,
    body_kb: float,
    strip_scripts: bool = True,
) -> Excerpt:
    html = html or ""
    head_limit = cap_bytes(head_kb)
    body_limit = cap_bytes(body_kb)

    head_match = _HEAD_RE.search(html)
    body_match = _BODY_OPEN_RE.search(html)

    head_block = strip_heavy(head_match.group(0), strip_scripts) if head_match else ""
    if len(head_block.encode("utf-8")) > head_limit:
        head_block = (
            truncate_bytes(head_block, head_limit)
            + f"\n<!-- [head truncated… kept ~{format_kb(head_kb)}KB] -->"
        )

    parts = [head_block]
    if body_match:
        # The cap bounds what is scanned; stripping happens afterwards.
        body_slice = truncate_bytes(html[body_match.end():], body_limit)
        body_slice = strip_heavy(body_slice, strip_scripts)
        parts.append(
            body_match.group(0)
            + body_slice
            + f"\n<!-- [body truncated… kept ~{format_kb(body_kb)}KB] -->"
        )

    excerpt = "".join(parts)
    if excerpt:
        return Excerpt(
            html=excerpt,
            head_found=head_match is not None,
            body_found=body_match is not None,
            fallback=False,
        )

    safe = strip_heavy(html, strip_scripts)
    if len(safe) > HARD_BACKSTOP_CHARS:
        safe = (
            safe[:HARD_BACKSTOP_CHARS]
            + f"\n<!-- [hard truncated {len(safe) - HARD_BACKSTOP_CHARS} chars] -->"
        )
    return Excerpt(html=safe, head_found=False, body_found=False, fallback=True)
