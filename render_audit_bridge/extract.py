# render_audit_bridge/extract.py
"""
Structured metadata extraction (title, meta tags, Open Graph, Twitter cards,
headings, intro text, images).

Two entry points produce the same shape:
- EXTRACT_SCRIPT runs inside a live browser page via `page.evaluate`.
- extract_from_html parses static markup with BeautifulSoup.
"""
from __future__ import annotations

import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from render_audit_bridge.models import ExtractedMeta

log = logging.getLogger(__name__)

MAX_H2 = 6
MAX_IMAGES = 8
INTRO_WORDS = 150

EXTRACT_SCRIPT = """
() => {
  const get = (sel, attr) => {
    const el = document.querySelector(sel);
    return el ? (attr ? el.getAttribute(attr) : el.textContent) : null;
  };
  const og = {}, twitter = {};
  for (const m of Array.from(document.querySelectorAll("meta"))) {
    const name = m.getAttribute("name");
    const property = m.getAttribute("property");
    const content = m.getAttribute("content") || "";
    if (property && property.startsWith("og:")) og[property] = content;
    if (name && name.startsWith("twitter:")) twitter[name] = content;
  }
  const h1 = get("h1");
  const h2 = Array.from(document.querySelectorAll("h2"))
    .map(h => (h.textContent || "").trim()).filter(Boolean).slice(0, %(max_h2)d);
  const bodyText = ((document.body && document.body.innerText) || "")
    .replace(/\\s+/g, " ").trim();
  const images = Array.from(document.images).slice(0, %(max_images)d)
    .map(img => ({ alt: (img.alt || "").trim(), src: img.src || "" }));
  return {
    title: document.title || null,
    meta_description: get('meta[name="description"]', "content"),
    robots: get('meta[name="robots"]', "content"),
    canonical: get('link[rel="canonical"]', "href"),
    viewport: get('meta[name="viewport"]', "content"),
    lang: document.documentElement.getAttribute("lang") || null,
    og, twitter,
    h1: h1 ? h1.trim() : null,
    h2,
    intro_text: bodyText.split(" ").slice(0, %(intro_words)d).join(" "),
    images
  };
}
""" % {"max_h2": MAX_H2, "max_images": MAX_IMAGES, "intro_words": INTRO_WORDS}

_WS_RE = re.compile(r"\s+")


def _attr(soup: BeautifulSoup, name: str, attrs: dict[str, str], attr: str) -> str | None:
    tag = soup.find(name, attrs=attrs)
    if not isinstance(tag, Tag):
        return None
    value = tag.get(attr)
    if isinstance(value, list):
        return " ".join(value)
    return value


def intro_text(text: str, words: int = INTRO_WORDS) -> str:
    collapsed = _WS_RE.sub(" ", text or "").strip()
    if not collapsed:
        return ""
    return " ".join(collapsed.split(" ")[:words])


def extract_from_html(html: str, base_url: str = "") -> ExtractedMeta:
    """Derive ExtractedMeta from static markup; relative image URLs resolve against `base_url`."""
    soup = BeautifulSoup(html or "", "html.parser")

    og: dict[str, str] = {}
    twitter: dict[str, str] = {}
    for meta in soup.find_all("meta"):
        prop = meta.get("property")
        name = meta.get("name")
        content = meta.get("content") or ""
        if isinstance(prop, str) and prop.startswith("og:"):
            og[prop] = content
        if isinstance(name, str) and name.startswith("twitter:"):
            twitter[name] = content

    title = soup.title.get_text() if soup.title else None
    h1_tag = soup.find("h1")
    h2 = [
        text
        for text in (h.get_text().strip() for h in soup.find_all("h2"))
        if text
    ][:MAX_H2]

    images = []
    for img in soup.find_all("img")[:MAX_IMAGES]:
        src = img.get("src") or ""
        images.append(
            {
                "alt": (img.get("alt") or "").strip(),
                "src": urljoin(base_url, src) if src else "",
            }
        )

    # Approximates innerText: invisible blocks do not contribute text.
    body = soup.body
    body_text = ""
    if body is not None:
        for tag in body.find_all(["script", "style", "noscript", "template"]):
            tag.decompose()
        body_text = body.get_text(" ")

    html_tag = soup.find("html")
    lang = html_tag.get("lang") if isinstance(html_tag, Tag) else None

    canonical = None
    for link in soup.find_all("link", href=True):
        if "canonical" in [r.lower() for r in (link.get("rel") or [])]:
            canonical = link.get("href")
            break

    return ExtractedMeta.from_dict(
        {
            "title": title,
            "meta_description": _attr(soup, "meta", {"name": "description"}, "content"),
            "robots": _attr(soup, "meta", {"name": "robots"}, "content"),
            "canonical": canonical,
            "viewport": _attr(soup, "meta", {"name": "viewport"}, "content"),
            "lang": lang,
            "og": og,
            "twitter": twitter,
            "h1": h1_tag.get_text().strip() if h1_tag else None,
            "h2": h2,
            "intro_text": intro_text(body_text),
            "images": images,
        }
    )
