"""HTML helpers: plain-text rendering, sanitizing and escaping.

Feed descriptions and AI output are both untrusted markup. Everything that ends up
in `description_html` goes through `sanitize_html`; AI output additionally goes
through `strip_document_tags` because models like to wrap fragments in a full
document.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup


BLOCK_TAGS = [
    "p", "div", "section", "article", "li", "ul", "ol", "h1", "h2", "h3", "h4", "h5", "h6",
    "tr", "table", "blockquote", "pre", "address", "header", "footer",
]

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.I)
_STYLE_RE = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.I)
_UNSAFE_TAG_RE = re.compile(r"</?(?:iframe|object|embed|link|style|noscript|script)\b[^>]*>", re.I)
_EVENT_QUOTED_RE = re.compile(r"\son\w+\s*=\s*[\"'][^\"']*[\"']", re.I)
_EVENT_BARE_RE = re.compile(r"\son\w+\s*=\s*[^\s>]+", re.I)
_JS_URL_QUOTED_RE = re.compile(r"\s(?:href|src)\s*=\s*[\"']\s*javascript:[^\"']*[\"']", re.I)
_JS_URL_BARE_RE = re.compile(r"\s(?:href|src)\s*=\s*javascript:[^\s>]+", re.I)

_DOCUMENT_TAG_RES = [
    re.compile(r"<!DOCTYPE[^>]*>", re.I),
    re.compile(r"</?html[^>]*>", re.I),
    re.compile(r"</?head[^>]*>", re.I),
    re.compile(r"</?body[^>]*>", re.I),
    re.compile(r"<meta[^>]*>", re.I),
    re.compile(r"<title[^>]*>.*?</title>", re.I | re.S),
]

_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#39;"}


def html_to_text(html: str) -> str:
    """Render markup (or plain text) as text, one line per block element.

    Link targets are dropped; only the anchor text is kept.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert_after("\n")
    lines = (re.sub(r"\s+", " ", line).strip() for line in soup.get_text().split("\n"))
    return "\n".join(line for line in lines if line)


def sanitize_html(html: str) -> str:
    """Remove active content: scripts, embeds, inline handlers, `javascript:` URLs."""
    if not html:
        return ""
    out = _SCRIPT_RE.sub("", str(html))
    out = _STYLE_RE.sub("", out)
    out = _UNSAFE_TAG_RE.sub("", out)
    out = _EVENT_QUOTED_RE.sub("", out)
    out = _EVENT_BARE_RE.sub("", out)
    out = _JS_URL_QUOTED_RE.sub("", out)
    return _JS_URL_BARE_RE.sub("", out)


def strip_document_tags(html: str) -> str:
    """Drop doctype/html/head/body/meta/title wrappers, keeping the fragment inside."""
    if not html:
        return ""
    out = str(html)
    for pattern in _DOCUMENT_TAG_RES:
        out = pattern.sub("", out)
    return out.strip()


def escape(text: str) -> str:
    return re.sub(r"[&<>\"']", lambda m: _ESCAPES[m.group(0)], str(text or ""))
