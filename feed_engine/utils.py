"""Utility helpers shared across the engine."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Optional


def uniq_preserve_order(items: Iterable[Optional[str]]) -> List[str]:
    """Trim, lowercase and deduplicate while preserving first-seen order."""
    seen = set()
    out: List[str] = []
    for it in items:
        if not it:
            continue
        key = str(it).strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(key)
    return out


def truncate_words(text: str, n: int = 60) -> str:
    """Keep the first `n` whitespace-separated words, marking the cut with an ellipsis."""
    words = (text or "").split()
    if len(words) <= n:
        return text or ""
    return " ".join(words[:n]) + "…"


def make_slug(text: str, max_len: int = 120) -> str:
    """URL-safe lowercase token: accents transliterated, separators collapsed to '-'."""
    ascii_text = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_text.lower()).strip("-")
    return slug[:max_len].strip("-")
