"""Relevance filtering and tag heuristics.

This module contains deterministic keyword logic:
- profession relevance filtering (recall-biased substring match)
- per-profession tag vocabularies
- keyword tag extraction with generic facets (remote, full-time, ...)
- tag normalization and slugs

AI-generated tags pass through the same normalization, so the tag vocabulary
stays consistent whichever path produced it.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .markup import html_to_text
from .utils import make_slug, uniq_preserve_order


MAX_TAGS = 8
TAG_SLUG_MAX_LEN = 120
BASELINE_PROFESSION = "conducteur routier"

PROFESSION_TAGS: Dict[str, List[str]] = {
    "conducteur routier": [
        "permis ce", "permis c", "spl", "poids lourd", "super poids lourd",
        "fimo", "fco", "adr", "matières dangereuses", "tachygraphe",
        "semi-remorque", "remorque", "solo", "plateau", "citerne", "bâché", "frigorifique",
        "distribution", "navettes", "régional", "national", "international",
        "travail de nuit", "week-end", "rotation", "planification de tournée",
    ],
    "truck driver": [
        "class 1", "class a", "cdl", "long haul", "regional", "local",
        "tanker", "flatbed", "otr", "hazmat",
    ],
    "chauffeur poids lourd": ["pl", "spl", "permis c", "permis ce", "fimo", "fco"],
    "warehouse": ["chariot", "cariste", "préparateur", "expédition", "réception", "inventaire"],
}

# (pattern, facet key); labels are localized below.
FACET_PATTERNS: List[Tuple[str, str]] = [
    (r"(télétravail|remote|travail à distance)", "remote"),
    (r"(temps plein|full[-\s]?time|plein temps)", "full_time"),
    (r"(temps partiel|part[-\s]?time|mi-temps)", "part_time"),
    (r"(cdi|permanent)", "permanent"),
    (r"(cdd|intérim|interim|contrat|temporaire)", "contract"),
]

FACET_LABELS: Dict[str, Dict[str, str]] = {
    "fr": {
        "remote": "télétravail",
        "full_time": "temps plein",
        "part_time": "temps partiel",
        "permanent": "cdi",
        "contract": "contrat",
    },
    "en": {
        "remote": "remote",
        "full_time": "full-time",
        "part_time": "part-time",
        "permanent": "permanent",
        "contract": "contract",
    },
}


def is_relevant(title: str, company: str, description: str, keywords: Sequence[str]) -> bool:
    """True if any configured keyword appears in title+company+description.

    Plain substring matching on purpose: a false positive costs one enrichment,
    a false negative loses a posting.
    """
    blob = f"{title or ''} {company or ''} {description or ''}".lower()
    return any(kw in blob for kw in keywords)


def normalize_tags(tags: Iterable[Optional[str]]) -> List[str]:
    """Trim, lowercase, dedupe (first seen wins) and keep at most 8 tags."""
    return uniq_preserve_order(tags)[:MAX_TAGS]


def tag_slug(name: str) -> str:
    return make_slug(name, max_len=TAG_SLUG_MAX_LEN)


def profession_vocabulary(profession: str) -> List[str]:
    """Static tag vocabulary for the profession, baseline vocabulary if unknown."""
    key = (profession or "").strip().lower()
    return PROFESSION_TAGS.get(key) or PROFESSION_TAGS[BASELINE_PROFESSION]


def extract_tags(title: str, company: str, html: str, profession: str, lang: str = "fr") -> List[str]:
    """Keyword tags for a posting, always ending with the profession name.

    Vocabulary and facet hits are capped one short of the tag limit so the
    profession name survives normalization.
    """
    text = f"{title or ''} {company or ''} {html_to_text(html)[:1000]}".lower()
    found = [tag for tag in profession_vocabulary(profession) if tag in text]

    labels = FACET_LABELS.get(lang, FACET_LABELS["fr"])
    for pattern, facet in FACET_PATTERNS:
        if re.search(pattern, text, re.I):
            found.append(labels[facet])

    profession_name = (profession or "").strip().lower()
    hits = [t for t in uniq_preserve_order(found) if t != profession_name][: MAX_TAGS - 1]
    return normalize_tags(hits + [profession_name])
