"""Description rewriting and tagging.

Two `ContentEnhancer` implementations produce the same `EnrichedContent` shape:

- `TemplateEnhancer` is deterministic and always available. It keeps the first
  paragraphs of the original text and fills a fixed seven-section body.
- `AIEnhancer` asks the chat backend for a summary, an HTML body and tags in three
  delimited blocks, and repairs whichever block is missing.

`Enricher` picks one per call. Any failure of the AI path falls through to the
template, so enrichment never aborts a run.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .ai_client import ChatClient
from .config import Settings
from .errors import AIServiceError
from .markup import escape, html_to_text, sanitize_html, strip_document_tags
from .models import EnrichedContent
from .normalize import extract_tags, normalize_tags
from .utils import truncate_words


logger = logging.getLogger(__name__)

PLAIN_TEXT_LIMIT = 9000
SUMMARY_WORDS = 45
MIN_AI_HTML_LEN = 50

SECTION_TITLES: Dict[str, List[str]] = {
    "fr": [
        "À propos du poste", "Responsabilités", "Profil recherché", "Avantages",
        "Rémunération", "Lieu & Horaires", "Candidater",
    ],
    "en": [
        "About the role", "Responsibilities", "Candidate profile", "Benefits",
        "Compensation", "Location & Hours", "How to apply",
    ],
}

# Body of sections 2..7, plus the placeholder for an empty first section.
BOILERPLATE: Dict[str, Dict[str, str]] = {
    "fr": {
        "empty": "<p>Détails fournis par l’employeur.</p>",
        "Responsabilités": "<ul><li>Réaliser les missions décrites.</li></ul>",
        "Profil recherché": "<ul><li>Expérience pertinente ou motivation à apprendre.</li></ul>",
        "Avantages": "<ul><li>Avantages selon la description.</li></ul>",
        "Rémunération": "<p>À discuter.</p>",
        "Lieu & Horaires": "<p>Selon la description.</p>",
        "Candidater": "<p>Utilisez le bouton “Postuler”.</p>",
    },
    "en": {
        "empty": "<p>Details provided by the employer.</p>",
        "Responsibilities": "<ul><li>Carry out the duties described.</li></ul>",
        "Candidate profile": "<ul><li>Relevant experience or willingness to learn.</li></ul>",
        "Benefits": "<ul><li>Benefits as described.</li></ul>",
        "Compensation": "<p>To be discussed.</p>",
        "Location & Hours": "<p>As described.</p>",
        "How to apply": "<p>Use the “Apply” button.</p>",
    },
}

SYSTEM_PROMPT = """You are a senior editor of job postings for {profession}. Write naturally in {lang}.
OUTPUT CONTRACT - return EXACTLY these three blocks, in this order:
===DESCRIPTION=== [35-60 words of plain text. No HTML, quotes or emojis.]
===HTML=== [Clean HTML fragments; NEVER <!DOCTYPE>, <html>, <head> or <body>.]
===TAGS=== [Valid JSON array (3-8 items), all lowercase, in {lang}, relevant to {profession}.]

HTML SECTIONS (headings exactly as written, strict order):
{sections}

HTML RULES:
- Semantic tags only: <section>, <h2>, <p>, <ul>, <li>, <strong>, <em>, <time>, <address>.
- Exactly 7 sections with these <h2>, no empty section.
- Scannable lists: 5-8 bullets, 4-12 words per bullet.
- No inline styles, scripts, images or tables.
- No external links unless an explicit application link is provided.

CONTENT:
- DESCRIPTION: active voice, concrete benefits, no fluff.
- Compensation: range if known, otherwise "to be discussed".
- Never invent facts or links.
"""

USER_PROMPT = """Job: {title}
Company: {company}
Text:
{text}"""

DESCRIPTION_RE = re.compile(r"===DESCRIPTION===\s*([\s\S]*?)\s*===HTML===", re.I)
HTML_RE = re.compile(r"===HTML===\s*([\s\S]*?)\s*===TAGS===", re.I)
TAGS_RE = re.compile(r"===TAGS===\s*([\s\S]*)$", re.I)
JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
BLOCK_MARKER_RE = re.compile(r"===(DESCRIPTION|HTML|TAGS)===", re.I)


def section_titles(lang: str) -> List[str]:
    return SECTION_TITLES.get(lang, SECTION_TITLES["fr"])


def plain_text(html: str) -> str:
    return html_to_text(html)[:PLAIN_TEXT_LIMIT]


def single_section(summary: str, lang: str) -> str:
    return f"<section><h2>{section_titles(lang)[0]}</h2><p>{escape(summary)}</p></section>"


class ContentEnhancer(ABC):
    """Produces a summary, a structured HTML body and tags for one posting."""

    @abstractmethod
    def enhance(self, title: str, company: str, html: str) -> EnrichedContent:
        raise NotImplementedError


class TemplateEnhancer(ContentEnhancer):
    """Deterministic rewrite: same input, same output."""

    def __init__(self, profession: str, lang: str = "fr") -> None:
        self.profession = profession
        self.lang = lang if lang in SECTION_TITLES else "fr"

    def body(self, text: str) -> str:
        paragraphs = [p for p in text.split("\n") if p.strip()][:6]
        boilerplate = BOILERPLATE[self.lang]
        titles = section_titles(self.lang)
        first = "\n".join(f"<p>{escape(p)}</p>" for p in paragraphs) or boilerplate["empty"]
        sections = [f"<section><h2>{titles[0]}</h2>{first}</section>"]
        sections += [f"<section><h2>{t}</h2>{boilerplate[t]}</section>" for t in titles[1:]]
        return "\n".join(sections)

    def enhance(self, title: str, company: str, html: str) -> EnrichedContent:
        text = plain_text(html)
        return EnrichedContent(
            short=truncate_words(" ".join(text.split()), SUMMARY_WORDS),
            html=sanitize_html(self.body(text)),
            tags=extract_tags(title, company, html, self.profession, self.lang),
            used_ai=False,
        )


class AIEnhancer(ContentEnhancer):
    """Rewrite through the chat backend, repairing missing blocks locally."""

    def __init__(self, client: ChatClient, profession: str, lang: str = "fr") -> None:
        self.client = client
        self.profession = profession
        self.lang = lang

    def system_prompt(self) -> str:
        sections = "\n".join(f"{i}) {t}" for i, t in enumerate(section_titles(self.lang), start=1))
        return SYSTEM_PROMPT.format(profession=self.profession, lang=self.lang, sections=sections)

    def enhance(self, title: str, company: str, html: str) -> EnrichedContent:
        user = USER_PROMPT.format(title=title or "N/A", company=company or "N/A", text=plain_text(html))
        output = self.client.complete(self.system_prompt(), user)
        return self.parse(output, title, company, html)

    def parse(self, output: str, title: str, company: str, html: str) -> EnrichedContent:
        """Turn the three-block completion into EnrichedContent.

        Raises AIServiceError when the completion is empty or carries none of
        the block markers.
        """
        if not (output or "").strip() or not BLOCK_MARKER_RE.search(output):
            raise AIServiceError("AI output has no recognizable blocks")

        desc_match = DESCRIPTION_RE.search(output)
        short = (desc_match.group(1) if desc_match else "").strip()
        if not short:
            short = html_to_text(output)[:300]
        short = html_to_text(short).strip()[:600]

        html_match = HTML_RE.search(output)
        body = (html_match.group(1) if html_match else "").strip()
        body = strip_document_tags(body)
        if len(body) < MIN_AI_HTML_LEN:
            body = single_section(short, self.lang)

        tags = normalize_tags(self._parse_tags(output))
        if not tags:
            tags = extract_tags(title, company, html, self.profession, self.lang)

        return EnrichedContent(short=short, html=sanitize_html(body), tags=tags, used_ai=True)

    @staticmethod
    def _parse_tags(output: str) -> List[str]:
        tags_match = TAGS_RE.search(output)
        if not tags_match:
            return []
        array_match = JSON_ARRAY_RE.search(tags_match.group(1))
        if not array_match:
            return []
        try:
            parsed = json.loads(array_match.group(0))
        except ValueError:
            return []
        if not isinstance(parsed, list):
            return []
        return [str(t) for t in parsed if isinstance(t, (str, int, float))]


class Enricher:
    """Chooses the AI or template path per call, degrading on any AI failure."""

    def __init__(self, fallback: ContentEnhancer, ai: Optional[ContentEnhancer] = None) -> None:
        self.fallback = fallback
        self.ai = ai

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[ChatClient] = None) -> "Enricher":
        fallback = TemplateEnhancer(settings.target_profession, settings.target_lang)
        client = client or ChatClient.from_settings(settings)
        ai = AIEnhancer(client, settings.target_profession, settings.target_lang) if client else None
        return cls(fallback=fallback, ai=ai)

    @property
    def ai_available(self) -> bool:
        return self.ai is not None

    def enrich(self, title: str, company: str, html: str, use_ai: bool = False) -> EnrichedContent:
        if use_ai and self.ai is not None:
            try:
                return self.ai.enhance(title, company, html)
            except Exception as exc:
                logger.error(f"[enrich] AI rewrite failed for {title!r}, using template: {exc}")
        return self.fallback.enhance(title, company, html)
