"""End-to-end feed ingestion.

One run: stream the feed, drop duplicates and irrelevant records, enrich the
matches one at a time (AI while the per-run budget lasts, template otherwise),
write them in batches, then prune the store to `max_jobs`.

Runs are single-flight. A trigger that arrives while a run is in progress is
logged and ignored; feed runs are idempotent so nothing is lost by skipping it.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from typing import Dict, List, Optional, Set, Tuple

from .config import Settings
from .enrich import Enricher
from .markup import escape, html_to_text, sanitize_html, strip_document_tags
from .models import Posting, RawRecord, RunStats
from .normalize import extract_tags, is_relevant, normalize_tags
from .sources.base import FeedSource
from .sources.xml_feed import XmlFeedSource
from .store import BatchWriter, PostingStore
from .utils import make_slug, truncate_words


logger = logging.getLogger(__name__)

PROGRESS_EVERY = 10_000
AI_PROGRESS_EVERY = 10
SUMMARY_MAX_WORDS = 60
MANUAL_SUMMARY_WORDS = 45

UNTITLED = {"fr": "Sans titre", "en": "Untitled"}
DEFAULT_SLUG = {"fr": "emploi", "en": "job"}
UNIT_LABELS = {
    "fr": {"YEAR": "an", "MONTH": "mois", "WEEK": "semaine", "DAY": "jour", "HOUR": "heure"},
    "en": {"YEAR": "year", "MONTH": "month", "WEEK": "week", "DAY": "day", "HOUR": "hour"},
}
SALARY_LINE = {
    "fr": "<p><strong>Salaire :</strong> {currency} {amount} par {unit}</p>",
    "en": "<p><strong>Salary:</strong> {currency} {amount} per {unit}</p>",
}
PERIOD_LABEL = {"fr": "période", "en": "period"}


class FeedPipeline:
    """Fetch → parse → filter → enrich → persist → prune, one run at a time."""

    def __init__(
        self,
        settings: Settings,
        store: PostingStore,
        source: Optional[FeedSource] = None,
        enricher: Optional[Enricher] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.source = source
        if self.source is None and settings.feed_url:
            self.source = XmlFeedSource(settings.feed_url, timeout_s=settings.feed_timeout_s)
        self.enricher = enricher or Enricher.from_settings(settings)
        self._lock = threading.Lock()

    @property
    def lang(self) -> str:
        return self.settings.target_lang

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def status(self) -> Dict:
        return {
            "running": self.is_running,
            "jobs": self.store.count(self.settings.count_cache_ttl_s),
            "ai_enabled": self.enricher.ai_available,
            "feed_configured": self.source is not None,
        }

    # -- feed run ------------------------------------------------------------

    def run(self) -> Optional[RunStats]:
        """Process the feed once. Returns None when skipped (already running, no feed)."""
        if not self._lock.acquire(blocking=False):
            logger.info("[pipeline] Feed run already in progress, skipping")
            return None
        try:
            if self.source is None:
                logger.info("[pipeline] No FEED_URL configured")
                return None
            return self._run(self.source)
        except Exception as exc:
            logger.error(f"[pipeline] Feed run failed: {exc}")
            raise
        finally:
            self._lock.release()

    def _run(self, source: FeedSource) -> RunStats:
        settings = self.settings
        keywords = settings.keyword_list
        limit = settings.ai_process_limit
        logger.info(f"[pipeline] Fetching feed from {source.source_name} for profession {settings.target_profession!r}")
        logger.info(f"[pipeline] AI rewrite: {'unlimited' if limit == 0 else f'first {limit} postings'}")

        stats = RunStats()
        matches = self._collect(source, keywords, stats)

        if matches:
            logger.info(f"[pipeline] Enriching {len(matches):,} matched postings")
        writer = BatchWriter(self.store, settings.batch_size)
        for identity, record in matches:
            use_ai = limit == 0 or stats.ai_enhanced < limit
            content = self.enricher.enrich(record.title, record.company, record.description, use_ai=use_ai)
            if content.used_ai:
                stats.ai_enhanced += 1
                if stats.ai_enhanced % AI_PROGRESS_EVERY == 0:
                    logger.info(f"[pipeline] AI applied to {stats.ai_enhanced} postings")
            else:
                stats.fallback_used += 1

            writer.add(
                Posting(
                    guid=identity,
                    source=source.source_name,
                    title=record.title or UNTITLED.get(self.lang, UNTITLED["fr"]),
                    company=record.company,
                    description_html=content.html,
                    description_short=truncate_words(content.short, SUMMARY_MAX_WORDS),
                    url=record.link,
                    published_at=record.published_at(),
                    slug=self.posting_slug(record.title, record.company, identity),
                    tags_csv=", ".join(content.tags),
                )
            )
        writer.flush()
        stats.inserted = writer.inserted
        stats.conflicts = writer.conflicts

        stats.total = self.store.count(ttl_seconds=0)
        stats.pruned = self.store.prune(settings.max_jobs)
        if stats.pruned:
            stats.total = settings.max_jobs

        logger.info(
            f"[pipeline] Feed done: processed={stats.processed:,} matched={stats.matched:,} "
            f"inserted={stats.inserted:,} conflicts={stats.conflicts:,} ai={stats.ai_enhanced:,} "
            f"fallback={stats.fallback_used:,} skipped={stats.skipped:,} "
            f"(duplicates={stats.duplicates:,}, irrelevant={stats.irrelevant:,}) pruned={stats.pruned:,}"
        )
        return stats

    def _collect(self, source: FeedSource, keywords: List[str], stats: RunStats) -> List[Tuple[str, RawRecord]]:
        matches: List[Tuple[str, RawRecord]] = []
        # repeats inside one feed count as duplicates too
        seen: Set[str] = set()
        for record in source.iter_records():
            stats.processed += 1
            if stats.processed % PROGRESS_EVERY == 0:
                logger.info(
                    f"[pipeline] Parsed {stats.processed:,} records "
                    f"(matched {stats.matched:,}, skipped {stats.skipped:,})"
                )
            identity = record.identity(stats.processed)
            if identity in seen or self.store.has_guid(identity):
                stats.duplicates += 1
                continue
            seen.add(identity)
            if not is_relevant(record.title, record.company, record.description, keywords):
                stats.irrelevant += 1
                continue
            stats.matched += 1
            matches.append((identity, record))
        return matches

    def posting_slug(self, title: str, company: str, identity: str) -> str:
        return (
            make_slug(f"{title}-{company}")
            or make_slug(title)
            or make_slug(identity)
            or DEFAULT_SLUG.get(self.lang, DEFAULT_SLUG["fr"])
        )

    # -- manual postings -----------------------------------------------------

    def publish_manual(
        self,
        title: str,
        company: str,
        url: str,
        description: str = "",
        tags: str = "",
        currency: str = "",
        salary_min: str = "",
        salary_max: str = "",
        salary_unit: str = "YEAR",
    ) -> Optional[Posting]:
        """Publish one hand-entered posting.

        With no description, the body is generated (AI first) from a stub. Returns
        the stored posting, or None if it collided with an existing one.
        """
        if not (title and company and url):
            raise ValueError("title, company and url are required")

        now_ms = int(time.time() * 1000)
        guid = f"manual-{now_ms}-{secrets.token_hex(8)}"
        user_tags = [t.strip().lower() for t in tags.split(",") if t.strip()]
        profession = self.settings.target_profession

        if not description.strip():
            logger.info(f"[pipeline] Generating content for manual posting {title!r}")
            content = self.enricher.enrich(title, company, f"<p>{company}</p>", use_ai=True)
            body, short, found = content.html, content.short, content.tags
        else:
            body = sanitize_html(strip_document_tags(description))
            short = truncate_words(" ".join(html_to_text(description).split()), MANUAL_SUMMARY_WORDS)
            found = extract_tags(title, company, description, profession, self.lang)

        body += self.salary_line(currency, salary_min, salary_max, salary_unit)
        posting = Posting(
            guid=guid,
            source="manual",
            title=title,
            company=company,
            description_html=body,
            description_short=short,
            url=url,
            published_at=now_ms // 1000,
            slug=make_slug(f"{title}-{company}-{now_ms}") or make_slug(guid),
            tags_csv=", ".join(normalize_tags(found + user_tags)),
        )
        stored = self.store.insert(posting)
        self.store.count(ttl_seconds=0)
        if stored:
            logger.info(f"[pipeline] Published manual posting {title!r} at {company!r}")
        return stored

    def salary_line(self, currency: str, salary_min: str, salary_max: str, unit: str) -> str:
        if not (currency and (salary_min or salary_max)):
            return ""
        lang = self.lang if self.lang in SALARY_LINE else "fr"
        unit_label = UNIT_LABELS[lang].get(str(unit).upper(), PERIOD_LABEL[lang])
        amount = "-".join(v for v in (salary_min, salary_max) if v)
        return "\n" + SALARY_LINE[lang].format(currency=escape(currency), amount=escape(amount), unit=unit_label)
