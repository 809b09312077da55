"""SQLite storage for postings, tags and the cached posting count.

`PostingStore` is the only writer of the `jobs`, `tags`, `job_tags` and
`stats_cache` tables. Writes are insert-or-ignore keyed on the unique columns
(`jobs.guid`, `jobs.slug`, `tags.name`, `tags.slug`, `(job_id, tag_id)`), so
replays and races never raise. Listings use keyset pagination on
`(published_at DESC, id DESC)`.

The connection is shared between threads (a status call may arrive during a
run), so every statement and every transaction runs under one re-entrant lock.
A reader never observes, or commits, half of a batch.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Cursor, Page, Posting, Tag
from .normalize import tag_slug


logger = logging.getLogger(__name__)

TOTAL_JOBS_KEY = "total_jobs"

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  guid TEXT UNIQUE,
  source TEXT,
  title TEXT,
  company TEXT,
  description_html TEXT,
  description_short TEXT,
  url TEXT,
  published_at INTEGER,
  slug TEXT UNIQUE,
  tags_csv TEXT DEFAULT '',
  created_at INTEGER DEFAULT (strftime('%s','now'))
);
CREATE INDEX IF NOT EXISTS idx_jobs_published ON jobs(published_at DESC, id DESC);

CREATE TABLE IF NOT EXISTS tags (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT UNIQUE,
  slug TEXT UNIQUE
);

CREATE TABLE IF NOT EXISTS job_tags (
  job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
  tag_id INTEGER NOT NULL REFERENCES tags(id),
  UNIQUE(job_id, tag_id) ON CONFLICT IGNORE
);
CREATE INDEX IF NOT EXISTS idx_job_tags_tag_id ON job_tags(tag_id);

CREATE TABLE IF NOT EXISTS stats_cache (
  key TEXT PRIMARY KEY,
  value INTEGER,
  updated_at INTEGER
);
"""

LIST_COLUMNS = "j.id, j.title, j.company, j.description_short, j.slug, j.published_at"

INSERT_JOB_SQL = """
INSERT OR IGNORE INTO jobs
(guid, source, title, company, description_html, description_short, url, published_at, slug, tags_csv)
VALUES (:guid, :source, :title, :company, :description_html, :description_short, :url, :published_at, :slug, :tags_csv)
"""


def like_escape(text: str) -> str:
    """Escape LIKE wildcards so the text matches literally (with `ESCAPE '\\'`)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostingStore:
    """Posting/tag persistence, count cache and retention on one SQLite database."""

    def __init__(self, path: str = "jobs.db") -> None:
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._lock = threading.RLock()
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        if path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute("PRAGMA synchronous = NORMAL")
        self.init_schema()

    def init_schema(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "PostingStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- helpers -------------------------------------------------------------

    def _one(self, sql: str, params: Sequence = ()) -> Optional[Dict]:
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        return dict(row) if row else None

    def _all(self, sql: str, params: Sequence = ()) -> List[Dict]:
        with self._lock:
            return [dict(r) for r in self._conn.execute(sql, params).fetchall()]

    # -- writes --------------------------------------------------------------

    def has_guid(self, guid: str) -> bool:
        return self._one("SELECT id FROM jobs WHERE guid = ? LIMIT 1", (guid,)) is not None

    def _attach_tags(self, job_id: int, names: Iterable[str]) -> None:
        for name in names:
            slug = tag_slug(name)
            if not name or not slug:
                continue
            self._conn.execute("INSERT OR IGNORE INTO tags (name, slug) VALUES (?, ?)", (name, slug))
            # Slug collisions resolve to whichever tag claimed the slug first.
            tag = self._one("SELECT id FROM tags WHERE slug = ? LIMIT 1", (slug,))
            if tag:
                self._conn.execute(
                    "INSERT OR IGNORE INTO job_tags (job_id, tag_id) VALUES (?, ?)", (job_id, tag["id"])
                )

    def insert_batch(self, postings: Sequence[Posting]) -> int:
        """Insert postings and their tags in one transaction.

        Postings whose guid or slug already exists are ignored. Returns the number
        of rows actually inserted.
        """
        inserted = 0
        with self._lock, self._conn:
            for posting in postings:
                params = posting.model_dump(exclude={"id", "created_at"})
                cur = self._conn.execute(INSERT_JOB_SQL, params)
                if cur.rowcount != 1:
                    continue
                inserted += 1
                self._attach_tags(cur.lastrowid, posting.tags)
        return inserted

    def insert(self, posting: Posting) -> Optional[Posting]:
        """Insert one posting; returns the stored row, or None if it was ignored."""
        if not self.insert_batch([posting]):
            return None
        return self.get_by_guid(posting.guid)

    def add_tags(self, job_id: int, names: Iterable[str]) -> None:
        """Append tag associations to an existing posting."""
        with self._lock, self._conn:
            self._attach_tags(job_id, names)

    # -- count cache & retention --------------------------------------------

    def _set_cached_count(self, value: int) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO stats_cache (key, value, updated_at) VALUES (?, ?, ?)",
                (TOTAL_JOBS_KEY, value, int(time.time())),
            )

    def count(self, ttl_seconds: int = 300) -> int:
        """Total postings, served from the cache when refreshed within `ttl_seconds`."""
        cutoff = int(time.time()) - ttl_seconds
        with self._lock:
            cached = self._one(
                "SELECT value FROM stats_cache WHERE key = ? AND updated_at > ?", (TOTAL_JOBS_KEY, cutoff)
            )
            if cached:
                return cached["value"]
            total = self._one("SELECT COUNT(*) AS c FROM jobs")["c"]
            self._set_cached_count(total)
            return total

    def prune(self, max_jobs: int) -> int:
        """Keep only the `max_jobs` most recent postings. Returns rows deleted."""
        with self._lock:
            total = self.count(ttl_seconds=0)
            if total <= max_jobs:
                return 0
            logger.info(f"[store] Pruning to the {max_jobs:,} most recent postings (have {total:,})")
            with self._conn:
                cur = self._conn.execute(
                    """
                    DELETE FROM jobs
                    WHERE id IN (
                      SELECT id FROM jobs
                      ORDER BY published_at DESC, id DESC
                      LIMIT -1 OFFSET ?
                    )
                    """,
                    (max_jobs,),
                )
            self._set_cached_count(max_jobs)
            return cur.rowcount

    # -- postings queries ----------------------------------------------------

    def _page(self, sql_first: str, sql_after: str, params: Sequence, cursor: Optional[Cursor], limit: int) -> Page:
        if cursor is None:
            rows = self._all(sql_first, (*params, limit))
        else:
            rows = self._all(sql_after, (*params, cursor.published_at, cursor.published_at, cursor.id, limit))
        next_cursor = None
        if len(rows) == limit:
            next_cursor = Cursor(published_at=rows[-1]["published_at"], id=rows[-1]["id"])
        return Page(rows=rows, next_cursor=next_cursor)

    def page(self, cursor: Optional[Cursor] = None, limit: int = 50) -> Page:
        """Newest-first listing; pass the previous page's `next_cursor` to continue."""
        return self._page(
            f"SELECT {LIST_COLUMNS} FROM jobs j ORDER BY j.published_at DESC, j.id DESC LIMIT ?",
            f"""
            SELECT {LIST_COLUMNS} FROM jobs j
            WHERE j.published_at < ? OR (j.published_at = ? AND j.id < ?)
            ORDER BY j.published_at DESC, j.id DESC
            LIMIT ?
            """,
            (),
            cursor,
            limit,
        )

    def page_by_tag(self, tag_slug_value: str, cursor: Optional[Cursor] = None, limit: int = 50) -> Page:
        join = "FROM jobs j JOIN job_tags jt ON jt.job_id = j.id JOIN tags t ON t.id = jt.tag_id WHERE t.slug = ?"
        return self._page(
            f"SELECT {LIST_COLUMNS} {join} ORDER BY j.published_at DESC, j.id DESC LIMIT ?",
            f"""
            SELECT {LIST_COLUMNS} {join}
              AND (j.published_at < ? OR (j.published_at = ? AND j.id < ?))
            ORDER BY j.published_at DESC, j.id DESC
            LIMIT ?
            """,
            (tag_slug_value,),
            cursor,
            limit,
        )

    def _posting(self, row: Optional[Dict]) -> Optional[Posting]:
        return Posting(**row) if row else None

    def get_by_slug(self, slug: str) -> Optional[Posting]:
        return self._posting(self._one("SELECT * FROM jobs WHERE slug = ? LIMIT 1", (slug,)))

    def get_by_id(self, job_id: int) -> Optional[Posting]:
        return self._posting(self._one("SELECT * FROM jobs WHERE id = ? LIMIT 1", (job_id,)))

    def get_by_guid(self, guid: str) -> Optional[Posting]:
        return self._posting(self._one("SELECT * FROM jobs WHERE guid = ? LIMIT 1", (guid,)))

    def search(self, q: str, limit: int = 100) -> List[Dict]:
        """Substring match over title and company, newest first."""
        pattern = f"%{like_escape(q)}%"
        return self._all(
            f"""
            SELECT {LIST_COLUMNS} FROM jobs j
            WHERE j.title LIKE ? ESCAPE '\\' OR j.company LIKE ? ESCAPE '\\'
            ORDER BY j.published_at DESC, j.id DESC
            LIMIT ?
            """,
            (pattern, pattern, limit),
        )

    def recent(self, limit: int = 100) -> List[Dict]:
        return self._all(
            "SELECT title, slug, published_at FROM jobs ORDER BY published_at DESC, id DESC LIMIT ?", (limit,)
        )

    # -- tag queries ---------------------------------------------------------

    def get_tag_by_slug(self, slug: str) -> Optional[Tag]:
        row = self._one("SELECT * FROM tags WHERE slug = ? LIMIT 1", (slug,))
        return Tag(**row) if row else None

    def get_tag_by_name(self, name: str) -> Optional[Tag]:
        row = self._one("SELECT * FROM tags WHERE name = ? LIMIT 1", (name,))
        return Tag(**row) if row else None

    def count_by_tag(self, tag_id: int) -> int:
        return self._one("SELECT COUNT(*) AS c FROM job_tags WHERE tag_id = ?", (tag_id,))["c"]

    def popular_tags(self, min_count: int = 5, limit: int = 50) -> List[Dict]:
        """Tags with at least `min_count` postings, most used first, then by name."""
        return self._all(
            """
            SELECT t.name, t.slug, COUNT(*) AS cnt
            FROM tags t
            JOIN job_tags jt ON jt.tag_id = t.id
            GROUP BY t.id
            HAVING cnt >= ?
            ORDER BY cnt DESC, t.name ASC
            LIMIT ?
            """,
            (min_count, limit),
        )


class BatchWriter:
    """Buffers postings and writes them `size` at a time, one transaction per flush."""

    def __init__(self, store: PostingStore, size: int = 100) -> None:
        self.store = store
        self.size = max(1, size)
        self.inserted = 0
        self.conflicts = 0
        self._buffer: List[Posting] = []

    def add(self, posting: Posting) -> None:
        self._buffer.append(posting)
        if len(self._buffer) >= self.size:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        written = self.store.insert_batch(batch)
        self.inserted += written
        self.conflicts += len(batch) - written
        logger.debug(f"[store] Flushed batch: {written}/{len(batch)} inserted")
