"""Streaming XML feed connector.

Partner feeds are quasi-RSS documents with tens of thousands of `<job>` (or
`<item>`) elements, so the body is never loaded as a whole: bytes are pushed into
an lxml pull parser chunk by chunk and each record is emitted as soon as its
closing tag is seen.

Recognized child elements (matched on lowercased local name):
    title, description, company
    url / link                 first one wins
    guid / referencenumber     first non-empty one wins
    pubdate / date_updated
"""

from __future__ import annotations

import contextlib
import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional
from urllib.parse import urlparse

import httpx
from lxml import etree

from ..errors import FeedFetchError
from ..models import RawRecord
from .base import FeedSource


logger = logging.getLogger(__name__)

RECORD_TAGS = {"job", "item"}


def _set(field: str) -> Callable[[RawRecord, str], None]:
    def apply(record: RawRecord, value: str) -> None:
        setattr(record, field, value)
    return apply


def _set_first(field: str) -> Callable[[RawRecord, str], None]:
    def apply(record: RawRecord, value: str) -> None:
        if not getattr(record, field):
            setattr(record, field, value)
    return apply


FIELD_HANDLERS: Dict[str, Callable[[RawRecord, str], None]] = {
    "title": _set("title"),
    "description": _set("description"),
    "company": _set("company"),
    "url": _set_first("link"),
    "link": _set_first("link"),
    "guid": _set_first("guid"),
    "referencenumber": _set_first("guid"),
    "pubdate": _set("pub_date"),
    "date_updated": _set("pub_date"),
}


def _local_name(elem: etree._Element) -> str:
    return etree.QName(elem).localname.lower()


class RecordStreamParser:
    """Push-based state machine turning XML bytes into RawRecords.

    Feed bytes with `feed()`; every call returns the records completed by that
    chunk. `close()` flushes the parser at end of stream. Malformed input raises
    `lxml.etree.XMLSyntaxError`.
    """

    def __init__(self) -> None:
        self._parser = etree.XMLPullParser(events=("start", "end"), resolve_entities=False, no_network=True)
        self._current: Optional[RawRecord] = None

    def feed(self, chunk: bytes) -> List[RawRecord]:
        self._parser.feed(chunk)
        return self.drain()

    def close(self) -> List[RawRecord]:
        self._parser.close()
        return self.drain()

    def drain(self) -> List[RawRecord]:
        """Process queued parser events and return the records they completed."""
        out: List[RawRecord] = []
        for event, elem in self._parser.read_events():
            name = _local_name(elem)
            if event == "start":
                if name in RECORD_TAGS:
                    self._current = RawRecord()
                continue

            if self._current is None:
                elem.clear()
                continue

            if name in RECORD_TAGS:
                out.append(self._current)
                self._current = None
                elem.clear()
                while elem.getprevious() is not None:
                    del elem.getparent()[0]
                continue

            handler = FIELD_HANDLERS.get(name)
            if handler is not None:
                handler(self._current, "".join(elem.itertext()).strip())
        return out


def iter_records(chunks: Iterable[bytes]) -> Iterator[RawRecord]:
    """Lazily parse a stream of byte chunks into RawRecords.

    A syntax error ends the sequence early (logged); records already produced
    stand. Errors raised by `chunks` itself propagate.
    """
    parser = RecordStreamParser()
    try:
        for chunk in chunks:
            yield from parser.feed(chunk)
        yield from parser.close()
    except etree.XMLSyntaxError as exc:
        logger.error(f"[xml_feed] Feed XML error, stopping stream early: {exc}")
        yield from parser.drain()


class XmlFeedSource(FeedSource):
    """Stream records from a feed URL."""

    name = "xml_feed"

    def __init__(self, url: str, timeout_s: float = 60.0, client: Optional[httpx.Client] = None) -> None:
        self.url = url
        self._timeout = timeout_s
        self._client = client

    @property
    def source_name(self) -> str:
        return urlparse(self.url).hostname or self.url

    def _client_context(self):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return httpx.Client(timeout=self._timeout, follow_redirects=True)

    def iter_records(self) -> Iterator[RawRecord]:
        try:
            with self._client_context() as client:
                with client.stream("GET", self.url) as resp:
                    resp.raise_for_status()
                    yield from iter_records(resp.iter_bytes())
        except httpx.HTTPError as exc:
            raise FeedFetchError(f"failed to fetch feed {self.url}: {exc}") from exc
