from __future__ import annotations

from typing import Callable, List, Optional

import httpx
import pytest

from feed_engine.config import Settings
from feed_engine.enrich import AIEnhancer, Enricher, TemplateEnhancer
from feed_engine.errors import AIServiceError
from feed_engine.sources.xml_feed import XmlFeedSource
from feed_engine.store import PostingStore


FEED_URL = "https://feeds.example.com/jobs.xml"

GOOD_AI_OUTPUT = """===DESCRIPTION===
Conduisez un semi-remorque en régional pour un transporteur reconnu, avec des tournées planifiées,
un matériel récent et un retour à domicile chaque week-end.
===HTML===
<section><h2>À propos du poste</h2><p>Transport régional en semi-remorque.</p></section>
<section><h2>Responsabilités</h2><ul><li>Livrer les clients à l'heure</li></ul></section>
===TAGS===
["SPL", "semi-remorque", "régional", "spl"]
"""


class FakeChatClient:
    """Stands in for ChatClient: returns scripted outputs or raises."""

    def __init__(self, outputs: Optional[List[str]] = None, error: Optional[Exception] = None) -> None:
        self.outputs = list(outputs or [GOOD_AI_OUTPUT])
        self.error = error
        self.calls: List[tuple] = []

    def complete(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        if self.error is not None:
            raise self.error
        if len(self.outputs) > 1:
            return self.outputs.pop(0)
        return self.outputs[0]


def feed_xml(items: List[str], root: str = "rss") -> bytes:
    return f"<?xml version='1.0' encoding='utf-8'?><{root}><channel><title>Feed</title>{''.join(items)}</channel></{root}>".encode("utf-8")


def item(guid: str, title: str, description: str = "", company: str = "", pub: str = "Mon, 01 Jan 2024 10:00:00 GMT") -> str:
    return (
        f"<item><guid>{guid}</guid><title>{title}</title><company>{company}</company>"
        f"<description><![CDATA[{description}]]></description>"
        f"<link>https://jobs.example.com/{guid}</link><pubDate>{pub}</pubDate></item>"
    )


def mock_feed_source(body: bytes, status_code: int = 200) -> XmlFeedSource:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=status_code, content=body, request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return XmlFeedSource(FEED_URL, client=client)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        feed_url=FEED_URL,
        site_url="https://emplois-routiers.fr/",
        target_profession="conducteur routier",
        profession_keywords="chauffeur spl,spl,poids lourd",
        openai_api_key=None,
        max_jobs=50000,
    )


@pytest.fixture
def store(tmp_path) -> PostingStore:
    with PostingStore(str(tmp_path / "jobs.db")) as s:
        yield s


@pytest.fixture
def template_enricher(settings) -> Enricher:
    return Enricher(fallback=TemplateEnhancer(settings.target_profession, settings.target_lang))


@pytest.fixture
def make_ai_enricher(settings) -> Callable[..., Enricher]:
    def make(outputs: Optional[List[str]] = None, error: Optional[Exception] = None) -> Enricher:
        client = FakeChatClient(outputs=outputs, error=error)
        return Enricher(
            fallback=TemplateEnhancer(settings.target_profession, settings.target_lang),
            ai=AIEnhancer(client, settings.target_profession, settings.target_lang),
        )

    return make


@pytest.fixture
def ai_failure() -> AIServiceError:
    return AIServiceError("backend down")
