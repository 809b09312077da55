"""Base classes for feed source connectors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator

from ..models import RawRecord


class FeedSource(ABC):
    """Abstract base class for a feed connector."""

    name: str

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Origin recorded on every posting coming from this source."""
        raise NotImplementedError

    @abstractmethod
    def iter_records(self) -> Iterator[RawRecord]:
        """Lazily yield raw records; each call starts a fresh pass over the feed."""
        raise NotImplementedError
