"""Exceptions raised by the feed engine."""

from __future__ import annotations


class FeedEngineError(Exception):
    """Base class for feed engine errors."""


class FeedFetchError(FeedEngineError):
    """The feed could not be downloaded. Fatal to the current run."""


class AIServiceError(FeedEngineError):
    """The AI backend failed or returned nothing usable.

    Never fatal: enrichment catches it and falls back to the template path.
    """
