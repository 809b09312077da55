"""Chat-completion client for the AI rewrite backend.

Talks to any OpenAI-compatible `/chat/completions` endpoint over httpx.
Server errors, timeouts and network errors are retried with exponential backoff;
client errors are not. Every failure surfaces as `AIServiceError` so the caller
has a single thing to catch.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .errors import AIServiceError


logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 10.0


class ChatClient:
    """Minimal chat-completion client returning the first choice's text."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 60.0,
        temperature: float = 0.2,
        max_retries: int = MAX_RETRIES,
        retry_delay_s: float = INITIAL_RETRY_DELAY,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self._timeout = timeout_s
        self._max_retries = max(1, max_retries)
        self._retry_delay_s = retry_delay_s
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ChatClient"]:
        """Client for the configured backend, or None when no API key is set."""
        if not settings.ai_enabled:
            return None
        return cls(
            api_key=settings.openai_api_key or "",
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout_s=settings.ai_timeout_s,
        )

    def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        url = f"{self.base_url}/chat/completions"
        if self._client is not None:
            return self._client.post(url, headers=headers, json=payload)
        with httpx.Client(timeout=self._timeout) as client:
            return client.post(url, headers=headers, json=payload)

    def complete(self, system: str, user: str) -> str:
        """Send one system + user exchange and return the completion text."""
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }

        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries):
            if attempt > 0:
                delay = min(self._retry_delay_s * (2 ** (attempt - 1)), MAX_RETRY_DELAY)
                logger.info(f"[ai_client] Retry {attempt + 1}/{self._max_retries} after {delay:.1f}s")
                time.sleep(delay)
            try:
                resp = self._post(payload)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    raise AIServiceError(f"AI backend rejected request: HTTP {exc.response.status_code}") from exc
                logger.warning(f"[ai_client] HTTP {exc.response.status_code} (attempt {attempt + 1}/{self._max_retries})")
                last_error = exc
                continue
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                logger.warning(f"[ai_client] {type(exc).__name__} (attempt {attempt + 1}/{self._max_retries}): {exc}")
                last_error = exc
                continue
            except ValueError as exc:
                raise AIServiceError(f"AI backend returned invalid JSON: {exc}") from exc

            return self._content(data)

        raise AIServiceError(f"AI backend failed after {self._max_retries} attempts: {last_error}")

    @staticmethod
    def _content(data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AIServiceError("unexpected AI response format") from exc
        return content or ""
