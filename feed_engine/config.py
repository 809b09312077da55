"""Runtime configuration.

Values come from the environment (or a local `.env` file). Variable names match
the deployment's historical names, e.g. `FEED_URL`, `MAX_JOBS`, `AI_PROCESS_LIMIT`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_KEYWORDS = (
    "conducteur routier,chauffeur poids lourd,chauffeur spl,poids lourds,super poids lourd,"
    "permis ce,permis c,fimo,fco,adr,matières dangereuses,semi-remorque,distribution,"
    "livraison,regional,national,international,travail de nuit,grumier,citerne,plateau,"
    "frigo,bâché"
)


class Settings(BaseSettings):
    feed_url: str = ""
    site_url: str = "http://localhost:3000"
    site_name: str = "Emplois Conducteur Routier"
    target_lang: str = "fr"
    target_profession: str = "conducteur routier"
    profession_keywords: str = DEFAULT_KEYWORDS

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    ai_timeout_s: float = 60.0
    ai_process_limit: int = 0  # 0 = unlimited

    max_jobs: int = 50000
    count_cache_ttl_s: int = 300
    batch_size: int = 100
    database_path: str = "jobs.db"
    feed_timeout_s: float = 60.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("site_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def keyword_list(self) -> List[str]:
        """Lowercased, trimmed keyword vocabulary, in configured order."""
        return [k.strip() for k in self.profession_keywords.lower().split(",") if k.strip()]

    @property
    def ai_enabled(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
