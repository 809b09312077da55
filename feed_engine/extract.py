"""Structured facts from free-text postings (FR + EN + DE phrasing).

Every function here is total: unmatched input yields the documented default
(FULL_TIME, HOUR, no salary, no experience sentence, the site's country, no city).
Classification tables are ordered lists evaluated first-match-wins, so the order
of the entries is part of the behaviour.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from .markup import html_to_text
from .models import JobFacts, LocationFact, SalaryFact


EMPLOYMENT_TYPE_PATTERNS: List[Tuple[str, str]] = [
    (r"(temps partiel|part[-\s]?time|mi-temps)\b", "PART_TIME"),
    (r"(cdd|intérim|interim|contrat|contractor|zeitarbeit|befristet)\b", "CONTRACTOR"),
    (r"(stage|stagiaire|internship|praktikum)\b", "INTERN"),
    (r"(temporaire|seasonal|saison)", "TEMPORARY"),
]

REMOTE_RE = re.compile(r"(télétravail|remote|travail à distance|home office|homeoffice|telecommute)", re.I)

SALARY_UNIT_PATTERNS: List[Tuple[str, str]] = [
    (r"\b(an|année|annuel|par an|year|annually|per year)\b", "YEAR"),
    (r"\b(mois|mensuel|par mois|month|monthly|per month)\b", "MONTH"),
    (r"\b(semaine|hebdo|par semaine|week|weekly|per week)\b", "WEEK"),
    (r"\b(jour|journalier|par jour|day|daily|per day)\b", "DAY"),
    (r"\b(heure|horaire|par heure|hour|hourly|per hour)\b", "HOUR"),
]

CURRENCY_RE = re.compile(r"\b(eur|euro|usd|chf|gbp)\b|[€$£]", re.I)
CURRENCY_MAP = {"€": "EUR", "EUR": "EUR", "EURO": "EUR", "$": "USD", "USD": "USD", "£": "GBP", "GBP": "GBP", "CHF": "CHF"}

_AMOUNT = r"\d{1,2}[.,]?\d{3,6}"
RANGE_RE = re.compile(rf"({_AMOUNT})\s*[-–—à]\s*({_AMOUNT})", re.I)
SINGLE_BOUND_RE = re.compile(
    rf"(?:à partir de|dès|from|de|von)\s*({_AMOUNT})|({_AMOUNT})\s*(?:\+|jusqu'?à|bis)", re.I
)

YEARS_RE = re.compile(r"(\d+)\s*\+?\s*(ans|an|years|yrs)\s*(d['’]expérience|experience)", re.I)
EXPERIENCE_REQUIRED_RE = re.compile(r"(expérience exigée|expérience requise|experience required)", re.I)
EQUIVALENT_EXPERIENCE_RE = re.compile(
    r"(ou expérience équivalente|equivalent experience|gleichwertige erfahrung)", re.I
)

EXPERIENCE_SENTENCES = {
    "fr": ("{years} ans d'expérience pertinente", "Expérience pertinente requise"),
    "en": ("{years} years of relevant experience", "Relevant experience required"),
}

TLD_COUNTRIES = {
    "fr": "FR", "be": "BE", "ch": "CH", "lu": "LU", "ca": "CA",
    "de": "DE", "at": "AT", "li": "LI",
    "uk": "GB", "gb": "GB", "ie": "IE",
    "us": "US", "au": "AU", "nz": "NZ",
    "nl": "NL", "es": "ES", "pt": "PT", "it": "IT",
}
DEFAULT_COUNTRY = "FR"

# Priority order: the first city found in the text wins.
KNOWN_CITIES = [
    "paris", "lyon", "marseille", "toulouse", "lille", "bordeaux", "nantes", "strasbourg",
    "rennes", "montpellier", "nice", "grenoble", "dijon", "angers", "tours", "reims",
    "saint-étienne", "toulon", "le havre", "clermont-ferrand",
]


def posting_text(description_html: str, title: str) -> str:
    """Lowercased plain text the extractors work on."""
    return f"{html_to_text(description_html)} {title or ''}".lower()


def employment_type(text: str) -> str:
    for pattern, result in EMPLOYMENT_TYPE_PATTERNS:
        if re.search(pattern, text, re.I):
            return result
    return "FULL_TIME"


def is_remote(text: str) -> bool:
    return bool(REMOTE_RE.search(text))


def salary_unit(text: str) -> str:
    for pattern, unit in SALARY_UNIT_PATTERNS:
        if re.search(pattern, text, re.I):
            return unit
    return "HOUR"


def salary_currency(text: str) -> Optional[str]:
    match = CURRENCY_RE.search(text)
    if not match:
        return None
    return CURRENCY_MAP.get(match.group(0).upper())


def _amount(raw: str) -> int:
    return int(re.sub(r"[.,]", "", raw))


def salary_amounts(text: str) -> Tuple[Optional[int], Optional[int]]:
    """(min, max) from a range, or (min, None) from a single "from X"/"up to X" bound."""
    match = RANGE_RE.search(text)
    if match:
        return _amount(match.group(1)), _amount(match.group(2))
    match = SINGLE_BOUND_RE.search(text)
    if match:
        return _amount(match.group(1) or match.group(2)), None
    return None, None


def parse_salary(text: str) -> Optional[SalaryFact]:
    """Salary fact, only when both a currency and at least one bound are found."""
    currency = salary_currency(text)
    if not currency:
        return None
    low, high = salary_amounts(text)
    if not (low or high):
        return None
    return SalaryFact(currency=currency, min_value=low, max_value=high, unit=salary_unit(text))


def experience(text: str, lang: str = "fr") -> Optional[str]:
    with_years, generic = EXPERIENCE_SENTENCES.get(lang, EXPERIENCE_SENTENCES["fr"])
    match = YEARS_RE.search(text)
    if match:
        return with_years.format(years=match.group(1))
    if EXPERIENCE_REQUIRED_RE.search(text):
        return generic
    return None


def experience_in_place_of_education(text: str) -> bool:
    return bool(EQUIVALENT_EXPERIENCE_RE.search(text))


@lru_cache(maxsize=None)
def country_from_site(site_url: str) -> str:
    """ISO country from the site's top-level domain, FR when unrecognized."""
    try:
        host = (urlparse(site_url).hostname or "").lower()
    except ValueError:
        return DEFAULT_COUNTRY
    return TLD_COUNTRIES.get(host.rsplit(".", 1)[-1], DEFAULT_COUNTRY)


def infer_location(text: str, site_url: str) -> LocationFact:
    country = country_from_site(site_url)
    for city in KNOWN_CITIES:
        if city in text:
            return LocationFact(country=country, city=city.title())
    return LocationFact(country=country)


def parse_facts(description_html: str, title: str, site_url: str, lang: str = "fr") -> JobFacts:
    """All structured facts for one posting."""
    text = posting_text(description_html, title)
    return JobFacts(
        employment_type=employment_type(text),
        is_remote=is_remote(text),
        salary=parse_salary(text),
        experience_requirements=experience(text, lang),
        experience_in_place_of_education=experience_in_place_of_education(text),
        location=infer_location(text, site_url),
    )
