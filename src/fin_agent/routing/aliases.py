"""Business-unit alias and date token resolution."""

from __future__ import annotations

import re

from fin_agent.types import TokenSet

UNIT_LABELS: dict[str, str] = {
    "Z001": "Liferafts",
    "Z002": "Marine Safety",
    "Z003": "Navigation Systems",
    "Z004": "Commercial Vessels",
    "Z005": "Port Services",
    "Z006": "Maritime Tech",
    "Z007": "Fleet Management",
    "Z008": "Offshore Solutions",
}

# Longer aliases first so multi-word names win over their prefixes.
UNIT_ALIASES: tuple[tuple[str, str], ...] = (
    ("navigation systems", "Z003"),
    ("commercial vessels", "Z004"),
    ("offshore solutions", "Z008"),
    ("fleet management", "Z007"),
    ("safety equipment", "Z002"),
    ("marine safety", "Z002"),
    ("port services", "Z005"),
    ("maritime tech", "Z006"),
    ("life rafts", "Z001"),
    ("life raft", "Z001"),
    ("liferafts", "Z001"),
    ("liferaft", "Z001"),
    ("navigation", "Z003"),
    ("vessels", "Z004"),
    ("offshore", "Z008"),
    ("fleet", "Z007"),
)

MONTHS: dict[str, str] = {
    "jan": "january",
    "january": "january",
    "feb": "february",
    "february": "february",
    "mar": "march",
    "march": "march",
    "apr": "april",
    "april": "april",
    "may": "may",
    "jun": "june",
    "june": "june",
    "jul": "july",
    "july": "july",
    "aug": "august",
    "august": "august",
    "sep": "september",
    "sept": "september",
    "september": "september",
    "oct": "october",
    "october": "october",
    "nov": "november",
    "november": "november",
    "dec": "december",
    "december": "december",
}

MONTH_ORDER: tuple[str, ...] = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

_UNIT_CODE = re.compile(r"\bz\d{3}\b", flags=re.IGNORECASE)
_YEAR = re.compile(r"\b(20\d{2})\b")
_MONTH = re.compile(
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b",
    flags=re.IGNORECASE,
)
_PUNCTUATION = re.compile(r"[^\w\s]")
_ALIAS_PATTERNS = tuple(
    (re.compile(rf"\b{re.escape(alias)}\b"), code) for alias, code in UNIT_ALIASES
)


def extract_tokens(message: str | None) -> TokenSet:
    """Extract unit/year/month tokens. Absent tokens are `None`; never raises."""

    if not message:
        return TokenSet()
    text = str(message)
    return TokenSet(
        unit=resolve_unit(text),
        year=_first_group(_YEAR, text),
        month=resolve_month(text),
    )


def resolve_unit(message: str) -> str | None:
    normalized = _normalize(message)
    for pattern, code in _ALIAS_PATTERNS:
        if pattern.search(normalized):
            return code
    match = _UNIT_CODE.search(message)
    return match.group(0).upper() if match else None


def resolve_month(message: str) -> str | None:
    raw = _first_group(_MONTH, message)
    return MONTHS.get(raw.lower()) if raw else None


def month_number(month: str) -> int | None:
    name = MONTHS.get(str(month).strip().lower())
    return MONTH_ORDER.index(name) + 1 if name else None


def unit_label(code: str | None) -> str:
    key = str(code or "").strip().upper()
    if not key:
        return ""
    return UNIT_LABELS.get(key, key)


def labelize_unit(code: str) -> str:
    """Render `Z001` as `Z001 — Liferafts` when the code is known."""

    label = unit_label(code)
    return f"{code} — {label}" if label and label != code else code


def _normalize(message: str) -> str:
    return " ".join(_PUNCTUATION.sub(" ", message.lower()).split())


def _first_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None
