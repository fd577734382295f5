"""Ordered heuristic rules for clipboard content classification and tagging."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Sequence

from .constants import COMPARISON_DIMENSIONS, MAX_FALLBACK_TAGS, ContentType
from .models import CaptureContext

Predicate = Callable[[str], bool]

_URL = re.compile(r"^https?://")
_EMAIL = re.compile(r"\S+@\S+\.\S+")
_PHONE = re.compile(r"(\+?1-?)?(\d{3}[-.]?)?\d{3}[-.]?\d{4}")
_PHONE_PAREN = re.compile(r"\(\d{3}\)\s?\d{3}[-.]?\d{4}")
_DATE_NUMERIC = re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}")
_DATE_ISO = re.compile(r"\d{4}-\d{2}-\d{2}")
_DATE_WORDS = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\w*\s+\d{1,2},?\s+\d{4}", re.I)
_STREET = re.compile(
    r"\d+\s+[A-Za-z\s]+(?:st|street|ave|avenue|rd|road|blvd|boulevard|dr|drive|way|ln|lane|ct|court|pl|place)\b",
    re.I,
)
_ZIP = re.compile(r"\b\d{5}(-\d{4})?\b")
_STATE_ZIP = re.compile(r"\b[A-Z]{2}\s+\d{5}\b")
_UNIT = re.compile(r"\b(apt|apartment|suite|unit|#)\s*\d+", re.I)
_PLACE_WORDS = re.compile(r"\b(city|town|village|county|state|country|province|region)\b", re.I)
_CITY_STATE = re.compile(r"\b[A-Z][a-z]+,\s*[A-Z]{2}\b")
_DIRECTIONS = re.compile(r"\b(north|south|east|west|central|downtown|uptown)\b", re.I)
_DISTANCE = re.compile(r"\bmiles?\s+(from|to|away)\b", re.I)
_COMPANY = re.compile(r"\b(inc|llc|corp|corporation|ltd|limited|company|co\.|llp|pc)\b", re.I)
_INSTITUTION = re.compile(
    r"\b(university|college|hospital|school|church|bank|group|association|foundation)\b", re.I
)
_TWO_CAPITALIZED = re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b")
_CODE_KEYWORDS = re.compile(r"\b(class|function|import|export|const|let|var)\b", re.I)
_MONEY = re.compile(r"\$[\d,]+\.?\d*")
_PERCENT = re.compile(r"\d+%")
_FINANCE_WORDS = re.compile(r"\b(price|cost|fee|salary|wage|budget|profit|loss|revenue|income)\b", re.I)
_CURRENCY = re.compile(r"\b(usd|eur|gbp|jpy|cad|aud)\b", re.I)
_CODE_MARKERS = ("function", "class", "import", "const ", "let ", "var ")
_CODE_PATTERNS = (
    re.compile(r"\{.*\}"),
    re.compile(r"^\s*[<>]"),
    re.compile(r"[=;]{1,2}"),
    re.compile(r"^\s*//"),
    re.compile(r"^\s*#[^#]"),
    re.compile(r"\$\([^)]+\)"),
)
_DOCUMENT_WORDS = re.compile(r"\b(document|file|pdf|doc|txt|report|article|paper|memo|letter)\b", re.I)
_LETTER_WORDS = re.compile(r"\b(title|subject|dear|sincerely|regards|attachment)\b", re.I)


def _any(*patterns: re.Pattern) -> Predicate:
    return lambda text: any(pattern.search(text) for pattern in patterns)


def _looks_like_person(text: str) -> bool:
    return (
        bool(_TWO_CAPITALIZED.search(text))
        and len(text) < 100
        and not _CODE_KEYWORDS.search(text)
        and not _URL.search(text)
    )


def _looks_like_code(text: str) -> bool:
    return any(marker in text for marker in _CODE_MARKERS) or any(p.search(text) for p in _CODE_PATTERNS)


def _looks_like_data(text: str) -> bool:
    stripped = text.strip()
    return (
        (stripped.startswith("{") and stripped.endswith("}"))
        or (stripped.startswith("[") and stripped.endswith("]"))
        or '"key":' in text
        or "'key':" in text
    )


@dataclass(slots=True, frozen=True)
class ContentRule:
    label: ContentType
    predicate: Predicate

    def matches(self, text: str) -> bool:
        return self.predicate(text)


# Evaluated top to bottom; the first match wins.
DEFAULT_RULES: List[ContentRule] = [
    ContentRule(ContentType.URL, _any(_URL)),
    ContentRule(ContentType.EMAIL, _any(_EMAIL)),
    ContentRule(ContentType.PHONE, _any(_PHONE, _PHONE_PAREN)),
    ContentRule(ContentType.DATE, _any(_DATE_NUMERIC, _DATE_ISO, _DATE_WORDS)),
    ContentRule(ContentType.ADDRESS, _any(_STREET, _ZIP, _STATE_ZIP, _UNIT)),
    ContentRule(ContentType.LOCATION, _any(_PLACE_WORDS, _CITY_STATE, _DIRECTIONS, _DISTANCE)),
    ContentRule(ContentType.ORGANIZATION, _any(_COMPANY, _INSTITUTION)),
    ContentRule(ContentType.PERSON, _looks_like_person),
    ContentRule(ContentType.FINANCIAL, _any(_MONEY, _PERCENT, _FINANCE_WORDS, _CURRENCY)),
    ContentRule(ContentType.CODE, _looks_like_code),
    ContentRule(ContentType.DOCUMENT, _any(_DOCUMENT_WORDS, _LETTER_WORDS)),
    ContentRule(ContentType.DATA, _looks_like_data),
]


class ContentClassifier:
    """Evaluates content against an ordered rule list."""

    def __init__(self, rules: Iterable[ContentRule] = DEFAULT_RULES) -> None:
        self.rules = list(rules)

    def classify(self, content: str | None) -> ContentType:
        if not content:
            return ContentType.EMPTY
        for rule in self.rules:
            if rule.matches(content):
                return rule.label
        return ContentType.TEXT


_default_classifier = ContentClassifier()


def extract_content_type(content: str | None) -> str:
    return _default_classifier.classify(content).value


_PATTERN_TAGS: Sequence[tuple[Predicate, tuple[str, str]]] = (
    (lambda c: "http" in c or "www." in c, ("web", "url")),
    (lambda c: "@" in c and "function" not in c, ("email", "contact")),
    (_any(_PHONE), ("phone", "contact")),
    (_any(re.compile(r"\d+\s+[A-Za-z\s]+(?:st|street|ave|avenue|rd|road)", re.I)), ("address", "location")),
    (_any(_CITY_STATE), ("location", "geographic")),
    (lambda c: bool(_TWO_CAPITALIZED.search(c)) and len(c) < 100, ("person", "name")),
    (_any(re.compile(r"\b(inc|llc|corp|company)\b", re.I)), ("organization", "business")),
    (_any(re.compile(r"\$[\d,]+|\d+%")), ("financial", "money")),
    (_any(re.compile(r"\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{2,4}")), ("date", "time")),
)


def _app_tags(source_app: str) -> tuple[str, ...]:
    app = source_app.lower()
    if any(name in app for name in ("browser", "chrome", "safari")):
        return ("web", "browser")
    if any(name in app for name in ("code", "editor", "vscode")):
        return ("development", "coding")
    if any(name in app for name in ("mail", "outlook", "gmail")):
        return ("email", "communication")
    return ()


def generate_fallback_tags(content: str, context: CaptureContext | None = None) -> List[str]:
    """Derive up to five tags without an LLM.

    The content type always comes first, followed by pattern hits, source
    application hints and length indicators.
    """

    content = content or ""
    tags: List[str] = [extract_content_type(content)]
    for predicate, pair in _PATTERN_TAGS:
        if predicate(content):
            tags.extend(pair)
    if context is not None and context.source_app:
        tags.extend(_app_tags(context.source_app))
    if len(content) > 500:
        tags.extend(("long-content", "detailed"))
    if len(content) < 50:
        tags.extend(("short-content", "brief"))
    return list(dict.fromkeys(tags))[:MAX_FALLBACK_TAGS]


def infer_aspect(query: str, session_type: str | None = None) -> str:
    """Map a research query onto a comparison dimension."""

    lowered = query.lower()
    if session_type and session_type in COMPARISON_DIMENSIONS:
        dimensions = COMPARISON_DIMENSIONS[session_type]
    else:
        dimensions = list(dict.fromkeys(dim for dims in COMPARISON_DIMENSIONS.values() for dim in dims))
    for dimension in dimensions:
        if dimension in lowered or dimension.rstrip("s") in lowered:
            return dimension
    return "general_information"
