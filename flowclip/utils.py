"""Utilities supporting FlowClip modules."""

from __future__ import annotations

import json
import logging
import random
import re
import string
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from .errors import MalformedOutputError

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_STOP_WORDS = frozenset(
    {
        "this", "that", "with", "have", "will", "from", "they", "been", "said", "each",
        "which", "their", "time", "would", "about", "could", "other", "after", "first",
        "well", "never", "these", "than", "where", "being", "every", "through", "during",
        "before", "again", "same", "while",
    }
)

T = TypeVar("T")


def generate_id(prefix: str, *, size: int = 8) -> str:
    """Generate a short unique identifier with a readable prefix."""

    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(size))
    return f"{prefix}_{suffix}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_json_with_fallback(
    raw: Any,
    fallback_builder: Callable[[], T],
    *,
    expect: Optional[Type] = None,
) -> Any:
    """Decode an LLM response as JSON or return ``fallback_builder()``.

    ``raw`` may be a string or a message object with a ``content`` attribute.
    Markdown code fences are tolerated. When ``expect`` is given, a decoded
    value of another type counts as malformed. Never raises; the fallback is
    invoked at most once.
    """

    text = getattr(raw, "content", raw)
    try:
        if not isinstance(text, str):
            raise MalformedOutputError(f"expected text, got {type(text).__name__}")
        value = json.loads(strip_code_fences(text))
        if expect is not None and not isinstance(value, expect):
            raise MalformedOutputError(f"expected {expect.__name__}, got {type(value).__name__}")
        return value
    except (MalformedOutputError, ValueError, RecursionError) as exc:
        logger.debug("JSON parsing failed, using fallback: %s", exc)
    return fallback_builder()


class TimedCache(Generic[T]):
    """Key/value cache whose entries expire lazily when read."""

    def __init__(self, max_age: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if max_age <= 0:
            raise ValueError("max_age must be positive")
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[str, Tuple[T, float]] = {}

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at > self.max_age:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = (value, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def extract_keywords(text: str, *, limit: int = 5) -> List[str]:
    """Return the most frequent non-trivial words in ``text``."""

    words = re.sub(r"[^\w\s]", "", text.lower()).split()
    counts = Counter(word for word in words if len(word) > 3 and word not in _STOP_WORDS)
    return [word for word, _ in counts.most_common(limit)]


def word_count(text: str) -> int:
    return len(text.split(" "))
