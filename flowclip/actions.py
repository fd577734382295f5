"""Validation of LLM recommended actions against the allowed vocabulary."""

from __future__ import annotations

import logging
from typing import Any, List, Sequence, Tuple

from .constants import ALLOWED_ACTIONS, MAX_ACTIONS
from .models import RecommendedAction

logger = logging.getLogger(__name__)

# Keyword groups checked in order; the first group with a hit decides.
_KEYWORD_MAP: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("search", "find", "lookup"), "research"),
    (("check", "verify", "validate"), "fact_check"),
    (("short", "brief", "condense"), "summarize"),
    (("convert", "language"), "translate"),
    (("clarify", "understand", "describe"), "explain"),
    (("detail", "elaborate", "more"), "expand"),
    (("todo", "action", "task"), "create_task"),
    (("source", "reference", "attribution"), "cite"),
    (("reply", "answer", "message"), "respond"),
    (("calendar", "time", "remind"), "schedule"),
)


def map_invalid_action(action: Any) -> str:
    if not isinstance(action, str) or not action:
        return "research"
    lowered = action.lower()
    for keywords, mapped in _KEYWORD_MAP:
        if any(keyword in lowered for keyword in keywords):
            return mapped
    return "research"


def _as_confidence(value: Any, default: float = 0.7) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number or default


def validate_and_filter_actions(
    actions: Any,
    allowed: Sequence[str] = ALLOWED_ACTIONS,
) -> List[RecommendedAction]:
    """Normalize raw action entries into at most five allowed actions.

    Unknown action names are remapped instead of dropped so that the number
    of recommendations survives; the result is never empty.
    """

    if not isinstance(actions, list):
        logger.debug("Invalid actions format, using fallback")
        return [
            RecommendedAction(
                action="research" if "research" in allowed else allowed[0],
                priority="medium",
                reason="Fallback action due to invalid format",
                confidence=0.5,
            )
        ]

    validated: List[RecommendedAction] = []
    for entry in actions:
        if isinstance(entry, RecommendedAction):
            entry = entry.to_dict()
        if not isinstance(entry, dict):
            continue
        name = entry.get("action")
        priority = entry.get("priority") or "medium"
        confidence = _as_confidence(entry.get("confidence"))
        if name in allowed:
            validated.append(
                RecommendedAction(
                    action=name,
                    priority=str(priority),
                    reason=entry.get("reason") or f"Recommended action: {name}",
                    confidence=confidence,
                )
            )
            continue
        mapped = map_invalid_action(name)
        if mapped not in allowed:
            mapped = allowed[0]
        validated.append(
            RecommendedAction(
                action=mapped,
                priority=str(priority),
                reason=entry.get("reason") or f"Mapped from '{name}' to '{mapped}'",
                confidence=max(confidence - 0.1, 0.3),
            )
        )

    if not validated:
        validated.append(
            RecommendedAction(
                action="explain" if "explain" in allowed else allowed[0],
                priority="medium",
                reason="Default action when no valid actions provided",
                confidence=0.5,
            )
        )
    return validated[:MAX_ACTIONS]
