"""Presentation helpers for research summaries and CLI output."""

from __future__ import annotations

import html
import re
from typing import Any, Iterable, List, Mapping

from .constants import MAX_SUMMARY_LENGTH
from .models import ComprehensiveAnalysis, SessionSummary


_TRUNCATE_AT = 1600
_MIN_SENTENCE_CUT = 1000
_TRUNCATION_NOTE = "\n\n*[Summary truncated for display]*"
_HEADER_RE = re.compile(r"^\*\*.*\*\*")
_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_ITALIC_RE = re.compile(r"\*(.*?)\*")
_EXTRA_BLANKS_RE = re.compile(r"\n{3,}")
_LEADING_INDENT_RE = re.compile(r"^[ \t]+", re.MULTILINE)
_EMPTY_PARAGRAPH_RE = re.compile(r"<p>\s*</p>")


def default_summary_text(topic: str) -> str:
    return (
        f"**{topic}** - Research Summary\n\n"
        "Analysis of this topic has been completed based on available information and "
        "provides several key insights worth considering.\n\n"
        "Research insights are available for this topic, and multiple perspectives should be "
        "considered for comprehensive understanding. Current applications and trends provide "
        "valuable context for practical decision-making.\n\n"
        "For next steps, consider gathering additional sources to enhance understanding and "
        "verify findings through multiple reliable sources."
    )


def bound_research_summary(raw: Any, topic: str) -> str:
    """Return the summary as bounded markdown with a bold topic header."""

    if not isinstance(raw, str) or not raw.strip():
        return default_summary_text(topic)
    text = raw.strip()
    if not _HEADER_RE.match(text):
        text = f"**{topic}** - Research Summary\n\n{text}"
    if len(text) > MAX_SUMMARY_LENGTH:
        cut = text.rfind(".", 0, _TRUNCATE_AT + 1)
        if cut > _MIN_SENTENCE_CUT:
            text = text[: cut + 1] + _TRUNCATION_NOTE
        else:
            text = text[:_TRUNCATE_AT] + "..." + _TRUNCATION_NOTE
    text = _EXTRA_BLANKS_RE.sub("\n\n", text)
    text = _LEADING_INDENT_RE.sub("", text)
    return text.strip()


def markdown_to_html(text: str) -> str:
    """Convert bold, italic, paragraphs and line breaks to HTML."""

    markup = html.escape(text, quote=False)
    markup = _BOLD_RE.sub(r"<strong>\1</strong>", markup)
    markup = _ITALIC_RE.sub(r"<em>\1</em>", markup)
    markup = markup.replace("\n\n", "</p><p>").replace("\n", "<br>")
    markup = f"<p>{markup}</p>"
    return _EMPTY_PARAGRAPH_RE.sub("", markup)


def format_research_summary(raw: Any, topic: str) -> str:
    return markdown_to_html(bound_research_summary(raw, topic))


def _bullets(items: Iterable[str], indent: str = "    ") -> List[str]:
    return [f"{indent}- {item}" for item in items]


def render_analysis_text(analysis: ComprehensiveAnalysis) -> str:
    lines = [
        f"[{analysis.content_type}] {analysis.purpose} ({analysis.sentiment})",
        f"  confidence: {analysis.confidence:.0f}",
        f"  tags: {', '.join(analysis.tags) if analysis.tags else '(none)'}",
    ]
    if analysis.recommended_actions:
        lines.append("  actions:")
        for action in analysis.recommended_actions:
            lines.append(f"    - {action.action} [{action.priority}] {action.reason}")
    if analysis.context_insights:
        lines.append(f"  insights: {analysis.context_insights}")
    return "\n".join(lines)


def render_task_result(task_type: str, result: Mapping[str, Any]) -> str:
    lines = [f"[{task_type}]"]
    for key, value in result.items():
        if isinstance(value, list):
            lines.append(f"  {key}:")
            lines.extend(_bullets(str(item) for item in value))
        else:
            lines.append(f"  {key}: {value}")
    return "\n".join(lines)


def render_session_summary(summary: SessionSummary) -> str:
    lines = [
        f"Objective: {summary.research_objective}",
        f"Summary: {summary.summary}",
        f"Intent: {summary.primary_intent}",
        f"Strategy: {summary.consolidation_strategy.value}",
        f"Quality: {summary.research_quality} (confidence {summary.confidence_level:.2f}, "
        f"{summary.total_sources} sources)",
        "Entities: " + ", ".join(summary.entities_researched),
        "Aspects: " + ", ".join(summary.aspects_covered),
    ]
    for title, items in (
        ("Key findings", summary.key_findings),
        ("Goals", summary.research_goals),
        ("Next steps", summary.next_steps),
    ):
        if items:
            lines.append(f"{title}:")
            lines.extend(_bullets(items, indent="  "))
    return "\n".join(lines)
