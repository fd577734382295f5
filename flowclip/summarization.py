"""Summarization workflow with a conditional quality-refinement branch."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Tuple

from langchain_core.messages import HumanMessage, SystemMessage

from .constants import MAX_REFINED_QUALITY, REFINE_QUALITY_BOOST, REFINE_QUALITY_THRESHOLD
from .graph import END, CompiledWorkflow, WorkflowGraph
from .llm import LLMGateway, build_analysis_messages
from .models import CaptureContext
from .utils import parse_json_with_fallback

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "summarization"

EXTRACT_PROMPT = """Extract key points and create a context-aware summary foundation.

1. EXTRACT 3-7 key points from the content
2. CONSIDER the context: Source app ({source_app}), purpose, and user intent
3. CREATE a contextual summary that preserves essential information

Return as JSON:
{{
  "keyPoints": ["point1", "point2", "point3"],
  "contextualSummary": "Context-aware summary that considers why this was copied and how it might be used"
}}"""

SUMMARY_PROMPT = """Create a high-quality, concise summary with built-in quality validation.

Requirements:
- Maximum 2-3 sentences
- Preserve key information: {key_points}
- Include context when relevant
- Clear and actionable
- Self-validate for accuracy and completeness

Return as JSON:
{{
  "summary": "Final concise summary",
  "qualityScore": number (0-100),
  "needsRefinement": boolean,
  "qualityNotes": "Brief notes on quality assessment"
}}"""

REFINE_PROMPT = """Improve the summary (current score: {score}/100).

Address likely issues and create a better version:
- Add missing key information
- Improve clarity and flow
- Ensure proper context
- Keep it concise (2-3 sentences max)

Return the improved summary as plain text."""


@dataclass(slots=True, frozen=True)
class SummaryState:
    content: str
    context: CaptureContext = field(default_factory=CaptureContext)
    key_points: Tuple[str, ...] = ()
    contextual_summary: str = ""
    summary: str = ""
    quality_score: float = 0.0
    needs_refinement: bool = False
    final_summary: str = ""

    def to_result(self) -> Dict[str, Any]:
        return {
            "keyPoints": list(self.key_points),
            "contextualSummary": self.contextual_summary,
            "summary": self.summary,
            "qualityScore": self.quality_score,
            "needsRefinement": self.needs_refinement,
            "finalSummary": self.final_summary,
        }


def _sentences(content: str) -> List[str]:
    return [part.strip() for part in content.split(".") if len(part.strip()) > 10]


def _join_points(points: Tuple[str, ...] | List[str]) -> str:
    return ". ".join(points[:2]) + "."


def _quality(value: Any, default: float = 75.0) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score <= 0:
        return default
    return min(score, 100.0)


class SummarizationWorkflow:
    def __init__(self, gateway: LLMGateway) -> None:
        self.gateway = gateway

    def build(self) -> CompiledWorkflow[SummaryState]:
        graph: WorkflowGraph[SummaryState] = WorkflowGraph(WORKFLOW_NAME)
        graph.add_step("extract_and_contextualize", self.extract_and_contextualize)
        graph.add_step("generate_quality_summary", self.generate_quality_summary)
        graph.add_step("refine_summary", self.refine_summary)
        graph.add_edge("extract_and_contextualize", "generate_quality_summary")
        graph.add_conditional_edge("generate_quality_summary", self.route_after_summary, ("refine_summary", END))
        graph.add_edge("refine_summary", END)
        graph.set_entry("extract_and_contextualize")
        return graph.compile()

    @staticmethod
    def route_after_summary(state: SummaryState) -> str:
        return "refine_summary" if state.quality_score < REFINE_QUALITY_THRESHOLD else END

    async def extract_and_contextualize(self, state: SummaryState) -> SummaryState:
        try:
            prompt = EXTRACT_PROMPT.format(source_app=state.context.source_app or "unknown")
            raw = await self.gateway.complete(build_analysis_messages(prompt, state.content, state.context))

            def fallback() -> Dict[str, Any]:
                sentences = _sentences(state.content)
                return {
                    "keyPoints": sentences[:3],
                    "contextualSummary": ". ".join(sentences[:2]) + ".",
                }

            analysis = parse_json_with_fallback(raw, fallback, expect=dict)
            points = [str(point) for point in analysis.get("keyPoints") or [] if str(point).strip()]
            return replace(
                state,
                key_points=tuple(points) or ("Content summary needed",),
                contextual_summary=str(analysis.get("contextualSummary") or "Summary unavailable"),
            )
        except Exception as exc:
            logger.warning("Key point extraction failed: %s", exc)
            return replace(
                state,
                key_points=("Summary extraction failed",),
                contextual_summary="Summary unavailable due to error",
            )

    async def generate_quality_summary(self, state: SummaryState) -> SummaryState:
        try:
            messages = [
                SystemMessage(content=SUMMARY_PROMPT.format(key_points=", ".join(state.key_points))),
                HumanMessage(
                    content=(
                        f"Original Content: {state.content}\n\n"
                        f"Key Points: {', '.join(state.key_points)}\n"
                        f"Contextual Foundation: {state.contextual_summary}"
                    )
                ),
            ]
            raw = await self.gateway.complete(messages)
            result = parse_json_with_fallback(
                raw,
                lambda: {
                    "summary": _join_points(state.key_points),
                    "qualityScore": 75,
                    "needsRefinement": False,
                    "qualityNotes": "Fallback summary generated",
                },
                expect=dict,
            )
            quality = _quality(result.get("qualityScore"))
            summary = str(result.get("summary") or state.contextual_summary)
            return replace(
                state,
                summary=summary,
                quality_score=quality,
                needs_refinement=quality < REFINE_QUALITY_THRESHOLD,
                final_summary=summary,
            )
        except Exception as exc:
            logger.warning("Summary generation failed: %s", exc)
            return replace(
                state,
                summary=_join_points(state.key_points),
                quality_score=60.0,
                needs_refinement=True,
                final_summary=state.contextual_summary,
            )

    async def refine_summary(self, state: SummaryState) -> SummaryState:
        try:
            messages = [
                SystemMessage(content=REFINE_PROMPT.format(score=state.quality_score)),
                HumanMessage(
                    content=(
                        f"Original Content: {state.content}\n\n"
                        f"Current Summary: {state.summary}\n"
                        f"Key Points to Include: {', '.join(state.key_points)}"
                    )
                ),
            ]
            refined = (await self.gateway.complete(messages)).strip()
            return replace(
                state,
                final_summary=refined or state.summary,
                quality_score=min(state.quality_score + REFINE_QUALITY_BOOST, MAX_REFINED_QUALITY),
            )
        except Exception as exc:
            logger.warning("Summary refinement failed: %s", exc)
            return replace(state, final_summary=state.summary)
