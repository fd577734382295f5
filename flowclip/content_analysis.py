"""Comprehensive content analysis workflow.

One structured LLM call classifies the content, tags it and recommends
actions, optionally informed by a screenshot description. A second step
refines low-confidence results for longer content.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Tuple

from .actions import validate_and_filter_actions
from .classifier import extract_content_type, generate_fallback_tags
from .constants import (
    ALLOWED_ACTIONS,
    ENHANCE_CONFIDENCE_THRESHOLD,
    ENHANCE_MIN_CONTENT_LENGTH,
    MAX_CONFIDENCE_BOOST,
    MAX_ENHANCED_CONFIDENCE,
    MAX_TAGS,
)
from .graph import END, CompiledWorkflow, WorkflowGraph
from .llm import LLMGateway, build_analysis_messages
from .models import CaptureContext, ComprehensiveAnalysis, RecommendedAction
from .utils import parse_json_with_fallback

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "comprehensive_content_analysis"

VISION_PROMPT = """Analyze this screenshot comprehensively for clipboard content management:

1. CONTENT CONTEXT: What application/interface is visible? What task is the user performing?
2. VISUAL WORKFLOW: How does the visual context relate to the copied content?
3. USER ACTIVITY: What type of work/research activity is happening? (coding, browsing, writing, etc.)
4. WORK CONTEXT: Is this professional, academic, personal, or creative work?
5. URGENCY INDICATORS: Any visual cues about priority or time sensitivity?

Provide detailed insights for content classification, tagging, and action recommendations."""

ANALYSIS_PROMPT = """Perform comprehensive clipboard content analysis. Analyze and return JSON with ALL of the following:

CONTENT ANALYSIS:
- contentType: (text, code, url, email, phone, address, location, person, organization, date, financial, document, data, other)
- sentiment: (positive, negative, neutral)
- purpose: primary intent/use case
- confidence: analysis confidence (0-100)

CONTEXT INTEGRATION:
- Source app: {source_app}
- Window title: {window_title}
- Surrounding text: {surrounding_text}
- Visual context available: {has_visual}

{visual_insights}TAGS GENERATION (REQUIRED - exactly 3-5 tags):
The "tags" field must be a JSON array of 3-5 string tags
- Content-type tags (REQUIRED): include the specific type like "url", "location", "person", "phone", "email", "code", "address"
- Context-based tags: source app, workflow, environment (e.g. "vscode", "browser", "email-client")
- Purpose/semantic tags: intent, category, domain (e.g. "reference", "work", "contact", "documentation")

ACTION RECOMMENDATIONS (3-5 actions):
Use ONLY these actions: {allowed}
Consider content type, visual context, source app and user activity.

Return as JSON:
{{
  "contentType": "string",
  "sentiment": "string",
  "purpose": "string",
  "confidence": number,
  "contextInsights": "string",
  "visualContext": {{"userActivity": "string", "workContext": "string", "urgencyLevel": "string", "visualCues": "string"}},
  "tags": ["tag1", "tag2", "tag3"],
  "recommendedActions": [{{"action": "string", "priority": "high|medium|low", "reason": "string", "confidence": 0.0}}],
  "overallConfidence": 0.0
}}"""

ENHANCE_PROMPT = """Enhance the analysis results for better accuracy:

Current Analysis:
- Content Type: {content_type}
- Tags: {tags}
- Actions: {actions}
- Confidence: {confidence}

IMPORTANT: Only use these allowed actions: {allowed}

Provide improvements as JSON:
{{
  "enhancedTags": ["tag1", "tag2"],
  "enhancedActions": [{{"action": "must be from allowed list", "priority": "high|medium|low", "reason": "string", "confidence": 0.0}}],
  "confidenceBoost": number
}}"""


@dataclass(slots=True, frozen=True)
class AnalysisState:
    content: str
    context: CaptureContext = field(default_factory=CaptureContext)
    content_type: str = "text"
    sentiment: str = "neutral"
    purpose: str = "general"
    confidence: float = 0.0
    context_insights: str = ""
    visual_context: Mapping[str, Any] = field(default_factory=dict)
    has_visual_context: bool = False
    tags: Tuple[str, ...] = ()
    recommended_actions: Tuple[RecommendedAction, ...] = ()
    action_confidence: float = 0.7
    analysis_method: str = ""

    @property
    def action_reasons(self) -> Dict[str, str]:
        return {action.action: action.reason for action in self.recommended_actions}

    def to_result(self) -> Dict[str, Any]:
        return {
            "contentType": self.content_type,
            "sentiment": self.sentiment,
            "purpose": self.purpose,
            "confidence": self.confidence,
            "contextInsights": self.context_insights,
            "visualContext": dict(self.visual_context),
            "sourceApp": self.context.source_app or "unknown",
            "hasVisualContext": self.has_visual_context,
            "tags": list(self.tags),
            "recommendedActions": [action.to_dict() for action in self.recommended_actions],
            "actionConfidence": self.action_confidence,
            "actionReasons": self.action_reasons,
            "analysisMethod": self.analysis_method,
        }

    def to_analysis(self) -> ComprehensiveAnalysis:
        return ComprehensiveAnalysis.from_dict(self.to_result())


def normalize_confidence(value: Any, default: float = 70.0) -> float:
    """Coerce a reported confidence onto the 0-100 scale."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    if number <= 1:
        number *= 100
    return min(number, 100.0)


def clean_tags(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    cleaned = [tag.strip().lower() for tag in raw if isinstance(tag, str) and tag.strip()]
    return list(dict.fromkeys(cleaned))


def _seed_tags(content: str, context: CaptureContext, marker: str) -> List[str]:
    tags = [
        extract_content_type(content),
        context.source_app.lower() if context.source_app and context.source_app != "unknown" else "general",
        marker,
        *generate_fallback_tags(content, context),
    ]
    return list(dict.fromkeys(tag for tag in tags if tag))[:MAX_TAGS]


def _default_visual_context(cues: str, work_context: str = "unknown") -> Dict[str, str]:
    return {
        "userActivity": "general",
        "workContext": work_context,
        "urgencyLevel": "medium",
        "visualCues": cues,
    }


class ContentAnalysisWorkflow:
    """Builds the comprehensive analysis graph around an injected gateway."""

    def __init__(self, gateway: LLMGateway) -> None:
        self.gateway = gateway

    def build(self) -> CompiledWorkflow[AnalysisState]:
        graph: WorkflowGraph[AnalysisState] = WorkflowGraph(WORKFLOW_NAME)
        graph.add_step("comprehensive_analysis", self.comprehensive_analysis)
        graph.add_step("enhance_results", self.enhance_results)
        graph.add_conditional_edge("comprehensive_analysis", self.route_after_analysis, ("enhance_results", END))
        graph.add_edge("enhance_results", END)
        graph.set_entry("comprehensive_analysis")
        return graph.compile()

    @staticmethod
    def route_after_analysis(state: AnalysisState) -> str:
        if state.confidence < ENHANCE_CONFIDENCE_THRESHOLD and len(state.content) > ENHANCE_MIN_CONTENT_LENGTH:
            return "enhance_results"
        return END

    async def comprehensive_analysis(self, state: AnalysisState) -> AnalysisState:
        context = state.context
        try:
            visual = None
            if context.screenshot_path:
                visual = await self.gateway.describe_screenshot(context.screenshot_path, state.content, VISION_PROMPT)
            insights = f"Visual Context Analysis: {visual}\n\n" if visual else ""
            prompt = ANALYSIS_PROMPT.format(
                source_app=context.source_app or "unknown",
                window_title=context.window_title or "unknown",
                surrounding_text=context.surrounding_text or "none",
                has_visual="yes" if visual else "no",
                visual_insights=f"VISUAL INSIGHTS:\n{insights}" if insights else "",
                allowed=", ".join(ALLOWED_ACTIONS),
            )
            raw = await self.gateway.complete(build_analysis_messages(prompt, state.content, context))

            def fallback() -> Dict[str, Any]:
                return {
                    "contentType": extract_content_type(state.content),
                    "sentiment": "neutral",
                    "purpose": "general",
                    "confidence": 70,
                    "contextInsights": insights + "Automated analysis based on content patterns",
                    "visualContext": _default_visual_context(
                        "Visual context analyzed" if visual else "No visual context",
                        "professional" if context.source_app and context.source_app != "unknown" else "unknown",
                    ),
                    "tags": _seed_tags(state.content, context, "reference"),
                    "recommendedActions": [
                        {
                            "action": "research",
                            "priority": "medium",
                            "reason": "Default recommendation for content exploration",
                            "confidence": 0.7,
                        }
                    ],
                    "overallConfidence": 0.7,
                }

            analysis = parse_json_with_fallback(raw, fallback, expect=dict)
            tags = clean_tags(analysis.get("tags"))
            if not tags:
                logger.debug("Invalid or missing tags, generating fallback tags")
                tags = _seed_tags(state.content, context, "ai-generated")
            elif len(tags) < 2:
                tags = list(dict.fromkeys(tags + generate_fallback_tags(state.content, context)))
            visual_context = analysis.get("visualContext")
            return replace(
                state,
                content_type=str(analysis.get("contentType") or "text"),
                sentiment=str(analysis.get("sentiment") or "neutral"),
                purpose=str(analysis.get("purpose") or "general"),
                confidence=normalize_confidence(analysis.get("confidence")),
                context_insights=str(analysis.get("contextInsights") or "Analysis completed"),
                visual_context=dict(visual_context)
                if isinstance(visual_context, dict)
                else _default_visual_context("No visual context"),
                has_visual_context=bool(visual),
                tags=tuple(tags[:MAX_TAGS]),
                recommended_actions=tuple(validate_and_filter_actions(analysis.get("recommendedActions", []))),
                action_confidence=_fraction(analysis.get("overallConfidence"), 0.7),
                analysis_method="comprehensive_unified",
            )
        except Exception as exc:
            logger.warning("Comprehensive analysis failed, using basic classification: %s", exc)
            return replace(
                state,
                content_type="text",
                sentiment="neutral",
                purpose="general",
                confidence=50.0,
                context_insights="Analysis failed, using basic classification",
                visual_context=_default_visual_context("Analysis unavailable"),
                has_visual_context=False,
                tags=tuple(_seed_tags(state.content, context, "error-fallback")),
                recommended_actions=(
                    RecommendedAction(
                        action="explain",
                        priority="medium",
                        reason="Fallback recommendation due to analysis error",
                        confidence=0.5,
                    ),
                ),
                action_confidence=0.5,
                analysis_method="fallback",
            )

    async def enhance_results(self, state: AnalysisState) -> AnalysisState:
        try:
            prompt = ENHANCE_PROMPT.format(
                content_type=state.content_type,
                tags=", ".join(state.tags),
                actions=", ".join(action.action for action in state.recommended_actions),
                confidence=state.confidence,
                allowed=", ".join(ALLOWED_ACTIONS),
            )
            raw = await self.gateway.complete(build_analysis_messages(prompt, state.content, state.context))
            enhancement = parse_json_with_fallback(raw, dict, expect=dict)
            tags = clean_tags(enhancement.get("enhancedTags"))[:MAX_TAGS] or list(state.tags)
            actions = state.recommended_actions
            if isinstance(enhancement.get("enhancedActions"), list):
                actions = tuple(validate_and_filter_actions(enhancement["enhancedActions"]))
            boost = _bounded_boost(enhancement.get("confidenceBoost"))
            return replace(
                state,
                tags=tuple(tags),
                recommended_actions=actions,
                confidence=min(state.confidence + boost, MAX_ENHANCED_CONFIDENCE),
                analysis_method="comprehensive_enhanced",
            )
        except Exception as exc:
            logger.warning("Analysis enhancement failed: %s", exc)
            return state


def _fraction(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number > 1:
        number /= 100
    return max(0.0, min(number, 1.0)) or default


def _bounded_boost(value: Any) -> float:
    try:
        boost = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(boost, float(MAX_CONFIDENCE_BOOST)))
