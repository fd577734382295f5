"""Data models shared by the FlowClip workflows, store and orchestrator."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .constants import ContentType
from .utils import generate_id, utc_now


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return utc_now()


@dataclass(slots=True)
class CaptureContext:
    """Desktop context observed around a clipboard change."""

    source_app: str = "unknown"
    window_title: str = ""
    surrounding_text: str = ""
    screenshot_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_app": self.source_app,
            "window_title": self.window_title,
            "surrounding_text": self.surrounding_text,
            "screenshot_path": str(self.screenshot_path) if self.screenshot_path else None,
        }


@dataclass(slots=True)
class ClipboardItem:
    """Clipboard content plus the context captured with it.

    Content and context never change after capture; only ``tags`` and
    ``analysis`` are attached later by the orchestrator.
    """

    id: str
    content: str
    timestamp: datetime = field(default_factory=utc_now)
    source_app: str = "unknown"
    window_title: str = ""
    surrounding_text: str = ""
    screenshot_path: Optional[Path] = None
    content_type: str = ContentType.TEXT.value
    tags: List[str] = field(default_factory=list)
    analysis: Optional["ComprehensiveAnalysis"] = None

    @classmethod
    def create(cls, content: str, context: CaptureContext | None = None) -> "ClipboardItem":
        context = context or CaptureContext()
        return cls(
            id=generate_id("clip"),
            content=content,
            source_app=context.source_app or "unknown",
            window_title=context.window_title,
            surrounding_text=context.surrounding_text,
            screenshot_path=context.screenshot_path,
        )

    @property
    def context(self) -> CaptureContext:
        return CaptureContext(
            source_app=self.source_app,
            window_title=self.window_title,
            surrounding_text=self.surrounding_text,
            screenshot_path=self.screenshot_path,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ClipboardItem":
        """Build an item from a capture payload using either naming convention."""

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if payload.get(key) not in (None, ""):
                    return payload[key]
            return default

        screenshot = pick("screenshot_path", "screenshotPath")
        analysis = payload.get("analysis")
        return cls(
            id=pick("id", default=None) or generate_id("clip"),
            content=str(payload.get("content", "")),
            timestamp=_parse_ts(pick("timestamp")),
            source_app=pick("source_app", "sourceApp", default="unknown"),
            window_title=pick("window_title", "windowTitle", default=""),
            surrounding_text=pick("surrounding_text", "surroundingText", default=""),
            screenshot_path=Path(screenshot) if screenshot else None,
            content_type=pick("content_type", "contentType", default=ContentType.TEXT.value),
            tags=list(payload.get("tags") or []),
            analysis=ComprehensiveAnalysis.from_dict(analysis) if isinstance(analysis, Mapping) else None,
        )


class TaskType(str, Enum):
    COMPREHENSIVE_ANALYSIS = "comprehensive_analysis"
    SUMMARIZE = "summarize"
    RESEARCH = "research"
    FACT_CHECK = "fact_check"
    CREATE_TASK = "create_task"
    TRANSLATE = "translate"
    EXPLAIN = "explain"
    GENERATE_TAGS = "generate_tags"
    DETECT_CONTENT_TYPE = "detect_content_type"
    SUGGEST_ACTIONS = "suggest_actions"


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class AnalysisTask:
    """Append-only record of a single task invocation."""

    id: str
    clipboard_item_id: str
    task_type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @classmethod
    def pending(cls, clipboard_item_id: str, task_type: TaskType) -> "AnalysisTask":
        return cls(id=generate_id("task"), clipboard_item_id=clipboard_item_id, task_type=task_type)


@dataclass(slots=True, frozen=True)
class RecommendedAction:
    action: str
    priority: str = "medium"
    reason: str = ""
    confidence: float = 0.7

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ComprehensiveAnalysis:
    """Durable, mergeable analysis attached to a clipboard item."""

    content_type: str = ContentType.TEXT.value
    sentiment: str = "neutral"
    purpose: str = "general"
    confidence: float = 0.0
    tags: List[str] = field(default_factory=list)
    recommended_actions: List[RecommendedAction] = field(default_factory=list)
    context_insights: str = ""
    visual_context: Dict[str, Any] = field(default_factory=dict)
    analysis_method: str = ""
    workflow_results: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=utc_now)

    def merged(self, workflow_name: str, result: Mapping[str, Any]) -> "ComprehensiveAnalysis":
        """Return a copy carrying ``result`` under ``workflow_name``.

        A comprehensive analysis result replaces the classification fields;
        every other workflow only replaces its own sub-result.
        """

        workflow_results = dict(self.workflow_results)
        if workflow_name == "comprehensive_analysis":
            incoming = ComprehensiveAnalysis.from_dict(result)
            return replace(incoming, workflow_results=workflow_results, updated_at=utc_now())
        workflow_results[workflow_name] = dict(result)
        return replace(self, workflow_results=workflow_results, updated_at=utc_now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contentType": self.content_type,
            "sentiment": self.sentiment,
            "purpose": self.purpose,
            "confidence": self.confidence,
            "tags": list(self.tags),
            "recommendedActions": [action.to_dict() for action in self.recommended_actions],
            "contextInsights": self.context_insights,
            "visualContext": dict(self.visual_context),
            "analysisMethod": self.analysis_method,
            "workflowResults": {name: dict(res) for name, res in self.workflow_results.items()},
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ComprehensiveAnalysis":
        actions = []
        for entry in payload.get("recommendedActions") or payload.get("recommended_actions") or []:
            if isinstance(entry, RecommendedAction):
                actions.append(entry)
            elif isinstance(entry, Mapping) and entry.get("action"):
                actions.append(
                    RecommendedAction(
                        action=str(entry["action"]),
                        priority=str(entry.get("priority", "medium")),
                        reason=str(entry.get("reason", "")),
                        confidence=float(entry.get("confidence", 0.7)),
                    )
                )
        return cls(
            content_type=str(payload.get("contentType") or payload.get("content_type") or ContentType.TEXT.value),
            sentiment=str(payload.get("sentiment") or "neutral"),
            purpose=str(payload.get("purpose") or "general"),
            confidence=float(payload.get("confidence") or 0.0),
            tags=[str(tag) for tag in payload.get("tags") or []],
            recommended_actions=actions,
            context_insights=str(payload.get("contextInsights") or payload.get("context_insights") or ""),
            visual_context=dict(payload.get("visualContext") or payload.get("visual_context") or {}),
            analysis_method=str(payload.get("analysisMethod") or payload.get("analysis_method") or ""),
            workflow_results={
                name: dict(res)
                for name, res in (payload.get("workflowResults") or payload.get("workflow_results") or {}).items()
            },
            updated_at=_parse_ts(payload.get("updatedAt") or payload.get("updated_at")),
        )


@dataclass(slots=True)
class Session:
    """User-defined grouping of clipboard items sharing a research intent."""

    id: str
    session_type: str
    session_label: str
    created_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)
    status: str = "active"

    @classmethod
    def create(cls, session_type: str, session_label: str) -> "Session":
        return cls(id=generate_id("sess"), session_type=session_type, session_label=session_label)


@dataclass(slots=True)
class SessionItem:
    session_id: str
    clipboard_item_id: str
    sequence_order: int
    added_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class SearchResult:
    title: str
    snippet: str
    url: str = ""
    date: str = ""
    type: str = "organic"

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "snippet": self.snippet, "url": self.url, "date": self.date}


@dataclass(slots=True)
class SessionResearchResult:
    """Research workflow output attributed to one session entry and aspect."""

    entry_id: str
    aspect: str
    query: str
    key_findings: List[str] = field(default_factory=list)
    research_summary: str = ""
    sources: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class EntryResearch:
    """Per-entry research context: tags from the entry's analysis and the aspects researched."""

    entry_id: str
    content: str = ""
    tags: List[str] = field(default_factory=list)
    aspects: List[str] = field(default_factory=list)


class ConsolidationStrategy(str, Enum):
    COMPARE = "COMPARE"
    MERGE = "MERGE"
    COMPLEMENT = "COMPLEMENT"
    GENERIC = "GENERIC"


@dataclass(slots=True)
class SessionEntity:
    """One thing a session item is about, e.g. a specific hotel."""

    id: str
    name: str
    type: str = "general"
    source_app: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "clipboardItemId": self.id,
            "sourceApp": self.source_app,
        }


@dataclass(slots=True)
class EntityAnalysis:
    """How the entities of a session relate, and how to consolidate them."""

    strategy: ConsolidationStrategy
    relationship_type: str
    entities: List[SessionEntity] = field(default_factory=list)
    comparison_dimensions: List[str] = field(default_factory=list)
    reasoning: str = ""
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consolidationStrategy": self.strategy.value,
            "relationshipType": self.relationship_type,
            "entities": [entity.to_dict() for entity in self.entities],
            "comparisonDimensions": list(self.comparison_dimensions),
            "reasoning": self.reasoning,
            "confidence": self.confidence,
        }


@dataclass(slots=True)
class SessionSummary:
    research_objective: str
    summary: str
    primary_intent: str
    key_findings: List[str]
    research_goals: List[str]
    next_steps: List[str]
    entities_researched: List[str]
    aspects_covered: List[str]
    total_sources: int
    research_quality: str
    confidence_level: float
    research_data: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None
    timespan_minutes: int = 0
    method: str = "fallback"
    entity_analysis: Optional[EntityAnalysis] = None
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def consolidation_strategy(self) -> ConsolidationStrategy:
        if self.entity_analysis is None:
            return ConsolidationStrategy.GENERIC
        return self.entity_analysis.strategy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "researchObjective": self.research_objective,
            "summary": self.summary,
            "primaryIntent": self.primary_intent,
            "keyFindings": list(self.key_findings),
            "researchGoals": list(self.research_goals),
            "nextSteps": list(self.next_steps),
            "entitiesResearched": list(self.entities_researched),
            "aspectsCovered": list(self.aspects_covered),
            "totalSources": self.total_sources,
            "researchQuality": self.research_quality,
            "confidenceLevel": self.confidence_level,
            "researchData": self.research_data,
            "timespanMinutes": self.timespan_minutes,
            "method": self.method,
            "consolidationStrategy": self.consolidation_strategy.value,
            "entityAnalysis": self.entity_analysis.to_dict() if self.entity_analysis else None,
            "timestamp": self.timestamp.isoformat(),
        }
