"""Session-level consolidation of research results.

A session summary is always produced: when no workflow catalog is available,
or the consolidation workflow fails or returns an incomplete result, a
deterministic summary is built from the research data alone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .catalog import WorkflowCatalog
from .classifier import infer_aspect
from .consolidation import ConsolidationState
from .constants import ENTITY_COMPARISON_DIMENSIONS, SessionType
from .errors import NotFoundError, ValidationError
from .models import (
    ClipboardItem,
    ConsolidationStrategy,
    EntityAnalysis,
    EntryResearch,
    Session,
    SessionEntity,
    SessionResearchResult,
    SessionSummary,
)
from .store import TaskStore
from .utils import utc_now

logger = logging.getLogger(__name__)

FINDINGS_FOR_FULL_CONFIDENCE = 10
MAX_GOALS = 4
MAX_NEXT_STEPS = 3

_GOALS_AND_STEPS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    SessionType.HOTEL_RESEARCH.value: (
        ("Select optimal accommodation", "Compare pricing and amenities"),
        ("Check availability and rates", "Make reservation"),
    ),
    SessionType.RESTAURANT_RESEARCH.value: (
        ("Choose best dining option", "Evaluate cuisine and atmosphere"),
        ("Check availability", "Make reservation"),
    ),
    SessionType.PRODUCT_RESEARCH.value: (
        ("Make informed purchase decision", "Compare features and pricing"),
        ("Finalize product selection", "Proceed with purchase"),
    ),
    SessionType.TRAVEL_RESEARCH.value: (
        ("Plan comprehensive itinerary", "Optimize travel logistics"),
        ("Book accommodations", "Arrange transportation"),
    ),
    SessionType.ACADEMIC_RESEARCH.value: (
        ("Gather comprehensive information", "Analyze research findings"),
        ("Synthesize findings", "Prepare analysis"),
    ),
}
_DEFAULT_GOALS_AND_STEPS = (
    ("Complete comprehensive analysis", "Make informed decisions"),
    ("Review findings", "Take appropriate action"),
)

# First match wins.
_ENTITY_TYPES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("hotel", re.compile(r"\b(hotel|resort|inn)s?\b", re.I)),
    ("restaurant", re.compile(r"\b(restaurant|dining|menu)s?\b", re.I)),
    ("product", re.compile(r"\b(product|buy|price)s?\b", re.I)),
)
_COMPLEMENTARY_TYPES = (
    ("hotel", "restaurant"),
    ("hotel", "travel"),
    ("restaurant", "travel"),
    ("product", "service"),
    ("academic", "practical"),
)
_NAME_STOP_WORDS = frozenset({"The", "A", "An", "And", "Or", "But", "In", "On", "At", "To", "For", "With"})


@dataclass(slots=True)
class OrganizedFinding:
    aspect: str
    finding: str
    entry_id: str
    query: str
    sources: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aspect": self.aspect,
            "finding": self.finding,
            "entryId": self.entry_id,
            "query": self.query,
            "sources": self.sources,
        }


@dataclass(slots=True)
class ProcessedResearch:
    entities: List[str]
    aspects: List[str]
    findings: List[OrganizedFinding]
    sources: List[Mapping[str, Any]] = field(default_factory=list)
    total_sources: int = 0
    total_findings: int = 0
    research_quality: str = "none"


def _readable(session_type: str) -> str:
    return session_type.replace("_", " ", 1)


def organize_findings(results: Sequence[SessionResearchResult]) -> List[OrganizedFinding]:
    organized: List[OrganizedFinding] = []
    for result in results:
        for finding in result.key_findings:
            if isinstance(finding, str) and finding:
                organized.append(
                    OrganizedFinding(
                        aspect=result.aspect,
                        finding=finding,
                        entry_id=result.entry_id,
                        query=result.query,
                        sources=len(result.sources),
                    )
                )
    return organized


def assess_research_quality(results: Sequence[SessionResearchResult]) -> str:
    if not results:
        return "none"
    findings = sum(len(result.key_findings) for result in results)
    sources = sum(len(result.sources) for result in results)
    if findings >= 10 and sources >= 5:
        return "high"
    if findings >= 5 and sources >= 3:
        return "good"
    if findings >= 2 and sources >= 1:
        return "moderate"
    return "basic"


def process_research_data(
    results: Sequence[SessionResearchResult],
    entries: Sequence[EntryResearch],
    session_type: str,
) -> ProcessedResearch:
    """Collect entities, aspects, findings and counts from a session's research."""

    entities: List[str] = []
    aspects: List[str] = []

    def add(target: List[str], value: str) -> None:
        if value and value not in target:
            target.append(value)

    for entry in entries:
        for tag in entry.tags:
            add(entities, tag)
        for aspect in entry.aspects:
            add(aspects, aspect)
    for result in results:
        add(aspects, result.aspect)
        for term in result.query.split(" ")[:3]:
            if len(term) > 3:
                add(entities, term)

    if not entities:
        entities.append(_readable(session_type) if session_type else "research items")
    if not aspects:
        aspects.append("general_information")

    sources = [source for result in results for source in result.sources]
    return ProcessedResearch(
        entities=entities,
        aspects=aspects,
        findings=organize_findings(results),
        sources=sources,
        total_sources=len(sources),
        total_findings=sum(len(result.key_findings) for result in results),
        research_quality=assess_research_quality(results),
    )


def title_from_url(url: Any) -> str:
    if not url or not isinstance(url, str):
        return "Unknown Source"
    domain = (urlparse(url).hostname or "").replace("www.", "", 1)
    if not domain:
        return "Unknown Source"
    return domain[:1].upper() + domain[1:]


def extract_unique_sources(sources: Sequence[Any]) -> List[Dict[str, str]]:
    urls: List[str] = []
    for source in sources:
        if isinstance(source, str):
            url = source
        elif isinstance(source, Mapping):
            url = source.get("url") or source.get("link") or "unknown"
        else:
            continue
        if url not in urls:
            urls.append(url)
    return [{"url": url, "title": title_from_url(url)} for url in urls]


def group_findings_by_aspect(findings: Sequence[OrganizedFinding]) -> Dict[str, Dict[str, Any]]:
    breakdown: Dict[str, Dict[str, Any]] = {}
    for finding in findings:
        bucket = breakdown.setdefault(finding.aspect or "general", {"count": 0, "findings": [], "sources": 0})
        bucket["count"] += 1
        bucket["findings"].append(finding.finding)
        bucket["sources"] += finding.sources
    return breakdown


def calculate_research_confidence(findings: Sequence[OrganizedFinding]) -> float:
    """Score 0..1 from finding count, aspect coverage and sources per finding."""

    if not findings:
        return 0.0
    total = len(findings)
    aspect_coverage = len({finding.aspect for finding in findings})
    avg_sources = sum(finding.sources for finding in findings) / total
    base = min(total / FINDINGS_FOR_FULL_CONFIDENCE, 1.0)
    aspect_bonus = min(aspect_coverage / 5, 0.2)
    source_bonus = min(avg_sources / 3, 0.2)
    return min(base + aspect_bonus + source_bonus, 1.0)


def session_timespan_minutes(items: Sequence[ClipboardItem]) -> int:
    if not items:
        return 0
    stamps = [item.timestamp.timestamp() for item in items]
    return round((max(stamps) - min(stamps)) / 60)


def fallback_goals_and_steps(session_type: str, entities: Sequence[str]) -> Tuple[List[str], List[str]]:
    goals, steps = _GOALS_AND_STEPS.get(session_type, _DEFAULT_GOALS_AND_STEPS)
    goals = list(goals)
    if len(entities) > 1:
        goals.insert(0, f"Finalize selection between {' and '.join(entities[:2])}")
    return goals[:MAX_GOALS], list(steps)[:MAX_NEXT_STEPS]


def entity_type_of(content: str) -> str:
    for label, pattern in _ENTITY_TYPES:
        if pattern.search(content):
            return label
    return "general"


def extract_entity_name(content: str) -> str:
    """Up to three capitalized words, else the first four words."""

    words = content.split()
    proper = [word for word in words if len(word) > 2 and word[0].isupper() and word not in _NAME_STOP_WORDS]
    if proper:
        return " ".join(proper[:3])
    return " ".join(words[:4])


def extract_entities(items: Sequence[ClipboardItem]) -> List[SessionEntity]:
    entities: List[SessionEntity] = []
    for item in items:
        if not item.content.strip():
            entities.append(SessionEntity(id=item.id, name="Unknown Item", source_app=item.source_app))
            continue
        entities.append(
            SessionEntity(
                id=item.id,
                name=extract_entity_name(item.content),
                type=entity_type_of(item.content),
                source_app=item.source_app,
            )
        )
    return entities


def comparison_dimensions(session_type: str) -> List[str]:
    return list(ENTITY_COMPARISON_DIMENSIONS.get(session_type, ENTITY_COMPARISON_DIMENSIONS["default"]))


def are_complementary(types: Sequence[str]) -> bool:
    return any(all(any(wanted in kind for kind in types) for wanted in pair) for pair in _COMPLEMENTARY_TYPES)


def analyze_entity_relationships(items: Sequence[ClipboardItem], session_type: str) -> EntityAnalysis:
    """Decide from the items' content whether to compare, merge or combine them."""

    if not items:
        return EntityAnalysis(
            strategy=ConsolidationStrategy.GENERIC,
            relationship_type="INDEPENDENT_ENTITIES",
            reasoning="No session items available for analysis",
            confidence=0.3,
        )
    entities = extract_entities(items)
    if len(entities) <= 1:
        return EntityAnalysis(
            strategy=ConsolidationStrategy.MERGE,
            relationship_type="SAME_ENTITY",
            entities=entities,
            reasoning="Single entity or very similar entities detected",
            confidence=0.8,
        )
    types = list(dict.fromkeys(entity.type for entity in entities))
    if len(types) == 1 and "research" in session_type:
        return EntityAnalysis(
            strategy=ConsolidationStrategy.COMPARE,
            relationship_type="COMPARABLE_ENTITIES",
            entities=entities,
            comparison_dimensions=comparison_dimensions(session_type),
            reasoning=f"Multiple {types[0]} entities detected - comparison needed",
            confidence=0.75,
        )
    if len(types) > 1 and are_complementary(types):
        return EntityAnalysis(
            strategy=ConsolidationStrategy.COMPLEMENT,
            relationship_type="COMPLEMENTARY_ENTITIES",
            entities=entities,
            reasoning="Complementary entities detected",
            confidence=0.7,
        )
    return EntityAnalysis(
        strategy=ConsolidationStrategy.GENERIC,
        relationship_type="INDEPENDENT_ENTITIES",
        entities=entities,
        reasoning="Independent entities - generic consolidation",
        confidence=0.6,
    )


class SessionConsolidator:
    def __init__(self, catalog: Optional[WorkflowCatalog] = None, store: Optional[TaskStore] = None) -> None:
        self.catalog = catalog
        self.store = store

    async def generate_complete_session_summary(
        self,
        research_results: Optional[Sequence[SessionResearchResult]],
        entry_research: Optional[Sequence[EntryResearch]],
        session: Optional[Session],
        session_items: Optional[Sequence[ClipboardItem]] = None,
    ) -> SessionSummary:
        """Consolidate a session's research into one summary. Never raises."""

        results = list(research_results or [])
        entries = list(entry_research or [])
        items = list(session_items or [])
        session_type = session.session_type if session else SessionType.GENERAL_RESEARCH.value
        try:
            processed = process_research_data(results, entries, session_type)
        except Exception:
            logger.exception("Could not process research data for session")
            processed = process_research_data([], [], session_type)
        if session is None:
            logger.info("No session given; building fallback summary")
            return self._fallback_summary(processed, session_type, None, items, None)
        entities = analyze_entity_relationships(items, session_type)
        logger.info("Session %s: %s strategy (%s)", session.id, entities.strategy.value, entities.reasoning)
        if self.catalog is None:
            logger.info("Consolidation workflow unavailable; building fallback summary for %s", session.id)
            return self._fallback_summary(processed, session_type, session.id, items, entities)

        logger.info(
            "Consolidating %d research results for session %s (%s)",
            len(results),
            session.id,
            session_type,
        )
        try:
            state = await self.catalog.run_consolidation(self._workflow_input(processed, session, entities))
            self._validate(state)
        except ValidationError as exc:
            logger.warning("Consolidation result incomplete (%s); using fallback", exc)
            return self._fallback_summary(processed, session_type, session.id, items, entities)
        except Exception as exc:
            logger.warning("Session consolidation failed: %s", exc)
            return self._fallback_summary(processed, session_type, session.id, items, entities)
        return SessionSummary(
            research_objective=state.research_objective,
            summary=state.summary,
            primary_intent=state.primary_intent,
            key_findings=[finding.finding for finding in processed.findings],
            research_goals=list(state.research_goals),
            next_steps=list(state.next_steps),
            entities_researched=processed.entities,
            aspects_covered=processed.aspects,
            total_sources=processed.total_sources,
            research_quality=processed.research_quality,
            confidence_level=calculate_research_confidence(processed.findings),
            research_data=self._research_data(processed),
            session_id=session.id,
            timespan_minutes=session_timespan_minutes(items),
            method="workflow",
            entity_analysis=entities,
        )

    async def summarize_session(self, session_id: str) -> SessionSummary:
        """Load a stored session and consolidate its items' research results."""

        if self.store is None:
            raise RuntimeError("SessionConsolidator needs a store to load sessions")
        session = await self.store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        items = await self.store.get_session_items(session_id)
        results: List[SessionResearchResult] = []
        entries: List[EntryResearch] = []
        for item in items:
            research = item.analysis.workflow_results.get("research") if item.analysis else None
            aspects: List[str] = []
            if research:
                result = self._research_from_item(item, research, session.session_type)
                results.append(result)
                aspects.append(result.aspect)
            entries.append(EntryResearch(entry_id=item.id, content=item.content, tags=list(item.tags), aspects=aspects))
        logger.debug("Session %s: %d items, %d with research", session_id, len(items), len(results))
        return await self.generate_complete_session_summary(results, entries, session, items)

    @staticmethod
    def _research_from_item(item: ClipboardItem, research: Mapping[str, Any], session_type: str) -> SessionResearchResult:
        queries = research.get("research_queries") or []
        query = str(queries[0]) if queries else item.content[:50]
        return SessionResearchResult(
            entry_id=item.id,
            aspect=str(research.get("aspect") or infer_aspect(query, session_type)),
            query=query,
            key_findings=[str(finding) for finding in research.get("key_findings") or []],
            research_summary=str(research.get("research_summary") or ""),
            sources=[dict(source) for source in research.get("sources") or [] if isinstance(source, Mapping)],
        )

    @staticmethod
    def _workflow_input(processed: ProcessedResearch, session: Session, entities: EntityAnalysis) -> ConsolidationState:
        return ConsolidationState(
            strategy=entities.strategy.value,
            comparison_dimensions=tuple(entities.comparison_dimensions),
            session_type=session.session_type,
            session_label=session.session_label,
            entities=tuple(processed.entities),
            aspects=tuple(processed.aspects),
            findings=tuple(finding.to_dict() for finding in processed.findings),
            unique_sources=tuple(extract_unique_sources(processed.sources)),
            total_sources=processed.total_sources,
            total_findings=processed.total_findings,
            research_quality=processed.research_quality,
        )

    @staticmethod
    def _validate(state: ConsolidationState) -> None:
        missing = [name for name, value in state.to_result().items() if not value]
        if missing:
            raise ValidationError(f"missing {', '.join(missing)}")

    @staticmethod
    def _research_data(processed: ProcessedResearch) -> Dict[str, Any]:
        return {
            "sources": extract_unique_sources(processed.sources),
            "aspectBreakdown": group_findings_by_aspect(processed.findings),
            "confidenceLevel": calculate_research_confidence(processed.findings),
        }

    def _fallback_summary(
        self,
        processed: ProcessedResearch,
        session_type: str,
        session_id: Optional[str],
        items: Sequence[ClipboardItem],
        entity_analysis: Optional[EntityAnalysis],
    ) -> SessionSummary:
        entities = processed.entities
        if len(entities) > 1:
            objective = f"Compare {' and '.join(entities[:2])}"
        elif entities:
            objective = f"Research {entities[0]}"
        else:
            objective = f"{_readable(session_type)} analysis"
        goals, steps = fallback_goals_and_steps(session_type, entities)
        summary = (
            f"Completed {_readable(session_type)} with {processed.total_findings} key findings "
            f"from {processed.total_sources} sources covering {', '.join(processed.aspects)}."
        )
        if entity_analysis is not None and entity_analysis.strategy is ConsolidationStrategy.COMPARE:
            names = ", ".join(entity.name for entity in entity_analysis.entities)
            summary += f" Compared {names} on {', '.join(entity_analysis.comparison_dimensions)}."
        return SessionSummary(
            research_objective=objective,
            summary=summary,
            primary_intent=objective if entities else "Research information",
            key_findings=[finding.finding for finding in processed.findings],
            research_goals=goals,
            next_steps=steps,
            entities_researched=list(entities),
            aspects_covered=list(processed.aspects),
            total_sources=processed.total_sources,
            research_quality=processed.research_quality,
            confidence_level=calculate_research_confidence(processed.findings),
            research_data=self._research_data(processed),
            session_id=session_id,
            timespan_minutes=session_timespan_minutes(items),
            method="fallback",
            entity_analysis=entity_analysis,
            timestamp=utc_now(),
        )
