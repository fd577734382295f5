"""Research workflow: query generation, web search and synthesis."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote_plus, urlparse

from langchain_core.messages import HumanMessage, SystemMessage

from .classifier import infer_aspect
from .constants import (
    DEGRADED_RESEARCH_CONFIDENCE,
    KNOWLEDGE_ONLY_CONFIDENCE,
    MAX_KEY_FINDINGS,
    MAX_SOURCES,
    SEARCH_BACKED_CONFIDENCE,
)
from .formatting import bound_research_summary, default_summary_text, format_research_summary
from .graph import END, CompiledWorkflow, WorkflowGraph
from .llm import LLMGateway, build_analysis_messages
from .models import CaptureContext, SearchResult
from .search import WebSearch
from .utils import parse_json_with_fallback, utc_now

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "research"
MAX_QUERY_LENGTH = 100
MAX_SEARCH_CONTENT = 4000

QUERY_PROMPT = """Generate ONE targeted research query for web search.

Content Context: {content_context}
Processed Content: {processed}
{existing}
Create a SHORT, FOCUSED search query (2-8 words) that would work well in search engines.
Do NOT include URLs or tracking parameters.
Return the query as plain text (not JSON)."""

SYNTHESIS_PROMPT = """You are an expert research analyst creating a comprehensive research overview.

Based on the search results provided, create a research summary that includes:
1. A clear, informative summary that synthesizes the key information
2. Important details and context
3. Practical implications or recommendations

Keep it under 300 words, in paragraph format, based on the provided search results."""

KNOWLEDGE_PROMPT = """You are an expert research analyst. Provide research insights about the given topic based on your knowledge.

Cover what the topic involves, key considerations, current context and practical recommendations.
Keep it under 300 words, in paragraph format."""

FINDINGS_PROMPT = """Extract 3-5 key findings or insights from the research summary. Each finding should be a clear, actionable insight.

Return only the key findings as a JSON array of strings."""


@dataclass(slots=True, frozen=True)
class SearchBatch:
    query: str
    results: Tuple[SearchResult, ...] = ()


@dataclass(slots=True, frozen=True)
class ResearchState:
    content: str
    context: CaptureContext = field(default_factory=CaptureContext)
    existing_analysis: Optional[Mapping[str, Any]] = None
    research_queries: Tuple[str, ...] = ()
    search_results: Tuple[SearchBatch, ...] = ()
    research_summary: str = ""
    key_findings: Tuple[str, ...] = ()
    sources: Tuple[Mapping[str, Any], ...] = ()
    total_sources: int = 0
    confidence: float = 0.0

    @property
    def topic(self) -> str:
        if self.research_queries:
            return self.research_queries[0]
        return self.content.strip()[:80]

    @property
    def aspect(self) -> str:
        return infer_aspect(self.topic)

    def to_result(self) -> Dict[str, Any]:
        return {
            "research_summary": self.research_summary,
            "formatted_summary": format_research_summary(self.research_summary, self.topic),
            "key_findings": list(self.key_findings),
            "sources": [dict(source) for source in self.sources],
            "total_sources": self.total_sources,
            "confidence": self.confidence,
            "research_queries": list(self.research_queries),
            "aspect": self.aspect,
            "research_quality": "comprehensive" if len(self.sources) > 3 else "basic",
            "last_updated": utc_now().isoformat(),
        }


def preprocess_content(content: str) -> Tuple[str, str]:
    """Turn URLs into searchable terms; returns ``(processed, content_context)``."""

    if "http" not in content and "www." not in content:
        return content, "general content"
    first_line = content.strip().splitlines()[0] if content.strip() else content
    candidate = first_line if "://" in first_line else f"https://{first_line}"
    parsed = urlparse(candidate)
    hostname = (parsed.hostname or "").lower()
    if not hostname:
        return content, "general content"
    if "booking.com" in hostname and "hotel" in parsed.path:
        parts = parsed.path.split("/")
        hotel_index = next((i for i, part in enumerate(parts) if "hotel" in part), None)
        if hotel_index is not None and hotel_index + 2 < len(parts) and parts[hotel_index + 2]:
            location = parts[hotel_index + 2].split(".html")[0].replace("-", " ")
            return f"{location} hotel", "hotel booking research"
        return content, "general content"
    if "airbnb.com" in hostname:
        return "vacation rental accommodation", "accommodation research"
    if any(site in hostname for site in ("tripadvisor", "expedia", "hotels.com")):
        return "hotel accommodation travel", "travel research"
    domain = hostname[4:] if hostname.startswith("www.") else hostname
    return f"information from {domain}", "website research"


def fallback_query(content: str, processed: str, content_context: str) -> str:
    if content_context == "hotel booking research":
        return f"{processed.removesuffix(' hotel')} hotels"
    if content_context == "accommodation research":
        return "vacation rental reviews"
    lowered = content.lower()
    if "hotel" in lowered or "accommodation" in lowered:
        return "hotel reviews"
    if "restaurant" in lowered:
        return "restaurant reviews"
    if processed != content:
        return processed
    return " ".join(content.split()[:5])


def is_valid_query(query: str) -> bool:
    return 3 <= len(query) <= MAX_QUERY_LENGTH and "http" not in query


class ResearchWorkflow:
    def __init__(self, gateway: LLMGateway, search: WebSearch, *, search_delay: float = 1.0) -> None:
        self.gateway = gateway
        self.search = search
        self.search_delay = search_delay

    def build(self) -> CompiledWorkflow[ResearchState]:
        graph: WorkflowGraph[ResearchState] = WorkflowGraph(WORKFLOW_NAME)
        graph.add_step("generate_research_query", self.generate_research_query)
        graph.add_step("perform_web_search", self.perform_web_search)
        graph.add_step("synthesize_research_results", self.synthesize_research_results)
        graph.add_edge("generate_research_query", "perform_web_search")
        graph.add_edge("perform_web_search", "synthesize_research_results")
        graph.add_edge("synthesize_research_results", END)
        graph.set_entry("generate_research_query")
        return graph.compile()

    async def generate_research_query(self, state: ResearchState) -> ResearchState:
        try:
            processed, content_context = preprocess_content(state.content)
            existing = ""
            if state.existing_analysis:
                tags = ", ".join(state.existing_analysis.get("tags") or [])
                existing = f"Known analysis: Content Type: {state.existing_analysis.get('contentType', 'unknown')}, Tags: {tags}\n"
            prompt = QUERY_PROMPT.format(content_context=content_context, processed=processed, existing=existing)
            raw = await self.gateway.complete(build_analysis_messages(prompt, state.content[:200], state.context))
            query = raw.strip().strip("\"'").strip()
            if not is_valid_query(query):
                logger.debug("Discarding unusable query %r", query)
                query = fallback_query(state.content, processed, content_context)
            logger.info("Generated research query: %s", query)
            return replace(state, research_queries=(query,))
        except Exception as exc:
            logger.warning("Query generation failed: %s", exc)
            return replace(state, research_queries=(state.content[:50],))

    async def perform_web_search(self, state: ResearchState) -> ResearchState:
        batches: List[SearchBatch] = []
        for index, query in enumerate(state.research_queries):
            if index:
                await asyncio.sleep(self.search_delay)
            try:
                results = await self.search.search(query)
            except Exception as exc:
                logger.warning("Search failed for %r: %s", query, exc)
                batches.append(
                    SearchBatch(
                        query=query,
                        results=(
                            SearchResult(
                                title=f"Search: {query}",
                                snippet=f"Research information about {query}.",
                                url=f"https://www.google.com/search?q={quote_plus(query)}",
                                date=utc_now().date().isoformat(),
                                type="fallback",
                            ),
                        ),
                    )
                )
                continue
            if results:
                batches.append(SearchBatch(query=query, results=tuple(results)))
            else:
                logger.info("No search results for %r", query)
        return replace(state, search_results=tuple(batches))

    async def synthesize_research_results(self, state: ResearchState) -> ResearchState:
        topic = state.topic
        try:
            real = [
                result
                for batch in state.search_results
                for result in batch.results
                if result.type != "fallback"
            ]
            if not real:
                logger.info("No search content for %r, synthesizing from model knowledge", topic)
                messages = [
                    SystemMessage(content=KNOWLEDGE_PROMPT),
                    HumanMessage(content=f"Provide research analysis for: {state.content}"),
                ]
                summary = bound_research_summary(await self.gateway.complete(messages), topic)
                return replace(
                    state,
                    research_summary=summary,
                    key_findings=(
                        f"Analysis based on model knowledge about {topic}",
                        "Practical recommendations for understanding this topic",
                        "Current context and important considerations",
                    ),
                    sources=(),
                    total_sources=0,
                    confidence=KNOWLEDGE_ONLY_CONFIDENCE,
                )

            search_content = "\n\n".join(f"{result.title}\n{result.snippet}" for result in real)
            messages = [
                SystemMessage(content=SYNTHESIS_PROMPT),
                HumanMessage(
                    content=(
                        f"Research Topic: {state.content}\n\n"
                        f"Search Queries Used: {', '.join(state.research_queries)}\n\n"
                        f"Search Results:\n{search_content[:MAX_SEARCH_CONTENT]}"
                    )
                ),
            ]
            summary = bound_research_summary(await self.gateway.complete(messages), topic)
            findings_raw = await self.gateway.complete(
                [SystemMessage(content=FINDINGS_PROMPT), HumanMessage(content=f"Research Summary: {summary}")]
            )
            findings = parse_json_with_fallback(
                findings_raw,
                lambda: [
                    "Research analysis completed",
                    "Multiple sources and perspectives analyzed",
                    "Key insights synthesized from available information",
                ],
                expect=list,
            )
            cleaned = tuple(str(item).strip() for item in findings if str(item).strip())[:MAX_KEY_FINDINGS]
            return replace(
                state,
                research_summary=summary,
                key_findings=cleaned or (f"Research analysis completed for: {topic}",),
                sources=tuple(result.to_dict() for result in real[:MAX_SOURCES]),
                total_sources=len(real),
                confidence=SEARCH_BACKED_CONFIDENCE,
            )
        except Exception as exc:
            logger.warning("Research synthesis failed: %s", exc)
            return replace(
                state,
                research_summary=default_summary_text(topic),
                key_findings=(
                    f"Analysis completed for: {topic}",
                    "Multiple perspectives and considerations identified",
                ),
                sources=(),
                total_sources=0,
                confidence=DEGRADED_RESEARCH_CONFIDENCE,
            )
