"""Closed catalog of the workflows FlowClip can execute."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from .config import FlowClipConfig
from .consolidation import ConsolidationState, ConsolidationWorkflow
from .content_analysis import AnalysisState, ContentAnalysisWorkflow
from .graph import CompiledWorkflow
from .llm import LLMGateway, build_gateway
from .models import CaptureContext
from .research import ResearchState, ResearchWorkflow
from .search import WebSearch, build_search
from .summarization import SummarizationWorkflow, SummaryState

logger = logging.getLogger(__name__)


class WorkflowKind(str, Enum):
    COMPREHENSIVE_ANALYSIS = "comprehensive_content_analysis"
    SUMMARIZATION = "summarization"
    RESEARCH = "research"
    SESSION_CONSOLIDATION = "session_research_consolidation"


STATE_TYPES: Dict[WorkflowKind, type] = {
    WorkflowKind.COMPREHENSIVE_ANALYSIS: AnalysisState,
    WorkflowKind.SUMMARIZATION: SummaryState,
    WorkflowKind.RESEARCH: ResearchState,
    WorkflowKind.SESSION_CONSOLIDATION: ConsolidationState,
}


class WorkflowCatalog:
    """Compiles every :class:`WorkflowKind` once around shared collaborators."""

    def __init__(self, gateway: LLMGateway, search: WebSearch, *, search_delay: float = 1.0) -> None:
        self.gateway = gateway
        self.search = search
        builders: Dict[WorkflowKind, Callable[[], CompiledWorkflow]] = {
            WorkflowKind.COMPREHENSIVE_ANALYSIS: ContentAnalysisWorkflow(gateway).build,
            WorkflowKind.SUMMARIZATION: SummarizationWorkflow(gateway).build,
            WorkflowKind.RESEARCH: ResearchWorkflow(gateway, search, search_delay=search_delay).build,
            WorkflowKind.SESSION_CONSOLIDATION: ConsolidationWorkflow(gateway).build,
        }
        missing = set(WorkflowKind) - set(builders)
        if missing:
            raise RuntimeError(f"workflow kinds without a builder: {sorted(kind.value for kind in missing)}")
        self._workflows: Dict[WorkflowKind, CompiledWorkflow] = {kind: build() for kind, build in builders.items()}
        logger.debug("Compiled %d workflows", len(self._workflows))

    @classmethod
    def from_config(cls, config: FlowClipConfig) -> "WorkflowCatalog":
        return cls(build_gateway(config), build_search(config), search_delay=config.search_delay)

    def workflow(self, kind: WorkflowKind) -> CompiledWorkflow:
        return self._workflows[kind]

    async def execute(self, kind: WorkflowKind, state: Any) -> Any:
        expected = STATE_TYPES[kind]
        if not isinstance(state, expected):
            raise TypeError(f"{kind.value} expects {expected.__name__}, got {type(state).__name__}")
        return await self._workflows[kind].run(state)

    async def run_analysis(self, content: str, context: CaptureContext | None = None) -> AnalysisState:
        return await self.execute(
            WorkflowKind.COMPREHENSIVE_ANALYSIS,
            AnalysisState(content=content, context=context or CaptureContext()),
        )

    async def run_summarization(self, content: str, context: CaptureContext | None = None) -> SummaryState:
        return await self.execute(
            WorkflowKind.SUMMARIZATION,
            SummaryState(content=content, context=context or CaptureContext()),
        )

    async def run_research(
        self,
        content: str,
        context: CaptureContext | None = None,
        existing_analysis: Optional[Mapping[str, Any]] = None,
    ) -> ResearchState:
        return await self.execute(
            WorkflowKind.RESEARCH,
            ResearchState(content=content, context=context or CaptureContext(), existing_analysis=existing_analysis),
        )

    async def run_consolidation(self, state: ConsolidationState) -> ConsolidationState:
        return await self.execute(WorkflowKind.SESSION_CONSOLIDATION, state)
