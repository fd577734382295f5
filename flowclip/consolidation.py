"""Session research consolidation workflow."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Tuple

from langchain_core.messages import HumanMessage, SystemMessage

from .graph import END, CompiledWorkflow, WorkflowGraph
from .llm import LLMGateway
from .utils import parse_json_with_fallback

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "session_research_consolidation"
MAX_FINDINGS_IN_PROMPT = 30

CONSOLIDATE_PROMPT = """You consolidate research gathered across one research session into a single coherent summary.

Session type: {session_type}
Session label: {session_label}
Entities researched: {entities}
Aspects covered: {aspects}
Sources: {total_sources}, findings: {total_findings}, research quality: {quality}
Consolidation strategy: {strategy}. {guidance}

Use only the findings provided. Return JSON:
{{
  "researchObjective": "one sentence describing what the user is trying to decide or learn",
  "summary": "3-5 sentence consolidated narrative",
  "primaryIntent": "short phrase",
  "researchGoals": ["goal1", "goal2"],
  "nextSteps": ["step1", "step2"]
}}"""

PLAN_PROMPT = """Given the research objective and summary, propose concrete research goals and next steps.

Return JSON: {"researchGoals": ["goal1", "goal2"], "nextSteps": ["step1", "step2"]}"""

STRATEGY_GUIDANCE = {
    "COMPARE": "Compare the entities side by side along: {dimensions}.",
    "MERGE": "All items describe one entity; merge the findings into a single profile.",
    "COMPLEMENT": "The entities complement each other; explain how they fit into one plan.",
    "GENERIC": "Summarize the findings as a whole.",
}


def strategy_guidance(strategy: str, dimensions: Tuple[str, ...]) -> str:
    template = STRATEGY_GUIDANCE.get(strategy, STRATEGY_GUIDANCE["GENERIC"])
    return template.format(dimensions=", ".join(dimensions) or "the main features")


@dataclass(slots=True, frozen=True)
class ConsolidationState:
    session_type: str
    session_label: str = ""
    entities: Tuple[str, ...] = ()
    aspects: Tuple[str, ...] = ()
    findings: Tuple[Mapping[str, Any], ...] = ()
    unique_sources: Tuple[Mapping[str, Any], ...] = ()
    total_sources: int = 0
    total_findings: int = 0
    research_quality: str = "none"
    strategy: str = "GENERIC"
    comparison_dimensions: Tuple[str, ...] = ()
    research_objective: str = ""
    summary: str = ""
    primary_intent: str = ""
    research_goals: Tuple[str, ...] = ()
    next_steps: Tuple[str, ...] = ()

    def to_result(self) -> Dict[str, Any]:
        return {
            "researchObjective": self.research_objective,
            "summary": self.summary,
            "primaryIntent": self.primary_intent,
            "researchGoals": list(self.research_goals),
            "nextSteps": list(self.next_steps),
        }


def _string_list(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str) and value.strip():
        return (value.strip(),)
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())


class ConsolidationWorkflow:
    def __init__(self, gateway: LLMGateway) -> None:
        self.gateway = gateway

    def build(self) -> CompiledWorkflow[ConsolidationState]:
        graph: WorkflowGraph[ConsolidationState] = WorkflowGraph(WORKFLOW_NAME)
        graph.add_step("consolidate_research", self.consolidate_research)
        graph.add_step("plan_next_steps", self.plan_next_steps)
        graph.add_conditional_edge("consolidate_research", self.route_after_consolidation, ("plan_next_steps", END))
        graph.add_edge("plan_next_steps", END)
        graph.set_entry("consolidate_research")
        return graph.compile()

    @staticmethod
    def route_after_consolidation(state: ConsolidationState) -> str:
        if state.summary and (not state.research_goals or not state.next_steps):
            return "plan_next_steps"
        return END

    async def consolidate_research(self, state: ConsolidationState) -> ConsolidationState:
        try:
            prompt = CONSOLIDATE_PROMPT.format(
                session_type=state.session_type,
                session_label=state.session_label or "untitled",
                entities=", ".join(state.entities),
                aspects=", ".join(state.aspects),
                total_sources=state.total_sources,
                total_findings=state.total_findings,
                quality=state.research_quality,
                strategy=state.strategy,
                guidance=strategy_guidance(state.strategy, state.comparison_dimensions),
            )
            payload = {
                "findings": [dict(finding) for finding in state.findings[:MAX_FINDINGS_IN_PROMPT]],
                "sources": [dict(source) for source in state.unique_sources],
            }
            raw = await self.gateway.complete(
                [
                    SystemMessage(content=prompt),
                    HumanMessage(content=f"Research data:\n{json.dumps(payload, ensure_ascii=False, default=str)}"),
                ]
            )
            result = parse_json_with_fallback(raw, dict, expect=dict)
            return replace(
                state,
                research_objective=str(result.get("researchObjective") or "").strip(),
                summary=str(result.get("summary") or "").strip(),
                primary_intent=str(result.get("primaryIntent") or "").strip(),
                research_goals=_string_list(result.get("researchGoals")),
                next_steps=_string_list(result.get("nextSteps")),
            )
        except Exception as exc:
            logger.warning("Session consolidation call failed: %s", exc)
            return state

    async def plan_next_steps(self, state: ConsolidationState) -> ConsolidationState:
        try:
            raw = await self.gateway.complete(
                [
                    SystemMessage(content=PLAN_PROMPT),
                    HumanMessage(
                        content=f"Objective: {state.research_objective}\n\nSummary: {state.summary}"
                    ),
                ]
            )
            plan = parse_json_with_fallback(raw, dict, expect=dict)
            return replace(
                state,
                research_goals=state.research_goals or _string_list(plan.get("researchGoals")),
                next_steps=state.next_steps or _string_list(plan.get("nextSteps")),
            )
        except Exception as exc:
            logger.warning("Next-step planning failed: %s", exc)
            return state
