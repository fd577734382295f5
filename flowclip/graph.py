"""Small step-graph executor used by the FlowClip workflows.

A workflow is a set of named async steps, each receiving an immutable state
value and returning a new one of the same type. Edges are either fixed or
conditional; a conditional edge asks a router which step follows, looking at
the state produced by the step that just ran. Execution starts at the entry
step and stops at ``END``.

Cycles are not detected. Every catalog workflow is acyclic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

END = "__end__"

S = TypeVar("S")
Step = Callable[[S], Awaitable[S]]
Router = Callable[[S], str]


@dataclass(slots=True)
class _ConditionalEdge:
    router: Router
    targets: Tuple[str, ...]


@dataclass(slots=True)
class WorkflowGraph(Generic[S]):
    """Mutable workflow definition; call :meth:`compile` to obtain a runnable."""

    name: str
    steps: Dict[str, Step] = field(default_factory=dict)
    edges: Dict[str, str] = field(default_factory=dict)
    conditional_edges: Dict[str, _ConditionalEdge] = field(default_factory=dict)
    entry: Optional[str] = None

    def add_step(self, name: str, step: Step) -> "WorkflowGraph[S]":
        if name == END:
            raise ValueError(f"{END!r} is reserved")
        if name in self.steps:
            raise ValueError(f"step {name!r} already defined in {self.name}")
        self.steps[name] = step
        return self

    def add_edge(self, source: str, target: str) -> "WorkflowGraph[S]":
        self._check_unrouted(source)
        self.edges[source] = target
        return self

    def add_conditional_edge(self, source: str, router: Router, targets: Tuple[str, ...]) -> "WorkflowGraph[S]":
        self._check_unrouted(source)
        self.conditional_edges[source] = _ConditionalEdge(router=router, targets=tuple(targets))
        return self

    def set_entry(self, name: str) -> "WorkflowGraph[S]":
        self.entry = name
        return self

    def compile(self) -> "CompiledWorkflow[S]":
        if self.entry is None or self.entry not in self.steps:
            raise ValueError(f"workflow {self.name} has no valid entry step")
        known = set(self.steps) | {END}
        for source, target in self.edges.items():
            if source not in self.steps or target not in known:
                raise ValueError(f"workflow {self.name}: edge {source} -> {target} references an unknown step")
        for source, edge in self.conditional_edges.items():
            unknown = [target for target in edge.targets if target not in known]
            if source not in self.steps or unknown:
                raise ValueError(f"workflow {self.name}: conditional edge from {source} has unknown targets {unknown}")
        for name in self.steps:
            if name not in self.edges and name not in self.conditional_edges:
                raise ValueError(f"workflow {self.name}: step {name} has no outgoing edge")
        return CompiledWorkflow(
            name=self.name,
            entry=self.entry,
            steps=dict(self.steps),
            edges=dict(self.edges),
            conditional_edges=dict(self.conditional_edges),
        )

    def _check_unrouted(self, source: str) -> None:
        if source in self.edges or source in self.conditional_edges:
            raise ValueError(f"step {source!r} already has an outgoing edge in {self.name}")


@dataclass(slots=True, frozen=True)
class CompiledWorkflow(Generic[S]):
    name: str
    entry: str
    steps: Dict[str, Step]
    edges: Dict[str, str]
    conditional_edges: Dict[str, _ConditionalEdge]

    def next_step(self, current: str, state: S) -> str:
        edge = self.conditional_edges.get(current)
        if edge is None:
            return self.edges[current]
        target = edge.router(state)
        if target not in edge.targets:
            raise ValueError(f"workflow {self.name}: router for {current} chose undeclared target {target!r}")
        return target

    async def run(self, state: S, *, trace: Optional[List[str]] = None) -> S:
        """Execute steps from the entry until ``END``.

        Step names are appended to ``trace`` in execution order when given.
        """

        logger.info("Workflow %s started", self.name)
        state_type = type(state)
        current = self.entry
        while current != END:
            logger.debug("Workflow %s: running %s", self.name, current)
            new_state = await self.steps[current](state)
            if not isinstance(new_state, state_type):
                raise TypeError(
                    f"step {current} of {self.name} returned {type(new_state).__name__}, "
                    f"expected {state_type.__name__}"
                )
            state = new_state
            if trace is not None:
                trace.append(current)
            following = self.next_step(current, state)
            logger.debug("Workflow %s: %s -> %s", self.name, current, following)
            current = following
        logger.info("Workflow %s finished", self.name)
        return state
