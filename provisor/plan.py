"""Plan construction and dependency graph queries."""

from __future__ import annotations

import heapq
import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .contracts import Step
from .errors import InvalidPlanError

logger = logging.getLogger(__name__)


class Plan:
    """Immutable DAG of steps.

    Construction validates the graph: step ids must be unique, every
    ``depends_on`` entry must name a step of the plan and the dependency
    graph must be acyclic. The execution order is a topological order in
    which ties are broken by declaration order, so a plan whose steps are
    declared in dependency order runs exactly in that order.
    """

    def __init__(
        self,
        name: str,
        steps: Iterable[Step],
        description: Optional[str] = None,
        notes: Sequence[str] = (),
    ) -> None:
        self.name = name
        self.description = description
        self.notes: Tuple[str, ...] = tuple(notes)
        self._steps: Tuple[Step, ...] = tuple(steps)
        self._by_id: Dict[str, Step] = {}
        self._dependents: Dict[str, List[str]] = {}
        self._validate()
        self._order: Tuple[str, ...] = self._topological_order()
        logger.debug(f"Plan {name} built with {len(self._steps)} steps")

    # ------------------------------------------------------------------
    def _validate(self) -> None:
        counts = Counter(step.id for step in self._steps)
        duplicates = sorted(step_id for step_id, n in counts.items() if n > 1)
        if duplicates:
            raise InvalidPlanError("Duplicate step ids", duplicates)

        self._by_id = {step.id: step for step in self._steps}
        unknown = sorted(
            step.id
            for step in self._steps
            if any(dep not in self._by_id for dep in step.depends_on)
        )
        if unknown:
            raise InvalidPlanError("Steps depend on unknown step ids", unknown)

        self._dependents = {step.id: [] for step in self._steps}
        for step in self._steps:
            for dep in step.depends_on:
                self._dependents[dep].append(step.id)

    def _topological_order(self) -> Tuple[str, ...]:
        position = {step.id: index for index, step in enumerate(self._steps)}
        in_degree = {step.id: len(step.depends_on) for step in self._steps}
        ready = [(position[sid], sid) for sid, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        order: List[str] = []
        while ready:
            _, step_id = heapq.heappop(ready)
            order.append(step_id)
            for dependent in self._dependents[step_id]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (position[dependent], dependent))

        if len(order) != len(self._steps):
            cyclic = sorted(sid for sid, degree in in_degree.items() if degree > 0)
            raise InvalidPlanError("Dependency cycle between steps", cyclic)
        return tuple(order)

    # ------------------------------------------------------------------
    @property
    def steps(self) -> Tuple[Step, ...]:
        """Steps in declaration order."""
        return self._steps

    @property
    def order(self) -> Tuple[str, ...]:
        """Step ids in execution (topological) order."""
        return self._order

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(step.id for step in self._steps)

    def get(self, step_id: str) -> Step:
        return self._by_id[step_id]

    def dependents(self, step_id: str) -> Tuple[str, ...]:
        """Ids of the steps that depend directly on ``step_id``."""
        return tuple(self._dependents[step_id])

    def downstream(self, step_id: str) -> Set[str]:
        """Ids of every step whose dependency chain includes ``step_id``."""
        seen: Set[str] = set()
        stack = list(self._dependents[step_id])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._dependents[current])
        return seen

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self):
        return (self._by_id[step_id] for step_id in self._order)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._by_id

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Plan(name={self.name!r}, steps={list(self._order)!r})"
