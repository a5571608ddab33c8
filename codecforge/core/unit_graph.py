"""Unit dependency DAG with cascade blocking.

The graph enforces:
- No unit starts unless every dependency is CACHED or VERIFIED.
- When a unit fails, all transitive dependents are BLOCKED.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping

from codecforge.core.errors import CyclicDependencyError
from codecforge.models.units import SATISFIED_STATES, UnitState


class UnitGraph:
    """Directed acyclic graph of unit dependencies.

    Parameters
    ----------
    edges:
        Mapping of unit id to the ids it depends on. Dependencies that are
        not keys of the mapping are ignored (they are outside the active set).
    order:
        Optional preferred ordering used to break ties in topological order.
    """

    def __init__(
        self,
        edges: Mapping[str, Iterable[str]],
        order: Iterable[str] | None = None,
    ) -> None:
        self._rank: dict[str, int] = {
            uid: i for i, uid in enumerate(order if order is not None else edges)
        }
        # Forward edges: unit_id -> dependencies within the graph
        self._dependencies: dict[str, list[str]] = {
            uid: sorted((d for d in deps if d in edges), key=self._key)
            for uid, deps in edges.items()
        }
        # Reverse edges: unit_id -> units that depend on it
        self._dependents: dict[str, list[str]] = {uid: [] for uid in edges}
        for uid in sorted(edges, key=self._key):
            for dep in self._dependencies[uid]:
                self._dependents[dep].append(uid)

        self._validate_no_cycles()

    def _key(self, unit_id: str) -> tuple[int, str]:
        return (self._rank.get(unit_id, len(self._rank)), unit_id)

    def _validate_no_cycles(self) -> None:
        """Verify the graph is a DAG using Kahn's algorithm."""
        order = self.topological_order()
        if len(order) != len(self._dependencies):
            stuck = sorted(set(self._dependencies) - set(order))
            raise CyclicDependencyError(
                f"Unit dependency graph has a cycle through: {', '.join(stuck)}"
            )

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._dependencies

    def __len__(self) -> int:
        return len(self._dependencies)

    @property
    def unit_ids(self) -> list[str]:
        return self.topological_order()

    def get_dependencies(self, unit_id: str) -> list[str]:
        """Return direct dependency ids of a unit."""
        return list(self._dependencies.get(unit_id, []))

    def get_dependents(self, unit_id: str) -> list[str]:
        """Return all transitive dependent ids (BFS)."""
        return self._walk(self._dependents, unit_id)

    def get_ancestors(self, unit_id: str) -> list[str]:
        """Return all transitive dependency ids (BFS)."""
        return self._walk(self._dependencies, unit_id)

    @staticmethod
    def _walk(adjacency: Mapping[str, list[str]], start: str) -> list[str]:
        result: list[str] = []
        queue = deque(adjacency.get(start, []))
        visited: set[str] = set()
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            queue.extend(adjacency.get(node, []))
        return result

    def topological_order(self) -> list[str]:
        """Kahn's algorithm; ties broken by the preferred order."""
        in_degree = {uid: len(deps) for uid, deps in self._dependencies.items()}
        queue = deque(
            sorted((uid for uid, deg in in_degree.items() if deg == 0), key=self._key)
        )
        result: list[str] = []
        while queue:
            node = queue.popleft()
            result.append(node)
            for dependent in self._dependents.get(node, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)
        return result

    # ------------------------------------------------------------------
    # Eligibility and cascade
    # ------------------------------------------------------------------

    def are_dependencies_met(
        self, unit_id: str, states: Mapping[str, UnitState]
    ) -> bool:
        """Check that every dependency has a committed stamp (CACHED or VERIFIED)."""
        return all(
            states.get(dep) in SATISFIED_STATES
            for dep in self._dependencies.get(unit_id, [])
        )

    def get_blocking_reasons(
        self, unit_id: str, states: Mapping[str, UnitState]
    ) -> list[str]:
        reasons = []
        for dep in self._dependencies.get(unit_id, []):
            state = states.get(dep, UnitState.PENDING)
            if state not in SATISFIED_STATES:
                reasons.append(f"{dep} is {state.value}")
        return reasons

    def cascade_block(
        self, failed_unit_id: str, states: dict[str, UnitState]
    ) -> list[str]:
        """When a unit fails, block all transitive dependents.

        Returns the unit ids that were newly blocked.
        """
        blocked: list[str] = []
        for unit_id in self.get_dependents(failed_unit_id):
            if states.get(unit_id, UnitState.PENDING) == UnitState.PENDING:
                states[unit_id] = UnitState.BLOCKED
                blocked.append(unit_id)
        return blocked
