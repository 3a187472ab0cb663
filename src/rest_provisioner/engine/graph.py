"""Dependency graph utilities."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from rest_provisioner.engine.errors import CyclicDependencyError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    Node order is significant: when several nodes are ready at once, the one
    declared first wins. Dependencies on nodes outside the graph are ignored.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
    ) -> None:
        self._position: dict[str, int] = {}
        for node in nodes:
            self._position.setdefault(node, len(self._position))
        # node -> filtered deps within graph, in declaration order
        self._deps: dict[str, list[str]] = {}
        for node in self._position:
            seen: list[str] = []
            for d in dependencies.get(node, []):
                if d in self._position and d != node and d not in seen:
                    seen.append(d)
            self._deps[node] = seen
        for node in self._position:
            if node in dependencies.get(node, []):
                raise CyclicDependencyError([node, node])

    @property
    def nodes(self) -> list[str]:
        return list(self._position)

    def dependencies_of(self, node: str) -> list[str]:
        return list(self._deps[node])

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (declaration order tie-break)."""
        indegree: dict[str, int] = {}
        dependents: dict[str, list[str]] = {n: [] for n in self._position}

        for node, deps in self._deps.items():
            indegree[node] = len(deps)
            for dep in deps:
                dependents[dep].append(node)

        ready: list[tuple[int, str]] = [
            (self._position[n], n) for n, deg in indegree.items() if deg == 0
        ]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for child in dependents[node]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (self._position[child], child))

        if len(order) != len(self._position):
            done = set(order)
            remaining = [n for n in self._position if n not in done]
            raise CyclicDependencyError(self._find_cycle(remaining))

        return order

    def reverse_topological_order(self) -> list[str]:
        order = self.topological_order()
        order.reverse()
        return order

    def _find_cycle(self, candidates: list[str]) -> list[str]:
        """Return one concrete cycle among *candidates* as ``[a, b, ..., a]``."""
        remaining = set(candidates)
        for start in candidates:
            path: list[str] = []
            on_path: dict[str, int] = {}
            node = start
            # Every remaining node has at least one remaining dependency, so
            # walking the first such edge must eventually revisit a node.
            while node not in on_path:
                on_path[node] = len(path)
                path.append(node)
                nxt = next((d for d in self._deps[node] if d in remaining), None)
                if nxt is None:
                    break
                node = nxt
            else:
                cycle = path[on_path[node] :]
                return [*cycle, cycle[0]]
        return sorted(remaining)
