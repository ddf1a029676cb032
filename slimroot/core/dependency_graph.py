"""Shared-object dependency graph for one closure.

Nodes are requirement names (the binary, sonames, the interpreter); edges
point from an object to the objects it declares as ``DT_NEEDED``. A cycle
among binary artifacts indicates malformed input and is rejected.
"""

from __future__ import annotations

from collections import deque

from slimroot.core.errors import AmbiguousDependency


class DependencyGraph:
    """Directed graph of resolved requirements.

    Built incrementally by the resolver, then validated with
    ``validate_acyclic()`` before the closure is emitted.
    """

    def __init__(self) -> None:
        # Forward edges: node -> requirements it declares
        self._requires: dict[str, list[str]] = {}
        # Reverse edges: node -> nodes that require it
        self._required_by: dict[str, list[str]] = {}

    def add_node(self, node: str, requires: list[str] | tuple[str, ...] = ()) -> None:
        """Record ``node`` and its direct requirements."""
        self._requires.setdefault(node, [])
        self._required_by.setdefault(node, [])
        for dep in requires:
            if dep not in self._requires[node]:
                self._requires[node].append(dep)
            self._requires.setdefault(dep, [])
            self._required_by.setdefault(dep, [])
            if node not in self._required_by[dep]:
                self._required_by[dep].append(node)

    def validate_acyclic(self) -> None:
        """Verify the graph is a DAG using Kahn's algorithm.

        Raises ``AmbiguousDependency`` listing every node on a cycle.
        """
        in_degree = {node: len(deps) for node, deps in self._requires.items()}
        queue = deque(node for node, deg in in_degree.items() if deg == 0)
        visited: set[str] = set()

        while queue:
            node = queue.popleft()
            visited.add(node)
            for dependent in self._required_by.get(node, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(visited) != len(self._requires):
            remaining = sorted(set(self._requires) - visited)
            members = [n for n in remaining if self._reaches(n, n)] or remaining
            raise AmbiguousDependency(members[0], [f"cycle: {m}" for m in members])

    def _reaches(self, start: str, target: str) -> bool:
        """True if ``target`` is reachable from ``start`` in one or more steps."""
        queue = deque(self._requires.get(start, []))
        seen: set[str] = set()
        while queue:
            node = queue.popleft()
            if node == target:
                return True
            if node in seen:
                continue
            seen.add(node)
            queue.extend(self._requires.get(node, []))
        return False

