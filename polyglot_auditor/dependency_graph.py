"""Dependency graph over entities and cross-references: cycles, SCCs, depth, health."""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .config import CRITICAL_CYCLE_LENGTH
from .entities import (
    CrossLanguageEntity,
    CrossReference,
    DependencyCycle,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    GraphMetrics,
)

logger = logging.getLogger(__name__)

_TEST_FILE_RE = re.compile(r"(^|/)(tests?|__tests__)/|(\.test|\.spec)\.[jt]sx?$|_test\.(go|py)$|(^|/)test_[^/]*\.py$")


def is_test_file(path: str) -> bool:
    return bool(_TEST_FILE_RE.search(path.replace("\\", "/")))


def package_of(path: str, language: str) -> str:
    """Cluster label for a file: its directory, or the segment after ``src/`` for JS/TS."""
    parts = PurePosixPath(path.replace("\\", "/")).parts
    if language in ("typescript", "javascript") and "src" in parts[:-1]:
        index = parts.index("src")
        return parts[index + 1] if index + 2 < len(parts) else "src"
    return parts[-2] if len(parts) >= 2 else "root"


def detect_cycles(
    node_ids: Iterable[str],
    adjacency: Dict[str, List[str]],
    critical_length: int = CRITICAL_CYCLE_LENGTH,
) -> List[DependencyCycle]:
    """Iterative DFS with an explicit recursion stack.

    Each node is expanded once, so work is O(V+E).  A back edge to a node
    on the current path closes a cycle made of the path slice from that
    node.  Cycles found more than once are deduplicated by rotation.
    """
    cycles: List[DependencyCycle] = []
    seen: Set[Tuple[str, ...]] = set()
    visited: Set[str] = set()

    for start in node_ids:
        if start in visited:
            continue
        visited.add(start)
        path = [start]
        on_path = {start: 0}
        stack = [(start, iter(adjacency.get(start, [])))]
        while stack:
            node, neighbors = stack[-1]
            nxt = next(neighbors, None)
            if nxt is None:
                stack.pop()
                path.pop()
                del on_path[node]
                continue
            if nxt in on_path:
                members = path[on_path[nxt]:]
                pivot = members.index(min(members))
                key = tuple(members[pivot:] + members[:pivot])
                if key not in seen:
                    seen.add(key)
                    severity = "critical" if len(members) <= critical_length else "warning"
                    cycles.append(DependencyCycle(nodes=list(members), severity=severity))
            elif nxt not in visited:
                visited.add(nxt)
                on_path[nxt] = len(path)
                path.append(nxt)
                stack.append((nxt, iter(adjacency.get(nxt, []))))
    return cycles


def strongly_connected_components(
    node_ids: Iterable[str], adjacency: Dict[str, List[str]],
) -> List[List[str]]:
    """Tarjan's algorithm without recursion; components come out sinks first."""
    index = 0
    indices: Dict[str, int] = {}
    low: Dict[str, int] = {}
    stack: List[str] = []
    on_stack: Set[str] = set()
    components: List[List[str]] = []

    for root in node_ids:
        if root in indices:
            continue
        indices[root] = low[root] = index
        index += 1
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(adjacency.get(root, [])))]
        while work:
            node, neighbors = work[-1]
            descended = False
            for nxt in neighbors:
                if nxt not in indices:
                    indices[nxt] = low[nxt] = index
                    index += 1
                    stack.append(nxt)
                    on_stack.add(nxt)
                    work.append((nxt, iter(adjacency.get(nxt, []))))
                    descended = True
                    break
                if nxt in on_stack:
                    low[node] = min(low[node], indices[nxt])
            if descended:
                continue
            work.pop()
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
            if low[node] == indices[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(component)
    return components


class DependencyGraphBuilder:
    """Turns entities and cross-references into a :class:`DependencyGraph`."""

    def __init__(
        self,
        critical_cycle_length: int = CRITICAL_CYCLE_LENGTH,
        include_test_files: bool = True,
        exclude_languages: Optional[List[str]] = None,
        cluster_by_package: bool = True,
    ) -> None:
        self.critical_cycle_length = critical_cycle_length
        self.include_test_files = include_test_files
        self.exclude_languages = set(exclude_languages or [])
        self.cluster_by_package = cluster_by_package

    def build(
        self, entities: List[CrossLanguageEntity], references: List[CrossReference],
    ) -> DependencyGraph:
        selected = [
            e for e in entities
            if e.language not in self.exclude_languages
            and (self.include_test_files or not is_test_file(e.file))
        ]
        nodes = [self._node(e) for e in selected]
        node_ids = {n.id for n in nodes}

        edges: List[DependencyEdge] = []
        seen: Set[Tuple[str, str, str]] = set()
        for ref in references:
            if ref.source_id not in node_ids or ref.target_id not in node_ids:
                continue
            key = (ref.source_id, ref.target_id, ref.type)
            if key in seen:
                continue
            seen.add(key)
            edges.append(DependencyEdge(
                source=ref.source_id,
                target=ref.target_id,
                type=ref.type,
                weight=ref.confidence,
                protocol=ref.protocol,
            ))

        graph = self._assemble(nodes, edges)
        logger.info(
            "Dependency graph: %d nodes, %d edges, %d cycles",
            graph.metrics.total_nodes, graph.metrics.total_edges, graph.metrics.cycle_count,
        )
        return graph

    def subgraph(self, graph: DependencyGraph, focus_ids: List[str], depth: int = 2) -> DependencyGraph:
        """Everything reachable from *focus_ids* within *depth* hops."""
        adjacency = graph.adjacency()
        reachable = {f for f in focus_ids if f in adjacency}
        frontier = set(reachable)
        for _ in range(depth):
            if not frontier:
                break
            nxt = set()
            for node_id in frontier:
                for target in adjacency.get(node_id, []):
                    if target not in reachable:
                        reachable.add(target)
                        nxt.add(target)
            frontier = nxt
        nodes = [n for n in graph.nodes if n.id in reachable]
        edges = [e for e in graph.edges if e.source in reachable and e.target in reachable]
        return self._assemble(nodes, edges)

    def health(self, graph: DependencyGraph) -> Dict[str, Any]:
        """Score the graph from 0 to 100 and list the issues behind the score."""
        out_degree: Dict[str, int] = {}
        connected: Set[str] = set()
        for edge in graph.edges:
            out_degree[edge.source] = out_degree.get(edge.source, 0) + 1
            connected.update((edge.source, edge.target))

        threshold = max(5, len(graph.nodes) * 0.1)
        hubs = [n.id for n in graph.nodes if out_degree.get(n.id, 0) > threshold]
        orphans = [n.id for n in graph.nodes if n.id not in connected and n.type != "module"]

        issues = []
        if graph.cycles:
            issues.append({
                "type": "circular-dependency",
                "severity": "critical",
                "description": f"Found {len(graph.cycles)} circular dependencies",
                "nodes": sorted({n for c in graph.cycles for n in c.nodes}),
            })
        if hubs:
            issues.append({
                "type": "hub-nodes",
                "severity": "warning",
                "description": f"Found {len(hubs)} hub nodes with excessive dependencies",
                "nodes": hubs,
            })
        if orphans:
            issues.append({
                "type": "orphaned-nodes",
                "severity": "suggestion",
                "description": f"Found {len(orphans)} entities with no dependencies",
                "nodes": orphans,
            })

        penalty = {"critical": 20, "warning": 10, "suggestion": 5}
        score = 100 - sum(penalty[i["severity"]] for i in issues)
        score -= 5 * len(graph.cycles)
        if graph.metrics.max_depth > 15:
            score -= 10
        return {"score": max(0, score), "issues": issues, "hubs": hubs, "orphans": orphans}

    # ------------------------------------------------------------------

    def _assemble(self, nodes: List[DependencyNode], edges: List[DependencyEdge]) -> DependencyGraph:
        graph = DependencyGraph(nodes=nodes, edges=edges)
        adjacency = graph.adjacency()
        order = [n.id for n in nodes]
        graph.cycles = detect_cycles(order, adjacency, self.critical_cycle_length)
        graph.metrics = self._metrics(order, adjacency, len(edges), len(graph.cycles))
        return graph

    def _metrics(
        self, order: List[str], adjacency: Dict[str, List[str]], edge_count: int, cycle_count: int,
    ) -> GraphMetrics:
        components = strongly_connected_components(order, adjacency)
        component_of = {m: i for i, comp in enumerate(components) for m in comp}

        # Tarjan emits sinks first, so successors already have a depth.
        depth = [0] * len(components)
        for i, comp in enumerate(components):
            best = 0
            for member in comp:
                for target in adjacency.get(member, []):
                    j = component_of[target]
                    if j != i:
                        best = max(best, depth[j] + 1)
            depth[i] = best

        node_count = len(order)
        node_depths = [depth[component_of[n]] for n in order]
        return GraphMetrics(
            total_nodes=node_count,
            total_edges=edge_count,
            cycle_count=cycle_count,
            strongly_connected_components=len(components),
            max_depth=max(node_depths, default=0),
            average_depth=sum(node_depths) / node_count if node_count else 0.0,
            density=edge_count / (node_count * (node_count - 1)) if node_count > 1 else 0.0,
        )

    def _node(self, entity: CrossLanguageEntity) -> DependencyNode:
        weight = 1
        if entity.is_exported or entity.visibility == "public":
            weight += 2
        if entity.complexity > 5:
            weight += entity.complexity // 5
        if entity.type in ("interface", "service"):
            weight += 3
        cluster = package_of(entity.file, entity.language) if self.cluster_by_package else entity.language
        return DependencyNode(
            id=entity.id,
            name=entity.name,
            language=entity.language,
            type=entity.type,
            file=entity.file,
            weight=weight,
            cluster=cluster,
        )
