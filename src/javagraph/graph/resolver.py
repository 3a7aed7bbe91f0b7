"""Cross-file resolution of dependency edge targets."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from .model import (
    CALLS,
    CREATES,
    EXTENDS,
    IMPLEMENTS,
    IMPORT,
    METHOD,
    AstNode,
    CodeDependency,
    DependencyGraph,
)

logger = logging.getLogger(__name__)


@dataclass
class ResolutionStats:
    """Resolved and unresolved edge counts per edge kind."""

    resolved: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    unresolved: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record(self, kind: str, ok: bool) -> None:
        (self.resolved if ok else self.unresolved)[kind] += 1

    @property
    def total_resolved(self) -> int:
        return sum(self.resolved.values())

    @property
    def total_unresolved(self) -> int:
        return sum(self.unresolved.values())


def resolve_cross_file(graph: DependencyGraph) -> ResolutionStats:
    """Rewrite edge targets to fully-qualified keys where possible.

    Runs once after every file has been extracted. Edges are only ever
    rewritten in place: none are added, removed or merged. Edges that
    cannot be resolved are left as they were.

    Args:
        graph: Complete graph of all files

    Returns:
        ResolutionStats
    """
    stats = ResolutionStats()

    imports_by_source: dict[str, list[CodeDependency]] = defaultdict(list)
    for edge in graph.edges:
        if edge.kind == IMPORT:
            imports_by_source[edge.source].append(edge)

    for edge in graph.edges:
        if edge.kind == IMPORT:
            stats.record(IMPORT, _resolve_import(edge, graph))

    for edge in graph.edges:
        if edge.kind in (EXTENDS, IMPLEMENTS, CREATES):
            ok = _resolve_through_imports(edge, imports_by_source[edge.source], graph)
            stats.record(edge.kind, ok)

    methods_by_name: dict[str, list[AstNode]] = defaultdict(list)
    for node in graph.nodes:
        if node.kind == METHOD:
            methods_by_name[node.name].append(node)
    for candidates in methods_by_name.values():
        candidates.sort(key=lambda n: (n.package, n.file_path, n.line_number))

    for edge in graph.edges:
        if edge.kind == CALLS:
            ok = _resolve_call(edge, methods_by_name, imports_by_source[edge.source])
            stats.record(CALLS, ok)

    logger.info(
        "Cross-file resolution: %d edges resolved, %d unresolved",
        stats.total_resolved,
        stats.total_unresolved,
    )
    return stats


def _resolve_import(edge: CodeDependency, graph: DependencyGraph) -> bool:
    """Point an import at the declaring file of the imported type."""
    target = graph.find_node(edge.target)
    if target is None:
        for node in graph.nodes:
            if edge.target.endswith("." + node.name):
                target = node
                break
    if target is None:
        return False
    edge.target_file = target.file_path
    return True


def _resolve_through_imports(
    edge: CodeDependency,
    imports: list[CodeDependency],
    graph: DependencyGraph,
) -> bool:
    """Qualify a simple type name using the source's own imports.

    Only an unambiguous match rewrites the edge.
    """
    suffix = "." + edge.target
    matches = [imp for imp in imports if imp.target.endswith(suffix)]
    if len(matches) != 1:
        if len(matches) > 1:
            logger.debug("Ambiguous %s target %s from %s", edge.kind, edge.target, edge.source)
        return False

    edge.target = matches[0].target
    target = graph.find_node(edge.target)
    if target is not None:
        edge.target_file = target.file_path
    return True


def _resolve_call(
    edge: CodeDependency,
    methods_by_name: dict[str, list[AstNode]],
    imports: list[CodeDependency],
) -> bool:
    """Pick the method a call refers to among all same-named methods."""
    method_name = edge.target.rsplit(".", 1)[-1]
    candidates = methods_by_name.get(method_name, [])

    if not candidates:
        return False
    if len(candidates) == 1:
        chosen = candidates[0]
    else:
        chosen = next(
            (
                candidate
                for candidate in candidates
                if any(imp.target.startswith(candidate.package) for imp in imports)
            ),
            None,
        )
        if chosen is None:
            return False

    edge.target = chosen.key
    edge.target_file = chosen.file_path
    return True
