"""Format graph contents as JSON and source listings for downstream prompts."""

import json
from collections import Counter

from .model import EXTENDS, IMPLEMENTS, IMPORT, TYPE_KINDS, AstNode, CodeDependency, DependencyGraph

SNIPPET_CHARS = 300
NODE_DEPENDENCY_LIMIT = 10
KEY_DEPENDENCY_LIMIT = 50
HIGHLIGHT_LIMIT = 5


def _dumps(data: dict) -> str:
    return json.dumps(data, indent=2)


def matches_context(node: AstNode, context: str) -> bool:
    """True if the node's package starts with context, or its key or name equals it."""
    return node.package.startswith(context) or node.key == context or node.name == context


def node_summary(node: AstNode) -> dict:
    """Node as a dict with member names, a few dependencies and a short snippet."""
    data = node.to_dict()

    if node.children:
        data["children"] = [_child_dict(child) for child in node.children]

    if node.dependencies:
        data["dependencies"] = [
            {"type": dep.kind, "target": dep.target}
            for dep in node.dependencies[:NODE_DEPENDENCY_LIMIT]
        ]

    if node.source_code:
        snippet = node.source_code
        if len(snippet) > SNIPPET_CHARS:
            snippet = snippet[:SNIPPET_CHARS] + "..."
        data["codeSnippet"] = snippet

    return data


def _child_dict(child: AstNode, with_source: bool = False) -> dict:
    data = {"type": child.kind, "name": child.name, "visibility": child.visibility}
    if child.return_type is not None:
        data["returnType"] = child.return_type
    if with_source and child.source_code:
        data["sourceCode"] = child.source_code
    return data


def _edge_dict(edge: CodeDependency) -> dict:
    return edge.to_dict()


def format_graph(graph: DependencyGraph) -> str:
    """Summarize the whole graph: packages, classes/interfaces, key edges.

    ``nodeCount`` counts class and interface nodes only, matching
    ``mainComponents``. ``totalNodeCount`` includes members.
    """
    main = [n for n in graph.nodes if n.kind in TYPE_KINDS]
    key_edges = graph.edges_of_kind(EXTENDS, IMPLEMENTS, IMPORT)[:KEY_DEPENDENCY_LIMIT]

    return _dumps(
        {
            "nodeCount": len(main),
            "totalNodeCount": len(graph.nodes),
            "edgeCount": len(graph.edges),
            "packages": graph.packages(),
            "mainComponents": [node_summary(n) for n in main],
            "keyDependencies": [_edge_dict(e) for e in key_edges],
        }
    )


def filter_nodes(graph: DependencyGraph, context: str) -> list[AstNode]:
    return [n for n in graph.nodes if matches_context(n, context)]


def format_filtered_graph(graph: DependencyGraph, context: str) -> str:
    """Nodes matching a package or class context and the edges touching them."""
    nodes = filter_nodes(graph, context)
    keys = {n.key for n in nodes}
    edges = [e for e in graph.edges if e.source in keys or e.target in keys]

    return _dumps(
        {
            "context": context,
            "nodeCount": len(nodes),
            "edgeCount": len(edges),
            "nodes": [node_summary(n) for n in nodes],
            "dependencies": [_edge_dict(e) for e in edges],
        }
    )


def format_node(node: AstNode) -> str:
    return _dumps(node_summary(node))


def format_detailed_node(node: AstNode) -> str:
    """Node with its full source, members with source and every dependency."""
    data = node.to_dict()
    if node.source_code:
        data["sourceCode"] = node.source_code
    if node.children:
        data["children"] = [_child_dict(c, with_source=True) for c in node.children]
    if node.dependencies:
        data["dependencies"] = [
            {"type": d.kind, "target": d.target, "description": d.description}
            for d in node.dependencies
        ]
    return _dumps(data)


def format_nodes_summary(nodes: list[AstNode]) -> str:
    """Counts by kind and package plus a name list."""
    return _dumps(
        {
            "count": len(nodes),
            "typeCount": dict(Counter(n.kind for n in nodes)),
            "packageCount": dict(Counter(n.package for n in nodes)),
            "nodes": [
                {"type": n.kind, "name": n.name, "packageName": n.package}
                for n in nodes
            ],
        }
    )


def _source_block(node: AstNode) -> str:
    return f"// {node.kind}: {node.key}\n```java\n{node.source_code}\n```\n\n"


def source_for_context(graph: DependencyGraph, context: str) -> str:
    """Source of every enriched node matching a context."""
    parts = [f"Source code for context {context}:\n\n"]
    for node in filter_nodes(graph, context):
        if node.source_code:
            parts.append(_source_block(node))
    return "".join(parts)


def source_highlights(graph: DependencyGraph, limit: int = HIGHLIGHT_LIMIT) -> str:
    """Source of the first few enriched classes and interfaces."""
    parts = ["Selected source code highlights:\n\n"]
    nodes = [n for n in graph.nodes if n.kind in TYPE_KINDS and n.source_code][:limit]
    for node in nodes:
        parts.append(_source_block(node))
    return "".join(parts)
