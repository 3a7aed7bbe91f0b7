"""Retrieval over the code graph: semantic search or structural context."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..exceptions import UnsupportedQueryError
from ..graph import formatter
from ..graph.model import DependencyGraph
from .search import SearchHit, SimilaritySearch

logger = logging.getLogger(__name__)


class QueryMode(Enum):
    """How a query is answered."""

    SEMANTIC = "semantic"  # vector similarity against the query text
    STRUCTURAL = "structural"  # graph filtered by package or class context


@dataclass
class SemanticQuery:
    """Find elements whose embeddings are closest to the query text."""

    query: str
    package_filter: Optional[str] = None
    max_results: int = 5
    include_source: bool = True

    mode = QueryMode.SEMANTIC


@dataclass
class StructuralQuery:
    """Describe the graph, or the part of it matching a context."""

    context: Optional[str] = None
    include_source: bool = True
    query: str = ""

    mode = QueryMode.STRUCTURAL


QueryRequest = Union[SemanticQuery, StructuralQuery]


def request_from_flags(
    query: str,
    use_semantic_search: bool = True,
    context: Optional[str] = None,
    include_source: bool = True,
    max_results: int = 5,
) -> QueryRequest:
    """Build a request from the boolean form used by HTTP-style callers.

    For semantic requests the context acts as a package filter.
    """
    if use_semantic_search:
        return SemanticQuery(
            query=query,
            package_filter=context or None,
            max_results=max_results,
            include_source=include_source,
        )
    return StructuralQuery(context=context or None, include_source=include_source, query=query)


@dataclass
class QueryResult:
    """Formatted result text plus an optional block of source excerpts."""

    formatted_graph: str
    source_context: str = ""
    hits: Optional[list[SearchHit]] = None

    def as_text(self) -> str:
        if not self.source_context:
            return self.formatted_graph
        return f"{self.formatted_graph}\n\n{self.source_context}"


class CodeQueryService:
    """Dispatch a query request to exactly one retrieval mode."""

    def __init__(self, graph: DependencyGraph, search: SimilaritySearch):
        self.graph = graph
        self.search = search

    def run(self, request: QueryRequest) -> QueryResult:
        """Answer a request.

        Raises:
            UnsupportedQueryError: if the request is not a known query type
        """
        mode = getattr(request, "mode", None)
        if mode is QueryMode.SEMANTIC and isinstance(request, SemanticQuery):
            return self._semantic(request)
        if mode is QueryMode.STRUCTURAL and isinstance(request, StructuralQuery):
            return self._structural(request)
        raise UnsupportedQueryError(f"No retrieval mode handles {type(request).__name__}")

    def _semantic(self, request: SemanticQuery) -> QueryResult:
        hits = self.search.semantic_search(
            request.query,
            limit=request.max_results,
            package_filter=request.package_filter,
        )
        logger.info("Semantic query %r matched %d elements", request.query, len(hits))
        source = self._hit_sources(hits) if request.include_source else ""
        return QueryResult(formatted_graph=format_hits(hits), source_context=source, hits=hits)

    def _structural(self, request: StructuralQuery) -> QueryResult:
        if request.context:
            formatted = formatter.format_filtered_graph(self.graph, request.context)
            source = formatter.source_for_context(self.graph, request.context) if request.include_source else ""
        else:
            formatted = formatter.format_graph(self.graph)
            source = formatter.source_highlights(self.graph) if request.include_source else ""
        return QueryResult(formatted_graph=formatted, source_context=source)

    def _hit_sources(self, hits: list[SearchHit]) -> str:
        """Source blocks for hits, falling back to the graph when a record has no snippet."""
        parts = ["Source code snippets from relevant components:\n\n"]
        for i, hit in enumerate(hits, 1):
            record = hit.record
            parts.append(f"{i}. {record.kind}: {record.name}\n")
            source = record.snippet
            if not source:
                node = self.graph.find_node(record.node_key)
                source = node.source_code if node is not None else None
            if source:
                parts.append(f"```java\n{source}\n```\n\n")
            else:
                parts.append("(Source code not available)\n\n")
        return "".join(parts)


def format_hits(hits: list[SearchHit]) -> str:
    parts = ["Semantic search results for the query:\n\n"]
    for i, hit in enumerate(hits, 1):
        record = hit.record
        parts.append(
            f"{i}. Type: {record.kind}\n"
            f"   Name: {record.name}\n"
            f"   Package: {record.package}\n"
            f"   File: {record.file_path}\n"
            f"   Score: {hit.score:.3f}\n"
            f"   Description: {record.description}\n\n"
        )
    return "".join(parts)
