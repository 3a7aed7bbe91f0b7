"""
Tests for query dispatch, graph formatting and source context blocks.
"""

import json
from pathlib import Path

import pytest
from javagraph.exceptions import UnsupportedQueryError
from javagraph.graph import formatter
from javagraph.graph.model import CLASS, INTERFACE
from javagraph.pipeline import run_pipeline
from javagraph.rag.embedder import build_embedding_text
from javagraph.rag.retriever import (
    CodeQueryService,
    QueryMode,
    SemanticQuery,
    StructuralQuery,
    request_from_flags,
)
from javagraph.rag.search import SimilaritySearch

from conftest import FakeEmbedder


@pytest.fixture
def snapshot(java_project: Path):
    return run_pipeline(java_project, embedder=FakeEmbedder())


@pytest.fixture
def service(snapshot) -> CodeQueryService:
    return CodeQueryService(snapshot.graph, SimilaritySearch(FakeEmbedder(), snapshot.vectors))


# =============================================================================
# Request construction
# =============================================================================

class TestRequestFromFlags:

    def test_semantic(self):
        request = request_from_flags("find users", use_semantic_search=True, context="pkg", max_results=3)
        assert isinstance(request, SemanticQuery)
        assert request.mode is QueryMode.SEMANTIC
        assert request.package_filter == "pkg"
        assert request.max_results == 3

    def test_structural(self):
        request = request_from_flags("describe", use_semantic_search=False, context="pkg.util")
        assert isinstance(request, StructuralQuery)
        assert request.mode is QueryMode.STRUCTURAL
        assert request.context == "pkg.util"

    def test_empty_context_means_whole_graph(self):
        assert request_from_flags("q", use_semantic_search=False, context="").context is None


# =============================================================================
# Dispatch
# =============================================================================

class TestCodeQueryService:

    def test_structural_whole_graph(self, service, snapshot):
        result = service.run(StructuralQuery(include_source=False))
        data = json.loads(result.formatted_graph)

        types = snapshot.graph.nodes_of_kind(CLASS, INTERFACE)
        assert data["nodeCount"] == len(types)
        assert data["totalNodeCount"] == len(snapshot.graph.nodes)
        assert data["edgeCount"] == len(snapshot.graph.edges)
        assert data["packages"] == ["pkg", "pkg.service", "pkg.util"]
        assert result.source_context == ""
        assert result.as_text() == result.formatted_graph

    def test_structural_whole_graph_with_highlights(self, service):
        result = service.run(StructuralQuery())
        assert result.source_context.startswith("Selected source code highlights:")
        assert "```java" in result.source_context

    def test_structural_with_context(self, service):
        result = service.run(StructuralQuery(context="pkg.util"))
        data = json.loads(result.formatted_graph)
        assert data["context"] == "pkg.util"
        assert {n["name"] for n in data["nodes"]} == {"B", "size"}
        # edges pointing into the context count too
        assert any(d["type"] == "extends" and d["target"] == "pkg.util.B" for d in data["dependencies"])
        assert result.source_context.startswith("Source code for context pkg.util:")
        assert "public class B" in result.source_context

    def test_semantic(self, service, snapshot):
        target = snapshot.graph.get_node("pkg.util.B")
        result = service.run(SemanticQuery(query=build_embedding_text(target), max_results=3))

        assert len(result.hits) == 3
        assert result.hits[0].node_key == "pkg.util.B"
        assert result.hits[0].score == pytest.approx(1.0)
        assert result.formatted_graph.startswith("Semantic search results for the query:")
        assert "Name: B" in result.formatted_graph
        assert "public class B" in result.source_context

    def test_semantic_without_source(self, service):
        result = service.run(SemanticQuery(query="anything", include_source=False))
        assert len(result.hits) == 5
        assert result.source_context == ""

    def test_semantic_package_filter(self, service):
        result = service.run(SemanticQuery(query="anything", package_filter="pkg.service"))
        assert {h.node_key for h in result.hits} == {"pkg.service.Greeter", "pkg.service.greet"}

    def test_unknown_request_rejected(self, service):
        with pytest.raises(UnsupportedQueryError):
            service.run({"query": "x", "useSemanticSearch": True})


# =============================================================================
# Formatter
# =============================================================================

class TestFormatter:

    def test_matches_context(self, snapshot):
        b = snapshot.graph.get_node("pkg.util.B")
        assert formatter.matches_context(b, "pkg")
        assert formatter.matches_context(b, "pkg.util.B")
        assert formatter.matches_context(b, "B")
        assert not formatter.matches_context(b, "pkg.service")

    def test_node_summary_truncates_snippet(self, snapshot):
        a = snapshot.graph.get_node("pkg.A")
        summary = formatter.node_summary(a)
        assert summary["fqn"] == "pkg.A"
        assert [c["name"] for c in summary["children"]][:2] == ["count", "name"]
        assert len(summary["codeSnippet"]) <= formatter.SNIPPET_CHARS + 3
        assert len(summary["dependencies"]) <= formatter.NODE_DEPENDENCY_LIMIT

    def test_detailed_node(self, snapshot):
        data = json.loads(formatter.format_detailed_node(snapshot.graph.get_node("pkg.util.B")))
        assert data["sourceCode"].startswith("public class B")
        assert data["children"][0]["sourceCode"].strip().startswith("protected int size()")

    def test_nodes_summary(self, snapshot):
        nodes = snapshot.graph.nodes_for_package("pkg.util")
        data = json.loads(formatter.format_nodes_summary(nodes))
        assert data["count"] == 2
        assert data["typeCount"] == {"class": 1, "method": 1}
