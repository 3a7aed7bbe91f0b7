"""
Tests for the embedding pass: cap enforcement, failure isolation,
progress reporting and cancellation.
"""

import logging
import threading

import pytest
from javagraph.exceptions import RebuildCancelled
from javagraph.graph.model import CLASS, METHOD, AstNode, CodeDependency
from javagraph.rag.embedder import (
    EmbeddingPipeline,
    build_description,
    build_embedding_text,
)
from javagraph.rag.vector_store import InMemoryVectorStore

from conftest import FakeEmbedder, StaticEmbedder


def make_nodes(count: int) -> list:
    return [
        AstNode(kind=METHOD, name=f"m{i:03d}", package="pkg", file_path="pkg/Big.java", line_number=i + 1)
        for i in range(count)
    ]


class DimensionFlipEmbedder:
    """Returns a shorter vector for one element."""

    def embed_text(self, text: str) -> list:
        return [1.0, 2.0] if "Name: m002" in text else [1.0, 2.0, 3.0]


# =============================================================================
# Text building
# =============================================================================

class TestEmbeddingText:

    def test_includes_metadata_edges_members_and_source(self):
        node = AstNode(kind=CLASS, name="A", package="pkg", file_path="A.java", visibility="public")
        node.children.append(AstNode(kind=METHOD, name="run", package="pkg", file_path="A.java"))
        node.dependencies.append(
            CodeDependency(kind="extends", source="pkg.A", target="pkg.util.B", source_file="A.java")
        )
        node.source_code = "public class A extends B {}"

        text = build_embedding_text(node)
        assert "Type: class" in text
        assert "Name: A" in text
        assert "Package: pkg" in text
        assert "- extends: pkg.util.B" in text
        assert "- method: run" in text
        assert text.endswith("public class A extends B {}")

    def test_description(self):
        node = AstNode(kind=CLASS, name="A", package="pkg", file_path="A.java", visibility="public", is_abstract=True)
        assert build_description(node) == "class in pkg, public, abstract"


# =============================================================================
# Embedding pipeline
# =============================================================================

class TestEmbeddingPipeline:

    def test_cap_bounds_record_count(self):
        store = InMemoryVectorStore()
        embedder = FakeEmbedder()
        stats = EmbeddingPipeline(embedder, batch_size=7, max_embeddings=50).run(make_nodes(120), store)

        assert store.count() == 50
        assert stats.embedded == 50
        assert stats.skipped == 70
        assert embedder.calls == 50

    def test_cap_with_concurrent_workers(self):
        store = InMemoryVectorStore()
        embedder = FakeEmbedder()
        pipeline = EmbeddingPipeline(embedder, batch_size=16, max_embeddings=50, workers=4)
        stats = pipeline.run(make_nodes(120), store)

        assert store.count() == 50
        assert stats.embedded == 50
        assert embedder.calls == 50

    def test_failed_elements_are_skipped(self):
        store = InMemoryVectorStore()
        embedder = FakeEmbedder(fail_on={"Name: m001", "Name: m004"})
        stats = EmbeddingPipeline(embedder, batch_size=3).run(make_nodes(10), store)

        assert stats.failed == 2
        assert stats.embedded == 8
        assert stats.processed == 10
        keys = {r.node_key for r in store.all()}
        assert "pkg.m001" not in keys
        assert "pkg.m000" in keys

    def test_failures_do_not_count_toward_cap(self):
        store = InMemoryVectorStore()
        embedder = FakeEmbedder(fail_on={"Name: m000"})
        EmbeddingPipeline(embedder, batch_size=10, max_embeddings=5).run(make_nodes(10), store)
        assert store.count() == 5

    def test_dimension_change_is_a_failure(self):
        store = InMemoryVectorStore()
        stats = EmbeddingPipeline(DimensionFlipEmbedder()).run(make_nodes(5), store)
        assert stats.failed == 1
        assert "pkg.m002" not in {r.node_key for r in store.all()}

    def test_store_cleared_first(self):
        store = InMemoryVectorStore()
        EmbeddingPipeline(FakeEmbedder()).run(make_nodes(5), store)
        stats = EmbeddingPipeline(FakeEmbedder()).run(make_nodes(2), store)
        assert stats.deleted == 5
        assert {r.node_key for r in store.all()} == {"pkg.m000", "pkg.m001"}

    def test_duplicate_keys_embedded_once(self):
        store = InMemoryVectorStore()
        nodes = make_nodes(3) + make_nodes(3)
        embedder = FakeEmbedder()
        stats = EmbeddingPipeline(embedder).run(nodes, store)
        assert stats.total == 3
        assert embedder.calls == 3

    def test_record_metadata(self):
        store = InMemoryVectorStore()
        nodes = make_nodes(1)
        nodes[0].source_code = "void m000() {}"
        EmbeddingPipeline(StaticEmbedder([0.1, 0.2])).run(nodes, store)
        record = store.get("pkg.m000")
        assert record.kind == METHOD
        assert record.file_path == "pkg/Big.java"
        assert record.snippet == "void m000() {}"
        assert list(record.vector) == pytest.approx([0.1, 0.2])

    def test_progress_logged_at_intervals(self, caplog):
        caplog.set_level(logging.INFO, logger="javagraph.rag.embedder")
        EmbeddingPipeline(FakeEmbedder(), batch_size=10, progress_interval=25).run(make_nodes(100), InMemoryVectorStore())
        progress = [r for r in caplog.records if "Embedding progress" in r.getMessage()]
        assert [r.getMessage().split("%")[0].rsplit(" ", 1)[-1] for r in progress] == ["25", "50", "75", "100"]

    def test_progress_monotonic_with_concurrent_workers(self, caplog):
        caplog.set_level(logging.INFO, logger="javagraph.rag.embedder")
        embedder = FakeEmbedder(fail_on={"Name: m007", "Name: m042"})
        pipeline = EmbeddingPipeline(embedder, batch_size=10, progress_interval=10, workers=4)
        stats = pipeline.run(make_nodes(100), InMemoryVectorStore())

        progress = [r for r in caplog.records if "Embedding progress" in r.getMessage()]
        processed = [r.args[1] for r in progress]
        assert processed == sorted(set(processed))
        assert processed[-1] == 100
        assert len(processed) == 10
        assert (stats.processed, stats.embedded, stats.failed) == (100, 98, 2)

    def test_cancel_between_batches(self):
        cancel = threading.Event()
        cancel.set()
        store = InMemoryVectorStore()
        with pytest.raises(RebuildCancelled):
            EmbeddingPipeline(FakeEmbedder(), batch_size=5).run(make_nodes(20), store, cancel=cancel)
        assert store.count() == 0
