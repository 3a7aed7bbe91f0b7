"""
Tests for cosine ranking and similarity search over stored records.
"""

import pytest
from javagraph.exceptions import DimensionMismatchError, NodeNotFoundError
from javagraph.rag.search import SimilaritySearch, rank
from javagraph.rag.vector_store import InMemoryVectorStore

from conftest import StaticEmbedder, make_record


@pytest.fixture
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore(
        [
            make_record("pkg.exact", [1.0, 0.0, 0.0]),
            make_record("pkg.close", [0.9, 0.1, 0.0]),
            make_record("pkg.middle", [0.5, 0.5, 0.0]),
            make_record("pkg.far", [0.0, 1.0, 0.0]),
            make_record("pkg.opposite", [-1.0, 0.0, 0.0]),
            make_record("pkg.side", [0.0, 0.0, 1.0]),
            make_record("other.close", [0.8, 0.2, 0.1], package="other"),
            make_record("other.far", [0.1, 0.9, 0.0], package="other"),
        ]
    )


class TestRank:

    def test_ordered_by_descending_score(self, store):
        hits = rank([1.0, 0.0, 0.0], store.all(), limit=10)
        scores = [h.score for h in hits]
        assert scores == sorted(scores, reverse=True)
        assert hits[0].node_key == "pkg.exact"
        assert hits[-1].node_key == "pkg.opposite"

    def test_ties_broken_by_key(self):
        records = [
            make_record("b.Same", [1.0, 1.0]),
            make_record("a.Same", [1.0, 1.0]),
            make_record("c.Same", [1.0, 1.0]),
        ]
        hits = rank([1.0, 1.0], records, limit=3)
        assert [h.node_key for h in hits] == ["a.Same", "b.Same", "c.Same"]

    def test_negative_limit_rejected(self, store):
        with pytest.raises(ValueError):
            rank([1.0, 0.0, 0.0], store.all(), limit=-1)

    def test_zero_limit(self, store):
        assert rank([1.0, 0.0, 0.0], store.all(), limit=0) == []

    def test_dimension_mismatch(self, store):
        with pytest.raises(DimensionMismatchError):
            rank([1.0, 0.0], store.all(), limit=3)


class TestSimilaritySearch:

    def test_returns_at_most_limit(self, store):
        search = SimilaritySearch(StaticEmbedder([1.0, 0.0, 0.0]), store)
        hits = search.semantic_search("anything", limit=5)
        assert len(hits) == 5
        assert [h.node_key for h in hits[:2]] == ["pkg.exact", "pkg.close"]

    def test_fewer_records_than_limit(self):
        store = InMemoryVectorStore([make_record("a.x", [1.0, 0.0]), make_record("a.y", [0.0, 1.0])])
        search = SimilaritySearch(StaticEmbedder([1.0, 0.0]), store)
        assert len(search.semantic_search("q", limit=5)) == 2

    def test_package_filter(self, store):
        search = SimilaritySearch(StaticEmbedder([1.0, 0.0, 0.0]), store)
        hits = search.semantic_search("q", limit=5, package_filter="other")
        assert [h.node_key for h in hits] == ["other.close", "other.far"]

    def test_empty_store_skips_embedding(self):
        embedder = StaticEmbedder([1.0])
        hits = SimilaritySearch(embedder, InMemoryVectorStore()).semantic_search("q")
        assert hits == []
        assert embedder.calls == 0

    def test_find_similar_excludes_target(self, store):
        search = SimilaritySearch(None, store)
        hits = search.find_similar("pkg.exact", limit=3)
        assert "pkg.exact" not in [h.node_key for h in hits]
        assert hits[0].node_key == "pkg.close"

    def test_find_similar_missing_key(self, store):
        with pytest.raises(NodeNotFoundError):
            SimilaritySearch(None, store).find_similar("pkg.ghost")

    def test_find_by_kind(self, store):
        records = SimilaritySearch(None, store).find_by_kind("method", package_filter="other")
        assert [r.node_key for r in records] == ["other.close", "other.far"]
