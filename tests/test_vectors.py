"""
Tests for vector math, byte conversion and the in-memory vector store.
"""

import numpy as np
import pytest
from javagraph.exceptions import DimensionMismatchError, NodeNotFoundError
from javagraph.rag.vector_store import (
    MAX_SNIPPET_CHARS,
    InMemoryVectorStore,
    truncate_snippet,
)
from javagraph.rag.vector_utils import (
    cosine_similarity,
    from_bytes,
    to_bytes,
)

from conftest import make_record


# =============================================================================
# Vector math
# =============================================================================

class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([0.3, -1.2, 4.0], [0.3, -1.2, 4.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        v = [0.3, -1.2, 4.0]
        assert cosine_similarity(v, [-x for x in v]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0

    def test_stays_in_range(self):
        v = [1e-3, 7.0, 3.3333, 1e5]
        score = cosine_similarity(v, v)
        assert -1.0 <= score <= 1.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1, 2, 3], [1, 2])


class TestVectorHelpers:

    def test_byte_round_trip(self):
        v = [0.5, -2.25, 3.0, 1e-7]
        data = to_bytes(v)
        assert len(data) == 16
        np.testing.assert_allclose(from_bytes(data), v, rtol=1e-6)

    def test_bytes_are_little_endian_float32(self):
        assert to_bytes([1.0]) == b"\x00\x00\x80\x3f"

    def test_truncated_bytes_rejected(self):
        with pytest.raises(ValueError):
            from_bytes(b"\x00\x00\x80")


# =============================================================================
# In-memory store
# =============================================================================

class TestInMemoryVectorStore:

    def test_add_and_get(self):
        store = InMemoryVectorStore()
        record = make_record("pkg.run", [1, 0])
        store.add(record)
        assert store.get("pkg.run") is record
        assert store.count() == 1

    def test_missing_record_raises(self):
        with pytest.raises(NodeNotFoundError):
            InMemoryVectorStore().get("pkg.nothing")

    def test_delete_all_returns_count(self):
        store = InMemoryVectorStore([make_record("a.x", [1]), make_record("a.y", [2])])
        assert store.delete_all() == 2
        assert store.all() == []

    def test_list_by_kind_and_package(self):
        store = InMemoryVectorStore(
            [
                make_record("a.b.X", [1], kind="class", package="a.b"),
                make_record("a.b.run", [1], kind="method", package="a.b"),
                make_record("c.Y", [1], kind="class", package="c"),
            ]
        )
        assert {r.node_key for r in store.list_by(kind="class")} == {"a.b.X", "c.Y"}
        assert {r.node_key for r in store.list_by(package_prefix="a")} == {"a.b.X", "a.b.run"}
        assert [r.node_key for r in store.list_by(kind="class", package_prefix="a")] == ["a.b.X"]

    def test_stats(self):
        store = InMemoryVectorStore([make_record("a.x", [1]), make_record("a.Y", [1], kind="class")])
        stats = store.get_stats()
        assert stats["total_records"] == 2
        assert stats["by_type"] == {"method": 1, "class": 1}

    def test_truncate_snippet(self):
        assert truncate_snippet(None) is None
        assert truncate_snippet("short") == "short"
        long_source = "x" * (MAX_SNIPPET_CHARS + 5)
        truncated = truncate_snippet(long_source)
        assert len(truncated) == MAX_SNIPPET_CHARS + 3
        assert truncated.endswith("...")
