"""Brute-force cosine similarity search over embedding records."""

import logging
from dataclasses import dataclass
from typing import Optional

from .vector_store import EmbeddingRecord
from .vector_utils import as_vector, cosine_similarity

logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    """A record and its similarity to the query."""

    record: EmbeddingRecord
    score: float

    @property
    def node_key(self) -> str:
        return self.record.node_key


def rank(query_vector, records: list[EmbeddingRecord], limit: int) -> list[SearchHit]:
    """Score every record against the query and keep the best ``limit``.

    Ties in score are broken by node key ascending.

    Raises:
        ValueError: if limit is negative
        DimensionMismatchError: if a record's vector length differs from the query's
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    query = as_vector(query_vector)
    hits = [SearchHit(record=r, score=cosine_similarity(query, r.vector)) for r in records]
    hits.sort(key=lambda hit: (-hit.score, hit.record.node_key))
    return hits[:limit]


class SimilaritySearch:
    """Semantic retrieval of graph elements by query text."""

    def __init__(self, embedder, store):
        """Initialize the search.

        Args:
            embedder: The provider used to embed the indexed elements
            store: Vector store holding the records
        """
        self.embedder = embedder
        self.store = store

    def semantic_search(
        self,
        query: str,
        limit: int = 5,
        package_filter: Optional[str] = None,
    ) -> list[SearchHit]:
        """Find the records most similar to a query.

        Args:
            query: Natural-language or code query
            limit: Maximum number of hits
            package_filter: Only consider records whose package starts with this

        Returns:
            Hits ordered by descending similarity
        """
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        records = self.store.list_by(package_prefix=package_filter) if package_filter else self.store.all()
        if not records:
            logger.debug("No records to search (package filter: %s)", package_filter)
            return []

        query_vector = self.embedder.embed_text(query)
        hits = rank(query_vector, records, limit)
        logger.debug("Semantic search %r returned %d of %d records", query, len(hits), len(records))
        return hits

    def find_similar(self, node_key: str, limit: int = 5) -> list[SearchHit]:
        """Nearest neighbours of a stored record, excluding the record itself.

        Raises:
            NodeNotFoundError: if no record exists for node_key
        """
        target = self.store.get(node_key)
        others = [r for r in self.store.all() if r.node_key != node_key]
        return rank(target.vector, others, limit)

    def find_by_kind(self, kind: str, package_filter: Optional[str] = None) -> list[EmbeddingRecord]:
        return sorted(
            self.store.list_by(kind=kind, package_prefix=package_filter),
            key=lambda r: r.node_key,
        )
