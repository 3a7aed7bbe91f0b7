"""Embedding, vector storage and retrieval over the code graph."""

from .embedder import EmbeddingPipeline, VertexEmbedder
from .retriever import CodeQueryService, QueryMode, QueryResult, SemanticQuery, StructuralQuery
from .search import SearchHit, SimilaritySearch
from .vector_store import EmbeddingRecord, InMemoryVectorStore, PgVectorStore

__all__ = [
    "CodeQueryService",
    "EmbeddingPipeline",
    "EmbeddingRecord",
    "InMemoryVectorStore",
    "PgVectorStore",
    "QueryMode",
    "QueryResult",
    "SearchHit",
    "SemanticQuery",
    "SimilaritySearch",
    "StructuralQuery",
    "VertexEmbedder",
]
