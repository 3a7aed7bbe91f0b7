"""Embedding generation for graph elements."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np
from google import genai
from tqdm import tqdm

from ..exceptions import DimensionMismatchError, EmbeddingError, RebuildCancelled
from ..graph.model import AstNode
from .vector_store import EmbeddingRecord, truncate_snippet

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns text into a fixed-length vector."""

    dimensions: int

    def embed_text(self, text: str) -> list[float]:
        ...


class VertexEmbedder:
    """Generate embeddings using Vertex AI."""

    # Embedding dimensions by model
    MODEL_DIMENSIONS = {
        "text-embedding-005": 768,
        "text-embedding-004": 768,
        "text-multilingual-embedding-002": 768,
    }

    def __init__(
        self,
        project_id: str,
        location: str = "us-central1",
        model: str = "text-embedding-005",
    ):
        """Initialize the embedder.

        Args:
            project_id: GCP project ID
            location: GCP region
            model: Embedding model name
        """
        self.project_id = project_id
        self.location = location
        self.model = model
        self.dimensions = self.MODEL_DIMENSIONS.get(model, 768)

        self.client = genai.Client(
            vertexai=True,
            project=project_id,
            location=location,
        )

    def embed_text(self, text: str) -> list[float]:
        """Embed a single text string.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: if the API call fails
        """
        try:
            response = self.client.models.embed_content(
                model=self.model,
                contents=text,
            )
        except Exception as e:
            raise EmbeddingError(f"{self.model} embedding failed: {e}") from e
        return response.embeddings[0].values


def create_embedder(
    project_id: str,
    location: str = "us-central1",
    model: str = "text-embedding-005",
) -> VertexEmbedder:
    """Factory function to create an embedder."""
    return VertexEmbedder(
        project_id=project_id,
        location=location,
        model=model,
    )


def build_embedding_text(node: AstNode) -> str:
    """Describe an element for embedding: metadata, edges, members, source."""
    parts = [
        f"Type: {node.kind}",
        f"Name: {node.name}",
        f"Package: {node.package}",
        f"Visibility: {node.visibility}",
    ]
    if node.is_interface:
        parts.append("Is Interface: true")
    if node.is_abstract:
        parts.append("Is Abstract: true")
    if node.return_type:
        parts.append(f"Return Type: {node.return_type}")

    if node.dependencies:
        parts.append("Dependencies:")
        parts.extend(f"- {dep.kind}: {dep.target}" for dep in node.dependencies)

    if node.children:
        parts.append("Contains:")
        parts.extend(f"- {child.kind}: {child.name}" for child in node.children)

    if node.source_code:
        parts.append(f"Source code:\n{node.source_code}")

    return "\n".join(parts)


def build_description(node: AstNode) -> str:
    """One-line human readable summary of an element."""
    description = f"{node.kind} in {node.package}, {node.visibility}"
    if node.is_interface:
        description += ", interface"
    if node.is_abstract:
        description += ", abstract"
    if node.dependencies:
        description += f", has {len(node.dependencies)} dependencies"
    if node.children:
        description += f", contains {len(node.children)} members"
    return description


@dataclass
class EmbeddingStats:
    """Counters for one embedding pass."""

    total: int = 0
    processed: int = 0
    embedded: int = 0
    failed: int = 0
    skipped: int = 0
    deleted: int = 0


class EmbeddingPipeline:
    """Embed graph elements in batches, bounded by a maximum record count."""

    def __init__(
        self,
        embedder: Embedder,
        batch_size: int = 50,
        max_embeddings: int = 5000,
        progress_interval: int = 5,
        workers: int = 1,
        show_progress: bool = False,
    ):
        """Initialize the pipeline.

        Args:
            embedder: Embedding provider
            batch_size: Elements per batch
            max_embeddings: Hard cap on successful embeddings per pass
            progress_interval: Log progress every N percent of elements processed
            workers: Concurrent provider calls within a batch
            show_progress: Show a tqdm bar over batches
        """
        self.embedder = embedder
        self.batch_size = batch_size
        self.max_embeddings = max_embeddings
        self.progress_interval = progress_interval
        self.workers = workers
        self.show_progress = show_progress

        self._lock = threading.Lock()
        self._stats = EmbeddingStats()
        self._next_report = progress_interval
        self._dimensions: Optional[int] = None

    def run(
        self,
        nodes: list[AstNode],
        store,
        cancel: Optional[threading.Event] = None,
    ) -> EmbeddingStats:
        """Replace the store's contents with embeddings of the given nodes.

        Elements sharing a key are embedded once (first occurrence).
        Provider failures for single elements are logged and skipped.

        Args:
            nodes: Elements to embed, in order
            store: Vector store; everything in it is deleted first
            cancel: Checked between batches

        Returns:
            EmbeddingStats

        Raises:
            RebuildCancelled: if cancel is set between batches
        """
        seen = set()
        unique = []
        for node in nodes:
            if node.key not in seen:
                seen.add(node.key)
                unique.append(node)

        self._stats = EmbeddingStats(total=len(unique))
        self._next_report = self.progress_interval
        self._dimensions = None

        self._stats.deleted = store.delete_all()
        logger.info(
            "Creating embeddings for %d elements (batch size %d, max %d)",
            len(unique),
            self.batch_size,
            self.max_embeddings,
        )

        batches = [unique[i:i + self.batch_size] for i in range(0, len(unique), self.batch_size)]
        iterator = tqdm(batches, desc="Embedding") if self.show_progress else batches

        for batch in iterator:
            if cancel is not None and cancel.is_set():
                raise RebuildCancelled("Embedding pass cancelled")
            if self._cap_reached():
                break
            self._run_batch(batch, store)

        stats = self._stats
        stats.skipped = stats.total - stats.processed
        if stats.skipped:
            logger.info(
                "Reached maximum of %d embeddings, skipped %d elements",
                self.max_embeddings,
                stats.skipped,
            )
        logger.info(
            "Embedding pass complete: %d embedded, %d failed, %d skipped",
            stats.embedded,
            stats.failed,
            stats.skipped,
        )
        return stats

    def _cap_reached(self) -> bool:
        with self._lock:
            return self._stats.embedded >= self.max_embeddings

    def _run_batch(self, batch: list[AstNode], store) -> None:
        if self.workers <= 1:
            for node in batch:
                if self._cap_reached():
                    return
                self._embed_one(node, store)
            return

        # Never submit more calls than there are free slots under the cap
        pending = list(batch)
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            while pending:
                with self._lock:
                    free = self.max_embeddings - self._stats.embedded
                if free <= 0:
                    return
                chunk, pending = pending[:free], pending[free:]
                list(executor.map(lambda n: self._embed_one(n, store), chunk))

    def _embed_one(self, node: AstNode, store) -> None:
        try:
            vector = np.asarray(self.embedder.embed_text(build_embedding_text(node)), dtype=np.float32)
            self._check_dimensions(vector)
        except Exception as e:
            logger.warning("Failed to embed %s: %s", node.key, e)
            with self._lock:
                self._stats.failed += 1
                self._advance()
            return

        store.add(
            EmbeddingRecord(
                node_key=node.key,
                file_path=node.file_path,
                kind=node.kind,
                name=node.name,
                package=node.package,
                snippet=truncate_snippet(node.source_code),
                description=build_description(node),
                vector=vector,
            )
        )
        with self._lock:
            self._stats.embedded += 1
            self._advance()

    def _check_dimensions(self, vector: np.ndarray) -> None:
        with self._lock:
            if self._dimensions is None:
                self._dimensions = vector.shape[0]
            elif vector.shape[0] != self._dimensions:
                raise DimensionMismatchError(
                    f"Provider returned {vector.shape[0]} dimensions, expected {self._dimensions}"
                )

    def _advance(self) -> None:
        """Count one processed element and log progress. Caller holds the lock."""
        stats = self._stats
        stats.processed += 1
        percent = stats.processed * 100 // stats.total if stats.total else 100
        if percent >= self._next_report:
            logger.info(
                "Embedding progress: %d%% (%d/%d processed, %d embedded)",
                percent,
                stats.processed,
                stats.total,
                stats.embedded,
            )
            self._next_report = (percent // self.progress_interval + 1) * self.progress_interval
