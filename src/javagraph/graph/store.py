"""Holder of the currently published graph and its vector set."""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..rag.vector_store import InMemoryVectorStore
from .model import DependencyGraph

logger = logging.getLogger(__name__)


@dataclass
class GraphSnapshot:
    """A fully built graph together with the embeddings made from it.

    Snapshots are never mutated after publication.
    """

    graph: DependencyGraph = field(default_factory=DependencyGraph)
    vectors: InMemoryVectorStore = field(default_factory=InMemoryVectorStore)
    root: Optional[str] = None
    built_at: Optional[float] = None
    generation: int = 0
    file_errors: list = field(default_factory=list)
    stats: dict = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.built_at is None


class GraphStore:
    """Publishes snapshots atomically and runs at most one rebuild at a time.

    Readers call :meth:`current` and always get the last snapshot that was
    built successfully. A rebuild builds a new snapshot off to the side and
    swaps the reference only when the build returns. Concurrent rebuild
    triggers join the one in flight and share its outcome.
    """

    def __init__(self, snapshot: Optional[GraphSnapshot] = None):
        self._snapshot = snapshot or GraphSnapshot()
        self._publish_lock = threading.Lock()
        self._flight_lock = threading.Lock()
        self._in_flight: Optional[Future] = None

    def current(self) -> GraphSnapshot:
        return self._snapshot

    @property
    def graph(self) -> DependencyGraph:
        return self._snapshot.graph

    @property
    def rebuilding(self) -> bool:
        return self._in_flight is not None

    def publish(self, snapshot: GraphSnapshot) -> GraphSnapshot:
        """Swap in a new snapshot, stamping its generation and build time."""
        with self._publish_lock:
            snapshot.generation = self._snapshot.generation + 1
            if snapshot.built_at is None:
                snapshot.built_at = time.time()
            self._snapshot = snapshot
        logger.info(
            "Published graph generation %d (%d nodes, %d edges, %d embeddings)",
            snapshot.generation,
            len(snapshot.graph.nodes),
            len(snapshot.graph.edges),
            snapshot.vectors.count(),
        )
        return snapshot

    def rebuild(self, build: Callable[[], GraphSnapshot]) -> GraphSnapshot:
        """Run build and publish its result, or join a rebuild already running.

        Args:
            build: Builds a complete snapshot from scratch

        Returns:
            The published snapshot

        Raises:
            Whatever build raised. The previous snapshot stays current.
        """
        with self._flight_lock:
            flight = self._in_flight
            leader = flight is None
            if leader:
                flight = Future()
                self._in_flight = flight

        if not leader:
            logger.info("Rebuild already in progress, waiting for it")
            return flight.result()

        try:
            snapshot = self.publish(build())
        except BaseException as e:
            logger.error("Rebuild failed, keeping generation %d: %s", self._snapshot.generation, e)
            with self._flight_lock:
                self._in_flight = None
            flight.set_exception(e)
            raise

        with self._flight_lock:
            self._in_flight = None
        flight.set_result(snapshot)
        return snapshot
