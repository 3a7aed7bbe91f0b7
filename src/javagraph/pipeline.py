"""Multi-pass pipeline that builds a code graph snapshot from a source tree.

Passes run in a fixed order over the whole file set:

1. discover files
2. extract elements and same-file edges (batched, capped at max_nodes)
3. attach source snippets
4. resolve cross-file edges
5. create embeddings

Each pass needs the complete output of the previous one, so stages are
plain functions over a shared PipelineContext rather than per-file steps.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from .config import Settings
from .exceptions import ConfigError, ParseError, RebuildCancelled
from .extractors.java_extractor import ExtractionResult, JavaExtractor, find_java_files
from .extractors.snippets import create_class_summary, enrich_file
from .graph import formatter
from .graph.explain import CallGraphExplainer
from .graph.model import TYPE_KINDS, AstNode, DependencyGraph
from .graph.resolver import resolve_cross_file
from .graph.store import GraphSnapshot, GraphStore
from .rag.embedder import EmbeddingPipeline
from .rag.retriever import CodeQueryService, QueryMode, QueryRequest, QueryResult, StructuralQuery
from .rag.search import SearchHit, SimilaritySearch
from .rag.vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Everything a build produces, isolated from the published snapshot."""

    root: Path
    settings: Settings
    embedder: Optional[object] = None
    cancel: Optional[threading.Event] = None
    show_progress: bool = False
    files: list[Path] = field(default_factory=list)
    results: list[ExtractionResult] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    vectors: InMemoryVectorStore = field(default_factory=InMemoryVectorStore)
    stats: dict = field(default_factory=dict)

    def check_cancelled(self, stage: str) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise RebuildCancelled(f"Rebuild cancelled during {stage}")


Stage = Callable[[PipelineContext], None]


class _Progress:
    """Logs a percentage every `interval` percent of items processed."""

    def __init__(self, label: str, total: int, interval: int):
        self.label = label
        self.total = total
        self.interval = interval
        self.processed = 0
        self._next_report = interval

    def advance(self, count: int = 1) -> None:
        self.processed += count
        percent = self.processed * 100 // self.total if self.total else 100
        if percent >= self._next_report:
            logger.info("%s: %d%% (%d/%d)", self.label, percent, self.processed, self.total)
            self._next_report = (percent // self.interval + 1) * self.interval


# =============================================================================
# Stages
# =============================================================================


def discover_files(ctx: PipelineContext) -> None:
    """Find all Java sources. A bad root aborts the build."""
    ctx.files = find_java_files(ctx.root)
    ctx.stats["files_found"] = len(ctx.files)
    logger.info("Found %d Java files under %s", len(ctx.files), ctx.root)


def extract_elements(ctx: PipelineContext) -> None:
    """Parse files in batches and add their nodes and edges to the graph.

    Stops before the next file once max_nodes nodes are in the graph.
    With several workers a batch is parsed concurrently but merged in file
    order, so the graph is the same as a sequential run.
    """
    cfg = ctx.settings.pipeline
    extractor = JavaExtractor(max_file_size_kb=cfg.max_file_size_kb)
    progress = _Progress("Parsing", len(ctx.files), cfg.progress_interval)
    batches = [ctx.files[i:i + cfg.batch_size] for i in range(0, len(ctx.files), cfg.batch_size)]

    executor = ThreadPoolExecutor(max_workers=cfg.workers) if cfg.workers > 1 else None
    try:
        for batch in batches:
            ctx.check_cancelled("parsing")
            if len(ctx.graph.nodes) >= cfg.max_nodes:
                break

            results = executor.map(extractor.extract_file, batch) if executor else map(extractor.extract_file, batch)
            for result in results:
                if len(ctx.graph.nodes) >= cfg.max_nodes:
                    break
                _merge(ctx, result)
                progress.advance()
    finally:
        if executor is not None:
            executor.shutdown(wait=True, cancel_futures=True)

    if len(ctx.graph.nodes) >= cfg.max_nodes and progress.processed < len(ctx.files):
        logger.warning(
            "Reached maximum of %d nodes, %d files not parsed",
            cfg.max_nodes,
            len(ctx.files) - progress.processed,
        )

    ctx.stats["files_parsed"] = progress.processed
    ctx.stats["parse_errors"] = len(ctx.errors)
    logger.info(
        "Parsed %d files: %d nodes, %d edges, %d failures",
        progress.processed,
        len(ctx.graph.nodes),
        len(ctx.graph.edges),
        len(ctx.errors),
    )


def _merge(ctx: PipelineContext, result: ExtractionResult) -> None:
    if result.error is not None:
        ctx.errors.append(result.error)
        return
    ctx.results.append(result)
    for node in result.nodes:
        ctx.graph.add_node(node)
    for dependency in result.dependencies:
        ctx.graph.add_dependency(dependency)


def enrich_snippets(ctx: PipelineContext) -> None:
    """Attach literal source text to every node, one file read per file."""
    enriched = 0
    for result in ctx.results:
        try:
            enriched += enrich_file(result.nodes, Path(result.file_path))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s for snippets: %s", result.file_path, e)
    ctx.stats["nodes_enriched"] = enriched
    logger.info("Attached source to %d of %d nodes", enriched, len(ctx.graph.nodes))


def resolve_dependencies(ctx: PipelineContext) -> None:
    stats = resolve_cross_file(ctx.graph)
    ctx.stats["edges_resolved"] = stats.total_resolved
    ctx.stats["edges_unresolved"] = stats.total_unresolved


def create_embeddings(ctx: PipelineContext) -> None:
    """Embed the graph into the context's own vector store."""
    if ctx.embedder is None:
        logger.info("No embedding provider configured, skipping embeddings")
        ctx.stats["embeddings"] = 0
        return

    cfg = ctx.settings.embedding
    pipeline = EmbeddingPipeline(
        ctx.embedder,
        batch_size=cfg.batch_size,
        max_embeddings=cfg.max_embeddings,
        progress_interval=cfg.progress_interval,
        workers=cfg.workers,
        show_progress=ctx.show_progress,
    )
    stats = pipeline.run(ctx.graph.nodes, ctx.vectors, cancel=ctx.cancel)
    ctx.stats["embeddings"] = stats.embedded
    ctx.stats["embedding_failures"] = stats.failed
    ctx.stats["embeddings_skipped"] = stats.skipped


STAGES: tuple[Stage, ...] = (
    discover_files,
    extract_elements,
    enrich_snippets,
    resolve_dependencies,
    create_embeddings,
)


def run_pipeline(
    root: Union[str, Path],
    settings: Optional[Settings] = None,
    embedder=None,
    cancel: Optional[threading.Event] = None,
    show_progress: bool = False,
) -> GraphSnapshot:
    """Build a complete snapshot of a source tree.

    Args:
        root: Source root directory
        settings: Limits; defaults if omitted
        embedder: Embedding provider, or None to build the graph only
        cancel: Checked between batches
        show_progress: Show tqdm bars for long passes

    Returns:
        An unpublished GraphSnapshot

    Raises:
        SourceRootError: if root is missing or unreadable
        RebuildCancelled: if cancel was set
    """
    ctx = PipelineContext(
        root=Path(root),
        settings=settings or Settings(),
        embedder=embedder,
        cancel=cancel,
        show_progress=show_progress,
    )

    started = time.time()
    for stage in STAGES:
        stage_started = time.time()
        logger.debug("Running stage %s", stage.__name__)
        stage(ctx)
        ctx.stats[f"{stage.__name__}_seconds"] = round(time.time() - stage_started, 3)
    ctx.stats["total_seconds"] = round(time.time() - started, 3)

    return GraphSnapshot(
        graph=ctx.graph,
        vectors=ctx.vectors,
        root=str(ctx.root),
        file_errors=list(ctx.errors),
        stats=ctx.stats,
    )


# =============================================================================
# Service
# =============================================================================


@dataclass
class SourceContext:
    """Source of one class or interface."""

    file_path: str
    class_name: str
    package: str
    source_code: str
    kind: str
    start_line: int
    end_line: int

    def to_dict(self) -> dict:
        return asdict(self)


class CodeGraphService:
    """Operations over the current graph: rebuild, lookup, query, explain."""

    def __init__(
        self,
        root: Union[str, Path],
        settings: Optional[Settings] = None,
        embedder=None,
        store: Optional[GraphStore] = None,
        show_progress: bool = False,
    ):
        self.root = Path(root)
        self.settings = settings or Settings()
        self.embedder = embedder
        self.store = store or GraphStore()
        self.show_progress = show_progress
        self._cancel = threading.Event()

    def rebuild(self) -> GraphSnapshot:
        """Rebuild the graph, or wait for a rebuild already in progress."""
        return self.store.rebuild(self._build)

    def _build(self) -> GraphSnapshot:
        self._cancel.clear()
        return run_pipeline(
            self.root,
            self.settings,
            embedder=self.embedder,
            cancel=self._cancel,
            show_progress=self.show_progress,
        )

    def cancel(self) -> None:
        """Ask an in-progress rebuild to stop at the next batch boundary."""
        self._cancel.set()

    def get_graph(self) -> DependencyGraph:
        return self.store.current().graph

    def get_node(self, key: str) -> AstNode:
        return self.get_graph().get_node(key)

    def get_elements_for_package(self, prefix: str) -> list[AstNode]:
        return self.get_graph().nodes_for_package(prefix)

    def get_source_for_package(self, prefix: str, outline: bool = False) -> list[SourceContext]:
        """Source of classes and interfaces in a package.

        With outline=True each entry holds a member outline instead of the
        full class body. If the file can no longer be read the stored body is
        returned instead.
        """
        contexts = []
        for node in self.get_elements_for_package(prefix):
            if node.kind not in TYPE_KINDS or not node.source_code:
                continue
            source = node.source_code
            if outline:
                try:
                    file_text = Path(node.file_path).read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning("Could not read %s for an outline, using stored source: %s", node.file_path, e)
                else:
                    source = create_class_summary(file_text, node)
            contexts.append(
                SourceContext(
                    file_path=node.file_path,
                    class_name=node.name,
                    package=node.package,
                    source_code=source,
                    kind=node.kind,
                    start_line=node.start_line,
                    end_line=node.end_line,
                )
            )
        return contexts

    def _search(self, snapshot: GraphSnapshot) -> SimilaritySearch:
        if self.embedder is None:
            raise ConfigError("Semantic search needs an embedding provider (set gcp.project_id)")
        return SimilaritySearch(self.embedder, snapshot.vectors)

    def semantic_search(
        self,
        query: str,
        limit: int = 5,
        package_filter: Optional[str] = None,
    ) -> list[SearchHit]:
        return self._search(self.store.current()).semantic_search(query, limit, package_filter)

    def find_similar(self, key: str, limit: int = 5) -> list[SearchHit]:
        return SimilaritySearch(self.embedder, self.store.current().vectors).find_similar(key, limit)

    def query_by_context(self, context: Optional[str] = None, include_source: bool = False) -> str:
        return self.query(StructuralQuery(context=context, include_source=include_source)).as_text()

    def query(self, request: QueryRequest) -> QueryResult:
        """Run a semantic or structural query against one consistent snapshot."""
        snapshot = self.store.current()
        search = SimilaritySearch(self.embedder, snapshot.vectors)
        if getattr(request, "mode", None) is QueryMode.SEMANTIC and self.embedder is None:
            raise ConfigError("Semantic queries need an embedding provider (set gcp.project_id)")
        return CodeQueryService(snapshot.graph, search).run(request)

    def explain(self, key: str, completer=None, max_depth: int = 5) -> str:
        explainer = CallGraphExplainer(self.get_graph(), max_depth=max_depth, completer=completer)
        return explainer.explain(key)

    def describe(self, key: str) -> str:
        return formatter.format_detailed_node(self.get_node(key))
