#!/usr/bin/env python3
"""Build the code graph for a Java source tree and embed its elements."""

import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from javagraph import CodeGraphService, JavaGraphError, load_settings
from javagraph.rag.embedder import create_embedder
from javagraph.rag.vector_store import PgVectorStore

console = Console()


@click.command()
@click.option(
    "--source-dir",
    "-s",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Root directory of the Java sources",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration file (defaults to config/config.yaml)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Build the graph only, without creating embeddings",
)
@click.option(
    "--persist",
    is_flag=True,
    help="Write the embeddings to PostgreSQL + pgvector after the build",
)
@click.option(
    "--reset",
    is_flag=True,
    help="Drop and recreate the table before persisting",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(
    source_dir: Path,
    config: Path,
    dry_run: bool,
    persist: bool,
    reset: bool,
    verbose: bool,
):
    """Build the code graph and its embeddings.

    This script:
    1. Parses every Java file into classes, interfaces, fields and methods
    2. Resolves imports, inheritance, calls and instantiations across files
    3. Generates embeddings using Vertex AI
    4. Optionally stores the embeddings in PostgreSQL + pgvector

    Examples:
        # Build graph and embeddings
        python scripts/index_codebase.py -s path/to/src

        # Graph only, no embedding calls
        python scripts/index_codebase.py -s path/to/src --dry-run

        # Persist embeddings for later queries
        python scripts/index_codebase.py -s path/to/src --persist --reset
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    console.print(
        Panel.fit(
            "[bold blue]Java Code Graph Indexer[/bold blue]\nParse, resolve and embed a Java codebase",
            border_style="blue",
        )
    )

    try:
        settings = load_settings(config)
    except JavaGraphError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    embedder = None
    if not dry_run:
        if not settings.has_project:
            console.print(
                "[yellow]No GCP project configured, building the graph without embeddings[/yellow]"
            )
        else:
            embedder = create_embedder(
                project_id=settings.project_id,
                location=settings.location,
                model=settings.embedding_model,
            )

    console.print("\n[bold]Configuration:[/bold]")
    console.print(f"  Source Directory: {source_dir}")
    console.print(f"  GCP Project: {settings.project_id or '-'}")
    console.print(f"  Embedding Model: {settings.embedding_model if embedder else 'disabled'}")
    console.print(f"  Max Nodes: {settings.pipeline.max_nodes}")
    console.print(f"  Max Embeddings: {settings.embedding.max_embeddings}")
    console.print()

    console.print("[bold]Step 1: Building code graph...[/bold]")
    service = CodeGraphService(source_dir, settings, embedder=embedder, show_progress=True)
    try:
        snapshot = service.rebuild()
    except JavaGraphError as e:
        console.print(f"[red]Build failed: {e}[/red]")
        sys.exit(1)

    graph_stats = snapshot.graph.stats()
    if not graph_stats["total_nodes"]:
        console.print(f"[yellow]No Java elements found in {source_dir}[/yellow]")
        return

    table = Table(title="Graph Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green")

    table.add_row("Files Found", str(snapshot.stats.get("files_found", 0)))
    table.add_row("Files Parsed", str(snapshot.stats.get("files_parsed", 0)))
    table.add_row("Parse Failures", str(len(snapshot.file_errors)))
    table.add_row("", "")
    table.add_row("[bold]Nodes[/bold]", str(graph_stats["total_nodes"]))
    for kind, count in sorted(graph_stats["nodes_by_kind"].items()):
        table.add_row(f"  {kind}", str(count))
    table.add_row("", "")
    table.add_row("[bold]Edges[/bold]", str(graph_stats["total_edges"]))
    for kind, count in sorted(graph_stats["edges_by_kind"].items()):
        table.add_row(f"  {kind}", str(count))
    table.add_row("  resolved", str(graph_stats["resolved_edges"]))
    table.add_row("", "")
    table.add_row("Embeddings", str(snapshot.vectors.count()))
    if snapshot.stats.get("embedding_failures"):
        table.add_row("Embedding Failures", str(snapshot.stats["embedding_failures"]))

    console.print(table)

    if snapshot.file_errors:
        console.print("\n[yellow]Files that could not be parsed:[/yellow]")
        for error in snapshot.file_errors[:10]:
            console.print(f"  [dim]{error}[/dim]")
        if len(snapshot.file_errors) > 10:
            console.print(f"  [dim]... and {len(snapshot.file_errors) - 10} more[/dim]")

    if dry_run:
        console.print("\n[yellow]DRY RUN - No embeddings created[/yellow]")
        console.print("\nSample elements:")
        for node in snapshot.graph.nodes_of_kind("class", "interface")[:3]:
            console.print(f"\n  [cyan]{node.key}[/cyan]")
            console.print(
                f"  Type: {node.kind}, Lines: {node.start_line}-{node.end_line}, Members: {len(node.children)}"
            )
        return

    if persist:
        if embedder is None:
            console.print("[yellow]Nothing to persist without embeddings[/yellow]")
            return

        console.print("\n[bold]Step 2: Storing in vector database...[/bold]")
        pg = settings.pgvector
        store = PgVectorStore(
            host=pg.host,
            port=pg.port,
            database=pg.database,
            user=pg.user,
            password=pg.password,
            table_name=pg.table_name,
            embedding_dimensions=embedder.dimensions,
        )

        try:
            store.connect()

            if reset:
                console.print("[yellow]Resetting table...[/yellow]")
                store.drop_table()

            store.create_table()
            count = store.replace_all(snapshot.vectors.all())
            console.print(f"[green]Stored {count} embeddings[/green]")

            stats = store.get_stats()
            console.print("\n[bold]Database Statistics:[/bold]")
            console.print(f"  Total records: {stats['total_records']}")
            console.print(f"  Files indexed: {stats['file_count']}")

        except Exception as e:
            console.print(f"[red]Database error: {e}[/red]")
            console.print("\nMake sure PostgreSQL is running with pgvector extension:")
            console.print("  1. Install pgvector: https://github.com/pgvector/pgvector")
            console.print(f"  2. Create database: createdb {store.database}")
            console.print("  3. Enable extension: CREATE EXTENSION vector;")
            sys.exit(1)

        finally:
            store.close()

    console.print("\n[bold green]Indexing complete![/bold green]")
    console.print("\nNext steps:")
    console.print(f"  Query: python scripts/query_codebase.py -s {source_dir} -q 'your question'")
    console.print(f"  Structure: python scripts/query_codebase.py -s {source_dir} --context com.example")


if __name__ == "__main__":
    main()
