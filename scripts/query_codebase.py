#!/usr/bin/env python3
"""Query a Java code graph semantically or by package structure."""

import logging
import sys
from pathlib import Path
from typing import Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax

from javagraph import CodeGraphService, JavaGraphError, load_settings, run_pipeline
from javagraph.rag.embedder import create_embedder
from javagraph.rag.llm import GeminiCompleter
from javagraph.rag.retriever import SemanticQuery, StructuralQuery
from javagraph.rag.search import SearchHit
from javagraph.rag.vector_store import InMemoryVectorStore, PgVectorStore

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
@click.option("--query", "-q", type=str, default=None, help="Semantic query to run")
@click.option(
    "--context",
    type=str,
    default=None,
    help="Describe the graph around a package, class key or simple name",
)
@click.option(
    "--package",
    "-p",
    type=str,
    default=None,
    help="Show the source of classes in a package (prefix match)",
)
@click.option("--outline", is_flag=True, help="With --package, show member outlines only")
@click.option("--explain", "explain_key", type=str, default=None, help="Explain a method by its key")
@click.option("--similar", "similar_key", type=str, default=None, help="Find elements similar to a key")
@click.option("--describe", "describe_key", type=str, default=None, help="Show details of one element")
@click.option("--top-k", "-k", type=int, default=5, help="Number of results to return")
@click.option("--no-source", is_flag=True, help="Leave source code out of results")
@click.option(
    "--from-db",
    is_flag=True,
    help="Load embeddings from PostgreSQL instead of re-embedding the tree",
)
@click.option("--interactive", "-i", is_flag=True, help="Start interactive query session")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(
    source_dir: Path,
    config: Optional[Path],
    query: Optional[str],
    context: Optional[str],
    package: Optional[str],
    outline: bool,
    explain_key: Optional[str],
    similar_key: Optional[str],
    describe_key: Optional[str],
    top_k: int,
    no_source: bool,
    from_db: bool,
    interactive: bool,
    verbose: bool,
):
    """Query the code graph of a Java source tree.

    The graph is held in memory, so it is built from the source tree on
    every run. Embeddings are either recreated or loaded from PostgreSQL.

    Examples:
        # Semantic search
        python scripts/query_codebase.py -s path/to/src -q "where are orders validated?"

        # Structure of one package
        python scripts/query_codebase.py -s path/to/src --context com.example.orders

        # Explain a method through its call tree
        python scripts/query_codebase.py -s path/to/src --explain com.example.submit
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        settings = load_settings(config)
    except JavaGraphError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    needs_embeddings = bool(query or similar_key or interactive)
    embedder = None
    if needs_embeddings and settings.has_project:
        embedder = create_embedder(
            project_id=settings.project_id,
            location=settings.location,
            model=settings.embedding_model,
        )
    elif query:
        console.print("[red]Semantic queries need gcp.project_id in config/config.yaml[/red]")
        sys.exit(1)

    with console.status("Building code graph..."):
        try:
            service = load_service(source_dir, settings, embedder, from_db)
        except JavaGraphError as e:
            console.print(f"[red]Build failed: {e}[/red]")
            sys.exit(1)

    snapshot = service.store.current()
    console.print(
        f"[dim]Graph: {len(snapshot.graph)} elements, {len(snapshot.graph.edges)} edges, "
        f"{snapshot.vectors.count()} embeddings[/dim]\n"
    )

    include_source = not no_source
    try:
        if describe_key:
            console.print(Panel(service.describe(describe_key), title=describe_key))
        elif explain_key:
            run_explain(service, settings, explain_key)
        elif similar_key:
            display_hits(service.find_similar(similar_key, limit=top_k), include_source)
        elif package:
            run_package_source(service, package, outline)
        elif query and not interactive:
            run_single_query(service, query, top_k, include_source)
        elif context is not None:
            result = service.query(StructuralQuery(context=context or None, include_source=include_source))
            console.print(result.as_text())
        elif interactive:
            run_interactive_session(service, top_k, include_source)
        else:
            console.print("[bold]Usage:[/bold]")
            console.print("  Semantic:   python scripts/query_codebase.py -s SRC -q 'your question'")
            console.print("  Structure:  python scripts/query_codebase.py -s SRC --context com.example")
            console.print("  Explain:    python scripts/query_codebase.py -s SRC --explain pkg.method")
            console.print("  Interactive: python scripts/query_codebase.py -s SRC -i")
    except JavaGraphError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def load_service(source_dir: Path, settings, embedder, from_db: bool) -> CodeGraphService:
    """Build the graph, taking embeddings from PostgreSQL when asked to."""
    service = CodeGraphService(source_dir, settings, embedder=embedder)
    if not from_db or embedder is None:
        service.rebuild()
        return service

    snapshot = run_pipeline(source_dir, settings)
    pg = settings.pgvector
    with PgVectorStore(
        host=pg.host,
        port=pg.port,
        database=pg.database,
        user=pg.user,
        password=pg.password,
        table_name=pg.table_name,
        embedding_dimensions=embedder.dimensions,
    ) as store:
        records = store.all()
    snapshot.vectors = InMemoryVectorStore(r for r in records if r.node_key in snapshot.graph)
    service.store.publish(snapshot)
    return service


def run_single_query(service: CodeGraphService, query: str, top_k: int, include_source: bool):
    """Run a single semantic query."""
    console.print(f"[bold]Query:[/bold] {query}\n")
    result = service.query(SemanticQuery(query=query, max_results=top_k, include_source=include_source))
    if not result.hits:
        console.print("[yellow]No embedded elements to search[/yellow]")
        return
    display_hits(result.hits, include_source)


def run_explain(service: CodeGraphService, settings, key: str):
    """Explain a method, with an LLM when a project is configured."""
    completer = None
    if settings.has_project:
        completer = GeminiCompleter(
            project_id=settings.project_id,
            location=settings.location,
            model=settings.llm_model,
        )
    console.print(f"[bold]Explaining:[/bold] {key}\n")
    with console.status("Walking call tree..."):
        explanation = service.explain(key, completer=completer)
    if completer is None:
        console.print(Panel(explanation, title="Call tree", border_style="blue"))
    else:
        console.print(Panel(Markdown(explanation)))


def run_package_source(service: CodeGraphService, prefix: str, outline: bool):
    """Print the source of every class in a package."""
    contexts = service.get_source_for_package(prefix, outline=outline)
    if not contexts:
        console.print(f"[yellow]No classes found in package {prefix}[/yellow]")
        return
    for ctx in contexts:
        location = f"{ctx.file_path}:{ctx.start_line}-{ctx.end_line}"
        console.print(f"\n[cyan]{ctx.package}.{ctx.class_name}[/cyan] [dim]({ctx.kind}, {location})[/dim]")
        syntax = Syntax(
            ctx.source_code,
            "java",
            theme="monokai",
            line_numbers=not outline,
            start_line=ctx.start_line,
        )
        console.print(Panel(syntax, border_style="green"))


def display_hits(hits: list[SearchHit], show_code: bool = True):
    """Display search hits."""
    for i, hit in enumerate(hits, 1):
        record = hit.record
        console.print(f"\n[cyan]{i}. {record.node_key}[/cyan] ({record.kind})")
        console.print(f"   [dim]{record.file_path} (score: {hit.score:.3f})[/dim]")

        if record.description:
            console.print(f"   [italic]{record.description[:150]}[/italic]")

        if show_code and record.snippet:
            code_preview = record.snippet
            if len(code_preview) > 500:
                code_preview = code_preview[:500] + "\n// ... truncated"
            console.print(Panel(Syntax(code_preview, "java", theme="monokai"), border_style="dim"))


def run_interactive_session(service: CodeGraphService, top_k: int, show_sources: bool):
    """Run interactive query session."""
    console.print("[bold green]Interactive Session Started[/bold green]")
    console.print(
        "[dim]Commands: 'exit' to quit, 'context <prefix>' for structure, "
        "'explain <key>' for a call tree, 'sources' to toggle source display[/dim]"
    )
    console.print()

    show_src = show_sources

    while True:
        try:
            user_input = Prompt.ask("[bold cyan]Query[/bold cyan]").strip()
        except (KeyboardInterrupt, EOFError):
            console.print("\n[yellow]Session ended[/yellow]")
            break

        if user_input.lower() in ("exit", "quit"):
            console.print("[yellow]Session ended[/yellow]")
            break

        if user_input.lower() == "sources":
            show_src = not show_src
            console.print(f"[dim]Source display: {'on' if show_src else 'off'}[/dim]")
            continue

        if not user_input:
            continue

        command, _, argument = user_input.partition(" ")
        try:
            if command == "context":
                console.print(service.query_by_context(argument.strip() or None, include_source=show_src))
            elif command == "explain" and argument.strip():
                console.print(Panel(service.explain(argument.strip()), title="Call tree"))
            elif service.embedder is None:
                console.print("[yellow]No embedding provider configured, use 'context <prefix>'[/yellow]")
            else:
                run_single_query(service, user_input, top_k, show_src)
        except JavaGraphError as e:
            console.print(f"[red]{e}[/red]")

        console.print()


if __name__ == "__main__":
    main()
