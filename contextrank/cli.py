"""Typer-based CLI for ContextRank file relevance ranking."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config, config_manager
from .embeddings import EMBEDDING_MODELS, get_embedder
from .engine import AnalysisError, HybridSearchEngine
from .llm import create_generator
from .models import RankedResult, SourceFile
from .parser import collect_source_files
from .storage import AnalysisCache

console = Console()

app = typer.Typer(
    help="ContextRank: find the files that matter for a task.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
cache_app = typer.Typer(help="Inspect and maintain the analysis cache.", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

ALL_PROVIDERS = ["ollama", "groq", "openai", "anthropic", "openrouter", "local", "none"]


def version_callback(value: bool):
    if value:
        typer.echo(f"ContextRank v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log analysis progress."),
):
    """ContextRank: hybrid structural + semantic ranking of project files."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ===================================================================
# Helpers
# ===================================================================

def _project_name_from_path(project_path: Path) -> str:
    return project_path.resolve().name.replace(" ", "_")


def _open_cache() -> AnalysisCache:
    config.ensure_base_dirs()
    return AnalysisCache(config.CACHE_DB_PATH)


def _load_files(project_path: Path) -> List[SourceFile]:
    files = collect_source_files(project_path.resolve())
    if not files:
        console.print(f"[yellow]No supported source files found under {project_path}.[/yellow]")
        raise typer.Exit(code=1)
    return files


def _build_engine(cache: AnalysisCache, with_generator: bool) -> HybridSearchEngine:
    generator = None
    if with_generator:
        llm_cfg = config_manager.load_config()
        generator = create_generator(
            provider=llm_cfg.get("provider"),
            model=llm_cfg.get("model"),
            api_key=llm_cfg.get("api_key", ""),
            endpoint=llm_cfg.get("endpoint"),
        )
    return HybridSearchEngine(
        embedder=get_embedder(),
        generator=generator,
        cache=cache,
        config=config_manager.load_scoring_config(),
    )


def _results_table(query: str, results: List[RankedResult], tri_model: bool) -> Table:
    table = Table(title=f"Results for \"{query}\"", show_lines=False)
    table.add_column("#", style="dim", width=4)
    table.add_column("File", style="cyan", min_width=30)
    table.add_column("Score", justify="right", style="green")
    table.add_column("Struct", justify="right")
    table.add_column("Sem", justify="right")
    if tri_model:
        table.add_column("Rel", justify="right")
        table.add_column("Class", style="magenta")
    table.add_column("Synergy", justify="center")

    for i, r in enumerate(results, 1):
        score = f"{r.score_percentage}%" if r.score_percentage is not None else f"{r.final_score:.3f}"
        row = [str(i), r.file, score, f"{r.structure_score:.2f}", f"{r.semantic_score:.2f}"]
        if tri_model:
            row += [f"{r.relationship_score or 0:.2f}", f"{r.classification} / {r.workflow_position}"]
        row.append("✓" if r.has_synergy else "")
        table.add_row(*row)
    return table


# ===================================================================
# Analysis & search
# ===================================================================

@app.command("analyze")
def analyze(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
):
    """Parse a project, build its dependency graph and cache its embeddings."""
    files = _load_files(project_path)
    cache = _open_cache()
    engine = _build_engine(cache, with_generator=False)
    try:
        summary = asyncio.run(engine.analyze_project(files))
    except AnalysisError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        cache.close()

    source = "cache" if summary.from_cache else f"{summary.embeddings_generated} generated"
    console.print(f"Analyzed [bold]{_project_name_from_path(project_path)}[/bold]")
    console.print(f"Files: {summary.files} | Parsed: {summary.parsed} | Edges: {summary.edges}")
    console.print(f"Embeddings: {summary.embeddings} ({source})")
    if summary.keywords:
        console.print("Domain keywords: " + ", ".join(k.keyword for k in summary.keywords))


@app.command("search")
def search(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    query: str = typer.Argument(..., help="Free-text description of what you are looking for."),
    tri_model: bool = typer.Option(False, "--tri-model", "-t", help="Add relationship and classifier signals."),
    entry_point: Optional[str] = typer.Option(None, "--entry-point", "-e", help="Project-relative entry-point file (implies --tri-model)."),
    top_k: int = typer.Option(20, "--top-k", "-k", min=1, help="Number of results to show."),
    save: bool = typer.Option(False, "--save/--no-save", help="Store the results in the search history."),
    no_llm: bool = typer.Option(False, "--no-llm", help="Skip the generative classifier."),
):
    """Rank project files by relevance to QUERY."""
    use_tri_model = tri_model or entry_point is not None
    files = _load_files(project_path)
    cache = _open_cache()
    engine = _build_engine(cache, with_generator=use_tri_model and not no_llm)

    async def _run() -> List[RankedResult]:
        await engine.load_cached_analysis(files)
        if use_tri_model:
            return await engine.perform_tri_model_search(query, files, entry_point)
        return await engine.perform_hybrid_search(query, files)

    try:
        results = asyncio.run(_run())
        if save and results:
            search_id = engine.save_search_results(
                query, _project_name_from_path(project_path), results, entry_point,
            )
            if search_id:
                console.print(f"[dim]Saved as {search_id}[/dim]")
    except AnalysisError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        cache.close()

    if not results:
        console.print(f"[yellow]No relevant files found for \"{query}\".[/yellow]")
        return
    console.print(_results_table(query, results[:top_k], use_tri_model))


@app.command("keywords")
def keywords(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
):
    """List the business-domain keywords mined from a project."""
    files = _load_files(project_path)
    engine = HybridSearchEngine()
    asyncio.run(engine.load_cached_analysis(files))

    if not engine.keywords:
        console.print("[yellow]No domain keywords found.[/yellow]")
        return

    table = Table(title="Domain Keywords")
    table.add_column("Keyword", style="cyan")
    table.add_column("Freq", justify="right")
    table.add_column("Confidence", justify="right", style="green")
    table.add_column("Sources", style="magenta")
    table.add_column("Files", justify="right")
    for kw in engine.keywords:
        table.add_row(
            kw.keyword, str(kw.frequency), f"{kw.confidence:.2f}",
            ", ".join(sorted(kw.sources)), str(len(kw.related_files)),
        )
    console.print(table)


@app.command("history")
def history(
    project_name: str = typer.Argument(..., help="Project name (directory name of the project)."),
    show: Optional[str] = typer.Option(None, "--show", help="Print the results of one saved search id."),
    delete: Optional[str] = typer.Option(None, "--delete", help="Delete one saved search id."),
):
    """List saved searches for a project."""
    cache = _open_cache()
    try:
        if delete:
            if cache.delete_search_results(delete):
                console.print(f"Deleted {delete}")
            else:
                console.print(f"[yellow]No saved search '{delete}'.[/yellow]")
            return
        if show:
            saved = cache.get_search_results(show)
            if saved is None:
                console.print(f"[yellow]No saved search '{show}'.[/yellow]")
                raise typer.Exit(code=1)
            console.print(_results_table(saved.keyword, saved.results, saved.entry_point_file is not None))
            return

        searches = cache.list_search_results(project_name)
    finally:
        cache.close()

    if not searches:
        console.print(f"[yellow]No saved searches for '{project_name}'.[/yellow]")
        return

    table = Table(title=f"Saved searches: {project_name}")
    table.add_column("Id", style="dim")
    table.add_column("Time", style="cyan", width=16)
    table.add_column("Query")
    table.add_column("Entry point", style="magenta")
    table.add_column("Files", justify="right", style="green")
    for s in searches:
        table.add_row(
            s.id,
            datetime.fromtimestamp(s.timestamp).strftime("%Y-%m-%d %H:%M"),
            s.keyword,
            s.entry_point_file or "",
            str(len(s.results)),
        )
    console.print(table)


# ===================================================================
# Cache maintenance
# ===================================================================

@cache_app.command("stats")
def cache_stats():
    """Show record counts per cache namespace."""
    cache = _open_cache()
    stats = cache.stats()
    cache.close()
    if not stats["available"]:
        console.print("[yellow]Cache unavailable.[/yellow]")
        return
    console.print(f"Cache: [dim]{config.CACHE_DB_PATH}[/dim]")
    for name in ("file_embeddings", "project_snapshots", "search_results"):
        console.print(f"  {name:<18} {stats[name]}")


@cache_app.command("evict")
def cache_evict(
    days: float = typer.Option(30, "--days", "-d", min=0, help="Evict records older than this many days."),
):
    """Remove cache records older than --days."""
    cache = _open_cache()
    removed = cache.evict_older_than(days * 24 * 60 * 60)
    cache.close()
    console.print(f"Evicted {removed} records.")


@cache_app.command("clear")
def cache_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
):
    """Delete every cached embedding, snapshot and saved search."""
    if not yes and not typer.confirm("Clear the whole analysis cache?", default=False):
        raise typer.Exit()
    cache = _open_cache()
    cache.clear()
    cache.close()
    console.print("Cache cleared.")


# ===================================================================
# Configuration
# ===================================================================

@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help=f"Provider: {', '.join(ALL_PROVIDERS)}"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (provider default if omitted)."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Choose the generative provider used by --tri-model classification.

    Use ``none`` to disable classification.
    """
    provider = provider.lower().strip()
    if provider not in ALL_PROVIDERS:
        console.print(f"[red]Unknown provider '{provider}'. Choose from: {', '.join(ALL_PROVIDERS)}[/red]")
        raise typer.Exit(code=1)

    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or ("google/flan-t5-small" if provider == "local" else defaults.get("model", ""))
    resolved_endpoint = endpoint or (defaults.get("endpoint", "") if provider in ("ollama", "openrouter") else "")
    if provider in ("groq", "openai", "anthropic", "openrouter") and not api_key:
        api_key = typer.prompt(f"Enter your {provider} API key", hide_input=True)

    if not config_manager.save_config(provider, resolved_model, api_key or "", resolved_endpoint):
        console.print("[red]Failed to save configuration.[/red]")
        raise typer.Exit(code=1)
    console.print(f"LLM provider set to [bold]{provider}[/bold] ({resolved_model})")


@app.command("show-llm")
def show_llm():
    """Show the current generative provider configuration."""
    cfg = config_manager.load_config()
    api_key = cfg.get("api_key", "")
    console.print(f"  Provider  [bold]{cfg.get('provider', 'ollama')}[/bold]")
    console.print(f"  Model     {cfg.get('model', '')}")
    if cfg.get("endpoint"):
        console.print(f"  Endpoint  [dim]{cfg['endpoint']}[/dim]")
    if api_key:
        console.print(f"  API Key   {api_key[:4]}{'•' * min(max(len(api_key) - 4, 0), 16)}")
    else:
        console.print("  API Key   [dim](not set)[/dim]")
    console.print(f"  Config    [dim]{config_manager.CONFIG_FILE}[/dim]")


@app.command("set-embedding")
def set_embedding(
    model_key: str = typer.Argument(..., help=f"Embedding model: {', '.join(EMBEDDING_MODELS)}"),
):
    """Choose the embedding model used for the semantic signal."""
    if model_key not in EMBEDDING_MODELS:
        console.print(f"[red]Unknown model '{model_key}'. Choose from: {', '.join(EMBEDDING_MODELS)}[/red]")
        raise typer.Exit(code=1)
    config_manager.save_embedding_config(model_key)
    console.print(f"Embedding model set to [bold]{model_key}[/bold]")
    console.print("[dim]Run 'ctxr cache clear' so cached vectors are regenerated with the new model.[/dim]")


@app.command("set-scoring")
def set_scoring(
    key: str = typer.Argument(..., help="ScoringConfig field, e.g. synergy_multiplier."),
    value: float = typer.Argument(..., help="New value."),
):
    """Override one scoring weight, multiplier or limit."""
    defaults = config_manager.ScoringConfig()
    if not hasattr(defaults, key):
        console.print(f"[red]Unknown scoring option '{key}'.[/red]")
        raise typer.Exit(code=1)
    stored = int(value) if isinstance(getattr(defaults, key), int) else value
    config_manager.save_scoring_value(key, stored)
    console.print(f"{key} = {stored}")
