#!/usr/bin/env python3
"""
CAIRN CLI - Command Line Interface
Runs the retrieval engine over a JSON-lines file of chunks
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import yaml
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cairn._version import __version__
from cairn.core.exceptions import CairnError
from cairn.core.logging import logger
from cairn.core.secure_config import SUPPORTED_PROVIDERS, Settings
from cairn.models.chunk import Chunk
from cairn.models.retrieval import RetrievalOptions, RetrievalResponse, SearchStrategy
from cairn.rag.retriever import KnowledgeRetriever


console = Console()


def load_chunks(path: Path) -> List[Chunk]:
    """
    Reads one chunk per line: {"text", "source_id", "id"?, "chunk_index"?, "metadata"?}.

    Blank lines are skipped. Any malformed line aborts with its line number.
    """
    chunks: List[Chunk] = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                chunks.append(Chunk.model_validate(json.loads(line)))
            except (json.JSONDecodeError, PydanticValidationError) as e:
                raise click.ClickException(f"{path}:{line_number}: invalid chunk: {e}")

    logger.info("Chunks loaded", path=str(path), count=len(chunks))
    return chunks


def build_settings(config_path: Optional[str], provider: Optional[str]) -> Settings:
    overrides: Dict[str, Any] = {}
    if provider:
        overrides["embeddings.provider"] = provider
    try:
        return Settings(config_path=config_path, overrides=overrides)
    except CairnError as e:
        raise click.ClickException(e.message)


async def run_search(
    settings: Settings, chunks: List[Chunk], query: str, options: RetrievalOptions
) -> RetrievalResponse:
    async with KnowledgeRetriever(settings) as retriever:
        result = await retriever.ingest(chunks)
        for failure in result.failed:
            console.print(
                f"[yellow]⚠ Skipped chunk {failure.chunk_id}: {failure.reason}[/yellow]"
            )
        return await retriever.retrieve(query, options)


def render_response(response: RetrievalResponse, show_context: bool) -> None:
    metadata = response.metadata
    header = (
        f"[bold cyan]{metadata.total_results} results[/bold cyan] for "
        f"[bold]{response.query}[/bold] ({response.strategy.value}, "
        f"{metadata.search_time_ms:.1f} ms)"
    )
    console.print(header)
    if metadata.degraded:
        console.print("[yellow]⚠ Embeddings unavailable: keyword-only results[/yellow]")

    table = Table(show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Document")
    table.add_column("Text")

    for rank, result in enumerate(response.results, start=1):
        preview = result.text if len(result.text) <= 80 else result.text[:77] + "..."
        table.add_row(
            str(rank),
            f"{result.score:.4f}",
            result.source.value,
            f"{result.chunk.source_id}#{result.chunk.chunk_index}",
            preview,
        )
    console.print(table)

    if show_context and response.context.text:
        title = f"Context ({response.context.total_length} chars"
        title += ", truncated)" if response.context.truncated else ")"
        console.print(Panel(response.context.text, title=title))


@click.group()
@click.version_option(version=__version__, prog_name="CAIRN")
def cli():
    """
    CAIRN - Knowledge Retrieval Engine

    Hybrid semantic and keyword search over text chunks.
    """
    pass


@cli.command()
@click.argument("chunks_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("query")
@click.option("--limit", "-k", type=int, default=None, help="Maximum number of results")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in SearchStrategy]),
    default=None,
    help="Force a strategy (default: chosen from the query)",
)
@click.option("--threshold", type=float, default=None, help="Minimum semantic similarity")
@click.option("--max-context", type=int, default=None, help="Context length in characters")
@click.option("--no-diversity", is_flag=True, help="Keep near-duplicate results")
@click.option(
    "--provider", type=click.Choice(SUPPORTED_PROVIDERS), default=None, help="Embedding provider"
)
@click.option("--config", "config_path", default=None, help="Path to a .cairn config file")
@click.option("--json", "as_json", is_flag=True, help="Print the response as JSON")
@click.option("--no-context", is_flag=True, help="Do not print the assembled context")
def search(
    chunks_file: Path,
    query: str,
    limit: Optional[int],
    strategy: Optional[str],
    threshold: Optional[float],
    max_context: Optional[int],
    no_diversity: bool,
    provider: Optional[str],
    config_path: Optional[str],
    as_json: bool,
    no_context: bool,
):
    """Search QUERY over the chunks in CHUNKS_FILE (JSON lines)"""
    settings = build_settings(config_path, provider)
    chunks = load_chunks(chunks_file)

    try:
        options = RetrievalOptions(
            limit=limit,
            strategy=strategy,
            threshold=threshold,
            max_context_length=max_context,
            diversity=False if no_diversity else None,
        )
        response = asyncio.run(run_search(settings, chunks, query, options))
    except PydanticValidationError as e:
        raise click.BadParameter(str(e))
    except CairnError as e:
        raise click.ClickException(f"{e.code}: {e.message}")

    if as_json:
        click.echo(json.dumps(response.model_dump(mode="json"), indent=2))
    else:
        render_response(response, show_context=not no_context)


@cli.command()
@click.option("--config", "config_path", default=None, help="Path to a .cairn config file")
def config(config_path: Optional[str]):
    """Show the effective configuration"""
    settings = build_settings(config_path, None)
    source = str(settings.config_path) if settings.config_path else "defaults"
    click.echo(click.style(f"# Source: {source}", fg="cyan"))
    click.echo(yaml.safe_dump(settings.as_dict(), sort_keys=False))


def main():
    """Main entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user.")
        sys.exit(0)
    except Exception as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        if os.environ.get("CAIRN_DEBUG"):
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
