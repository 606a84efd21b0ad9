"""Command-line interface for the flowboard pipeline."""

import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flowboard.chunking import ChunkingConfig, detect_content_type, segment
from flowboard.config.settings import get_settings
from flowboard.exceptions import FlowboardError
from flowboard.filtering import available_classes, extension_of, filter_listing
from flowboard.graph import Pipeline, coerce_output
from flowboard.models import Document, FileMetadata, ListingOutput

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="flowboard",
    help="Flowboard - chunk repositories and documents through a stage graph",
    add_completion=False,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=get_settings().log_level.upper())


def _preview(text: str, width: int = 60) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= width else flat[: width - 1] + "…"


@app.command()
def chunk(
    path: Path = typer.Argument(
        ...,
        help="File to chunk",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    strategy: str = typer.Option(None, "--strategy", "-s", help="fixed, recursive, semantic, code or domain"),
    size: int = typer.Option(None, "--size", help="Maximum chunk size in characters"),
    overlap: int = typer.Option(None, "--overlap", help="Overlap between chunks in characters"),
    smart_boundaries: bool = typer.Option(
        False, "--smart-boundaries", help="Snap fixed windows to whitespace"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print chunks as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Chunk a local file and show the result."""
    _configure_logging(verbose)

    try:
        overrides = {
            "strategy": strategy,
            "chunk_size": size,
            "overlap": overlap,
            "smart_boundaries": smart_boundaries or None,
        }
        config = ChunkingConfig.from_dict(
            {k: v for k, v in overrides.items() if v is not None},
            defaults=ChunkingConfig.from_settings(),
        )
        text = path.read_text(encoding="utf-8", errors="replace")
        document = Document(
            document_id=f"doc_{uuid.uuid4().hex[:12]}",
            file=FileMetadata(
                name=path.name,
                path=str(path),
                size=path.stat().st_size,
                extension=extension_of(path.name),
                content_type=detect_content_type(path.name),
            ),
            text=text,
        )
        chunks = segment(document, config)
    except FlowboardError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if as_json:
        typer.echo(json.dumps([c.model_dump(mode="json") for c in chunks], indent=2, ensure_ascii=False))
        return

    console.print(
        Panel.fit(
            f"[bold blue]{path.name}[/bold blue]\n"
            f"{config.strategy.value} • size {config.chunk_size} • overlap {config.overlap} • "
            f"{document.file.content_type.value}",
            border_style="blue",
        )
    )

    table = Table(show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Offsets", style="dim")
    table.add_column("Chars", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Label", style="cyan")
    table.add_column("Preview")

    for c in chunks:
        label = c.metadata.get("symbol") or c.metadata.get("section") or ""
        if c.metadata.get("fallback"):
            label = "[red]fallback[/red]"
        table.add_row(
            str(c.chunk_index),
            f"{c.start_offset}-{c.end_offset}",
            str(c.metadata["char_count"]),
            str(c.metadata["token_count"]),
            str(label),
            _preview(c.text),
        )

    console.print(table)
    console.print(f"\n[green]{len(chunks)} chunks[/green]")


@app.command("filter")
def filter_command(
    listing_path: Path = typer.Argument(
        ...,
        help="JSON repository listing ({contents: [...]} or a list of entries)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    folders: list[str] = typer.Option([], "--folder", "-f", help="Selected folder (repeatable)"),
    extensions: list[str] = typer.Option([], "--ext", "-e", help="Selected format class (repeatable)"),
    root_files: bool = typer.Option(
        True, "--root-files/--no-root-files", help="Keep root entries when no folder is selected"
    ),
    show_classes: bool = typer.Option(False, "--classes", help="List available format classes"),
) -> None:
    """Filter a repository listing by folder and format."""
    _configure_logging(False)

    try:
        with open(listing_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        output = coerce_output({"contents": raw} if isinstance(raw, list) else raw)
    except (json.JSONDecodeError, FlowboardError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if not isinstance(output, ListingOutput):
        console.print(f"[red]Error:[/red] expected a listing, got {output.kind.value}")
        sys.exit(1)

    entries = output.listing.contents

    if show_classes:
        for category, classes in available_classes(entries, folders).items():
            console.print(f"[bold]{category}[/bold]: {', '.join(classes)}")
        return

    result = filter_listing(entries, folders, extensions, include_root_files=root_files)

    table = Table(show_header=True)
    table.add_column("Type", style="dim")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    for entry in result.entries:
        table.add_row(entry.type.value, entry.path, str(entry.size))

    console.print(table)
    console.print(
        f"\n[green]{result.filtered_count}[/green] of {result.original_count} entries retained"
    )


@app.command()
def run(
    definition_path: Path = typer.Argument(
        ...,
        help="Pipeline definition JSON ({nodes: [...], edges: [...]})",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    output: Path = typer.Option(
        None,
        "--output",
        "-o",
        help="Write node states and outputs to this JSON file",
    ),
    timeout: float = typer.Option(120.0, "--timeout", help="Seconds to wait for the pipeline to settle"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run a pipeline definition until every stage is idle."""
    _configure_logging(verbose)

    settings = get_settings().model_copy(update={"trigger_stagger_ms": 0})

    try:
        with open(definition_path, "r", encoding="utf-8") as f:
            definition = json.load(f)
        pipeline = Pipeline.from_definition(definition, settings=settings)
        snapshot = asyncio.run(pipeline.run(timeout=timeout))
    except (json.JSONDecodeError, FlowboardError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except asyncio.TimeoutError:
        console.print(f"[red]Error:[/red] pipeline did not settle within {timeout}s")
        sys.exit(1)

    table = Table(show_header=True)
    table.add_column("Node")
    table.add_column("Kind", style="dim")
    table.add_column("State")
    table.add_column("Output")

    for node_id, info in snapshot.items():
        state = info["state"]
        if info["waiting"]:
            state = "waiting for input"
        if info["error"]:
            state = f"[red]{state}: {info['error']}[/red]"
        summary = info["output"] or {}
        table.add_row(
            node_id,
            info["kind"],
            state,
            ", ".join(f"{k}={v}" for k, v in summary.items() if k != "kind"),
        )
    console.print(table)

    if output is not None:
        result = {"nodes": snapshot, "outputs": {}}
        for node in pipeline.store.nodes:
            if node.output is not None:
                result["outputs"][node.node_id] = node.output.model_dump(mode="json", by_alias=True)
        with open(output, "w", encoding="utf-8") as f:
            json.dump(result, f, indent=2, ensure_ascii=False, default=str)
        console.print(f"\n[green]Results saved to:[/green] {output}")


@app.command()
def info() -> None:
    """Display system information and configuration."""
    from flowboard import __version__

    settings = get_settings()

    console.print(Panel.fit("[bold blue]Flowboard[/bold blue]", border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Commit Debounce", f"{settings.commit_debounce_ms} ms")
    table.add_row("Trigger Stagger", f"{settings.trigger_stagger_ms} ms")
    table.add_row("Discovery Poll", f"{settings.discovery_poll_seconds} s")
    table.add_row("Chunk Strategy", settings.chunk_strategy)
    table.add_row("Chunk Size", f"{settings.chunk_size} chars")
    table.add_row("Chunk Overlap", f"{settings.chunk_overlap} chars")
    table.add_row("Token Encoding", settings.token_encoding)

    console.print(table)


if __name__ == "__main__":
    app()
