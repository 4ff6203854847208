"""
Command-line interface for the ModNote content core.

Provides ``acquire`` to turn a URL or file into text, and ``context`` /
``search`` to query a JSON export of notes.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from modnote.acquisition import create_orchestrator, from_input
from modnote.config import get_settings
from modnote.models import AcquisitionOptions, ContentItem
from modnote.retrieval import create_context_processor
from modnote.utils.errors import ModNoteException
from modnote.utils.logging import setup_logging

app = typer.Typer(
    name="modnote",
    help="Content acquisition and context assembly for a personal knowledge base",
    add_completion=False,
)
console = Console()

PREVIEW_CHARS = 2000


def load_notes(path: Path) -> List[ContentItem]:
    """
    Load notes from a JSON file.

    Accepts a list of notes or an object with a "notes" list. Each note may
    use "text" or "content" for its body and "is_transcript" or
    "is_transcription" for the transcript flag.
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("notes", [])
    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain a list of notes")

    notes = []
    for entry in raw:
        data: dict[str, Any] = dict(entry)
        if "text" not in data and "content" in data:
            data["text"] = data.pop("content") or ""
        if "is_transcript" not in data and "is_transcription" in data:
            data["is_transcript"] = bool(data.pop("is_transcription"))
        data["id"] = str(data.get("id", ""))
        notes.append(ContentItem.model_validate(data))
    return notes


@app.command()
def acquire(
    source: str = typer.Argument(..., help="Video/web URL or path to a PDF, image or audio file"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Language hint, e.g. 'en'"),
    strategy: Optional[List[str]] = typer.Option(
        None,
        "--strategy",
        "-s",
        help="Strategy to try (repeat to set the order)",
    ),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Retries per strategy"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-attempt timeout in seconds"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write extracted text to a file"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
):
    """Extract text from a source."""

    async def _acquire():
        try:
            source_ref = from_input(source)
            options = AcquisitionOptions(
                language=language,
                strategy_order=strategy or None,
                max_retries=max_retries,
                attempt_timeout_seconds=timeout,
            )
            orchestrator = create_orchestrator()

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"Acquiring {source_ref.display_name}...", total=None)
                result = await orchestrator.acquire(source_ref, options)

        except (ModNoteException, ValidationError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)

        if as_json:
            console.print_json(result.model_dump_json())
        else:
            table = Table(title="Extraction Result", show_header=False)
            table.add_column("Field", style="cyan")
            table.add_column("Value")
            table.add_row("Status", "[green]success[/green]" if result.success else "[red]failed[/red]")
            table.add_row("Strategy", result.strategy_used or "-")
            table.add_row("Confidence", f"{result.confidence:.2f}")
            table.add_row("Time", f"{result.processing_time_ms} ms")
            if result.metadata:
                table.add_row("Title", result.metadata.title or "-")
                table.add_row("Author", result.metadata.author or "-")
            if result.error_message:
                table.add_row("Error", result.error_message)
            console.print(table)

            if result.text and not output:
                preview = result.text[:PREVIEW_CHARS]
                if len(result.text) > PREVIEW_CHARS:
                    preview += f"\n... ({len(result.text) - PREVIEW_CHARS} more characters)"
                console.print(Panel(preview, title="Text"))

        if result.text and output:
            output.write_text(result.text, encoding="utf-8")
            console.print(f"[green]✓[/green] Wrote {len(result.text)} characters to {output}")

        if not result.success:
            raise typer.Exit(1)

    asyncio.run(_acquire())


@app.command()
def context(
    query: str = typer.Argument(..., help="Question to build context for"),
    notes: Path = typer.Option(..., "--notes", "-n", exists=True, dir_okay=False, help="JSON file of notes"),
    as_json: bool = typer.Option(False, "--json", help="Print the processed context as JSON"),
):
    """Assemble source-isolated context for a question."""
    try:
        items = load_notes(notes)
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Error:[/red] Could not read notes: {e}")
        raise typer.Exit(1)

    processed = create_context_processor().process_for_query(items, query)

    if as_json:
        console.print_json(processed.model_dump_json())
        return

    console.print(processed.summary_text)
    if processed.is_empty:
        return

    table = Table(title=f"Sources ({len(processed.sources)})")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Type", style="dim")
    table.add_column("Chunks", justify="right")
    for item in processed.sources:
        count = sum(1 for chunk in processed.chunks if chunk.source_id == item.id)
        table.add_row(item.id, item.title, item.content_type, str(count))
    console.print(table)
    console.print(f"[dim]{processed.total_length} characters, fingerprint {processed.fingerprint[:12]}[/dim]")
    console.print(processed.context_text, markup=False)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    notes: Path = typer.Option(..., "--notes", "-n", exists=True, dir_okay=False, help="JSON file of notes"),
):
    """Search notes and show the best-matching snippets."""
    try:
        items = load_notes(notes)
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Error:[/red] Could not read notes: {e}")
        raise typer.Exit(1)

    hits = create_context_processor().search(items, query)
    if not hits:
        console.print(f"No relevant notes for: {query}")
        return

    table = Table(title=f"Results for '{query}'")
    table.add_column("Title", style="cyan")
    table.add_column("Type", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Snippet")
    for hit in hits:
        table.add_row(hit.title, hit.source_type, f"{hit.relevance:.3f}", hit.snippet)
    console.print(table)


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """ModNote - turn sources into text and build grounded context from notes."""
    log_level = "DEBUG" if debug else get_settings().log_level
    setup_logging(log_level=log_level)


if __name__ == "__main__":
    app()
