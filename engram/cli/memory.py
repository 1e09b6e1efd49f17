"""Memory management CLI commands."""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from engram.exceptions import MemoryStoreError
from engram.memory import AutoCapture, MemoryEntry, MemoryStore, open_store

console = Console()

memory_app = typer.Typer(help="Store, search, and manage long-term memories")

DB_OPTION_HELP = "Memory database path (overrides config)"


@contextmanager
def _store(db: Optional[Path]) -> Iterator[MemoryStore]:
    """Open the store for one command, turning memory errors into exit code 1."""
    store = None
    try:
        store = open_store(db)
        yield store
    except MemoryStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        if store is not None:
            store.close()


def _entries_table(title: str, entries: List[MemoryEntry], scores: Optional[List[float]] = None) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Category", style="green")
    if scores is not None:
        table.add_column("Score", justify="right")
    table.add_column("Importance", justify="right", style="dim")
    table.add_column("Text")
    table.add_column("Created", style="dim")

    for i, entry in enumerate(entries):
        created = entry.created_at.strftime("%Y-%m-%d %H:%M") if entry.created_at else "-"
        row = [entry.id, entry.category]
        if scores is not None:
            row.append(f"{scores[i]:.3f}")
        row.extend([f"{entry.importance:.2f}", entry.text, created])
        table.add_row(*row)

    return table


@memory_app.command("store")
def memory_store(
    text: str = typer.Argument(help="Text to remember"),
    category: str = typer.Option("other", "--category", "-c", help="preference, decision, entity, fact, other"),
    importance: float = typer.Option(0.5, "--importance", "-i", min=0.0, max=1.0, help="Importance 0-1"),
    session: Optional[str] = typer.Option(None, "--session", help="Session key to attach"),
    db: Optional[Path] = typer.Option(None, "--db", help=DB_OPTION_HELP),
):
    """Store a memory.

    Examples:
        engram memory store "User prefers dark roast coffee" --category preference
    """
    with _store(db) as store:
        entry = store.store(text, importance, category, session)
        console.print(f"[green]Stored memory {entry.id}[/green] [dim]({entry.category})[/dim]")


@memory_app.command("search")
def memory_search(
    query: str = typer.Argument(help="Natural language query"),
    limit: int = typer.Option(0, "--limit", "-n", help="Maximum results (0 = configured default)"),
    min_score: float = typer.Option(0.0, "--min-score", help="Minimum similarity (0 = configured default)"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only this category"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    db: Optional[Path] = typer.Option(None, "--db", help=DB_OPTION_HELP),
):
    """Search memories by semantic similarity.

    Examples:
        engram memory search "what coffee does the user like"
        engram memory search "deadlines" --category decision --json
    """
    with _store(db) as store:
        results = store.search(query, limit, min_score, category)

        if as_json:
            # Use plain print to avoid Rich wrapping that breaks JSON
            print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
            return

        if not results:
            console.print("[yellow]No relevant memories found[/yellow]")
            return

        console.print(
            _entries_table(
                f"Memories matching '{query}' ({len(results)} found)",
                [r.entry for r in results],
                [r.score for r in results],
            )
        )


@memory_app.command("list")
def memory_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of results"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only this category"),
    session: Optional[str] = typer.Option(None, "--session", help="Only this session key"),
    db: Optional[Path] = typer.Option(None, "--db", help=DB_OPTION_HELP),
):
    """List recent memories, newest first."""
    with _store(db) as store:
        entries = store.list_recent(limit=limit, category=category, session_key=session)
        if not entries:
            console.print("[yellow]No memories stored[/yellow]")
            return
        console.print(_entries_table(f"Recent memories ({len(entries)} shown)", entries))


@memory_app.command("delete")
def memory_delete(
    memory_id: str = typer.Argument(help="Memory ID to delete"),
    db: Optional[Path] = typer.Option(None, "--db", help=DB_OPTION_HELP),
):
    """Delete a memory by ID."""
    with _store(db) as store:
        store.delete(memory_id)
        console.print(f"[green]Deleted memory {memory_id}[/green]")


@memory_app.command("count")
def memory_count(
    db: Optional[Path] = typer.Option(None, "--db", help=DB_OPTION_HELP),
):
    """Show how many memories are stored."""
    with _store(db) as store:
        console.print(str(store.count()))


@memory_app.command("capture")
def memory_capture(
    text: str = typer.Argument(help="Conversation text to consider"),
    session: Optional[str] = typer.Option(None, "--session", help="Session key to attach"),
    db: Optional[Path] = typer.Option(None, "--db", help=DB_OPTION_HELP),
):
    """Store text only if the auto-capture rules consider it worth remembering."""
    with _store(db) as store:
        entry = AutoCapture(store, enabled=True).capture(text, session)
        if entry is None:
            console.print("[yellow]Not captured[/yellow]")
            return
        console.print(
            f"[green]Captured memory {entry.id}[/green] [dim]({entry.category}, importance {entry.importance:.2f})[/dim]"
        )


@memory_app.command("check")
def memory_check(
    text: str = typer.Argument(help="Conversation text to classify"),
):
    """Show how auto-capture would treat text, without storing anything."""
    # The rules never touch the store, so no database is opened here
    capture = AutoCapture(None, enabled=True)
    console.print(f"capture: {capture.should_capture(text)}")
    console.print(f"category: {capture.detect_category(text).value}")
    console.print(f"importance: {capture.importance(text):.2f}")
