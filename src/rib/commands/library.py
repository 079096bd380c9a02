"""Library command implementations."""

from rich.console import Console
from rich.table import Table

from rib.cache.manager import LibraryCacheManager


def format_bytes(size: int) -> str:
    """Human-readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1000 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{size} B"


def display_library(cache: LibraryCacheManager, console: Console) -> None:
    """Print every cached book, most recently opened first."""
    entries = cache.entries()
    if not entries:
        console.print("[yellow]Library is empty.[/]")
        return

    table = Table(title="Library", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="white")
    table.add_column("Id", style="dim")
    table.add_column("Size", justify="right", style="green")
    table.add_column("Renditions")
    table.add_column("Last opened", style="dim")

    for i, entry in enumerate(entries, start=1):
        table.add_row(
            str(i),
            entry.book.title,
            entry.book_id,
            format_bytes(entry.byte_size),
            ", ".join(sorted(r.stylesheet_id for r in entry.renditions.values())),
            entry.book.last_access_time.astimezone().strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    limits = []
    if cache.max_cache_books:
        limits.append(f"{cache.max_cache_books} books")
    if cache.max_cache_bytes:
        limits.append(format_bytes(cache.max_cache_bytes))
    summary = f"{len(entries)} books, {format_bytes(cache.total_bytes())}"
    if limits:
        summary += f" [dim](limit: {', '.join(limits)})[/]"
    console.print(summary)


def execute_clear(
    cache: LibraryCacheManager,
    console: Console,
    book_ids: list[str],
    everything: bool = False,
    max_books: int | None = None,
    max_bytes: int | None = None,
) -> int:
    """Remove books from the library.

    Returns: number of ids that didn't name a cached book
    """
    known = {entry.book_id for entry in cache.entries()}
    missing = [book_id for book_id in book_ids if book_id not in known]
    for book_id in missing:
        console.print(f"[red]Error: no cached book with id {book_id}[/]")

    removed = cache.clear(
        [book_id for book_id in book_ids if book_id in known],
        max_books=max_books,
        max_bytes=max_bytes,
        everything=everything,
    )
    if removed:
        console.print(f"[green]Removed {len(removed)} book(s) from the library.[/]")
    else:
        console.print("[dim]Nothing to remove.[/]")
    return len(missing)
