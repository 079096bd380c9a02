"""Main CLI application."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from rib import __version__
from rib.cache.manager import LibraryCacheManager
from rib.commands.library import display_library, execute_clear
from rib.commands.open import execute_open
from rib.config import Config, default_config_path, default_library_path, load_config
from rib.errors import RibError

app = typer.Typer(
    name="rib",
    help="Read EPUB books in the browser from a bounded local library.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

# Library subcommand group
library_app = typer.Typer(help="Library management commands", no_args_is_help=True)
app.add_typer(library_app, name="library")

# Config subcommand group
config_app = typer.Typer(help="Configuration commands", no_args_is_help=True)
app.add_typer(config_app, name="config")


@dataclass
class AppState:
    """Paths chosen on the command line, shared by every subcommand."""

    config_path: Path
    library_dir: Path

    def load_config(self) -> Config:
        return load_config(self.config_path)

    def cache(self, config: Config) -> LibraryCacheManager:
        return LibraryCacheManager(
            self.library_dir,
            max_cache_books=config.max_cache_books,
            max_cache_bytes=config.max_cache_bytes,
        )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"rib {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            help="Configuration file (default: config.toml in the app directory)",
            dir_okay=False,
        ),
    ] = None,
    library: Annotated[
        Optional[Path],
        typer.Option(
            "--library",
            help="Library directory (default: library/ in the app directory)",
            file_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debugging details"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show the version and exit",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Read EPUB books in the browser from a bounded local library."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = AppState(
        config_path=config or default_config_path(),
        library_dir=library or default_library_path(),
    )


@app.command("open")
def open_command(
    ctx: typer.Context,
    paths: Annotated[
        list[Path],
        typer.Argument(
            help="EPUB files to open",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    stylesheets: Annotated[
        Optional[list[str]],
        typer.Option(
            "--stylesheet",
            "-S",
            help="Stylesheet from the configuration; repeat to open several renditions "
            "(default: default_stylesheet)",
        ),
    ] = None,
    raw: Annotated[
        bool,
        typer.Option(
            "--raw",
            help="Open the book as extracted, without index, navigation or styling",
        ),
    ] = False,
    include_index: Annotated[
        Optional[bool],
        typer.Option(
            "--include-index/--no-include-index",
            help="Generate the index page (default: include_index)",
            show_default=False,
        ),
    ] = None,
    inject_navigation: Annotated[
        Optional[bool],
        typer.Option(
            "--inject-navigation/--no-inject-navigation",
            help="Add wrapper pages and navigation links (default: inject_navigation)",
            show_default=False,
        ),
    ] = None,
    browser: Annotated[
        Optional[str],
        typer.Option(
            "--browser",
            "-b",
            help="Command to open books with (default: default_browser, else the system browser)",
        ),
    ] = None,
    start: Annotated[
        Optional[str],
        typer.Option(
            "--start",
            "-s",
            help="Section to open, as HREF or HREF#FRAGMENT (single book only)",
        ),
    ] = None,
    no_browser: Annotated[
        bool,
        typer.Option(
            "--no-browser",
            help="Only add the books to the library and print their paths",
        ),
    ] = False,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Materialize again even if the library has the book",
        ),
    ] = False,
) -> None:
    """Open EPUB books in the browser."""
    if start and len(paths) > 1:
        console.print("[red]Error: --start can only be used with a single book[/]")
        raise typer.Exit(1)

    state: AppState = ctx.obj
    try:
        failures = execute_open(
            paths,
            state.load_config(),
            state.library_dir,
            console,
            stylesheets=stylesheets,
            raw=raw,
            include_index=include_index,
            inject_navigation=inject_navigation,
            browser=browser,
            start=start,
            launch=not no_browser,
            force=force,
        )
    except RibError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)

    if failures:
        console.print(f"[red]{failures} of {len(paths)} book(s) couldn't be opened[/]")
        raise typer.Exit(1)


@library_app.command("list")
def library_list(ctx: typer.Context) -> None:
    """List cached books, most recently opened first."""
    state: AppState = ctx.obj
    try:
        display_library(state.cache(state.load_config()), console)
    except RibError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


@library_app.command("path")
def library_path(ctx: typer.Context) -> None:
    """Print the library directory."""
    state: AppState = ctx.obj
    console.print(str(state.library_dir), soft_wrap=True)


@library_app.command("clear")
def library_clear(
    ctx: typer.Context,
    book_ids: Annotated[
        Optional[list[str]],
        typer.Argument(help="Ids of the books to remove (see 'rib library list')"),
    ] = None,
    everything: Annotated[
        bool,
        typer.Option("--all", help="Remove every book"),
    ] = False,
    max_books: Annotated[
        Optional[int],
        typer.Option("--max-books", help="Remove least recently opened books down to N", min=1),
    ] = None,
    max_bytes: Annotated[
        Optional[int],
        typer.Option(
            "--max-bytes", help="Remove least recently opened books down to N bytes", min=1
        ),
    ] = None,
) -> None:
    """Remove books from the library."""
    book_ids = book_ids or []
    if not (book_ids or everything or max_books or max_bytes):
        console.print("[red]Error: give book ids, --all, --max-books or --max-bytes[/]")
        raise typer.Exit(1)

    state: AppState = ctx.obj
    try:
        missing = execute_clear(
            state.cache(state.load_config()),
            console,
            book_ids,
            everything=everything,
            max_books=max_books,
            max_bytes=max_bytes,
        )
    except RibError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)

    if missing:
        raise typer.Exit(1)


@config_app.command("path")
def config_path(ctx: typer.Context) -> None:
    """Print the configuration file location."""
    state: AppState = ctx.obj
    console.print(str(state.config_path), soft_wrap=True)


if __name__ == "__main__":
    app()
