"""Open command implementation."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from rib.browser import open_in_browser
from rib.cache.manager import LibraryCacheManager
from rib.cache.models import CacheEntry, Rendition, SourceIdentity
from rib.config import Config
from rib.core.epub_parser import EpubParser, normalize_href
from rib.core.materializer import BookMaterializer, RenditionOptions
from rib.core.reconciler import reconcile_or_degrade
from rib.errors import ArchiveError, BrowserError, ConfigError, InvalidMarkup
from rib.models.book import BookMetadata

log = logging.getLogger(__name__)


@dataclass
class OpenedBook:
    """Outcome of opening one book."""

    path: Path
    entry: CacheEntry
    book_dir: Path
    renditions: list[Rendition] = field(default_factory=list)  # In the order asked for
    from_cache: bool = False
    toc_degraded: bool = False

    def rendition_dir(self, rendition: Rendition) -> Path:
        return self.book_dir / rendition.directory


def book_id_for(metadata: BookMetadata, identity: SourceIdentity) -> str:
    """Library id of a book: its identifier, else a prefix of its fingerprint."""
    if metadata.identifier and metadata.identifier.strip():
        return metadata.identifier.strip()
    return identity.fingerprint[:16]


def rendition_options(
    config: Config,
    stylesheets: list[str] | None = None,
    raw: bool = False,
    include_index: bool | None = None,
    inject_navigation: bool | None = None,
) -> list[RenditionOptions]:
    """Renditions to open each book in, from the configuration and run options.

    Raises:
        ConfigError: If a stylesheet is unknown, or raw is combined with
            stylesheets.
    """
    if raw:
        if stylesheets:
            raise ConfigError("--raw can't be combined with --stylesheet")
        return [RenditionOptions.raw_book()]

    if include_index is None:
        include_index = config.include_index
    if inject_navigation is None:
        inject_navigation = config.inject_navigation
    options = []
    for name in dict.fromkeys(stylesheets or [None]):
        style_name, style = config.stylesheet(name)
        options.append(
            RenditionOptions(
                style_name,
                style,
                include_index=include_index,
                inject_navigation=inject_navigation,
            )
        )
    return options


def resolve_start(rendition: Rendition, start: str | None) -> tuple[str, str | None]:
    """Page and fragment to open for an optional ``HREF[#FRAGMENT]``."""
    if not start:
        return rendition.start_page, None
    href, _, fragment = start.partition("#")
    fragment = fragment or None
    if not href:
        return rendition.first_page or rendition.start_page, fragment
    page = rendition.pages.get(normalize_href(href))
    if page is None:
        log.warning("No spine item %s; opening the start page", href)
        return rendition.start_page, None
    return page, fragment


def open_book(
    path: Path,
    cache: LibraryCacheManager,
    renditions: list[RenditionOptions],
    force: bool = False,
) -> OpenedBook:
    """Bring one book into the library, reusing cached renditions if possible.

    Raises:
        ArchiveError: If the file can't be read as an EPUB.
        InvalidMarkup: If one of its spine documents is malformed.
    """
    try:
        identity = cache.identify(path)
    except OSError as e:
        raise ArchiveError(str(path), str(e)) from e

    entry = cache.lookup(identity)
    missing = [
        options
        for options in renditions
        if force or entry is None or entry.rendition(options.key) is None
    ]
    if entry is not None and not missing:
        log.debug("Cache hit for %s (%s)", path, entry.book_id)
        entry = cache.touch(
            entry.book_id,
            source_identity=identity,
            stylesheet_id=renditions[-1].stylesheet_id,
        )
        return OpenedBook(
            path=path,
            entry=entry,
            book_dir=cache.book_path(entry),
            renditions=[entry.renditions[options.key] for options in renditions],
            from_cache=True,
        )

    parsed = EpubParser(path).parse()
    tree = reconcile_or_degrade(parsed.spine, parsed.toc, parsed.metadata.title)
    book_id = entry.book_id if entry is not None else book_id_for(parsed.metadata, identity)
    for options in missing:
        log.info(
            "Materializing %s with stylesheet %s", parsed.metadata.title, options.stylesheet_id
        )
        entry = cache.materialize_and_insert(
            book_id,
            BookMaterializer(parsed, tree, options),
            title=parsed.metadata.title,
            source_identity=identity,
        )
    return OpenedBook(
        path=path,
        entry=entry,
        book_dir=cache.book_path(entry),
        renditions=[entry.renditions[options.key] for options in renditions],
        toc_degraded=tree.toc_degraded,
    )


def execute_open(
    paths: list[Path],
    config: Config,
    library_dir: Path,
    console: Console,
    stylesheets: list[str] | None = None,
    raw: bool = False,
    include_index: bool | None = None,
    inject_navigation: bool | None = None,
    browser: str | None = None,
    start: str | None = None,
    launch: bool = True,
    force: bool = False,
) -> int:
    """Open every book in ``paths``; one failing book doesn't stop the rest.

    Each book is opened once per stylesheet.

    Returns:
        Number of books that failed.

    Raises:
        ConfigError: If a stylesheet is unknown, before anything is opened.
    """
    renditions = rendition_options(config, stylesheets, raw, include_index, inject_navigation)
    cache = LibraryCacheManager(
        library_dir,
        max_cache_books=config.max_cache_books,
        max_cache_bytes=config.max_cache_bytes,
    )
    command = browser or config.default_browser

    failures = 0
    for path in paths:
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"Opening {path.name}...", total=None)
                opened = open_book(path, cache, renditions, force=force)
        except (ArchiveError, InvalidMarkup) as e:
            console.print(f"[red]Error: {e}[/]")
            failures += 1
            continue

        entry = opened.entry
        note = "cached" if opened.from_cache else "materialized"
        console.print(f"[green]{entry.book.title}[/] [dim]({note}, {entry.directory})[/]")
        if opened.toc_degraded:
            console.print(
                "[yellow]Table of contents didn't match the spine; "
                "using spine order for navigation.[/]"
            )

        for rendition in opened.renditions:
            page, fragment = resolve_start(rendition, start)
            target = opened.rendition_dir(rendition) / page
            if not launch:
                console.print(f"[dim]{target}[/]")
                continue
            try:
                uri = open_in_browser(target, fragment, command)
            except BrowserError as e:
                console.print(f"[red]Error: {e}[/]")
                failures += 1
                break
            log.debug("Opened %s", uri)

    return failures
