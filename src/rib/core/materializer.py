"""Write one rendition of a parsed book into a directory."""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from rib.core.css import index_css, wrapper_css
from rib.core.layout import (
    INDEX_PAGE,
    INDEX_STYLES,
    NAVIGATION_SCRIPT,
    NAVIGATION_STYLES,
    RenditionLayout,
    relative_url,
)
from rib.core.pages import PageGenerator
from rib.core.rewriter import NavigationTargets, SectionRewriter
from rib.core.synchronizer import render_navigation_script
from rib.errors import ArchiveError
from rib.models.book import ParsedBook, SpineItem
from rib.models.navigation import NavigationTree
from rib.models.style import NULL_STYLESHEET, Stylesheet

log = logging.getLogger(__name__)

# Bump when the on-disk rendition format changes
RENDITION_FORMAT = 2

RAW_STYLESHEET_ID = "raw"


def rendition_key(
    style: Stylesheet, include_index: bool, inject_navigation: bool, raw: bool = False
) -> str:
    """Identify the options a rendition was produced with."""
    payload = json.dumps(
        {
            "format": RENDITION_FORMAT,
            "raw": raw,
            "stylesheet": None if raw else style.fingerprint(),
            "include_index": include_index and not raw,
            "inject_navigation": inject_navigation and not raw,
        },
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def directory_size(path: Path) -> int:
    """Total size in bytes of the regular files below ``path``."""
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file() and not p.is_symlink())


@dataclass(frozen=True)
class RenditionOptions:
    """How to render a book: a named stylesheet plus the page options.

    A raw rendition is the archive extracted unchanged; it has no index,
    no navigation and no injected styles.
    """

    stylesheet_id: str
    style: Stylesheet = NULL_STYLESHEET
    include_index: bool = True
    inject_navigation: bool = True
    raw: bool = False

    @classmethod
    def raw_book(cls) -> "RenditionOptions":
        return cls(RAW_STYLESHEET_ID, include_index=False, inject_navigation=False, raw=True)

    @property
    def key(self) -> str:
        return rendition_key(self.style, self.include_index, self.inject_navigation, self.raw)


@dataclass
class ProducedRendition:
    """What the materializer wrote."""

    options: RenditionOptions
    start_page: str
    first_page: str  # Page of the first linear spine item
    pages: dict[str, str] = field(default_factory=dict)  # spine href -> page


class BookMaterializer:
    """Produces one browsable rendition of a book."""

    def __init__(self, book: ParsedBook, tree: NavigationTree, options: RenditionOptions):
        self.book = book
        self.tree = tree
        self.options = options
        if options.raw:
            self.layout = RenditionLayout.raw_for_book(book)
        else:
            self.layout = RenditionLayout.for_book(
                book,
                include_index=options.include_index,
                inject_navigation=options.inject_navigation,
            )
        self.rewriter = SectionRewriter(options.style, self.layout)
        self.pages = PageGenerator(book.metadata, tree, self.layout)

    @property
    def key(self) -> str:
        return self.options.key

    def __call__(self, rendition_dir: Path) -> ProducedRendition:
        return self.produce(rendition_dir)

    def produce(self, rendition_dir: Path) -> ProducedRendition:
        """Write every file of the rendition below ``rendition_dir``.

        Raises:
            InvalidMarkup: If a spine document doesn't parse.
            ArchiveError: If a spine item has no manifest content.
        """
        rendition_dir.mkdir(parents=True, exist_ok=True)
        spine_items: dict[str, SpineItem] = {}
        for item in self.tree.spine:
            spine_items.setdefault(item.href, item)
            if self.book.resource(item.href) is None:
                raise ArchiveError(
                    self.book.metadata.title, f"spine item {item.href} has no manifest entry"
                )

        for resource in self.book.resources:
            dest = rendition_dir / self.layout.content_path(resource.href)
            dest.parent.mkdir(parents=True, exist_ok=True)
            item = spine_items.get(resource.href)
            if item is not None and item.is_xhtml and not self.options.raw:
                content = self.rewriter.rewrite(
                    resource.href, resource.content, self._targets_for(item)
                )
            else:
                content = resource.content
            dest.write_bytes(content)
        log.debug("Wrote %d resources for %s", len(self.book.resources), self.book.metadata.title)

        if self.layout.include_index:
            (rendition_dir / INDEX_STYLES).write_text(
                index_css(self.options.style), encoding="utf-8"
            )
        if self.layout.inject_navigation:
            (rendition_dir / NAVIGATION_STYLES).write_text(
                wrapper_css(self.options.style), encoding="utf-8"
            )
            (rendition_dir / NAVIGATION_SCRIPT).write_text(
                render_navigation_script(), encoding="utf-8"
            )
        self.pages.write_pages(rendition_dir, self.book.cover_href)

        first_page = self.layout.page_for(self.tree.first_linear)
        return ProducedRendition(
            options=self.options,
            start_page=INDEX_PAGE if self.layout.include_index else first_page,
            first_page=first_page,
            pages={href: self.layout.page_for(item) for href, item in spine_items.items()},
        )

    def _targets_for(self, item: SpineItem) -> NavigationTargets | None:
        if not self.layout.inject_navigation:
            return None
        doc_path = self.layout.content_path(item.href)
        previous = self.tree.previous_of(item.order_index)
        following = self.tree.next_of(item.order_index)
        return NavigationTargets(
            previous=relative_url(self.layout.page_for(previous), doc_path) if previous else None,
            next=relative_url(self.layout.page_for(following), doc_path) if following else None,
            index=relative_url(INDEX_PAGE, doc_path) if self.layout.include_index else None,
        )
