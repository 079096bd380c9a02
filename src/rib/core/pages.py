"""Generate the index page and the wrapper pages of a materialized book."""

from pathlib import Path

from lxml import etree
from lxml.builder import ElementMaker

from rib.core.layout import (
    INDEX_PAGE,
    INDEX_STYLES,
    NAVIGATION_SCRIPT,
    NAVIGATION_STYLES,
    RenditionLayout,
    relative_url,
)
from rib.core.synchronizer import FRAME_ID
from rib.models.book import BookMetadata, SpineItem
from rib.models.navigation import NavGroup, NavigationTree, NavNode

XHTML_NS = "http://www.w3.org/1999/xhtml"

E = ElementMaker(namespace=XHTML_NS, nsmap={None: XHTML_NS})


def _serialize(root) -> bytes:
    return etree.tostring(
        root,
        encoding="utf-8",
        xml_declaration=True,
        doctype="<!DOCTYPE html>",
        pretty_print=True,
    )


def _head(title: str, stylesheet: str):
    return E.head(
        E.meta(charset="utf-8"),
        E.title(title),
        E.link(rel="stylesheet", href=stylesheet),
    )


class PageGenerator:
    """Builds the navigation pages for one book rendition."""

    def __init__(self, metadata: BookMetadata, tree: NavigationTree, layout: RenditionLayout):
        self.metadata = metadata
        self.tree = tree
        self.layout = layout

    def _link(self, item: SpineItem, fragment: str | None = None) -> str:
        return relative_url(self.layout.page_for(item), INDEX_PAGE, fragment)

    # Index page

    def build_index_page(self, cover_href: str | None = None) -> bytes:
        """Index page: TOC tree next to the raw spine listing."""
        metadata = self.metadata
        body = E.body(E.h1(metadata.title))
        if metadata.authors:
            body.append(E.h3(" & ".join(metadata.authors)))
        if cover_href and cover_href in self.layout.remap:
            body.append(
                E.img(
                    alt="book cover image",
                    src=relative_url(self.layout.content_path(cover_href), INDEX_PAGE),
                )
            )
        body.append(E.p(E.a("Start", href=self._link(self.tree.first_linear))))
        body.append(E.p(E.a("End", href=self._link(self.tree.last_linear))))

        toc_cell = E.td({"id": "toc"})
        if self.tree.roots:
            toc_cell.append(self._toc_list(self.tree.roots))
        elif self.tree.toc_degraded:
            toc_cell.append(E.p("The table of contents couldn't be used; see the spine listing."))
        else:
            toc_cell.append(E.br())

        body.append(
            E.table(
                E.tr(E.th("Spine"), E.th("Table of Contents")),
                E.tr(E.td({"id": "spine"}, self._spine_list()), toc_cell),
            )
        )
        root = E.html(
            _head(f"rib | {metadata.title} | Index", INDEX_STYLES),
            body,
            lang=metadata.language or "en",
        )
        return _serialize(root)

    def _spine_list(self):
        listing = E.ol()
        for item in self.tree.spine:
            label = item.title or item.href
            entry = E.li(E.a(label, href=self._link(item)))
            if not item.is_linear:
                entry.set("class", "nonlinear")
                entry.append(E.span(" (non-linear)"))
            listing.append(entry)
        return listing

    def _toc_list(self, nodes: list[NavNode]):
        listing = E.ul()
        for node in nodes:
            if node.spine_index is None:
                entry = E.li(E.span(node.label))
            else:
                item = self.tree.spine[node.spine_index]
                entry = E.li(E.a(node.label, href=self._link(item, node.target_fragment)))
                if node.is_nonlinear:
                    entry.set("class", "nonlinear")
            if isinstance(node, NavGroup) and node.children:
                entry.append(self._toc_list(node.children))
            listing.append(entry)
        return listing

    # Wrapper page

    def build_wrapper_page(self, item: SpineItem | None = None) -> bytes:
        """Shell page framing one spine document.

        Defaults to the first linear spine item.
        """
        item = item or self.tree.first_linear
        page = self.layout.wrapper_page(item)
        content = self.layout.content_path(item.href)
        title = self.metadata.title
        if item.title and item.title != item.href:
            title = f"{title} | {item.title}"
        root = E.html(
            _head(f"rib | {title}", relative_url(NAVIGATION_STYLES, page)),
            E.body(
                E.iframe({"id": FRAME_ID, "src": relative_url(content, page)}),
                E.script({"src": relative_url(NAVIGATION_SCRIPT, page)}),
            ),
            lang=self.metadata.language or "en",
        )
        # Empty iframe/script must not self-close when parsed as HTML
        for element in root.iter(f"{{{XHTML_NS}}}iframe", f"{{{XHTML_NS}}}script"):
            element.text = ""
        return _serialize(root)

    def write_pages(self, book_dir: Path, cover_href: str | None = None) -> list[Path]:
        """Write the index page and every wrapper page into ``book_dir``."""
        written = []
        if self.layout.include_index:
            path = book_dir / INDEX_PAGE
            path.write_bytes(self.build_index_page(cover_href))
            written.append(path)
        if self.layout.inject_navigation:
            seen = set()
            for item in self.tree.spine:
                page = self.layout.page_for(item)
                if page in seen:
                    continue
                seen.add(page)
                path = book_dir / page
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(self.build_wrapper_page(item))
                written.append(path)
        return written
