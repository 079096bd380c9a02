"""Layout of a materialized book directory.

All paths here are POSIX paths relative to a rendition directory; they
double as relative URLs once quoted.
"""

import posixpath
from dataclasses import dataclass, field
from urllib.parse import quote

from rib.models.book import ParsedBook, SpineItem

CONTENTS_DIR = "contents"
READ_DIR = "read"
INDEX_PAGE = "index.xhtml"
INDEX_STYLES = "index_styles.css"
NAVIGATION_STYLES = "navigation_styles.css"
NAVIGATION_SCRIPT = "navigation_script.js"
XHTML_SUFFIXES = (".xhtml", ".xht")


def relative_url(target: str, from_page: str, fragment: str | None = None) -> str:
    """Quoted URL of ``target`` as seen from the page at ``from_page``."""
    start = posixpath.dirname(from_page) or "."
    url = quote(posixpath.relpath(target, start), safe="/")
    if fragment:
        url = f"{url}#{fragment}"
    return url


@dataclass
class RenditionLayout:
    """Where each part of a book lives inside a rendition directory."""

    remap: dict[str, str] = field(default_factory=dict)  # archive href -> book path
    wrappers: dict[str, str] = field(default_factory=dict)  # spine href -> wrapper page
    include_index: bool = True
    inject_navigation: bool = True

    @classmethod
    def for_book(
        cls, book: ParsedBook, include_index: bool = True, inject_navigation: bool = True
    ) -> "RenditionLayout":
        spine_hrefs = {item.href for item in book.spine if item.is_xhtml}
        remap = {}
        for resource in book.resources:
            path = resource.href
            # Browsers only parse .xhtml/.xht files from disk as XHTML
            if path in spine_hrefs and not path.lower().endswith(XHTML_SUFFIXES):
                path = f"{path}.xhtml"
            remap[resource.href] = posixpath.join(CONTENTS_DIR, path)
        wrappers = {}
        if inject_navigation:
            for item in book.spine:
                wrappers.setdefault(item.href, cls.wrapper_page(item))
        return cls(
            remap=remap,
            wrappers=wrappers,
            include_index=include_index,
            inject_navigation=inject_navigation,
        )

    @staticmethod
    def wrapper_page(item: SpineItem) -> str:
        return posixpath.join(READ_DIR, f"{item.order_index:04d}.xhtml")

    @classmethod
    def raw_for_book(cls, book: ParsedBook) -> "RenditionLayout":
        """Archive paths kept as they are, with no index or wrapper pages."""
        return cls(
            remap={resource.href: resource.href for resource in book.resources},
            include_index=False,
            inject_navigation=False,
        )

    def content_path(self, href: str) -> str:
        return self.remap.get(href, posixpath.join(CONTENTS_DIR, href))

    def page_for(self, item: SpineItem) -> str:
        """Page a reader opens to view the spine item."""
        if self.inject_navigation:
            return self.wrappers.get(item.href, self.wrapper_page(item))
        return self.content_path(item.href)
