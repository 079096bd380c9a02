"""EPUB parsing using ebooklib."""

import posixpath
import warnings
import zipfile
from pathlib import Path
from urllib.parse import unquote

import ebooklib
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from ebooklib import epub

from rib.errors import ArchiveError
from rib.models.book import (
    SVG_MEDIA_TYPE,
    XHTML_MEDIA_TYPE,
    BookMetadata,
    ParsedBook,
    Resource,
    SpineItem,
    TocEntry,
)

# Suppress XML parsing warnings - EPUB files often use XHTML
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
warnings.filterwarnings("ignore", category=UserWarning, module="ebooklib.epub")
warnings.filterwarnings("ignore", category=FutureWarning, module="ebooklib.epub")

SPINE_MEDIA_TYPES = {XHTML_MEDIA_TYPE, SVG_MEDIA_TYPE}


def normalize_href(href: str) -> str:
    """Unquote and clean a package-relative href, keeping any fragment."""
    path, hash_mark, fragment = href.partition("#")
    path = unquote(path)
    if path:
        path = posixpath.normpath(path)
    return f"{path}{hash_mark}{fragment}"


def is_contained(href: str) -> bool:
    """Check that a normalized path stays inside the archive."""
    return bool(href) and not href.startswith(("/", "../")) and href != ".."


class EpubParser:
    """Parse EPUB files and extract structure."""

    def __init__(self, epub_path: Path):
        self.path = epub_path
        try:
            self.book = epub.read_epub(str(epub_path))
        except (epub.EpubException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise ArchiveError(str(epub_path), str(e) or type(e).__name__) from e

    def parse(self) -> ParsedBook:
        """Parse the EPUB and return complete structure."""
        resources = self._get_resources()
        toc = self._get_toc()
        return ParsedBook(
            metadata=self._get_metadata(),
            spine=self._get_spine(toc, resources),
            toc=toc,
            resources=resources,
            cover_href=self._get_cover_href(),
        )

    def _fail(self, detail: str) -> ArchiveError:
        return ArchiveError(str(self.path), detail)

    def _get_metadata(self) -> BookMetadata:
        """Extract book metadata."""
        title = self.book.get_metadata("DC", "title")
        authors = self.book.get_metadata("DC", "creator")
        language = self.book.get_metadata("DC", "language")
        identifier = self.book.get_metadata("DC", "identifier")

        if not title or not title[0][0]:
            raise self._fail("Ill-formed EPUB: no title.")

        return BookMetadata(
            title=title[0][0],
            authors=[a[0] for a in authors] if authors else [],
            language=language[0][0] if language else None,
            identifier=identifier[0][0] if identifier else None,
        )

    def _get_resources(self) -> list[Resource]:
        """Collect raw bytes of every manifest item."""
        resources = []
        for item in self.book.get_items():
            href = normalize_href(item.get_name())
            if not is_contained(href):
                raise self._fail(
                    f"Book contains resource {item.get_name()}, which is attempting a zip slip."
                )
            resources.append(
                Resource(
                    href=href,
                    media_type=item.media_type or "application/octet-stream",
                    # Raw manifest bytes; EpubHtml.get_content() rebuilds the head
                    content=item.content or b"",
                )
            )
        return resources

    def _get_toc(self) -> list[TocEntry]:
        """Extract hierarchical table of contents."""
        toc = self.book.toc
        # An empty NCX navMap comes back as a single blank Link
        if not isinstance(toc, list):
            toc = [toc]
        return self._parse_toc_recursive(toc)

    def _parse_toc_recursive(self, toc_items: list) -> list[TocEntry]:
        """Recursively parse TOC structure."""
        entries = []

        for item in toc_items:
            if isinstance(item, tuple):
                # Section with children: (Section, [children])
                section, children = item
                entry = TocEntry.from_href(
                    section.title or "Untitled",
                    normalize_href(getattr(section, "href", "") or ""),
                    self._parse_toc_recursive(children),
                )
            elif isinstance(item, list):
                entries.extend(self._parse_toc_recursive(item))
                continue
            elif not (item.href or item.title):
                continue
            else:
                # Simple link
                entry = TocEntry.from_href(
                    item.title or "Untitled",
                    normalize_href(item.href or ""),
                )
            entries.append(entry)

        return entries

    def _get_spine(
        self, toc: list[TocEntry], resources: list[Resource]
    ) -> list[SpineItem]:
        """Get reading order from spine."""
        toc_titles = self._build_toc_title_map(toc)
        by_href = {resource.href: resource for resource in resources}

        spine = []
        for idref, linear in self.book.spine:
            item = self.book.get_item_with_id(idref)
            if item is None:
                raise self._fail(f"Spine references unknown manifest id {idref}.")
            href = normalize_href(item.get_name())
            if item.media_type not in SPINE_MEDIA_TYPES:
                raise self._fail(
                    f"Ill-formed EPUB: encountered unexpected media type "
                    f"{item.media_type} on spine item {href}."
                )
            content = by_href[href].content if href in by_href else b""
            spine.append(
                SpineItem(
                    id=idref,
                    href=href,
                    is_linear=str(linear).lower() not in ("no", "false"),
                    order_index=len(spine),
                    media_type=item.media_type,
                    title=toc_titles.get(href)
                    or self._extract_title_from_content(content)
                    or href,
                )
            )

        if not any(item.is_linear for item in spine):
            raise self._fail("Ill-formed EPUB: no linear spine items.")
        return spine

    def _get_cover_href(self) -> str | None:
        cover = self.book.get_metadata("OPF", "cover")
        for _, attributes in cover or []:
            item = self.book.get_item_with_id((attributes or {}).get("content", ""))
            if item is not None:
                return normalize_href(item.get_name())
        for item in self.book.get_items_of_type(ebooklib.ITEM_COVER):
            return normalize_href(item.get_name())
        return None

    def _build_toc_title_map(self, toc: list[TocEntry]) -> dict[str, str]:
        """Build a map of file names to TOC titles."""
        title_map: dict[str, str] = {}
        self._collect_toc_titles(toc, title_map)
        return title_map

    def _collect_toc_titles(
        self, toc_items: list[TocEntry], title_map: dict[str, str]
    ) -> None:
        """Recursively collect titles from TOC."""
        for entry in toc_items:
            if entry.target_href and entry.target_href not in title_map:
                title_map[entry.target_href] = entry.label
            self._collect_toc_titles(entry.children, title_map)

    def _extract_title_from_content(self, content: bytes) -> str | None:
        """Try to extract title from HTML content."""
        if not content:
            return None
        soup = BeautifulSoup(content, "lxml")
        # Try h1 first, then h2, then title tag
        for tag in ["h1", "h2", "title"]:
            element = soup.find(tag)
            if element:
                text = element.get_text(" ", strip=True)
                if text:
                    return text
        return None

