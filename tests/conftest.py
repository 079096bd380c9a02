from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pytest

from rib.models.book import SpineItem, TocEntry

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""


def chapter_xhtml(title: str, body: str = "", head: str = "") -> str:
    return f"""<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head><title>{title}</title>{head}</head>
  <body>
    <h1 id="top">{title}</h1>
    {body}
  </body>
</html>
"""


@dataclass
class Chapter:
    id: str
    href: str
    title: str
    body: str = ""
    linear: bool = True
    head: str = ""
    raw: str | None = None  # Used verbatim instead of the generated document

    def content(self) -> str:
        return self.raw if self.raw is not None else chapter_xhtml(self.title, self.body, self.head)


@dataclass
class TocPoint:
    label: str
    href: str
    children: list["TocPoint"] = field(default_factory=list)


def _nav_points(points: list[TocPoint], counter: list[int]) -> str:
    parts = []
    for point in points:
        counter[0] += 1
        number = counter[0]
        children = _nav_points(point.children, counter)
        parts.append(
            f'<navPoint id="np{number}" playOrder="{number}">'
            f"<navLabel><text>{point.label}</text></navLabel>"
            f'<content src="{point.href}"/>{children}</navPoint>'
        )
    return "".join(parts)


def _nav_items(points: list[TocPoint]) -> str:
    items = []
    for point in points:
        children = f"<ol>{_nav_items(point.children)}</ol>" if point.children else ""
        items.append(f'<li><a href="{point.href}">{point.label}</a>{children}</li>')
    return "".join(items)


def write_epub(
    path: Path,
    chapters: list[Chapter],
    toc: list[TocPoint],
    title: str | None = "Sample Book",
    identifier: str = "urn:uuid:sample-book",
    authors: tuple[str, ...] = ("Sample Author",),
    extra_files: dict[str, tuple[str, bytes]] | None = None,
) -> Path:
    """Write a minimal EPUB 3 (with an NCX too) using the zip module."""
    extra_files = extra_files or {}
    title_xml = f"<dc:title>{title}</dc:title>" if title is not None else ""
    creators = "".join(f"<dc:creator>{author}</dc:creator>" for author in authors)
    manifest = [
        '<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>',
        '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>',
    ]
    manifest += [
        f'<item id="{c.id}" href="{c.href}" media-type="application/xhtml+xml"/>'
        for c in chapters
    ]
    manifest += [
        f'<item id="extra{i}" href="{href}" media-type="{media_type}"/>'
        for i, (href, (media_type, _)) in enumerate(extra_files.items())
    ]
    nonlinear = ' linear="no"'
    spine = "".join(
        f'<itemref idref="{c.id}"{"" if c.linear else nonlinear}/>' for c in chapters
    )
    opf = f"""<?xml version="1.0" encoding="UTF-8"?>
<package version="3.0" unique-identifier="BookId" xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    {title_xml}{creators}
    <dc:identifier id="BookId">{identifier}</dc:identifier>
    <dc:language>en</dc:language>
  </metadata>
  <manifest>{"".join(manifest)}</manifest>
  <spine toc="ncx">{spine}</spine>
</package>
"""
    ncx = f"""<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head><meta name="dtb:uid" content="{identifier}"/></head>
  <docTitle><text>{title}</text></docTitle>
  <navMap>{_nav_points(toc, [0])}</navMap>
</ncx>
"""
    nav = f"""<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
  <head><title>Contents</title></head>
  <body><nav epub:type="toc" id="toc"><ol>{_nav_items(toc)}</ol></nav></body>
</html>
"""
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
        zf.writestr("META-INF/container.xml", CONTAINER_XML)
        zf.writestr("OEBPS/content.opf", opf)
        zf.writestr("OEBPS/toc.ncx", ncx)
        zf.writestr("OEBPS/nav.xhtml", nav)
        for chapter in chapters:
            zf.writestr(f"OEBPS/{chapter.href}", chapter.content())
        for href, (_, data) in extra_files.items():
            zf.writestr(f"OEBPS/{href}", data)
    return path


def sample_chapters() -> list[Chapter]:
    return [
        Chapter(
            "ch1",
            "text/ch1.xhtml",
            "Chapter One",
            '<p>First.</p><p><img src="../images/dot.png" alt="dot"/></p>'
            '<p><a href="ch2.xhtml#part">On to two</a></p>',
            head='<link rel="stylesheet" type="text/css" href="../style.css"/>',
        ),
        Chapter("notes", "text/notes.xhtml", "Notes", '<p id="n1">A note.</p>', linear=False),
        Chapter("ch2", "text/ch2.xhtml", "Chapter Two", '<p id="part">Second.</p>'),
    ]


def sample_toc() -> list[TocPoint]:
    return [
        TocPoint("Chapter One", "text/ch1.xhtml"),
        TocPoint("Chapter Two", "text/ch2.xhtml", [TocPoint("Part", "text/ch2.xhtml#part")]),
    ]


SAMPLE_EXTRA_FILES = {
    "style.css": ("text/css", b"p { margin: 0; }\n"),
    "images/dot.png": ("image/png", b"\x89PNG\r\n\x1a\n"),
}


@pytest.fixture
def epub_factory(tmp_path: Path) -> Callable[..., Path]:
    """Build EPUB files under tmp_path; defaults give a small valid book."""

    def build(
        name: str = "sample.epub",
        chapters: list[Chapter] | None = None,
        toc: list[TocPoint] | None = None,
        **kwargs,
    ) -> Path:
        kwargs.setdefault("extra_files", SAMPLE_EXTRA_FILES)
        return write_epub(
            tmp_path / name,
            chapters if chapters is not None else sample_chapters(),
            toc if toc is not None else sample_toc(),
            **kwargs,
        )

    return build


@pytest.fixture
def make_spine() -> Callable[..., list[SpineItem]]:
    """Spine from hrefs; names in ``nonlinear`` are marked linear="no"."""

    def build(*hrefs: str, nonlinear: tuple[str, ...] = ()) -> list[SpineItem]:
        return [
            SpineItem(id=href, href=href, is_linear=href not in nonlinear, order_index=i)
            for i, href in enumerate(hrefs)
        ]

    return build


def toc(*targets: str | tuple) -> list[TocEntry]:
    """TOC from hrefs, or ``(href, [children...])`` tuples for groups."""
    entries = []
    for target in targets:
        if isinstance(target, tuple):
            href, children = target
            entries.append(TocEntry.from_href(f"Label {href}", href, toc(*children)))
        else:
            entries.append(TocEntry.from_href(f"Label {target}", target))
    return entries


@pytest.fixture
def make_toc() -> Callable[..., list[TocEntry]]:
    return toc
