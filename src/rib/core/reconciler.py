"""Reconcile a book's table of contents against its spine.

The spine is the only source of truth for reading order. Every TOC entry
must resolve into it by href (fragment stripped, case-sensitive), and the
entries that resolve to *linear* spine items must appear in non-decreasing
spine order. Entries that resolve to nonlinear items (footnotes, colophons
and the like) are kept in the tree but skipped by the ordering check, so
they may sit anywhere in the TOC.
"""

import logging

from rib.errors import InvalidToc
from rib.models.book import SpineItem, TocEntry
from rib.models.navigation import NavGroup, NavigationTree, NavLeaf, NavNode

log = logging.getLogger(__name__)


class _OrderCheck:
    """Tracks the last linear position seen during the TOC walk."""

    def __init__(self) -> None:
        self.last_index = -1
        self.last_entry: TocEntry | None = None

    def visit(self, entry: TocEntry, item: SpineItem) -> None:
        if not item.is_linear:
            return
        if item.order_index < self.last_index:
            previous = self.last_entry
            raise InvalidToc(
                f"TOC entry '{entry.label}' ({entry.href}) points before "
                f"'{previous.label}' ({previous.href}) in reading order.",
                href=entry.href,
                label=entry.label,
            )
        self.last_index = item.order_index
        self.last_entry = entry


def _index_spine(spine: list[SpineItem]) -> dict[str, SpineItem]:
    by_href: dict[str, SpineItem] = {}
    for position, item in enumerate(spine):
        if item.order_index != position:
            raise ValueError(
                f"Spine item {item.href} has order index {item.order_index}, expected {position}"
            )
        # A document listed twice resolves to its first reading position
        by_href.setdefault(item.href, item)
    return by_href


def _resolve(
    entry: TocEntry, by_href: dict[str, SpineItem], check: _OrderCheck
) -> NavNode:
    item: SpineItem | None = None
    if entry.target_href:
        item = by_href.get(entry.target_href)
        if item is None:
            raise InvalidToc(
                f"TOC entry '{entry.label}' points at {entry.href}, which isn't in the spine.",
                href=entry.href,
                label=entry.label,
            )
        check.visit(entry, item)
    elif not entry.children:
        raise InvalidToc(
            f"TOC entry '{entry.label}' has no target.",
            href=entry.href,
            label=entry.label,
        )

    fields = {
        "label": entry.label,
        "target_href": entry.target_href,
        "target_fragment": entry.target_fragment,
        "spine_index": item.order_index if item else None,
        "linear": item.is_linear if item else True,
    }
    if not entry.children:
        return NavLeaf(**fields)
    return NavGroup(
        **fields,
        children=[_resolve(child, by_href, check) for child in entry.children],
    )


def reconcile(spine: list[SpineItem], toc: list[TocEntry]) -> NavigationTree:
    """Build the validated navigation tree.

    Raises:
        InvalidToc: If an entry doesn't resolve into the spine, or linear
            entries go backwards in reading order.
    """
    if not any(item.is_linear for item in spine):
        raise InvalidToc("Spine has no linear items to navigate.")

    by_href = _index_spine(spine)
    if not toc:
        return NavigationTree.spine_only(spine)

    check = _OrderCheck()
    roots = [_resolve(entry, by_href, check) for entry in toc]
    return NavigationTree(spine=list(spine), roots=roots)


def reconcile_or_degrade(
    spine: list[SpineItem], toc: list[TocEntry], book_label: str = "book"
) -> NavigationTree:
    """Reconcile, falling back to spine-only navigation on an invalid TOC."""
    try:
        return reconcile(spine, toc)
    except InvalidToc as e:
        if not any(item.is_linear for item in spine):
            raise
        log.warning("%s: %s Using spine order only.", book_label, e)
        return NavigationTree.spine_only(spine, degraded=True)
