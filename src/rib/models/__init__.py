"""Data models."""

from rib.models.book import (
    BookMetadata,
    ParsedBook,
    Resource,
    SpineItem,
    TocEntry,
)
from rib.models.navigation import (
    NavGroup,
    NavigationTree,
    NavLeaf,
    NavNode,
)
from rib.models.style import Stylesheet

__all__ = [
    # Book models
    "SpineItem",
    "TocEntry",
    "BookMetadata",
    "Resource",
    "ParsedBook",
    # Navigation models
    "NavLeaf",
    "NavGroup",
    "NavNode",
    "NavigationTree",
    # Style models
    "Stylesheet",
]
