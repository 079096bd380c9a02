"""Data models for the structure of an opened book."""

from pydantic import BaseModel, Field

XHTML_MEDIA_TYPE = "application/xhtml+xml"
SVG_MEDIA_TYPE = "image/svg+xml"


class SpineItem(BaseModel):
    """Single document in the canonical reading order."""

    id: str
    href: str  # Relative to the package document, no fragment
    is_linear: bool = True
    order_index: int
    media_type: str = XHTML_MEDIA_TYPE
    title: str | None = None

    @property
    def is_xhtml(self) -> bool:
        return self.media_type == XHTML_MEDIA_TYPE


class TocEntry(BaseModel):
    """Single entry in table of contents."""

    label: str
    target_href: str
    target_fragment: str | None = None
    children: list["TocEntry"] = Field(default_factory=list)

    @classmethod
    def from_href(
        cls, label: str, href: str, children: list["TocEntry"] | None = None
    ) -> "TocEntry":
        """Build an entry from an href that may carry a fragment."""
        target, _, fragment = href.partition("#")
        return cls(
            label=label,
            target_href=target,
            target_fragment=fragment or None,
            children=children or [],
        )

    @property
    def href(self) -> str:
        if self.target_fragment:
            return f"{self.target_href}#{self.target_fragment}"
        return self.target_href


class BookMetadata(BaseModel):
    """Book-level metadata."""

    title: str
    authors: list[str] = Field(default_factory=list)
    language: str | None = None
    identifier: str | None = None


class Resource(BaseModel):
    """Raw manifest item (spine documents included)."""

    href: str
    media_type: str
    content: bytes = b""


class ParsedBook(BaseModel):
    """Complete parsed EPUB structure."""

    metadata: BookMetadata
    spine: list[SpineItem]
    toc: list[TocEntry] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    cover_href: str | None = None

    def resource(self, href: str) -> Resource | None:
        """Look up a manifest item by its href."""
        for resource in self.resources:
            if resource.href == href:
                return resource
        return None
