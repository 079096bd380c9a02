"""Library cache data models."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceIdentity(BaseModel):
    """Where a book came from and what its bytes hash to."""

    path: str
    fingerprint: str  # SHA-256 of the archive
    size: int
    mtime: float


class Rendition(BaseModel):
    """One materialized form of a book, kept in a subdirectory of it."""

    key: str
    directory: str  # Name relative to the book directory
    stylesheet_id: str
    raw: bool = False
    include_index: bool = True
    inject_navigation: bool = True
    start_page: str = "index.xhtml"
    first_page: str = ""
    pages: dict[str, str] = Field(default_factory=dict)  # spine href -> page
    byte_size: int = 0
    created_time: datetime = Field(default_factory=utcnow)

    def supersedes(self, other: "Rendition") -> bool:
        """Whether this rendition replaces ``other`` (same stylesheet and options)."""
        return (self.stylesheet_id, self.raw, self.include_index, self.inject_navigation) == (
            other.stylesheet_id,
            other.raw,
            other.include_index,
            other.inject_navigation,
        )


class Book(BaseModel):
    """A materialized book as the library knows it."""

    book_id: str
    title: str
    source_identity: SourceIdentity
    materialized_byte_size: int = 0  # Whole book directory, record included
    last_access_time: datetime = Field(default_factory=utcnow)
    last_used_stylesheet_id: str = "null"


class CacheEntry(BaseModel):
    """Links a book to its directory inside the library."""

    book: Book
    directory: str  # Name relative to the library directory
    renditions: dict[str, Rendition] = Field(default_factory=dict)  # key -> rendition
    added_time: datetime = Field(default_factory=utcnow)
    access_seq: int = 0

    @property
    def book_id(self) -> str:
        return self.book.book_id

    @property
    def byte_size(self) -> int:
        return self.book.materialized_byte_size

    @property
    def recency(self) -> tuple[int, datetime]:
        """Sort key; larger is more recently used.

        The access sequence only ever grows, so wall-clock changes can't
        reorder books.
        """
        return (self.access_seq, self.book.last_access_time)

    def rendition(self, key: str) -> Rendition | None:
        return self.renditions.get(key)


class LibraryIndex(BaseModel):
    """Every cached book, keyed by book id."""

    version: str = "2"
    clock: int = 0  # Last access sequence number handed out
    entries: dict[str, CacheEntry] = Field(default_factory=dict)

    def next_seq(self) -> int:
        self.clock += 1
        return self.clock
