"""Bounded on-disk library of materialized books.

Layout of the library directory::

    library_index.json          every cached book, keyed by book id
    <book-dir>/book.json        the same entry, kept next to the book
    <book-dir>/<rendition>/...  one directory per rendition (stylesheet and options)

Books and renditions are produced into a ``.staging-*`` directory and only
renamed into place once complete. The index is always replaced atomically,
so it never references a half-written book or rendition. Per-book records
let a lost or corrupt index be rebuilt instead of throwing the library away.

One process at a time may use a library directory; nothing here locks it.
"""

import hashlib
import logging
import os
import re
import shutil
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path

from pydantic import ValidationError

from rib.cache.models import Book, CacheEntry, LibraryIndex, Rendition, SourceIdentity, utcnow
from rib.core.materializer import ProducedRendition, directory_size
from rib.errors import CacheCorruption

log = logging.getLogger(__name__)

Producer = Callable[[Path], ProducedRendition]


class LibraryCacheManager:
    """Stores materialized books under a count limit and a byte limit.

    A limit of 0 disables it. Eviction always removes the least recently
    used book first, whatever its size.
    """

    INDEX_FILE = "library_index.json"
    RECORD_FILE = "book.json"
    INDEX_VERSION = "2"
    STAGING_PREFIX = ".staging-"
    TRASH_PREFIX = ".trash-"

    def __init__(self, library_dir: Path, max_cache_books: int = 0, max_cache_bytes: int = 0):
        self.library_dir = library_dir
        self.index_path = library_dir / self.INDEX_FILE
        self.max_cache_books = max_cache_books
        self.max_cache_bytes = max_cache_bytes
        self._index: LibraryIndex | None = None

    def _ensure_library_dir(self) -> None:
        """Create library directory if it doesn't exist."""
        self.library_dir.mkdir(parents=True, exist_ok=True)

    # Index persistence

    def _read_index(self) -> LibraryIndex:
        """Read the index file.

        Raises:
            CacheCorruption: If the file can't be read or doesn't validate.
        """
        try:
            index = LibraryIndex.model_validate_json(self.index_path.read_bytes())
        except (OSError, ValidationError, ValueError) as e:
            raise CacheCorruption(f"Library index {self.index_path} is unreadable: {e}") from e
        if index.version != self.INDEX_VERSION:
            raise CacheCorruption(
                f"Library index {self.index_path} has unsupported version {index.version}"
            )
        return index

    def _load_index(self) -> LibraryIndex:
        """Load the index, rebuilding it from book records when needed."""
        if self._index is not None:
            return self._index

        if not self.index_path.exists():
            self._index = self._rebuild_index()
            if self._index.entries:
                log.warning(
                    "Library index missing; recovered %d books from %s",
                    len(self._index.entries),
                    self.library_dir,
                )
                self._save_index()
            return self._index

        try:
            self._index = self._read_index()
        except CacheCorruption as e:
            log.warning("%s; rebuilding it from book records", e)
            self._index = self._rebuild_index()
            self._save_index()
        else:
            self._sweep_orphans()
        return self._index

    def _save_index(self) -> None:
        """Atomically replace the index file."""
        self._ensure_library_dir()
        index = self._load_index()
        self._atomic_write(self.index_path, index.model_dump_json(indent=2))

    def _atomic_write(self, path: Path, text: str) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _write_record(self, book_dir: Path, entry: CacheEntry) -> None:
        self._atomic_write(book_dir / self.RECORD_FILE, entry.model_dump_json(indent=2))

    def _write_sized_record(self, book_dir: Path, entry: CacheEntry) -> None:
        """Write the record with the book's size as measured on disk.

        The record counts toward that size, and the size is part of the
        record, so rewrite until the two agree.
        """
        for _ in range(4):
            self._write_record(book_dir, entry)
            size = directory_size(book_dir)
            if size == entry.book.materialized_byte_size:
                return
            entry.book.materialized_byte_size = size
        self._write_record(book_dir, entry)

    def _read_record(self, book_dir: Path) -> CacheEntry | None:
        record = book_dir / self.RECORD_FILE
        try:
            return CacheEntry.model_validate_json(record.read_bytes())
        except (OSError, ValidationError, ValueError) as e:
            log.warning("Ignoring unreadable book record %s: %s", record, e)
            return None

    def _rebuild_index(self) -> LibraryIndex:
        """Reconstruct the index from the records kept in each book directory."""
        index = LibraryIndex(version=self.INDEX_VERSION)
        if not self.library_dir.is_dir():
            return index

        for child in sorted(self.library_dir.iterdir()):
            if not child.is_dir() or self._is_scratch(child.name):
                continue
            if not (child / self.RECORD_FILE).exists():
                log.debug("Leaving foreign directory %s alone", child)
                continue
            entry = self._read_record(child)
            if entry is None or not entry.renditions:
                self._discard_directory(child.name)
                continue
            entry.directory = child.name
            self._sweep_renditions(entry)
            current = index.entries.get(entry.book_id)
            if current is not None:
                stale = min(current, entry, key=lambda e: e.recency)
                self._discard_directory(stale.directory)
                if stale is current:
                    index.entries[entry.book_id] = entry
            else:
                index.entries[entry.book_id] = entry

        index.clock = max((e.access_seq for e in index.entries.values()), default=0)
        self._sweep_scratch()
        return index

    # Orphans

    def _is_scratch(self, name: str) -> bool:
        return name.startswith((self.STAGING_PREFIX, self.TRASH_PREFIX))

    def _sweep_scratch(self) -> None:
        for child in self.library_dir.iterdir():
            if child.is_dir() and self._is_scratch(child.name):
                log.info("Removing leftover %s", child.name)
                shutil.rmtree(child, ignore_errors=True)

    def _sweep_orphans(self) -> None:
        """Remove rib directories the index doesn't reference."""
        if not self.library_dir.is_dir():
            return
        self._sweep_scratch()
        referenced = {entry.directory for entry in self._index.entries.values()}
        for child in self.library_dir.iterdir():
            if (
                child.is_dir()
                and child.name not in referenced
                and (child / self.RECORD_FILE).exists()
            ):
                log.info("Removing unreferenced book directory %s", child.name)
                shutil.rmtree(child, ignore_errors=True)
        for entry in self._index.entries.values():
            self._sweep_renditions(entry)

    def _sweep_renditions(self, entry: CacheEntry) -> None:
        """Remove directories inside a book that none of its renditions own."""
        book_dir = self.book_path(entry)
        if not book_dir.is_dir():
            return
        owned = {rendition.directory for rendition in entry.renditions.values()}
        for child in book_dir.iterdir():
            if child.is_dir() and child.name not in owned:
                log.info("Removing unreferenced rendition %s/%s", entry.directory, child.name)
                shutil.rmtree(child, ignore_errors=True)

    def _discard_directory(self, name: str) -> None:
        """Move a directory below the library out of the way, then delete it."""
        path = self.library_dir / name
        if not path.exists():
            return
        flat = name.replace("/", "-")
        trash = self.library_dir / f"{self.TRASH_PREFIX}{flat}-{os.getpid()}"
        try:
            path.rename(trash)
        except OSError:
            trash = path
        shutil.rmtree(trash, ignore_errors=True)

    # Identity

    def get_file_hash(self, file_path: Path) -> str:
        """Compute SHA-256 hash of a file."""
        sha256 = hashlib.sha256()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                sha256.update(chunk)
        return sha256.hexdigest()

    def identify(self, file_path: Path) -> SourceIdentity:
        """Identity of a book file, hashing it only when it looks new."""
        resolved = file_path.resolve()
        stat = resolved.stat()
        index = self._load_index()

        # Fast path: same path, size and mtime as a cached book
        for entry in index.entries.values():
            known = entry.book.source_identity
            if (
                known.path == str(resolved)
                and known.size == stat.st_size
                and known.mtime == stat.st_mtime
            ):
                return known.model_copy()

        return SourceIdentity(
            path=str(resolved),
            fingerprint=self.get_file_hash(resolved),
            size=stat.st_size,
            mtime=stat.st_mtime,
        )

    def lookup(self, identity: SourceIdentity) -> CacheEntry | None:
        """Find the cached book with the same content, if any."""
        index = self._load_index()
        for entry in index.entries.values():
            if entry.book.source_identity.fingerprint != identity.fingerprint:
                continue
            book_dir = self.book_path(entry)
            if not (book_dir / self.RECORD_FILE).exists():
                log.warning("Cached book %s lost its directory; dropping it", entry.book_id)
                del index.entries[entry.book_id]
                self._save_index()
                return None

            lost = [
                key
                for key, rendition in entry.renditions.items()
                if not (book_dir / rendition.directory).is_dir()
            ]
            if lost:
                log.warning(
                    "Cached book %s lost %d rendition(s); dropping them", entry.book_id, len(lost)
                )
                for key in lost:
                    del entry.renditions[key]
                if not entry.renditions:
                    self._evict(entry)
                    return None
                self._write_sized_record(book_dir, entry)
                self._save_index()
            return entry
        return None

    def get(self, book_id: str) -> CacheEntry | None:
        return self._load_index().entries.get(book_id)

    def book_path(self, entry: CacheEntry) -> Path:
        return self.library_dir / entry.directory

    def rendition_path(self, entry: CacheEntry, rendition: Rendition) -> Path:
        return self.book_path(entry) / rendition.directory

    @staticmethod
    def _unique_name(raw_name: str, taken: set[str], fallback: str) -> str:
        base = re.sub(r"[^\w.-]+", "_", raw_name).strip("._")[:64] or fallback
        name = base
        suffix = 1
        while name in taken:
            suffix += 1
            name = f"{base}_{suffix}"
        return name

    def _directory_name(self, book_id: str) -> str:
        """Fresh directory name derived from the book id."""
        taken = {entry.directory for entry in self._load_index().entries.values()}
        if self.library_dir.is_dir():
            taken.update(child.name for child in self.library_dir.iterdir())
        return self._unique_name(book_id, taken, "book")

    def _rendition_name(self, book_dir: Path, stylesheet_id: str) -> str:
        """Fresh rendition directory name inside ``book_dir``."""
        taken = {child.name for child in book_dir.iterdir()} | {self.RECORD_FILE}
        return self._unique_name(stylesheet_id, taken, "rendition")

    def _produce_rendition(self, book_dir: Path, producer: Producer) -> Rendition:
        """Run ``producer`` in a staging directory and move the result into ``book_dir``."""
        staging = Path(tempfile.mkdtemp(prefix=self.STAGING_PREFIX, dir=book_dir))
        try:
            produced = producer(staging)
            directory = self._rendition_name(book_dir, produced.options.stylesheet_id)
            staging.rename(book_dir / directory)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return self._rendition_from(produced, directory, book_dir / directory)

    @staticmethod
    def _rendition_from(produced: ProducedRendition, directory: str, path: Path) -> Rendition:
        options = produced.options
        return Rendition(
            key=options.key,
            directory=directory,
            stylesheet_id=options.stylesheet_id,
            raw=options.raw,
            include_index=options.include_index,
            inject_navigation=options.inject_navigation,
            start_page=produced.start_page,
            first_page=produced.first_page,
            pages=produced.pages,
            byte_size=directory_size(path),
        )

    # Insertion and recency

    def materialize_and_insert(
        self,
        book_id: str,
        producer: Producer,
        *,
        title: str,
        source_identity: SourceIdentity,
    ) -> CacheEntry:
        """Produce a rendition into the library and make its book the most recent.

        A book already cached from the same file gains the rendition next to
        its others, replacing one made with the same stylesheet and options.
        Otherwise the book gets a new directory, replacing any entry with
        the same ``book_id``. If producing fails the library is left as it
        was.
        """
        index = self._load_index()
        self._ensure_library_dir()
        previous = index.entries.get(book_id)
        if (
            previous is not None
            and previous.book.source_identity.fingerprint == source_identity.fingerprint
            and self.book_path(previous).is_dir()
        ):
            return self._add_rendition(previous, producer, title, source_identity)

        staging = Path(tempfile.mkdtemp(prefix=self.STAGING_PREFIX, dir=self.library_dir))
        try:
            rendition = self._produce_rendition(staging, producer)
            now = utcnow()
            entry = CacheEntry(
                book=Book(
                    book_id=book_id,
                    title=title,
                    source_identity=source_identity,
                    last_access_time=now,
                    last_used_stylesheet_id=rendition.stylesheet_id,
                ),
                directory=self._directory_name(book_id),
                renditions={rendition.key: rendition},
                added_time=previous.added_time if previous else now,
                access_seq=index.next_seq(),
            )
            self._write_sized_record(staging, entry)
            self.evict_to_fit(entry.byte_size, incoming=book_id)
            staging.rename(self.library_dir / entry.directory)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        index.entries[book_id] = entry
        self._save_index()
        if previous is not None:
            self._discard_directory(previous.directory)
        log.info(
            "Cached %s (%s) in %s: %d bytes",
            title,
            book_id,
            entry.directory,
            entry.byte_size,
        )
        return entry

    def _add_rendition(
        self,
        entry: CacheEntry,
        producer: Producer,
        title: str,
        source_identity: SourceIdentity,
    ) -> CacheEntry:
        index = self._load_index()
        book_dir = self.book_path(entry)
        rendition = self._produce_rendition(book_dir, producer)

        updated = entry.model_copy(deep=True)
        superseded = [
            old
            for old in updated.renditions.values()
            if old.key == rendition.key or rendition.supersedes(old)
        ]
        for old in superseded:
            del updated.renditions[old.key]
        updated.renditions[rendition.key] = rendition
        updated.book.title = title
        updated.book.source_identity = source_identity
        updated.book.last_access_time = utcnow()
        updated.book.last_used_stylesheet_id = rendition.stylesheet_id
        updated.book.materialized_byte_size = (
            entry.byte_size + rendition.byte_size - sum(old.byte_size for old in superseded)
        )
        updated.access_seq = index.next_seq()
        try:
            self.evict_to_fit(updated.byte_size, incoming=entry.book_id)
        except BaseException:
            self._discard_directory(f"{entry.directory}/{rendition.directory}")
            raise

        index.entries[entry.book_id] = updated
        self._save_index()
        for old in superseded:
            self._discard_directory(f"{entry.directory}/{old.directory}")
        self._write_sized_record(book_dir, updated)
        self._save_index()
        log.info(
            "Added %s rendition of %s (%s): %d bytes",
            rendition.stylesheet_id,
            title,
            entry.book_id,
            rendition.byte_size,
        )
        return updated

    def touch(
        self,
        book_id: str,
        *,
        source_identity: SourceIdentity | None = None,
        stylesheet_id: str | None = None,
    ) -> CacheEntry:
        """Mark a cached book as just used, then enforce the limits.

        Raises:
            KeyError: If the book isn't cached.
        """
        index = self._load_index()
        entry = index.entries[book_id]
        entry.book.last_access_time = utcnow()
        entry.access_seq = index.next_seq()
        if source_identity is not None:
            entry.book.source_identity = source_identity
        if stylesheet_id is not None:
            entry.book.last_used_stylesheet_id = stylesheet_id
        self._write_sized_record(self.book_path(entry), entry)
        self._save_index()
        self.evict_to_fit(keep=(book_id,))
        return entry

    # Eviction

    def _over_limits(self, count: int, total: int, max_books: int, max_bytes: int) -> bool:
        return bool((max_books and count > max_books) or (max_bytes and total > max_bytes))

    def evict_to_fit(
        self,
        new_size_hint: int = 0,
        *,
        incoming: str | None = None,
        keep: Iterable[str] = (),
    ) -> list[str]:
        """Evict least recently used books until the limits hold.

        Args:
            new_size_hint: Size of a book about to be added.
            incoming: Id of the book about to be added; an existing entry
                with that id is being replaced and isn't counted.
            keep: Ids that must not be evicted.

        Returns:
            Ids of the evicted books, oldest first.
        """
        return self._trim(
            self.max_cache_books,
            self.max_cache_bytes,
            new_size_hint=new_size_hint,
            incoming=incoming,
            keep=keep,
        )

    def _trim(
        self,
        max_books: int,
        max_bytes: int,
        *,
        new_size_hint: int = 0,
        incoming: str | None = None,
        keep: Iterable[str] = (),
    ) -> list[str]:
        index = self._load_index()
        resident = [entry for entry in index.entries.values() if entry.book_id != incoming]
        adding = incoming is not None or new_size_hint > 0
        count = len(resident) + (1 if adding else 0)
        total = sum(entry.byte_size for entry in resident) + new_size_hint

        protected = set(keep)
        if incoming is not None:
            protected.add(incoming)
        candidates = sorted(
            (entry for entry in resident if entry.book_id not in protected),
            key=lambda entry: entry.recency,
        )

        evicted = []
        for entry in candidates:
            if not self._over_limits(count, total, max_books, max_bytes):
                break
            self._evict(entry)
            count -= 1
            total -= entry.byte_size
            evicted.append(entry.book_id)

        if self._over_limits(count, total, max_books, max_bytes):
            log.info("Library stays over its limits: %d books, %d bytes", count, total)
        return evicted

    def _evict(self, entry: CacheEntry) -> None:
        index = self._load_index()
        del index.entries[entry.book_id]
        # Forget the book before deleting it
        self._save_index()
        self._discard_directory(entry.directory)
        log.info("Evicted %s (%s, %d bytes)", entry.book.title, entry.book_id, entry.byte_size)

    def clear(
        self,
        book_ids: Iterable[str] = (),
        *,
        max_books: int | None = None,
        max_bytes: int | None = None,
        everything: bool = False,
    ) -> list[str]:
        """Remove the named books and/or trim the library to smaller limits.

        Returns:
            Ids of the removed books.
        """
        index = self._load_index()
        removed = []
        if everything:
            book_ids = list(index.entries)
        for book_id in book_ids:
            entry = index.entries.get(book_id)
            if entry is None:
                log.warning("No cached book with id %s", book_id)
                continue
            self._evict(entry)
            removed.append(book_id)
        if max_books is not None or max_bytes is not None:
            removed.extend(self._trim(max_books or 0, max_bytes or 0))
        return removed

    # Listing

    def entries(self) -> list[CacheEntry]:
        """Cached books, most recently used first."""
        return sorted(
            self._load_index().entries.values(),
            key=lambda entry: entry.recency,
            reverse=True,
        )

    def total_bytes(self) -> int:
        return sum(entry.byte_size for entry in self._load_index().entries.values())
