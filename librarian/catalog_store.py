from __future__ import annotations

import json
import logging
import os
import threading
import time
import unicodedata
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .exceptions import CatalogStoreError, DuplicateBookError
from .models import BookRecord
from .utils import normalize_text

logger = logging.getLogger("librarian.catalog")

Allocator = Callable[[str, int], str]


def book_key(title: str, author: str) -> str:
    """Case-insensitive identity of a (title, author) pair, independent of Unicode composition."""
    return _identity(title) + "\x1f" + _identity(author)


def _identity(text: str) -> str:
    return " ".join(unicodedata.normalize("NFC", text).split()).casefold()


class CatalogStore:
    """JSON-file catalog of book records with an in-process lock around every mutation."""

    def __init__(self, path: Optional[Path] = None) -> None:
        """Purpose: Initialize the catalog and hydrate it from disk if available.
        Inputs/Outputs: Input is an optional file path (None keeps the catalog in memory).
        Side Effects / State: Loads records into memory; may rewrite the file after
            dropping duplicate rows.
        Dependencies: Calls _load; relies on the BookRecord model.
        Failure Modes: Unreadable or corrupt files raise CatalogStoreError instead of
            silently starting empty.
        If Removed: The router has nowhere to add, delete, or look up books.
        Testing Notes: Create with a temp path, add a book, reload, and compare.
        """
        self._path = path
        self._lock = threading.RLock()
        self._books: Dict[int, BookRecord] = {}
        self._next_id = 1
        self._load()

    def _load(self) -> None:
        """Purpose: Load persisted records and enforce (title, author) uniqueness.
        Inputs/Outputs: Reads self._path; no return value.
        Side Effects / State: Populates _books/_next_id; persists if duplicates were dropped.
        Dependencies: json.loads and BookRecord validation.
        Failure Modes: OSError/JSONDecodeError/validation errors raise CatalogStoreError.
        If Removed: Catalog contents are lost on every restart.
        Testing Notes: A file with two rows for one pair keeps only the lowest id.
        """
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            rows = data.get("books", []) if isinstance(data, dict) else data
            records = sorted((BookRecord(**row) for row in rows), key=lambda book: book.id)
        except (OSError, ValueError, TypeError) as exc:
            raise CatalogStoreError(f"Cannot read catalog {self._path}: {exc}") from exc

        seen: Dict[str, int] = {}
        dropped: List[int] = []
        for record in records:
            key = book_key(record.title, record.author)
            if key in seen:
                dropped.append(record.id)
                continue
            seen[key] = record.id
            self._books[record.id] = record
        max_id = max((book.id for book in records), default=0)
        stored_next = data.get("next_id", 0) if isinstance(data, dict) else 0
        self._next_id = max(int(stored_next or 0), max_id + 1)
        if dropped:
            logger.warning("Dropped duplicate catalog rows ids=%s", dropped)
            self._persist()

    def _persist(self) -> None:
        """Purpose: Write the catalog to disk through a temp file and atomic replace.
        Inputs/Outputs: Writes self._path; no return value.
        Side Effects / State: Replaces the catalog file.
        Dependencies: json.dumps, os.replace.
        Failure Modes: IO errors raise CatalogStoreError.
        If Removed: Additions and deletions are not durable.
        Testing Notes: After insert, the file lists the new record and next_id.
        """
        if not self._path:
            return
        payload = {
            "next_id": self._next_id,
            "books": [book.model_dump() for book in self._books.values()],
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise CatalogStoreError(f"Cannot write catalog {self._path}: {exc}") from exc

    def _find_key(self, key: str) -> Optional[BookRecord]:
        for book in self._books.values():
            if book_key(book.title, book.author) == key:
                return book
        return None

    def _count(self, category: str) -> int:
        return sum(1 for book in self._books.values() if book.category == category)

    def _insert_locked(
        self,
        title: str,
        author: str,
        category: str,
        shelf_position: str,
        summary: Optional[str],
    ) -> BookRecord:
        title = unicodedata.normalize("NFC", title).strip()
        author = unicodedata.normalize("NFC", author).strip()
        if not title or not author:
            raise ValueError("title and author are required")
        if self._find_key(book_key(title, author)):
            raise DuplicateBookError(title, author)
        record = BookRecord(
            id=self._next_id,
            title=title,
            author=author,
            category=category,
            shelf_position=shelf_position.strip().upper(),
            summary=summary,
            created_at=time.time(),
        )
        self._books[record.id] = record
        self._next_id += 1
        try:
            self._persist()
        except CatalogStoreError:
            self._books.pop(record.id, None)
            self._next_id -= 1
            raise
        logger.info(
            "Inserted book id=%s title=%s author=%s category=%s shelf=%s",
            record.id,
            record.title,
            record.author,
            record.category,
            record.shelf_position,
        )
        return record

    def insert(
        self,
        title: str,
        author: str,
        category: str,
        shelf_position: str,
        summary: Optional[str] = None,
    ) -> int:
        """Insert a record with a precomputed shelf position and return its id."""
        with self._lock:
            return self._insert_locked(title, author, category, shelf_position, summary).id

    def add_book(
        self,
        title: str,
        author: str,
        category: str,
        allocate: Allocator,
        summary: Optional[str] = None,
    ) -> BookRecord:
        """Purpose: Count, allocate, and insert as one atomic step.
        Inputs/Outputs: Inputs are book fields plus an allocator(category, count) -> code;
            output is the stored BookRecord.
        Side Effects / State: Mutates and persists the catalog while holding the lock.
        Dependencies: _count, the allocator (normally shelving.allocate_shelf).
        Failure Modes: DuplicateBookError for an existing pair; CatalogStoreError on IO.
        If Removed: Concurrent additions to one category could share a capacity slot.
        Testing Notes: 16 History additions produce H1 x15 then H2.
        """
        # Count and insert under the same lock so no two additions see the same count.
        with self._lock:
            if self._find_key(book_key(title, author)):
                raise DuplicateBookError(title.strip(), author.strip())
            shelf_position = allocate(category, self._count(category))
            return self._insert_locked(title, author, category, shelf_position, summary)

    def delete_by_title_author(self, title: str, author: str) -> int:
        """Delete the book matching (title, author) case-insensitively; return rows removed."""
        with self._lock:
            record = self._find_key(book_key(title, author))
            if not record:
                return 0
            self._books.pop(record.id)
            try:
                self._persist()
            except CatalogStoreError:
                self._books[record.id] = record
                raise
            logger.info("Deleted book id=%s title=%s author=%s", record.id, record.title, record.author)
            return 1

    def count_by_category(self, category: str) -> int:
        with self._lock:
            return self._count(category)

    def find_by_shelf_code(self, code: str) -> List[BookRecord]:
        """Return every book stored on the shelf code (several books share one shelf)."""
        wanted = (code or "").strip().upper()
        with self._lock:
            return [book for book in self._ordered() if book.shelf_position == wanted]

    def find_by_title_author(self, title: str, author: str) -> Optional[BookRecord]:
        with self._lock:
            return self._find_key(book_key(title, author))

    def list_all(self) -> List[BookRecord]:
        with self._lock:
            return self._ordered()

    def find_by_keyword(self, text: str) -> List[BookRecord]:
        """Return books whose title, author, or category contains the normalized text."""
        needle = normalize_text(text)
        if not needle:
            return []
        with self._lock:
            return [
                book
                for book in self._ordered()
                if needle in normalize_text(f"{book.title} {book.author} {book.category}")
            ]

    def seed_if_empty(self, rows: Iterable[dict]) -> int:
        """Purpose: Seed an empty catalog with prepared rows.
        Inputs/Outputs: Input is an iterable of dicts with title/author/category/
            shelf_position/summary; output is the number of inserted rows.
        Side Effects / State: Inserts rows and persists once per row.
        Dependencies: _insert_locked.
        Failure Modes: Returns 0 when the catalog already has data; duplicate rows inside
            the seed are skipped.
        If Removed: Fresh deployments start with an empty library.
        Testing Notes: Seeding twice inserts only on the first call.
        """
        with self._lock:
            if self._books:
                logger.info("Catalog already has %s books; skipping seed", len(self._books))
                return 0
            inserted = 0
            for row in rows:
                try:
                    self._insert_locked(
                        row["title"],
                        row["author"],
                        row["category"],
                        row["shelf_position"],
                        row.get("summary"),
                    )
                except DuplicateBookError:
                    logger.warning("Skipping duplicate seed row title=%s", row.get("title"))
                    continue
                inserted += 1
            return inserted

    def clear(self) -> int:
        """Remove every record and reset ids; return the number of removed rows."""
        with self._lock:
            removed = len(self._books)
            self._books = {}
            self._next_id = 1
            self._persist()
            logger.info("Cleared catalog removed=%s", removed)
            return removed

    def _ordered(self) -> List[BookRecord]:
        return sorted(self._books.values(), key=lambda book: book.id)
