"""Seed-file loader for the catalog.

Reads a JSON list of book rows whose headers may be Vietnamese or English
("Tên sách"/"title"/"name", ...) and turns them into rows ready for
CatalogStore.seed_if_empty.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .categories import DEFAULT_VOCABULARY, CategoryVocabulary
from .shelving import SHELF_CAPACITY, allocate_shelf
from .utils import normalize_key

logger = logging.getLogger("librarian.seed")

TITLE_KEYS = ["tên sách", "title", "name", "book name"]
AUTHOR_KEYS = ["tác giả", "author", "writer"]
CATEGORY_KEYS = ["thể loại", "category", "genre"]
POSITION_KEYS = ["vị trí", "vị trí sách", "position", "shelf", "shelf position"]
SUMMARY_KEYS = ["tóm tắt", "summary", "recap"]


def load_seed_books(
    path: Path,
    vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY,
    capacity: int = SHELF_CAPACITY,
) -> List[Dict[str, Any]]:
    """Purpose: Load and normalize seed rows from a JSON file.
    Inputs/Outputs: Input is a Path to a JSON list (or {"books": [...]}); output is a
        list of dicts with title/author/category/shelf_position/summary.
    Side Effects / State: Reads the file; logs skipped rows.
    Dependencies: _get_first_value for header synonyms, CategoryVocabulary.normalize,
        allocate_shelf for rows without a position.
    Failure Modes: Missing file or invalid JSON raise to the caller; rows without title
        or author are skipped with a warning.
    If Removed: The manage seed command and first-start seeding have no data.
    Testing Notes: A row with "Tên sách"/"Tác giả" and no position gets an allocated code.
    """
    data = json.loads(path.read_text(encoding="utf-8-sig"))
    if isinstance(data, dict):
        items = data.get("books", [])
    elif isinstance(data, list):
        items = data
    else:
        items = []

    rows: List[Dict[str, Any]] = []
    counts: Dict[str, int] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        title = str(_get_first_value(item, TITLE_KEYS) or "").strip()
        author = str(_get_first_value(item, AUTHOR_KEYS) or "").strip()
        if not title or not author:
            logger.warning("Skipping seed row without title or author: %s", item)
            continue
        category = vocabulary.normalize(_get_first_value(item, CATEGORY_KEYS))
        position = str(_get_first_value(item, POSITION_KEYS) or "").strip().upper()
        if not position:
            position = allocate_shelf(category, counts.get(category, 0), capacity=capacity, vocabulary=vocabulary)
        counts[category] = counts.get(category, 0) + 1
        summary = _get_first_value(item, SUMMARY_KEYS)
        rows.append(
            {
                "title": title,
                "author": author,
                "category": category,
                "shelf_position": position,
                "summary": str(summary).strip() if summary else None,
            }
        )
    logger.info("Loaded %s seed rows from %s", len(rows), path.name)
    return rows


def _get_first_value(item: Dict[str, Any], keys: List[str]) -> Optional[Any]:
    """Purpose: Find the first non-empty field in a row by header synonyms.
    Inputs/Outputs: Input is a raw dict and candidate keys; returns the value or None.
    Side Effects / State: None.
    Dependencies: normalize_key so "Tên sách", "ten sach" and "TenSach" all match.
    Failure Modes: Returns None when no key matches or values are empty.
    If Removed: Seed files with Vietnamese headers stop loading.
    Testing Notes: Verify synonym keys resolve to the expected value.
    """
    normalized_map = {normalize_key(k): k for k in item.keys()}
    for key in keys:
        actual = normalized_map.get(normalize_key(key))
        if actual is not None and _has_value(item.get(actual)):
            return item.get(actual)
    return None


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True
