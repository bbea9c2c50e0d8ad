"""Maintenance commands for the catalog: seed, clear, reset.

Usage:
    python -m librarian.manage seed [--file PATH]
    python -m librarian.manage clear
    python -m librarian.manage reset [--file PATH]
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .catalog_seed import load_seed_books
from .catalog_store import CatalogStore
from .categories import load_vocabulary
from .config import BASE_DIR, Settings, load_settings
from .conversation_log import ConversationLog

logger = logging.getLogger("librarian.manage")


def seed(settings: Settings, catalog: CatalogStore, seed_file: Optional[Path] = None) -> int:
    """Seed an empty catalog from the seed file; return inserted rows."""
    path = seed_file or settings.seed_path
    if not path or not path.exists():
        logger.error("Seed file not found: %s", path)
        return 0
    vocabulary = load_vocabulary(settings.category_rules_path)
    rows = load_seed_books(path, vocabulary=vocabulary, capacity=settings.shelf_capacity)
    inserted = catalog.seed_if_empty(rows)
    logger.info("Seeded %s books", inserted)
    return inserted


def clear(catalog: CatalogStore, conversations: ConversationLog) -> int:
    """Remove all books and conversation turns; return removed book count."""
    removed = catalog.clear()
    conversations.clear()
    logger.info("Cleared %s books and all conversations", removed)
    return removed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Library catalog maintenance")
    parser.add_argument("command", choices=["seed", "clear", "reset"], help="Operation to run")
    parser.add_argument("--file", type=Path, help="Seed file (defaults to SEED_PATH)")
    args = parser.parse_args(argv)

    env_path = BASE_DIR / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=True)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    settings = load_settings()
    catalog = CatalogStore(settings.catalog_path)
    if args.command == "seed":
        seed(settings, catalog, args.file)
    elif args.command == "clear":
        clear(catalog, ConversationLog(settings.conversations_path))
    else:
        clear(catalog, ConversationLog(settings.conversations_path))
        seed(settings, catalog, args.file)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
