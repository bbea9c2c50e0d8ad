import json
import threading
import unicodedata
import warnings
from collections import Counter

import pytest

from librarian.catalog_store import CatalogStore
from librarian.exceptions import CatalogStoreError, DuplicateBookError
from librarian.shelving import allocate_shelf


def test_insert_and_lookup():
    store = CatalogStore()
    book_id = store.insert("Truyện Kiều", "Nguyễn Du", "Literature", "l1")
    assert book_id == 1
    book = store.find_by_title_author("truyện kiều", "NGUYỄN DU")
    assert book.id == 1
    assert book.shelf_position == "L1"
    assert store.count_by_category("Literature") == 1
    assert store.count_by_category("History") == 0


def test_insert_rejects_duplicates():
    store = CatalogStore()
    store.insert("Truyện Kiều", "Nguyễn Du", "Literature", "L1")
    with pytest.raises(DuplicateBookError):
        store.insert("  Truyện   Kiều ", "nguyễn du", "Literature", "L1")
    assert len(store.list_all()) == 1


def test_add_book_allocates_by_capacity():
    store = CatalogStore()
    positions = [
        store.add_book(f"History {i}", "Author", "History", allocate=allocate_shelf).shelf_position
        for i in range(16)
    ]
    assert positions[:15] == ["H1"] * 15
    assert positions[15] == "H2"


def test_add_book_is_atomic_under_concurrency():
    store = CatalogStore()
    barrier = threading.Barrier(10)

    def worker(offset):
        barrier.wait()
        for i in range(3):
            store.add_book(f"Book {offset}-{i}", "Author", "History", allocate=allocate_shelf)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shelves = Counter(book.shelf_position for book in store.list_all())
    assert shelves == {"H1": 15, "H2": 15}


def test_delete_by_title_author():
    store = CatalogStore()
    store.insert("Tư bản", "Karl Marx", "Economics", "E1")
    assert store.delete_by_title_author("Không có", "Ai đó") == 0
    assert store.count_by_category("Economics") == 1
    assert store.delete_by_title_author("Tư bản", "Karl Marx") == 1
    assert store.list_all() == []


def test_find_by_shelf_code_returns_all_occupants():
    store = CatalogStore()
    store.insert("A", "X", "History", "H1")
    store.insert("B", "Y", "History", "H1")
    store.insert("C", "Z", "History", "H2")
    assert [book.title for book in store.find_by_shelf_code("h1")] == ["A", "B"]
    assert store.find_by_shelf_code("Q9") == []


def test_find_by_keyword():
    store = CatalogStore()
    store.insert("Lược sử thời gian", "Stephen Hawking", "Science", "S1")
    store.insert("Sapiens", "Yuval Noah Harari", "History", "H1")
    assert [book.title for book in store.find_by_keyword("luoc su")] == ["Lược sử thời gian"]
    assert [book.title for book in store.find_by_keyword("history")] == ["Sapiens"]
    assert store.find_by_keyword("   ") == []


def test_persistence_round_trip(tmp_dir):
    path = tmp_dir / "catalog.json"
    store = CatalogStore(path)
    store.insert("Truyện Kiều", "Nguyễn Du", "Literature", "L1")
    store.insert("Nhà giả kim", "Paulo Coelho", "Literature", "L1")
    store.delete_by_title_author("Truyện Kiều", "Nguyễn Du")

    reloaded = CatalogStore(path)
    assert [book.title for book in reloaded.list_all()] == ["Nhà giả kim"]
    assert reloaded.insert("Tắt đèn", "Ngô Tất Tố", "Literature", "L1") == 3


def test_duplicate_rows_are_dropped_on_load(tmp_dir):
    path = tmp_dir / "catalog.json"
    row = {"title": "Truyện Kiều", "author": "Nguyễn Du", "category": "Literature", "shelf_position": "L1", "created_at": 0}
    path.write_text(
        json.dumps({"books": [dict(row, id=5), dict(row, id=2), dict(row, id=7, title="Other")]}),
        encoding="utf-8",
    )
    store = CatalogStore(path)
    assert [book.id for book in store.list_all()] == [2, 7]
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert [book["id"] for book in saved["books"]] == [2, 7]
    assert saved["next_id"] == 8


def test_corrupt_file_raises_store_error(tmp_dir):
    path = tmp_dir / "catalog.json"
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(CatalogStoreError):
        CatalogStore(path)


def test_write_failure_rolls_back(tmp_dir, monkeypatch):
    store = CatalogStore(tmp_dir / "catalog.json")

    def broken_persist():
        raise CatalogStoreError("disk full")

    monkeypatch.setattr(store, "_persist", broken_persist)
    with pytest.raises(CatalogStoreError):
        store.add_book("A", "B", "History", allocate=allocate_shelf)
    assert store.list_all() == []


def test_seed_if_empty_only_once():
    store = CatalogStore()
    rows = [
        {"title": "A", "author": "X", "category": "History", "shelf_position": "H1"},
        {"title": "A", "author": "X", "category": "History", "shelf_position": "H1"},
        {"title": "B", "author": "Y", "category": "Science", "shelf_position": "S1", "summary": "ok"},
    ]
    assert store.seed_if_empty(rows) == 2
    assert store.seed_if_empty(rows) == 0
    assert store.find_by_title_author("B", "Y").summary == "ok"


def test_clear_resets_ids(tmp_dir):
    store = CatalogStore(tmp_dir / "catalog.json")
    store.insert("A", "X", "History", "H1")
    assert store.clear() == 1
    assert store.insert("B", "Y", "History", "H1") == 1


def test_composition_forms_share_one_identity():
    store = CatalogStore()
    store.insert(unicodedata.normalize("NFD", "Truyện Kiều"), "Nguyễn Du", "Literature", "L1")

    stored = store.list_all()[0]
    assert stored.title == unicodedata.normalize("NFC", "Truyện Kiều")
    with pytest.raises(DuplicateBookError):
        store.insert("Truyện Kiều", unicodedata.normalize("NFD", "Nguyễn Du"), "Literature", "L1")
    assert store.find_by_title_author(unicodedata.normalize("NFD", "truyện kiều"), "nguyễn du") is not None


def test_persisting_emits_no_deprecation_warnings(tmp_dir):
    store = CatalogStore(tmp_dir / "catalog.json")
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        store.insert("Sapiens", "Yuval Noah Harari", "History", "H1")
    assert not [w for w in caught if issubclass(w.category, DeprecationWarning)]
