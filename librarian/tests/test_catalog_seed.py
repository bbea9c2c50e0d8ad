import json
from collections import Counter

from librarian.catalog_seed import load_seed_books
from librarian.catalog_store import CatalogStore
from librarian.config import BASE_DIR


def test_bundled_seed_file_allocates_shelves():
    rows = load_seed_books(BASE_DIR / "resources" / "seed_books.json")
    assert len(rows) == 15
    categories = Counter(row["category"] for row in rows)
    assert categories["Literature"] == 4
    assert categories["Technology"] == 3
    by_title = {row["title"]: row for row in rows}
    assert by_title["Truyện Kiều"]["category"] == "Literature"
    assert by_title["Truyện Kiều"]["shelf_position"] == "L1"
    assert by_title["Lập trình Python cơ bản"]["shelf_position"] == "T1"


def test_header_synonyms_and_explicit_positions(tmp_dir):
    path = tmp_dir / "seed.json"
    payload = {
        "books": [
            {"title": "Sapiens", "author": "Yuval Noah Harari", "genre": "history", "shelf": "h3"},
            {"Ten sach": "Đắc Nhân Tâm", "Tac gia": "Dale Carnegie", "The loai": "Tâm lý"},
            {"title": "No author"},
            "not a row",
        ]
    }
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

    rows = load_seed_books(path, capacity=1)

    assert [row["title"] for row in rows] == ["Sapiens", "Đắc Nhân Tâm"]
    assert rows[0]["category"] == "History"
    assert rows[0]["shelf_position"] == "H3"
    assert rows[1]["category"] == "Psychology"
    assert rows[1]["shelf_position"] == "P1"
    assert rows[1]["summary"] is None


def test_seed_rows_load_into_store():
    rows = load_seed_books(BASE_DIR / "resources" / "seed_books.json")
    store = CatalogStore()
    assert store.seed_if_empty(rows) == 15
    assert store.seed_if_empty(rows) == 0
    assert len(store.find_by_shelf_code("L1")) == 4
