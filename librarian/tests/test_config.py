from pathlib import Path

import pytest

from librarian.config import load_settings


def test_defaults(monkeypatch, tmp_dir):
    monkeypatch.setenv("DATA_DIR", str(tmp_dir))
    for name in ("CATALOG_PATH", "SHELF_CAPACITY", "CHITCHAT_MODE", "HISTORY_WINDOW", "CATEGORY_RULES_PATH"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.catalog_path == tmp_dir.resolve() / "catalog.json"
    assert settings.shelf_capacity == 15
    assert settings.history_window == 6
    assert settings.chitchat_mode == "generative"
    assert settings.category_rules_path is None
    assert settings.seed_path.name == "seed_books.json"


def test_overrides(monkeypatch, tmp_dir):
    monkeypatch.setenv("CATALOG_PATH", str(tmp_dir / "books.json"))
    monkeypatch.setenv("SHELF_CAPACITY", "20")
    monkeypatch.setenv("CHITCHAT_MODE", "Fixed")
    monkeypatch.setenv("CATEGORY_RULES_PATH", str(tmp_dir / "rules.json"))

    settings = load_settings()

    assert settings.catalog_path == Path(tmp_dir / "books.json")
    assert settings.shelf_capacity == 20
    assert settings.chitchat_mode == "fixed"
    assert settings.category_rules_path == tmp_dir / "rules.json"


@pytest.mark.parametrize(
    "name,value",
    [("CHITCHAT_MODE", "poetry"), ("SHELF_CAPACITY", "0"), ("SHELF_CAPACITY", "many")],
)
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        load_settings()
