from librarian import manage
from librarian.catalog_store import CatalogStore
from librarian.conversation_log import ConversationLog


def _env(monkeypatch, tmp_dir):
    monkeypatch.setenv("DATA_DIR", str(tmp_dir))
    for name in ("CATALOG_PATH", "CONVERSATIONS_PATH", "SEED_PATH", "CATEGORY_RULES_PATH"):
        monkeypatch.delenv(name, raising=False)


def test_seed_then_clear(monkeypatch, tmp_dir):
    _env(monkeypatch, tmp_dir)

    assert manage.main(["seed"]) == 0
    assert len(CatalogStore(tmp_dir / "catalog.json").list_all()) == 15

    conversations = ConversationLog(tmp_dir / "conversations.json")
    conversations.append("s1", "user", "hi")

    assert manage.main(["clear"]) == 0
    assert CatalogStore(tmp_dir / "catalog.json").list_all() == []
    assert ConversationLog(tmp_dir / "conversations.json").list_sessions() == []


def test_reset_reseeds(monkeypatch, tmp_dir):
    _env(monkeypatch, tmp_dir)
    catalog = CatalogStore(tmp_dir / "catalog.json")
    catalog.insert("Only Book", "Someone", "Unknown", "X1")

    assert manage.main(["reset"]) == 0

    titles = [book.title for book in CatalogStore(tmp_dir / "catalog.json").list_all()]
    assert len(titles) == 15
    assert "Only Book" not in titles


def test_missing_seed_file_inserts_nothing(tmp_dir):
    catalog = CatalogStore()
    settings = manage.load_settings()
    assert manage.seed(settings, catalog, tmp_dir / "missing.json") == 0
    assert catalog.list_all() == []
