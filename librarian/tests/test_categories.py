import json

import pytest

from librarian.categories import (
    DEFAULT_VOCABULARY,
    CategoryRule,
    CategoryVocabulary,
    load_vocabulary,
    match_category_keywords,
    normalize_category,
)


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "zzz", "HISTORY", "lịch sử", "war stories", 42, ["History"], "🙂", "Khác", "\n\t"],
)
def test_normalize_category_is_total(raw):
    assert normalize_category(raw) in DEFAULT_VOCABULARY.all_labels


def test_exact_match_is_case_and_diacritic_insensitive():
    assert normalize_category("history") == "History"
    assert normalize_category("  LITERATURE ") == "Literature"
    assert normalize_category("Văn học") == "Literature"
    assert normalize_category("van hoc") == "Literature"
    assert normalize_category("Chưa rõ") == "Unknown"


def test_keyword_rules():
    assert normalize_category("Historical fiction") == "History"
    assert normalize_category("World War II") == "History"
    assert normalize_category("sách lập trình") == "Technology"
    assert normalize_category("tâm lý học ứng dụng") == "Psychology"


def test_keywords_match_whole_words_only():
    # "war" must not fire inside "software"
    assert normalize_category("software engineering") == "Technology"
    assert normalize_category("thời gian") == "Unknown"


def test_rule_order_breaks_ties():
    # Both History ("war") and Literature ("novel") keywords are present.
    assert normalize_category("a novel about the war") == "History"


def test_unmatched_falls_back_to_catch_all():
    assert normalize_category("cookbook") == DEFAULT_VOCABULARY.catch_all == "Unknown"


def test_match_category_keywords_on_title_and_author():
    assert match_category_keywords("Chiến tranh và hoà bình Lev Tolstoy") == "History"
    assert match_category_keywords("Nguồn gốc các loài Charles Darwin") == "Science"
    assert match_category_keywords("Untitled Anonymous") == "Unknown"


def test_letters():
    assert DEFAULT_VOCABULARY.letter_for("History") == "H"
    assert DEFAULT_VOCABULARY.letter_for("Philosophy") == "F"
    assert DEFAULT_VOCABULARY.letter_for("Politics") == "C"
    assert DEFAULT_VOCABULARY.letter_for("Unknown") == "X"
    assert DEFAULT_VOCABULARY.letter_for("Cookbooks") is None


def test_default_letters_are_unique():
    letters = [DEFAULT_VOCABULARY.letter_for(label) for label in DEFAULT_VOCABULARY.all_labels]
    assert len(letters) == len(set(letters))


def test_custom_vocabulary_order():
    vocabulary = CategoryVocabulary(
        [
            CategoryRule("Romance", keywords=("love",)),
            CategoryRule("Horror", keywords=("ghost", "love")),
        ],
        catch_all="Misc",
    )
    assert vocabulary.normalize("a love story with a ghost") == "Romance"
    assert vocabulary.normalize("ghost") == "Horror"
    assert vocabulary.normalize(None) == "Misc"


def test_load_vocabulary_from_file(tmp_dir):
    path = tmp_dir / "rules.json"
    path.write_text(
        json.dumps(
            {
                "catch_all": "Other",
                "catch_all_letter": "O",
                "rules": [
                    {"label": "Poetry", "letter": "Y", "keywords": ["poem"]},
                    {"label": "Travel", "aliases": ["Du lịch"], "keywords": ["trip"]},
                ],
            }
        ),
        encoding="utf-8",
    )
    vocabulary = load_vocabulary(path)
    assert vocabulary.labels == ["Poetry", "Travel"]
    assert vocabulary.normalize("du lich") == "Travel"
    assert vocabulary.letter_for("Poetry") == "Y"
    assert vocabulary.normalize("anything") == "Other"


def test_load_vocabulary_rejects_empty_rules(tmp_dir):
    path = tmp_dir / "rules.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_vocabulary(path)


def test_load_vocabulary_default():
    assert load_vocabulary(None) is DEFAULT_VOCABULARY
