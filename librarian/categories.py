"""Closed category vocabulary and the ordered keyword rule table.

Rule priority is the vocabulary order, then keyword order inside a label; the first
keyword found in the normalized input wins. Keywords match whole words (or whole
phrases) of the normalized, diacritic-free text.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .utils import normalize_text

logger = logging.getLogger("librarian.categories")

CATCH_ALL_LABEL = "Unknown"
CATCH_ALL_LETTER = "X"
PLACEHOLDER_LETTER = "X"


@dataclass(frozen=True)
class CategoryRule:
    """One vocabulary label with its shelf letter, aliases, and trigger keywords."""
    label: str
    letter: str = ""
    aliases: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()

    @property
    def shelf_letter(self) -> str:
        return (self.letter or self.label[:1]).upper()


DEFAULT_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        "History",
        aliases=("Lịch sử",),
        keywords=(
            "history", "historical", "lich su", "war", "wars", "chien tranh", "revolution",
            "revolutions", "cach mang", "empire", "dynasty", "trieu dai", "biography",
            "tieu su", "memoir", "hoi ky", "ancient", "co dai",
        ),
    ),
    CategoryRule(
        "Technology",
        aliases=("Công nghệ",),
        keywords=(
            "technology", "cong nghe", "programming", "lap trinh", "python", "java",
            "computer", "may tinh", "software", "phan mem", "tri tue nhan tao",
            "artificial intelligence", "data", "du lieu", "machine learning", "internet",
        ),
    ),
    CategoryRule(
        "Science",
        aliases=("Khoa học",),
        keywords=(
            "science", "scientific", "khoa hoc", "physics", "vat ly", "chemistry", "hoa hoc",
            "biology", "sinh hoc", "mathematics", "math", "toan hoc", "astronomy", "vu tru",
            "universe", "evolution", "tien hoa", "species", "darwin", "hawking",
        ),
    ),
    CategoryRule(
        "Literature",
        aliases=("Văn học",),
        keywords=(
            "literature", "van hoc", "novel", "novels", "fiction", "tieu thuyet", "poem",
            "poems", "poetry", "tho", "truyen", "story", "stories", "kieu", "nguyen du",
            "tolstoy", "coelho",
        ),
    ),
    CategoryRule(
        "Psychology",
        aliases=("Tâm lý", "Tâm lý học"),
        keywords=(
            "psychology", "tam ly", "self-help", "self help", "ky nang", "mind", "tam tri",
            "habit", "habits", "emotion", "emotions", "cam xuc", "freud", "nhan tam",
            "carnegie",
        ),
    ),
    CategoryRule(
        "Economics",
        aliases=("Kinh tế",),
        keywords=(
            "economics", "economy", "kinh te", "finance", "tai chinh", "money", "business",
            "kinh doanh", "market", "thi truong", "capital", "tu ban", "marx", "investing",
            "dau tu", "mankiw",
        ),
    ),
    CategoryRule(
        "Philosophy",
        letter="F",
        aliases=("Triết học",),
        keywords=(
            "philosophy", "triet hoc", "triet", "ethics", "dao duc", "stoic", "stoicism",
            "existential", "plato", "nietzsche", "socrates",
        ),
    ),
    CategoryRule(
        "Politics",
        letter="C",
        aliases=("Chính trị",),
        keywords=(
            "politics", "political", "chinh tri", "government", "chinh phu", "democracy",
            "dan chu", "nha nuoc",
        ),
    ),
)


class CategoryVocabulary:
    """Ordered, closed set of category labels plus a catch-all label."""

    def __init__(
        self,
        rules: Iterable[CategoryRule],
        catch_all: str = CATCH_ALL_LABEL,
        catch_all_letter: str = CATCH_ALL_LETTER,
        catch_all_aliases: Iterable[str] = ("Chưa rõ", "Khác", "Other"),
    ) -> None:
        self._rules: List[CategoryRule] = list(rules)
        self._catch_all = catch_all
        self._catch_all_letter = catch_all_letter.upper()
        self._exact: Dict[str, str] = {}
        for rule in self._rules:
            self._exact.setdefault(normalize_text(rule.label), rule.label)
            for alias in rule.aliases:
                self._exact.setdefault(normalize_text(alias), rule.label)
        self._exact.setdefault(normalize_text(catch_all), catch_all)
        for alias in catch_all_aliases:
            self._exact.setdefault(normalize_text(alias), catch_all)
        self._patterns: List[Tuple[re.Pattern, str]] = []
        for rule in self._rules:
            for keyword in rule.keywords:
                key = normalize_text(keyword)
                if key:
                    self._patterns.append((re.compile(rf"(?<![a-z0-9]){re.escape(key)}(?![a-z0-9])"), rule.label))

    @property
    def catch_all(self) -> str:
        return self._catch_all

    @property
    def labels(self) -> List[str]:
        """Allowed labels in priority order, without the catch-all."""
        return [rule.label for rule in self._rules]

    @property
    def all_labels(self) -> List[str]:
        return self.labels + [self._catch_all]

    def __contains__(self, label: object) -> bool:
        return label in self.all_labels

    def letter_for(self, label: str) -> Optional[str]:
        """Return the shelf letter for a vocabulary label, or None for unknown labels."""
        for rule in self._rules:
            if rule.label == label:
                return rule.shelf_letter
        if label == self._catch_all:
            return self._catch_all_letter
        return None

    def aliases_for(self, label: str) -> List[str]:
        for rule in self._rules:
            if rule.label == label:
                return list(rule.aliases)
        return []

    def exact_match(self, raw: object) -> Optional[str]:
        if not isinstance(raw, str):
            return None
        return self._exact.get(normalize_text(raw))

    def match_keywords(self, text: object) -> Optional[str]:
        """Purpose: Apply the ordered keyword rule table to free text.
        Inputs/Outputs: Input is any text; output is the first matching label or None.
        Side Effects / State: None.
        Dependencies: Precompiled patterns built from the rule table in priority order.
        Failure Modes: Non-string or empty input returns None.
        If Removed: Normalization and offline category inference lose their heuristics.
        Testing Notes: "World War II" -> History; "Lập trình Python" -> Technology.
        """
        normalized = normalize_text(text) if isinstance(text, str) else ""
        if not normalized:
            return None
        for pattern, label in self._patterns:
            if pattern.search(normalized):
                return label
        return None

    def normalize(self, raw: object) -> str:
        """Purpose: Map an arbitrary category string onto the closed vocabulary.
        Inputs/Outputs: Input is any value; output is always a vocabulary label.
        Side Effects / State: None; pure and total.
        Dependencies: exact_match, then match_keywords, then the catch-all label.
        Failure Modes: None; never raises.
        If Removed: Generated categories such as "historical fiction" leak into shelves.
        Testing Notes: None, "", "HISTORY", "lịch sử", "war stories", "zzz" all map to a
            member of all_labels.
        """
        # Exact label/alias match first, then the keyword table, then the catch-all.
        exact = self.exact_match(raw)
        if exact:
            return exact
        matched = self.match_keywords(raw)
        if matched:
            return matched
        return self._catch_all


DEFAULT_VOCABULARY = CategoryVocabulary(DEFAULT_RULES)


def normalize_category(raw: object, vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY) -> str:
    """Map any category string onto the vocabulary (total)."""
    return vocabulary.normalize(raw)


def match_category_keywords(text: object, vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY) -> str:
    """Keyword-only classification of free text, falling back to the catch-all label."""
    return vocabulary.match_keywords(text) or vocabulary.catch_all


def load_vocabulary(path: Optional[Path]) -> CategoryVocabulary:
    """Purpose: Load an ordered rule table from JSON, or the built-in table.
    Inputs/Outputs: Input is an optional Path; output is a CategoryVocabulary.
    Side Effects / State: Reads the file when a path is given.
    Dependencies: json; CategoryRule.
    Failure Modes: Missing path returns the default vocabulary; malformed JSON or an
        empty rule list raises ValueError at startup.
    If Removed: The rule table cannot be changed without editing code.
    Testing Notes: Write a two-rule file and verify order and letters are honored.
    """
    if path is None:
        return DEFAULT_VOCABULARY
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid category rules file {path}: {exc}") from exc
    entries = data.get("rules", []) if isinstance(data, dict) else data
    rules: List[CategoryRule] = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict) or not str(entry.get("label") or "").strip():
            continue
        rules.append(
            CategoryRule(
                label=str(entry["label"]).strip(),
                letter=str(entry.get("letter") or "").strip(),
                aliases=tuple(str(alias) for alias in entry.get("aliases") or []),
                keywords=tuple(str(keyword) for keyword in entry.get("keywords") or []),
            )
        )
    if not rules:
        raise ValueError(f"Category rules file {path} defines no rules")
    catch_all = CATCH_ALL_LABEL
    catch_all_letter = CATCH_ALL_LETTER
    if isinstance(data, dict):
        catch_all = str(data.get("catch_all") or CATCH_ALL_LABEL)
        catch_all_letter = str(data.get("catch_all_letter") or CATCH_ALL_LETTER)
    logger.info("Loaded %s category rules from %s", len(rules), path)
    return CategoryVocabulary(rules, catch_all=catch_all, catch_all_letter=catch_all_letter)
