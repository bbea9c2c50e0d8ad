from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from .gemini_client import TextGenerator
from .prompt_loader import render_prompt
from .utils import extract_json_object, normalize_text

logger = logging.getLogger("librarian.intents")


class Intent(str, Enum):
    ADD_BOOK = "ADD_BOOK"
    DELETE_BOOK = "DELETE_BOOK"
    ASK_POSITION = "ASK_POSITION"
    ASK_RECAP = "ASK_RECAP"
    SEARCH_BOOK = "SEARCH_BOOK"
    RECOMMEND_BOOK = "RECOMMEND_BOOK"
    SMALL_TALK = "SMALL_TALK"
    OTHER = "OTHER"


_INTENT_LOOKUP = {intent.value.replace("_", ""): intent for intent in Intent}

ADD_PREFIXES = ("add book",)
DELETE_PREFIXES = ("delete book", "remove book")
BOOK_PARAMS_RE = re.compile(r"bn:\s*(.+?);\s*at:\s*(.+)$", re.IGNORECASE)
POSITION_RE = re.compile(r"\b(?:vi tri|position|shelf|ke)\s*([a-z])\s*(\d{1,4})\b")
SHELF_CODE_RE = re.compile(r"\b([a-z])\s?(\d{1,4})\b")
RECAP_RE = re.compile(
    r"^\s*(?:recap|tóm tắt|tom tat|summary|summarize|summarise)\b\s*:?\s*(.*)$",
    re.IGNORECASE | re.DOTALL,
)


@dataclass
class IntentDecision:
    """Routing decision for one message."""
    intent: Intent = Intent.OTHER
    source: str = "default"
    query: str = ""
    shelf: str = ""


def match_prefix(message: str) -> Optional[IntentDecision]:
    """Purpose: Apply the deterministic command prefixes before any model call.
    Inputs/Outputs: Input is the raw message; output is an IntentDecision with
        source="prefix", or None when no rule applies.
    Side Effects / State: None; pure function.
    Dependencies: normalize_text for the Vietnamese position pattern; RECAP_RE.
    Failure Modes: None; unmatched messages return None.
    If Removed: Structured commands depend on the classifier and can be misrouted.
    Testing Notes: "ADD BOOK: bn: Foo; at: Bar" -> ADD_BOOK; "Vị trí h1" -> ASK_POSITION
        with shelf "H1"; "tóm tắt Truyện Kiều" -> ASK_RECAP with query "Truyện Kiều".
    """
    lowered = (message or "").strip().lower()
    if not lowered:
        return None
    if lowered.startswith(ADD_PREFIXES):
        return IntentDecision(Intent.ADD_BOOK, source="prefix")
    if lowered.startswith(DELETE_PREFIXES):
        return IntentDecision(Intent.DELETE_BOOK, source="prefix")
    position = POSITION_RE.search(normalize_text(message))
    if position:
        return IntentDecision(Intent.ASK_POSITION, source="prefix", shelf=format_shelf(*position.groups()))
    recap = RECAP_RE.match(message)
    if recap:
        return IntentDecision(Intent.ASK_RECAP, source="prefix", query=recap.group(1).strip())
    return None


def format_shelf(letter: str, number: str) -> str:
    return f"{letter.upper()}{int(number)}"


def parse_book_command(message: str) -> Optional[Tuple[str, str]]:
    """Extract (title, author) from "bn: <title>; at: <author>", or None when malformed."""
    match = BOOK_PARAMS_RE.search(message or "")
    if not match:
        return None
    title = match.group(1).strip()
    author = match.group(2).strip()
    if not title or not author:
        return None
    return title, author


def extract_shelf_code(text: str) -> str:
    """Find the first letter+number shelf code in free text ("" when absent)."""
    normalized = normalize_text(text)
    match = POSITION_RE.search(normalized) or SHELF_CODE_RE.search(normalized)
    if not match:
        return ""
    return format_shelf(*match.groups())


def parse_intent_label(value: object) -> Optional[Intent]:
    """Map "AddBook", "add_book", "ADD BOOK" and similar spellings onto Intent."""
    if not isinstance(value, str):
        return None
    key = re.sub(r"[^A-Z]", "", value.upper())
    return _INTENT_LOOKUP.get(key)


def parse_intent_output(raw: str) -> IntentDecision:
    """Purpose: Turn raw classifier output into a validated IntentDecision.
    Inputs/Outputs: Input is raw model text; output is an IntentDecision.
    Side Effects / State: None.
    Dependencies: extract_json_object, parse_intent_label.
    Failure Modes: Missing JSON or an unknown label yields Intent.OTHER.
    If Removed: Classifier responses cannot be trusted field by field.
    Testing Notes: '```json {"intent":"RecommendBook"} ```' -> RECOMMEND_BOOK.
    """
    parsed = extract_json_object(raw)
    if not parsed.ok:
        return IntentDecision(Intent.OTHER, source="fallback")
    intent = parse_intent_label(parsed.data.get("intent"))
    if intent is None:
        return IntentDecision(Intent.OTHER, source="fallback")
    shelf = parsed.get_str("shelf")
    return IntentDecision(
        intent,
        source="model",
        query=parsed.get_str("query"),
        shelf=extract_shelf_code(shelf) if shelf else "",
    )


def classify_intent(
    generator: Optional[TextGenerator],
    prompts_dir: Path,
    message: str,
    history: List[dict],
    model: Optional[str] = None,
) -> IntentDecision:
    """Purpose: Ask the model for the intent of a message that matched no prefix.
    Inputs/Outputs: Inputs are the generator, prompt dir, message, and oldest-first
        history dicts; output is an IntentDecision.
    Side Effects / State: One generation call.
    Dependencies: render_prompt, parse_intent_output.
    Failure Modes: Any generation error returns Intent.OTHER with source="fallback".
    If Removed: Free-text requests (search, recommend, recap) are never recognized.
    Testing Notes: A raising generator yields OTHER without propagating the error.
    """
    if generator is None:
        return IntentDecision(Intent.OTHER, source="fallback")
    history_text = "\n".join(f"{turn.get('role')}: {turn.get('message')}" for turn in history) or "(trống)"
    try:
        prompt = render_prompt(
            prompts_dir / "intent_classification.txt",
            history=history_text,
            message=message,
        )
        raw = generator.generate_text(prompt, model=model, temperature=0.0)
    except Exception:
        logger.warning("intent classification failed", exc_info=True)
        return IntentDecision(Intent.OTHER, source="fallback")
    return parse_intent_output(raw)
