from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

_DECODER = json.JSONDecoder()
TOKEN_RE = re.compile(r"[a-z0-9]+")


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable matching across the router.
    Inputs/Outputs: Input is a raw string; output is a lowercase ASCII-only string with
        diacritics removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by prefix rules, category rules,
        and catalog keyword search.
    Failure Modes: Returns an empty string when input is falsy or not a string.
    If Removed: Vietnamese commands ("Vị trí H1", "Lịch sử") stop matching the ASCII
        rule tables and messages are misrouted.
    Testing Notes: "Lịch Sử  Việt Nam" -> "lich su viet nam"; "đ" -> "d".
    """
    # Normalize to lowercase and strip diacritics for consistent matching.
    if not text or not isinstance(text, str):
        return ""
    lowered = text.lower()
    lowered = lowered.replace("đ", "d")
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s\-_/._]+", " ", stripped)
    return re.sub(r"\s+", " ", cleaned).strip()


def normalize_key(text: str) -> str:
    """Purpose: Produce a compact normalization key without spaces.
    Inputs/Outputs: Input is a raw string; output is normalized string with spaces removed.
    Side Effects / State: None; pure function.
    Dependencies: Calls normalize_text; used for seed field lookup and duplicate keys.
    Failure Modes: Returns empty string for falsy input; otherwise deterministic.
    If Removed: Seed rows with "Tên sách"/"ten sach" headers stop resolving.
    Testing Notes: Ensure spaces are removed after normalization.
    """
    # Collapse normalization output into a compact key.
    return normalize_text(text).replace(" ", "")


def tokenize(text: str) -> List[str]:
    """Split normalized text into alphanumeric tokens."""
    return TOKEN_RE.findall(normalize_text(text))


@dataclass
class ParsedJson:
    """Tagged result of pulling a JSON object out of generated text."""
    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: str = ""

    def get_str(self, key: str) -> str:
        """Return a stripped string field, or "" when missing or not a string."""
        if not self.ok:
            return ""
        value = self.data.get(key)
        if isinstance(value, str):
            return value.strip()
        return ""


def extract_json_object(text: str) -> ParsedJson:
    """Purpose: Extract the first well-formed JSON object from an arbitrary string.
    Inputs/Outputs: Input is raw model output; output is a ParsedJson holding the first
        `{...}` span that decodes to a JSON object, or a failure result.
    Side Effects / State: None; pure function.
    Dependencies: json.JSONDecoder.raw_decode; used by intent classification, category
        inference, and recommendation parsing.
    Failure Modes: Returns ParsedJson(ok=False) when no brace span decodes to a dict.
    If Removed: Model outputs wrapped in prose or code fences cannot be read safely.
    Testing Notes: 'here you go: {"category":"History"} thanks' -> {"category": "History"};
        '{"a":1}{"b":2}' -> {"a": 1}; 'no json here' -> failure.
    """
    # Try a decode at every opening brace; the first object that parses wins.
    if not text or not isinstance(text, str):
        return ParsedJson(ok=False, error="empty")
    start = text.find("{")
    while start != -1:
        try:
            value, _ = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return ParsedJson(ok=True, data=value)
        start = text.find("{", start + 1)
    return ParsedJson(ok=False, error="no json object found")


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from a model output string safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses extract_json_object.
    Failure Modes: Returns None when no JSON object is present.
    If Removed: Callers that only need the dict lose their shortcut.
    Testing Notes: Validate valid JSON parses and malformed JSON returns None.
    """
    parsed = extract_json_object(text)
    return parsed.data if parsed.ok else None
