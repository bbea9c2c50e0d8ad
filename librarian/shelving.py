from __future__ import annotations

from .categories import DEFAULT_VOCABULARY, PLACEHOLDER_LETTER, CategoryVocabulary

SHELF_CAPACITY = 15


def shelf_letter(category: str, vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY) -> str:
    """Purpose: Resolve the single shelf letter for a category.
    Inputs/Outputs: Input is a category string; output is one uppercase character.
    Side Effects / State: None; pure function.
    Dependencies: CategoryVocabulary.letter_for for known labels.
    Failure Modes: Empty or blank input yields PLACEHOLDER_LETTER.
    If Removed: Shelf codes lose their category prefix.
    Testing Notes: "History" -> "H"; "Philosophy" -> "F"; "" -> "X"; "zines" -> "Z".
    """
    # Vocabulary letter first, otherwise the first character of the label.
    label = (category or "").strip()
    if not label:
        return PLACEHOLDER_LETTER
    letter = vocabulary.letter_for(label)
    if letter:
        return letter
    return label[0].upper()


def allocate_shelf(
    category: str,
    count_in_category: int,
    capacity: int = SHELF_CAPACITY,
    vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY,
) -> str:
    """Purpose: Compute a capacity-bounded shelf code for the next book of a category.
    Inputs/Outputs: Inputs are the normalized category and the number of books already
        stored under it; output is a code such as "H1" (letter + 1-based shelf number).
    Side Effects / State: None; pure function.
    Dependencies: shelf_letter; the count must come from a fresh store query taken
        under the same lock as the insert it supports.
    Failure Modes: capacity < 1 raises ValueError; negative counts are treated as 0.
    If Removed: New books cannot be placed on shelves.
    Testing Notes: History with counts 0, 14, 15, 29, 30 -> H1, H1, H2, H2, H3.
    """
    if capacity < 1:
        raise ValueError("Shelf capacity must be at least 1")
    count = max(int(count_in_category), 0)
    return f"{shelf_letter(category, vocabulary)}{count // capacity + 1}"
