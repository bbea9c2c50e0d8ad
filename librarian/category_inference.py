from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .categories import DEFAULT_VOCABULARY, CategoryVocabulary, match_category_keywords
from .gemini_client import TextGenerator
from .prompt_loader import render_prompt
from .utils import extract_json_object

logger = logging.getLogger("librarian.category")


class CategoryInferencer:
    """Pick a vocabulary category for a new book, with the model as optional enrichment."""

    def __init__(
        self,
        generator: Optional[TextGenerator],
        prompts_dir: Path,
        vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY,
        model: Optional[str] = None,
    ) -> None:
        self._generator = generator
        self._prompts_dir = prompts_dir
        self._vocabulary = vocabulary
        self._model = model

    def infer(self, title: str, author: str) -> str:
        """Purpose: Infer the category of a book from its title and author.
        Inputs/Outputs: Inputs are title and author; output is always a vocabulary label.
        Side Effects / State: One text generation call at most; logs the chosen source.
        Dependencies: render_prompt, extract_json_object, CategoryVocabulary.normalize,
            and the keyword rule table for the offline fallback.
        Failure Modes: Generator errors, timeouts, non-JSON output, and catch-all answers
            all fall through to the keyword rules; nothing is raised to the caller.
        If Removed: "add book" cannot shelve books by category.
        Testing Notes: A failing generator with "Chiến tranh và hòa bình" still yields History.
        """
        raw = self._ask_model(title, author)
        if raw:
            parsed = extract_json_object(raw)
            candidate = parsed.get_str("category")
            if candidate:
                category = self._vocabulary.normalize(candidate)
                if category != self._vocabulary.catch_all:
                    logger.info("category source=model title=%s category=%s", title, category)
                    return category
            logger.info("category model output unusable title=%s raw=%r", title, raw[:200])

        # Keyword rules over title + author when the model gave nothing usable.
        category = match_category_keywords(f"{title} {author}", self._vocabulary)
        logger.info("category source=rules title=%s category=%s", title, category)
        return category

    def _ask_model(self, title: str, author: str) -> str:
        if self._generator is None:
            return ""
        try:
            prompt = render_prompt(
                self._prompts_dir / "category_inference.txt",
                title=title,
                author=author,
                categories="\n".join(f"- {label}" for label in self._vocabulary.labels),
                catch_all=self._vocabulary.catch_all,
            )
            return self._generator.generate_text(prompt, model=self._model, temperature=0.0)
        except Exception:
            logger.warning("category inference generation failed title=%s", title, exc_info=True)
            return ""
