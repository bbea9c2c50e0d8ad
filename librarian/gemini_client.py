from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

import google.generativeai as genai

from .config import Settings
from .exceptions import GenerationError

logger = logging.getLogger("librarian.gemini")

# Block only high-risk output on every harm category.
SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
DEFAULT_SAFETY_SETTINGS = [{"category": name, "threshold": "BLOCK_ONLY_HIGH"} for name in SAFETY_CATEGORIES]


class TextGenerator(Protocol):
    """Anything that turns a prompt into free-form text and may raise on failure."""

    def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
    ) -> str:
        ...

    def generate_content(
        self,
        contents: list,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
    ) -> str:
        ...


class GeminiClient:
    """Thin wrapper around the Gemini SDK with model caching, safety settings and timeouts."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK API key and caches model instances.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: A missing API key does not fail startup; every call then raises
            GenerationError so the router falls back to its deterministic paths.
        If Removed: Category inference, classification and recaps have no model behind them.
        Testing Notes: Without GEMINI_API_KEY, generate_text raises GenerationError.
        """
        # Configure API key and seed default model cache.
        self._settings = settings
        self._timeout = settings.llm_timeout_sec
        self._configured = bool(settings.gemini_api_key)
        self._models: Dict[str, genai.GenerativeModel] = {}
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._configured:
            logger.warning("GEMINI_API_KEY is not set; text generation will use fallbacks")
            return
        genai.configure(api_key=settings.gemini_api_key)
        if self._default_model:
            self._models[self._default_model] = genai.GenerativeModel(self._default_model)

    def _get_model(self, model: Optional[str]) -> genai.GenerativeModel:
        # Resolve model name and ensure a cached model instance exists.
        if not self._configured:
            raise GenerationError("GEMINI_API_KEY is required")
        model_name = _normalize_model_name(model) if model else self._default_model
        if not model_name:
            raise GenerationError("Gemini model name is required")
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        return self._models[model_name]

    def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
    ) -> str:
        """Purpose: Generate a single text response from a string prompt.
        Inputs/Outputs: Input is prompt string and optional model/config; returns text.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses genai.GenerativeModel.generate_content with a request timeout.
        Failure Modes: Raises GenerationError on missing configuration, SDK errors, or
            timeout expiry.
        If Removed: Intent classification and category inference cannot call the LLM.
        Testing Notes: Ensure non-empty output for valid prompt and model.
        """
        generative_model = self._get_model(model)
        try:
            response = generative_model.generate_content(
                prompt,
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": max_output_tokens,
                },
                safety_settings=DEFAULT_SAFETY_SETTINGS,
                request_options={"timeout": self._timeout},
            )
            text: Optional[str] = getattr(response, "text", None)
        except Exception as exc:
            raise GenerationError(f"Gemini generate_text failed: {exc}") from exc
        return (text or "").strip()

    def generate_content(
        self,
        contents: list,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
    ) -> str:
        """Purpose: Generate a response from role-tagged chat contents.
        Inputs/Outputs: Input is a list of content entries and an optional system prompt;
            returns text.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses genai.GenerativeModel.generate_content; flattens the contents
            into one prompt when the system instruction is rejected.
        Failure Modes: Raises GenerationError on missing configuration, SDK errors, or
            timeout expiry.
        If Removed: Multi-turn small talk with conversation context stops working.
        Testing Notes: Test both structured contents and the flattened fallback path.
        """
        generative_model = self._get_model(model)
        kwargs = {
            "generation_config": {
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            },
            "safety_settings": DEFAULT_SAFETY_SETTINGS,
            "request_options": {"timeout": self._timeout},
        }
        try:
            if system_instruction:
                try:
                    response = generative_model.generate_content(
                        contents, system_instruction=system_instruction, **kwargs
                    )
                except TypeError:
                    combined = f"{system_instruction}\n\n" + flatten_contents(contents)
                    response = generative_model.generate_content(combined, **kwargs)
            else:
                response = generative_model.generate_content(contents, **kwargs)
            text: Optional[str] = getattr(response, "text", None)
        except Exception as exc:
            raise GenerationError(f"Gemini generate_content failed: {exc}") from exc
        return (text or "").strip()


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip whitespace and the "models/" resource prefix ("models/x" -> "x")."""
    cleaned = (name or "").strip()
    return cleaned[len("models/"):] if cleaned.startswith("models/") else cleaned


def build_history_contents(turns: List[dict]) -> List[dict]:
    """Convert oldest-first conversation turns into Gemini role/parts entries."""
    contents = []
    for turn in turns:
        message = turn.get("message", "")
        if not message:
            continue
        role = "user" if turn.get("role") == "user" else "model"
        contents.append({"role": role, "parts": [{"text": message}]})
    return contents


def flatten_contents(contents: list) -> str:
    """Purpose: Render role/parts contents as one plain-text prompt.
    Inputs/Outputs: Input is a list of content dicts; output is "ROLE: text" blocks
        separated by blank lines.
    Side Effects / State: None.
    Dependencies: Used by GeminiClient.generate_content when the SDK rejects a
        per-call system instruction.
    Failure Modes: Entries that are not dicts, and parts without text, are skipped.
    If Removed: Small talk fails on SDKs without per-call system instructions.
    Testing Notes: A user/model pair flattens to "USER: a\\n\\nMODEL: b".
    """
    blocks: List[str] = []
    for entry in contents:
        if not isinstance(entry, dict):
            continue
        texts = [
            str(part["text"])
            for part in entry.get("parts") or []
            if isinstance(part, dict) and part.get("text")
        ]
        if not texts:
            continue
        role = entry.get("role", "")
        blocks.append((f"{role.upper()}: " if role else "") + "\n".join(texts))
    return "\n\n".join(blocks)
