from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent

CHITCHAT_MODES = {"generative", "fixed"}


@dataclass(frozen=True)
class Settings:
    """Configuration container for the model, storage paths, and routing limits."""
    gemini_api_key: str
    gemini_model: str
    catalog_path: Path
    conversations_path: Path
    seed_path: Optional[Path]
    category_rules_path: Optional[Path]
    prompts_dir: Path
    shelf_capacity: int
    history_window: int
    max_sessions: int
    llm_timeout_sec: float
    chitchat_mode: str
    recommend_max_candidates: int


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid integer/float env values or an unknown CHITCHAT_MODE raise
        ValueError.
    If Removed: App cannot configure the model, catalog, or shelf rules and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve data paths, then build Settings.
    data_dir = Path(os.getenv("DATA_DIR") or (BASE_DIR / "data")).resolve()
    catalog_path = Path(os.getenv("CATALOG_PATH") or (data_dir / "catalog.json"))
    conversations_path = Path(os.getenv("CONVERSATIONS_PATH") or (data_dir / "conversations.json"))

    seed_env = os.getenv("SEED_PATH")
    seed_path = Path(seed_env) if seed_env else (BASE_DIR / "resources" / "seed_books.json")
    rules_env = os.getenv("CATEGORY_RULES_PATH")

    chitchat_mode = os.getenv("CHITCHAT_MODE", "generative").strip().lower()
    if chitchat_mode not in CHITCHAT_MODES:
        raise ValueError(f"CHITCHAT_MODE must be one of {sorted(CHITCHAT_MODES)}, got {chitchat_mode!r}")

    shelf_capacity = int(os.getenv("SHELF_CAPACITY", "15"))
    if shelf_capacity < 1:
        raise ValueError("SHELF_CAPACITY must be a positive integer")

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        catalog_path=catalog_path,
        conversations_path=conversations_path,
        seed_path=seed_path,
        category_rules_path=Path(rules_env) if rules_env else None,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        shelf_capacity=shelf_capacity,
        history_window=int(os.getenv("HISTORY_WINDOW", "6")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "50")),
        llm_timeout_sec=float(os.getenv("LLM_TIMEOUT_SEC", "20")),
        chitchat_mode=chitchat_mode,
        recommend_max_candidates=int(os.getenv("RECOMMEND_MAX_CANDIDATES", "30")),
    )
