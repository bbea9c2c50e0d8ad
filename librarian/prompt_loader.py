from __future__ import annotations

from pathlib import Path


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Read a prompt template shipped under librarian/prompts.
    Inputs/Outputs: Input is the template Path; output is its text without a BOM.
    Side Effects / State: Reads the filesystem.
    Dependencies: Used by render_prompt and by the small-talk system instruction.
    Failure Modes: A missing file raises FileNotFoundError; undecodable bytes are dropped.
    If Removed: Every generative step falls back to its deterministic answer.
    Testing Notes: A template saved with a BOM loads without it.
    """
    raw = prompt_path.read_bytes()
    return raw.decode("utf-8-sig", errors="ignore")


def render_prompt(prompt_path: Path, **values: object) -> str:
    """Load a template and substitute each <<NAME>> placeholder with values["name"]."""
    template = load_prompt(prompt_path)
    for name, value in values.items():
        template = template.replace(f"<<{name.upper()}>>", str(value))
    return template
