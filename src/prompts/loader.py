from __future__ import annotations

from functools import lru_cache
from pathlib import Path

PROMPT_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Load ``<name>.txt`` shipped next to this module."""

    path = PROMPT_DIR / f"{name}.txt"
    if not path.exists():
        raise RuntimeError(f"Prompt file not found: {path.name}")
    return path.read_text(encoding="utf-8").strip()
