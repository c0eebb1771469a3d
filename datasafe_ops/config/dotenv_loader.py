"""
Explicit dotenv loader.

Loads `.env` then `.env.local` (local overrides) from the working directory
unless DSOPS_NO_DOTENV is set.

This must remain dependency-light and MUST NOT import `datasafe_ops.config.config`.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


def _dotenv_disabled() -> bool:
    return str(os.getenv("DSOPS_NO_DOTENV", "")).strip().lower() in ("1", "true", "yes")


def load_dotenv_files(*, root: Path | None = None) -> list[Path]:
    """
    Load dotenv files for local usage.

    Returns the files that were loaded.
    """
    if _dotenv_disabled():
        return []

    root = root or Path.cwd()
    env_path = root / ".env"
    env_local_path = root / ".env.local"
    loaded = []

    # Load base .env first (if present)
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)
        loaded.append(env_path)

    # Load .env.local second (override for local convenience)
    if env_local_path.exists():
        load_dotenv(dotenv_path=env_local_path, override=True)
        loaded.append(env_local_path)

    return loaded
