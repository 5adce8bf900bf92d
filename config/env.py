"""Environment loading for the orchestration console.

Settings are read from the process environment. For local work they can be
seeded from dotenv files in the project root:

- .env
- .env.dev (only when DJANGO_ENV is dev/development/local)
- the file named by CONSOLE_ENV_FILE, if set

Variables already present in the environment always win.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

DEV_ENVIRONMENTS = {"dev", "development", "local"}


def env_files(base_dir: Path) -> list[Path]:
    """Dotenv files to load, in order."""
    files = [base_dir / ".env"]
    if os.environ.get("DJANGO_ENV", "").lower() in DEV_ENVIRONMENTS:
        files.append(base_dir / ".env.dev")
    extra = os.environ.get("CONSOLE_ENV_FILE")
    if extra:
        files.append(Path(extra))
    return files


def load_env(base_dir: Path | None = None) -> None:
    """Load dotenv files into os.environ without overriding existing values."""
    if base_dir is None:
        base_dir = Path(__file__).resolve().parent.parent

    for path in env_files(base_dir):
        load_dotenv(path, override=False)
