"""Shared utilities for the imgchat engine."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_VAR = "IMGCHAT_ENV_FILE"


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def preview_text(text: str, limit: int = 200) -> str:
    """Quoted, length-capped preview of `text` for debug logs."""
    clipped = str(text or "")[: max(0, limit)]
    return repr(clipped)


def load_dotenv(path: Path | None = None) -> bool:
    """Export `KEY=value` pairs from an env file without overriding the environment.

    Defaults to `$IMGCHAT_ENV_FILE`, else `.env` in the working directory.
    """
    if path is None:
        path = Path(os.environ.get(ENV_FILE_VAR) or ".env")
    if not path.is_file():
        return False
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        pair = _env_pair(raw_line)
        if pair is not None:
            os.environ.setdefault(*pair)
    return True


def _env_pair(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if line.startswith("#") or "=" not in line:
        return None
    key, _, value = line.removeprefix("export ").partition("=")
    key = key.strip()
    if not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return key, value
