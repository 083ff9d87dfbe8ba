"""Filesystem helpers."""

from __future__ import annotations

from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, returning it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the lingoworker data directory (~/.lingoworker)."""
    return ensure_dir(Path.home() / ".lingoworker")
