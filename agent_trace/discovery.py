"""Locate conversation transcript files for a project."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from agent_trace import config


def mapped_project_name(project_path: Path) -> str:
    """Claude Code's directory naming: ``/Users/me/app`` -> ``-Users-me-app``."""
    return str(project_path.expanduser().resolve()).replace("/", "-")


def _has_conversations(directory: Path) -> bool:
    try:
        return any(child.suffix == ".jsonl" for child in directory.iterdir())
    except OSError:
        return False


def resolve_conversation_dirs(project_path: Path, projects_dir: Optional[Path] = None) -> list[Path]:
    """Resolve the transcript directory for *project_path*.

    A directory that already holds ``.jsonl`` files is used as-is; otherwise
    the project path is mapped into the Claude projects directory.
    """
    resolved = project_path.expanduser().resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"Project path not found: {resolved}")

    if resolved.is_dir() and _has_conversations(resolved):
        return [resolved]

    root = projects_dir if projects_dir is not None else config.PROJECTS_DIR
    candidate = root / mapped_project_name(resolved)
    if not candidate.is_dir():
        raise FileNotFoundError(
            f"No conversation history found for project: {resolved}\nExpected: {candidate}"
        )
    return [candidate]


def find_conversation_files(directory: Path) -> list[Path]:
    try:
        return sorted(path for path in directory.glob("*.jsonl") if path.is_file())
    except OSError:
        return []


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def select_recent(files: list[Path], limit: Optional[int] = None) -> list[Path]:
    """Newest first by modification time, keeping at most *limit* files."""
    ordered = sorted(files, key=_mtime, reverse=True)
    if limit is None or limit < 0:
        return ordered
    return ordered[:limit]
