from __future__ import annotations

import os
from pathlib import Path

from .config import configure_logging
from .filters import sort_sessions
from .models import ProjectInfo, SessionSummary
from .parser import parse_summary

logger = configure_logging()

SESSION_SUFFIX = ".jsonl"


def get_project_key(project_path: str | os.PathLike[str]) -> str:
    """Turn a project path into the directory name the assistant stores it under.

    ``/home/me/app`` becomes ``-home-me-app``.
    """
    full_path = os.path.abspath(os.fspath(project_path))
    return full_path.replace("/", "-").replace("\\", "-")


def find_project_dir(
    projects_root: Path,
    project_path: str | os.PathLike[str] | None = None,
    start: Path | None = None,
) -> Path | None:
    """Locate the session directory for a project.

    With an explicit ``project_path`` only that project is considered.
    Otherwise walk up from ``start`` (default: the current directory) and
    return the first ancestor that has a session directory.
    """
    if project_path is not None:
        candidate_dir = projects_root / get_project_key(project_path)
        if candidate_dir.is_dir():
            return candidate_dir
        logger.info("no session directory for %s under %s", project_path, projects_root)
        return None

    current = Path(os.path.abspath(start or Path.cwd()))
    for candidate in (current, *current.parents):
        candidate_dir = projects_root / get_project_key(candidate)
        if candidate_dir.is_dir():
            return candidate_dir
    logger.info("no session directory found walking up from %s", current)
    return None


def find_session_files(project_dir: Path) -> list[Path]:
    return sorted(path for path in project_dir.glob(f"*{SESSION_SUFFIX}") if path.is_file())


def session_path(project_dir: Path, session_id: str) -> Path:
    return project_dir / f"{session_id}{SESSION_SUFFIX}"


def list_project_dirs(projects_root: Path) -> list[ProjectInfo]:
    if not projects_root.is_dir():
        logger.info("projects root not found: %s", projects_root)
        return []
    projects: list[ProjectInfo] = []
    for directory in sorted(projects_root.iterdir(), key=lambda item: item.name):
        if not directory.is_dir():
            continue
        count = len(find_session_files(directory))
        if count:
            projects.append(ProjectInfo(key=directory.name, path=directory, session_count=count))
    return projects


def list_sessions(project_dir: Path) -> list[SessionSummary]:
    """Summaries for every conversational session in ``project_dir``, oldest first."""
    sessions: list[SessionSummary] = []
    for path in find_session_files(project_dir):
        summary = parse_summary(path)
        if summary is not None:
            sessions.append(summary)
    return sort_sessions(sessions)
