from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
from logging.handlers import RotatingFileHandler
import os

LOG_FILE_NAME = "latest.log"
PROJECTS_DIR_NAME = "projects"


@dataclass
class Settings:
    user_only: bool = False
    show_tools: bool = True
    max_lines: int = 20


def get_claude_home() -> Path:
    env = os.environ.get("CLAUDE_CONFIG_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".claude"


def get_projects_root() -> Path:
    return get_claude_home() / PROJECTS_DIR_NAME


def get_app_home() -> Path:
    return Path.home() / ".claude-log"


def get_log_dir() -> Path:
    return get_app_home() / "logs"


def configure_logging() -> logging.Logger:
    logger = logging.getLogger("claude_log")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    log_dir = get_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Fall back to stderr only if log directory fails.
        logging.basicConfig(level=logging.INFO)
        return logger

    log_path = log_dir / LOG_FILE_NAME
    handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=5)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger
