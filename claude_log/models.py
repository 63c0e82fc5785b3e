from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


@dataclass
class TextBlock:
    text: str
    kind: str = field(default="text", init=False)


@dataclass
class ToolUseBlock:
    name: str | None
    kind: str = field(default="tool_use", init=False)


ContentBlock = TextBlock | ToolUseBlock


@dataclass
class PlainText:
    text: str


@dataclass
class Blocks:
    items: list[ContentBlock]


Content = PlainText | Blocks


@dataclass
class LogEntry:
    kind: str | None = None
    message_role: str | None = None
    git_branch: str | None = None
    timestamp_raw: str | None = None
    cwd: str | None = None
    content: Content | None = None
    model: str | None = None


@dataclass
class ToolUse:
    name: str


@dataclass
class SessionMessage:
    role: str
    content: str
    timestamp: datetime | None = None
    model: str | None = None
    tool_uses: list[ToolUse] = field(default_factory=list)


@dataclass
class SessionSummary:
    session_id: str
    modified: datetime | None
    file_size_bytes: int
    git_branch: str | None = None
    first_prompt: str | None = None
    created: datetime | None = None
    user_message_count: int = 0
    assistant_message_count: int = 0
    tool_use_count: int = 0
    project_path: str | None = None


@dataclass
class SearchHit:
    session: SessionSummary
    messages: list[SessionMessage]


@dataclass
class ProjectInfo:
    key: str
    path: Path
    session_count: int
