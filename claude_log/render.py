from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import json
import sys
from typing import Any, TextIO

from .models import ProjectInfo, SearchHit, SessionMessage, SessionSummary
from .utils import flatten_lines, format_bytes, format_timestamp, isoformat_or_none, shorten_text

FORMATS = ("table", "json", "markdown")

_BOLD = "\x1b[1m"
_CYAN = "\x1b[36m"
_YELLOW = "\x1b[33m"
_RESET = "\x1b[0m"


@dataclass
class RenderOptions:
    max_lines: int = 20
    show_tools: bool = True
    color: bool = True


def summary_to_dict(session: SessionSummary) -> dict[str, Any]:
    return {
        "sessionId": session.session_id,
        "gitBranch": session.git_branch,
        "firstPrompt": session.first_prompt,
        "created": isoformat_or_none(session.created),
        "modified": isoformat_or_none(session.modified),
        "userMessageCount": session.user_message_count,
        "assistantMessageCount": session.assistant_message_count,
        "toolUseCount": session.tool_use_count,
        "fileSizeBytes": session.file_size_bytes,
        "projectPath": session.project_path,
    }


def message_to_dict(message: SessionMessage) -> dict[str, Any]:
    return {
        "role": message.role,
        "content": message.content,
        "timestamp": isoformat_or_none(message.timestamp),
        "model": message.model,
        "toolUses": [{"name": tool.name} for tool in message.tool_uses],
    }


class Renderer(ABC):
    def __init__(self, out: TextIO | None = None, options: RenderOptions | None = None) -> None:
        self.out = out or sys.stdout
        self.options = options or RenderOptions()

    def _emit(self, text: str = "") -> None:
        print(text, file=self.out)

    @abstractmethod
    def write_sessions(self, sessions: list[SessionSummary]) -> None:
        ...

    @abstractmethod
    def write_session(self, session: SessionSummary | None) -> None:
        ...

    @abstractmethod
    def write_messages(self, messages: list[SessionMessage]) -> None:
        ...

    @abstractmethod
    def write_search_hits(self, query: str, hits: list[SearchHit]) -> None:
        ...

    @abstractmethod
    def write_tool_counts(self, counts: list[tuple[str, int]], session_count: int) -> None:
        ...

    @abstractmethod
    def write_projects(self, projects: list[ProjectInfo]) -> None:
        ...


class TableRenderer(Renderer):
    def _style(self, code: str, text: str) -> str:
        if not self.options.color:
            return text
        return f"{code}{text}{_RESET}"

    def write_sessions(self, sessions: list[SessionSummary]) -> None:
        if not sessions:
            self._emit("No sessions found.")
            return
        self._emit(f"{'#':<4} {'Created':<18} {'Branch':<16} {'Msgs':<6} {'Tools':<7} {'Size':<8} First Prompt")
        self._emit("-" * 120)
        for idx, session in enumerate(sessions, start=1):
            created = format_timestamp(session.created) or "-"
            branch = shorten_text(session.git_branch, 16)
            prompt = shorten_text(flatten_lines(session.first_prompt), 50)
            size = format_bytes(session.file_size_bytes)
            self._emit(
                f"{idx:<4} {created:<18} {branch:<16} {session.user_message_count:<6} "
                f"{session.tool_use_count:<7} {size:<8} {prompt}"
            )
        total_user = sum(session.user_message_count for session in sessions)
        self._emit()
        self._emit(f"{len(sessions)} sessions, {total_user} total user messages")

    def write_session(self, session: SessionSummary | None) -> None:
        if session is None:
            self._emit("Session not found.")
            return
        long_fmt = "%Y-%m-%d %H:%M:%S"
        self._emit(f"Session:    {session.session_id}")
        self._emit(f"Branch:     {session.git_branch or '-'}")
        self._emit(f"Project:    {session.project_path or '-'}")
        self._emit(f"Created:    {format_timestamp(session.created, long_fmt) or '-'}")
        self._emit(f"Modified:   {format_timestamp(session.modified, long_fmt) or '-'}")
        self._emit(
            f"Messages:   {session.user_message_count} user, "
            f"{session.assistant_message_count} assistant"
        )
        self._emit(f"Tool uses:  {session.tool_use_count}")
        self._emit(f"Size:       {format_bytes(session.file_size_bytes)}")
        self._emit(f"Prompt:     {session.first_prompt or '-'}")

    def write_messages(self, messages: list[SessionMessage]) -> None:
        if not messages:
            self._emit("No messages found.")
            return
        for message in messages:
            self._write_message(message)
        self._emit(f"{len(messages)} messages")

    def _write_message(self, message: SessionMessage) -> None:
        time = format_timestamp(message.timestamp, "%H:%M:%S") or "??:??:??"
        if message.role == "user":
            header = self._style(_CYAN, f"[{time}] USER")
        else:
            header = self._style(_YELLOW, f"[{time}] ASST")
        self._emit(header)

        if self.options.show_tools and message.tool_uses:
            names = ", ".join(tool.name for tool in message.tool_uses)
            self._emit(f"  Tools: {names}")

        if message.content:
            lines = message.content.split("\n")
            limit = self.options.max_lines
            for line in lines[:limit]:
                self._emit(f"  {line}")
            if len(lines) > limit:
                self._emit(f"  ... ({len(lines) - limit} more lines)")
        self._emit()

    def write_search_hits(self, query: str, hits: list[SearchHit]) -> None:
        total = 0
        for hit in hits:
            session = hit.session
            created = format_timestamp(session.created, "%Y-%m-%d") or "-"
            branch = session.git_branch or "no branch"
            self._emit(self._style(_BOLD, f"--- Session: {session.session_id} ({branch}, {created}) ---"))
            self.write_messages(hit.messages)
            total += len(hit.messages)
        if total == 0:
            self._emit(f'No matches for "{query}".')
        else:
            self._emit()
            self._emit(f"{total} total matches across sessions.")

    def write_tool_counts(self, counts: list[tuple[str, int]], session_count: int) -> None:
        if not counts:
            self._emit("No tool usage found.")
            return
        self._emit(f"{'Tool':<30} {'Count':<8}")
        self._emit("-" * 38)
        for name, count in counts:
            self._emit(f"{name:<30} {count:<8}")
        total = sum(count for _, count in counts)
        self._emit()
        self._emit(f"{total} total tool uses across {session_count} session(s)")

    def write_projects(self, projects: list[ProjectInfo]) -> None:
        if not projects:
            self._emit("No Claude Code projects found.")
            return
        self._emit(f"{'Project Key':<60} {'Sessions':<10}")
        self._emit("-" * 70)
        for project in projects:
            self._emit(f"{project.key:<60} {project.session_count:<10}")


class JsonRenderer(Renderer):
    def _dump(self, payload: Any) -> None:
        self._emit(json.dumps(payload, indent=2, ensure_ascii=False))

    def write_sessions(self, sessions: list[SessionSummary]) -> None:
        self._dump([summary_to_dict(session) for session in sessions])

    def write_session(self, session: SessionSummary | None) -> None:
        self._dump(summary_to_dict(session) if session is not None else None)

    def write_messages(self, messages: list[SessionMessage]) -> None:
        self._dump([message_to_dict(message) for message in messages])

    def write_search_hits(self, query: str, hits: list[SearchHit]) -> None:
        self._dump(
            [
                {
                    "sessionId": hit.session.session_id,
                    "matches": [message_to_dict(message) for message in hit.messages],
                }
                for hit in hits
            ]
        )

    def write_tool_counts(self, counts: list[tuple[str, int]], session_count: int) -> None:
        self._dump(
            {
                "sessionCount": session_count,
                "tools": [{"name": name, "count": count} for name, count in counts],
            }
        )

    def write_projects(self, projects: list[ProjectInfo]) -> None:
        self._dump(
            [
                {"projectKey": project.key, "path": str(project.path), "sessionCount": project.session_count}
                for project in projects
            ]
        )


class MarkdownRenderer(Renderer):
    def write_sessions(self, sessions: list[SessionSummary]) -> None:
        if not sessions:
            self._emit("_No sessions found._")
            return
        self._emit("| # | Created | Branch | Msgs | Tools | First Prompt |")
        self._emit("|---|---------|--------|------|-------|--------------|")
        for idx, session in enumerate(sessions, start=1):
            created = format_timestamp(session.created) or "-"
            prompt = shorten_text(flatten_lines(session.first_prompt), 50).replace("|", "\\|")
            self._emit(
                f"| {idx} | {created} | {session.git_branch or '-'} | "
                f"{session.user_message_count} | {session.tool_use_count} | {prompt} |"
            )

    def write_session(self, session: SessionSummary | None) -> None:
        if session is None:
            self._emit("_Session not found._")
            return
        self._emit(f"# {session.session_id}")
        self._emit()
        for line in _format_summary_bullets(session):
            self._emit(line)

    def write_messages(self, messages: list[SessionMessage]) -> None:
        if not messages:
            self._emit("_No messages found._")
            return
        for message in messages:
            for line in self._format_message(message):
                self._emit(line)

    def _format_message(self, message: SessionMessage) -> list[str]:
        lines = [f"## {message.role.title()}"]
        stamp = format_timestamp(message.timestamp, "%Y-%m-%d %H:%M:%S")
        if stamp:
            lines.append(f"_{stamp}_")
        if self.options.show_tools and message.tool_uses:
            rendered = ", ".join(f"`{tool.name}`" for tool in message.tool_uses)
            lines.append(f"Tools: {rendered}")
        lines.append("")
        if message.content:
            lines.append(message.content)
            lines.append("")
        return lines

    def write_search_hits(self, query: str, hits: list[SearchHit]) -> None:
        if not hits:
            self._emit(f'_No matches for "{query}"._')
            return
        for hit in hits:
            self._emit(f"# Session {hit.session.session_id}")
            self._emit()
            self.write_messages(hit.messages)

    def write_tool_counts(self, counts: list[tuple[str, int]], session_count: int) -> None:
        if not counts:
            self._emit("_No tool usage found._")
            return
        self._emit("| Tool | Count |")
        self._emit("|------|-------|")
        for name, count in counts:
            self._emit(f"| {name} | {count} |")

    def write_projects(self, projects: list[ProjectInfo]) -> None:
        if not projects:
            self._emit("_No Claude Code projects found._")
            return
        for project in projects:
            self._emit(f"- `{project.key}` ({project.session_count} sessions)")


def _format_summary_bullets(session: SessionSummary) -> list[str]:
    lines: list[str] = []
    created = format_timestamp(session.created, "%Y-%m-%d %H:%M:%S")
    if created:
        lines.append(f"- Created: {created}")
    if session.project_path:
        lines.append(f"- Folder: {session.project_path}")
    if session.git_branch:
        lines.append(f"- Branch: {session.git_branch}")
    lines.append(
        f"- Messages: {session.user_message_count} user, {session.assistant_message_count} assistant"
    )
    lines.append(f"- Tool uses: {session.tool_use_count}")
    lines.append(f"- Size: {format_bytes(session.file_size_bytes)}")
    if session.first_prompt:
        lines.append(f"- First prompt: {flatten_lines(session.first_prompt)}")
    return lines


def get_renderer(fmt: str, out: TextIO | None = None, options: RenderOptions | None = None) -> Renderer:
    if fmt == "json":
        return JsonRenderer(out, options)
    if fmt == "markdown":
        return MarkdownRenderer(out, options)
    return TableRenderer(out, options)
