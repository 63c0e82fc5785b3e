from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from .config import configure_logging
from .models import (
    Blocks,
    Content,
    ContentBlock,
    LogEntry,
    PlainText,
    SessionMessage,
    SessionSummary,
    TextBlock,
    ToolUse,
    ToolUseBlock,
)
from .utils import parse_timestamp, safe_json_loads

logger = configure_logging()

UNKNOWN_TOOL = "unknown"
UNKNOWN_ROLE = "unknown"

# Top-level keys whose values must be strings (or null) for a line to decode.
_STRING_KEYS = ("type", "role", "parentUuid", "uuid", "sessionId", "gitBranch", "timestamp", "cwd")
_MESSAGE_STRING_KEYS = ("role", "model")


def _optional_str(value: Any) -> bool:
    return value is None or isinstance(value, str)


def _decode_block(item: Any) -> ContentBlock | None:
    if not isinstance(item, dict):
        return None
    block_type = item.get("type")
    if block_type == "text":
        text = item.get("text")
        if isinstance(text, str):
            return TextBlock(text=text)
        return None
    if block_type == "tool_use":
        name = item.get("name")
        return ToolUseBlock(name=name if isinstance(name, str) else None)
    return None


def _decode_content(value: Any) -> Content | None:
    if isinstance(value, str):
        return PlainText(value)
    if isinstance(value, list):
        items: list[ContentBlock] = []
        for item in value:
            block = _decode_block(item)
            if block is not None:
                items.append(block)
        return Blocks(items)
    return None


def decode_line(line: str) -> LogEntry | None:
    """Decode one JSONL line, or return ``None`` when it should be skipped.

    Blank lines, invalid JSON, non-object records and records whose known
    fields carry the wrong type are all skipped. Unknown fields are ignored.
    """
    if not line or not line.strip():
        return None
    record, error = safe_json_loads(line)
    if error or not isinstance(record, dict):
        return None
    if not all(_optional_str(record.get(key)) for key in _STRING_KEYS):
        return None
    if record.get("isSidechain") is not None and not isinstance(record.get("isSidechain"), bool):
        return None

    message = record.get("message")
    if message is None:
        message = {}
    if not isinstance(message, dict):
        return None
    if not all(_optional_str(message.get(key)) for key in _MESSAGE_STRING_KEYS):
        return None

    return LogEntry(
        kind=record.get("type"),
        message_role=message.get("role"),
        git_branch=record.get("gitBranch"),
        timestamp_raw=record.get("timestamp"),
        cwd=record.get("cwd"),
        content=_decode_content(message.get("content")),
        model=message.get("model"),
    )


def iter_entries(path: Path) -> Iterator[LogEntry]:
    """Stream decoded entries from ``path`` in file order.

    Failing to open or read the file raises ``OSError``; bad lines do not.
    """
    skipped = 0
    with path.open("r", encoding="utf-8-sig", errors="replace") as handle:
        for line in handle:
            entry = decode_line(line)
            if entry is None:
                if line.strip():
                    skipped += 1
                continue
            yield entry
    if skipped:
        logger.debug("skipped %d undecodable lines in %s", skipped, path)


def extract_text(content: Content | None) -> str | None:
    if content is None:
        return None
    if isinstance(content, PlainText):
        return content.text
    texts = [block.text for block in content.items if isinstance(block, TextBlock) and block.text]
    if not texts:
        return None
    return "\n".join(texts)


def extract_tool_uses(content: Content | None) -> list[ToolUse]:
    if not isinstance(content, Blocks):
        return []
    return [
        ToolUse(name=block.name or UNKNOWN_TOOL)
        for block in content.items
        if isinstance(block, ToolUseBlock)
    ]


def count_tool_uses(content: Content | None) -> int:
    if not isinstance(content, Blocks):
        return 0
    return sum(1 for block in content.items if isinstance(block, ToolUseBlock))


def aggregate(
    entries: Iterable[LogEntry],
    file_size_bytes: int,
    modified: datetime | None,
    session_id: str,
) -> SessionSummary | None:
    """Fold entries into a summary; ``None`` when the file has no conversation.

    Branch, creation time, project path and first prompt keep the first value
    seen among user entries.
    """
    summary = SessionSummary(
        session_id=session_id,
        modified=modified,
        file_size_bytes=file_size_bytes,
    )
    for entry in entries:
        if entry.kind == "user":
            summary.user_message_count += 1
            if summary.git_branch is None:
                summary.git_branch = entry.git_branch
            if summary.created is None:
                summary.created = parse_timestamp(entry.timestamp_raw)
            if summary.project_path is None:
                summary.project_path = entry.cwd
            if summary.first_prompt is None:
                summary.first_prompt = extract_text(entry.content) or None
        elif entry.message_role == "assistant":
            summary.assistant_message_count += 1
            summary.tool_use_count += count_tool_uses(entry.content)

    if summary.user_message_count == 0 and summary.assistant_message_count == 0:
        return None
    return summary


def parse_summary(path: Path) -> SessionSummary | None:
    stat = path.stat()
    modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).astimezone()
    return aggregate(
        iter_entries(path),
        file_size_bytes=stat.st_size,
        modified=modified,
        session_id=path.stem,
    )


def reconstruct(entries: Iterable[LogEntry], user_only: bool = False) -> list[SessionMessage]:
    messages: list[SessionMessage] = []
    for entry in entries:
        if entry.kind == "user":
            text = extract_text(entry.content)
            if text:
                messages.append(
                    SessionMessage(
                        role="user",
                        content=text,
                        timestamp=parse_timestamp(entry.timestamp_raw),
                    )
                )
        elif not user_only and entry.message_role == "assistant":
            text = extract_text(entry.content)
            tool_uses = extract_tool_uses(entry.content)
            if text or tool_uses:
                messages.append(
                    SessionMessage(
                        role="assistant",
                        content=text or "",
                        timestamp=parse_timestamp(entry.timestamp_raw),
                        model=entry.model,
                        tool_uses=tool_uses,
                    )
                )
    return messages


def parse_messages(path: Path, user_only: bool = False) -> list[SessionMessage]:
    return reconstruct(iter_entries(path), user_only=user_only)


def search(entries: Iterable[LogEntry], query: str) -> list[SessionMessage]:
    """Return every entry whose text contains ``query``, ignoring case.

    Unlike :func:`reconstruct` this looks at all entries carrying content,
    whatever their role. Entries without a role are reported as ``"unknown"``.
    """
    needle = query.casefold()
    results: list[SessionMessage] = []
    for entry in entries:
        if entry.content is None:
            continue
        text = extract_text(entry.content)
        if text is None or needle not in text.casefold():
            continue
        role = "user" if entry.kind == "user" else (entry.message_role or UNKNOWN_ROLE)
        results.append(
            SessionMessage(
                role=role,
                content=text,
                timestamp=parse_timestamp(entry.timestamp_raw),
            )
        )
    return results


def search_messages(path: Path, query: str) -> list[SessionMessage]:
    return search(iter_entries(path), query)
