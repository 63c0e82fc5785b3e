from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-ish timestamp into an aware datetime in local time.

    Naive values are taken to be UTC, which is what the assistant writes.
    Anything that does not parse yields ``None``.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone()


def format_timestamp(value: datetime | None, fmt: str = "%Y-%m-%d %H:%M") -> str | None:
    if value is None:
        return None
    return value.strftime(fmt)


def isoformat_or_none(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def safe_json_loads(line: str) -> tuple[Any | None, str | None]:
    try:
        return json.loads(line), None
    except (ValueError, RecursionError) as exc:
        # JSONDecodeError, oversized integer literals and deep nesting.
        return None, str(exc)


def shorten_text(text: str | None, max_len: int, placeholder: str = "-") -> str:
    if not text:
        return placeholder
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def flatten_lines(text: str | None) -> str | None:
    if text is None:
        return None
    return text.replace("\r", " ").replace("\n", " ")


def format_bytes(size: int) -> str:
    value = float(size)
    order = 0
    while value >= 1024 and order < len(_SIZE_UNITS) - 1:
        order += 1
        value /= 1024
    # One decimal, trailing ".0" dropped: "512 B", "1.5 KB".
    rendered = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{rendered} {_SIZE_UNITS[order]}"
