from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence

from .models import SessionMessage, SessionSummary


def sort_sessions(sessions: Iterable[SessionSummary]) -> list[SessionSummary]:
    # Oldest first; sessions without a creation time lead.
    def sort_key(item: SessionSummary) -> tuple[int, float]:
        if item.created is None:
            return (0, 0.0)
        return (1, item.created.timestamp())

    return sorted(sessions, key=sort_key)


def resolve_session(identifier: str, sessions: Sequence[SessionSummary]) -> SessionSummary | None:
    """Resolve a 1-based list position, a unique id prefix, or a full id.

    Prefix and full-id matching ignore case. An ambiguous prefix only
    resolves when it is also the complete id of one session.
    """
    text = identifier.strip()
    if not text:
        return None
    if text.isdecimal():
        index = int(text)
        if 1 <= index <= len(sessions):
            return sessions[index - 1]

    needle = text.casefold()
    matches = [session for session in sessions if session.session_id.casefold().startswith(needle)]
    if len(matches) == 1:
        return matches[0]

    for session in sessions:
        if session.session_id.casefold() == needle:
            return session
    return None


def tally_tool_uses(messages: Iterable[SessionMessage], counts: Counter[str] | None = None) -> Counter[str]:
    tally: Counter[str] = counts if counts is not None else Counter()
    for message in messages:
        for tool in message.tool_uses:
            tally[tool.name] += 1
    return tally


def rank_tool_counts(counts: Counter[str]) -> list[tuple[str, int]]:
    # Most used first, ties by name so output is stable.
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))
