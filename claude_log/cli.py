from __future__ import annotations

import argparse
from collections import Counter
from pathlib import Path
import sys

from .config import configure_logging, get_projects_root
from .discover import find_project_dir, list_project_dirs, list_sessions, session_path
from .filters import rank_tool_counts, resolve_session, tally_tool_uses
from .models import SearchHit, SessionSummary
from .parser import parse_messages, parse_summary, search_messages
from .render import FORMATS, RenderOptions, Renderer, get_renderer
from .tui import run_tui

logger = configure_logging()

NO_PROJECT_MESSAGE = "No Claude Code sessions found. Use --path to specify a project directory."


class CommandError(Exception):
    """A user-facing failure; the message goes to stderr and the exit code is 1."""


def _common_options() -> argparse.ArgumentParser:
    # SUPPRESS keeps a value given before the subcommand from being reset by
    # the subcommand's own defaults.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--path", default=argparse.SUPPRESS, help="Project path (default: auto-detect from cwd)")
    common.add_argument(
        "--format",
        choices=FORMATS,
        default=argparse.SUPPRESS,
        help="Output format (default: table)",
    )
    common.add_argument(
        "--projects-root",
        default=argparse.SUPPRESS,
        help="Directory holding per-project session folders (default: ~/.claude/projects)",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="claude-log",
        description="Parse and analyze Claude Code chat logs",
        parents=[common],
        epilog=(
            "Sessions can be referenced by their full id, an id prefix, "
            "or by their 1-based index number from 'sessions list'."
        ),
    )
    subparsers = parser.add_subparsers(dest="command")

    sessions_parser = subparsers.add_parser("sessions", help="Inspect sessions of a project", parents=[common])
    session_commands = sessions_parser.add_subparsers(dest="action")
    session_commands.add_parser("list", help="List all sessions for the project", parents=[common])
    for name, help_text in (
        ("show", "Show session details"),
        ("messages", "Show all messages in a session"),
        ("prompts", "Show only user prompts from a session"),
    ):
        action_parser = session_commands.add_parser(name, help=help_text, parents=[common])
        action_parser.add_argument("session", nargs="?", help="Session id, id prefix or list number")
    search_parser = session_commands.add_parser("search", help="Search across all sessions", parents=[common])
    search_parser.add_argument("query", nargs="?", help="Text to look for (case-insensitive)")
    tools_parser = session_commands.add_parser("tools", help="Show tool usage stats", parents=[common])
    tools_parser.add_argument("session", nargs="?", help="Limit to one session")

    projects_parser = subparsers.add_parser("projects", help="Inspect known projects", parents=[common])
    project_commands = projects_parser.add_subparsers(dest="action")
    project_commands.add_parser("list", help="List all Claude Code projects", parents=[common])

    subparsers.add_parser("browse", help="Launch interactive browser", parents=[common])
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "sessions":
            return _sessions_cmd(args)
        if args.command == "projects":
            return _projects_cmd(args)
        if args.command == "browse":
            return run_tui(_projects_root(args), _project_dir(args))
    except CommandError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except OSError as exc:
        logger.exception("command %s failed", args.command)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser.print_help()
    return 0


def _projects_root(args: argparse.Namespace) -> Path:
    raw = getattr(args, "projects_root", None)
    if raw:
        return Path(raw).expanduser()
    return get_projects_root()


def _project_dir(args: argparse.Namespace) -> Path:
    raw_path = getattr(args, "path", None)
    project_path = Path(raw_path).expanduser() if raw_path else None
    project_dir = find_project_dir(_projects_root(args), project_path)
    if project_dir is None:
        raise CommandError(NO_PROJECT_MESSAGE)
    return project_dir


def _renderer(args: argparse.Namespace) -> Renderer:
    fmt = getattr(args, "format", "table")
    return get_renderer(fmt, options=RenderOptions(color=sys.stdout.isatty()))


def _resolve(args: argparse.Namespace, sessions: list[SessionSummary]) -> SessionSummary:
    identifier = getattr(args, "session", None)
    if not identifier:
        raise CommandError(
            f"Usage: claude-log sessions {args.action} <session-id-or-number> [--path <project-path>]"
        )
    match = resolve_session(identifier, sessions)
    if match is None:
        raise CommandError(
            f"Session not found: {identifier}. Use 'claude-log sessions list' to see available sessions."
        )
    return match


def _sessions_cmd(args: argparse.Namespace) -> int:
    action = args.action or "list"
    if action == "search":
        return _search_cmd(args)

    project_dir = _project_dir(args)
    sessions = list_sessions(project_dir)
    renderer = _renderer(args)

    if action == "list":
        renderer.write_sessions(sessions)
        return 0
    if action == "tools":
        return _tools_cmd(args, project_dir, sessions, renderer)

    match = _resolve(args, sessions)
    path = session_path(project_dir, match.session_id)
    if action == "show":
        renderer.write_session(parse_summary(path))
    elif action == "messages":
        renderer.write_messages(parse_messages(path))
    elif action == "prompts":
        renderer.write_messages(parse_messages(path, user_only=True))
    return 0


def _search_cmd(args: argparse.Namespace) -> int:
    query = args.query
    if not query:
        raise CommandError("Usage: claude-log sessions search <query> [--path <project-path>]")

    project_dir = _project_dir(args)
    hits: list[SearchHit] = []
    for session in list_sessions(project_dir):
        matches = search_messages(session_path(project_dir, session.session_id), query)
        if matches:
            hits.append(SearchHit(session=session, messages=matches))
    logger.info("search %r matched %d session(s) in %s", query, len(hits), project_dir)
    _renderer(args).write_search_hits(query, hits)
    return 0


def _tools_cmd(
    args: argparse.Namespace,
    project_dir: Path,
    sessions: list[SessionSummary],
    renderer: Renderer,
) -> int:
    if args.session:
        match = resolve_session(args.session, sessions)
        if match is None:
            raise CommandError(f"Session not found: {args.session}")
        sessions = [match]

    counts: Counter[str] = Counter()
    for session in sessions:
        tally_tool_uses(parse_messages(session_path(project_dir, session.session_id)), counts)
    renderer.write_tool_counts(rank_tool_counts(counts), len(sessions))
    return 0


def _projects_cmd(args: argparse.Namespace) -> int:
    projects = list_project_dirs(_projects_root(args))
    _renderer(args).write_projects(projects)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
