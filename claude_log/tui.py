from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import io
from pathlib import Path
import pydoc
from typing import Sequence

from prompt_toolkit.application import Application
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout import Layout
from prompt_toolkit.layout.containers import HSplit
from prompt_toolkit.shortcuts import prompt
from prompt_toolkit.widgets import Label, RadioList

from .config import Settings, configure_logging
from .discover import list_project_dirs, list_sessions, session_path
from .filters import rank_tool_counts, tally_tool_uses
from .models import SearchHit, SessionSummary
from .parser import parse_messages, parse_summary, search_messages
from .render import RenderOptions, TableRenderer
from .utils import flatten_lines, format_timestamp, shorten_text

logger = configure_logging()


@dataclass
class TuiState:
    projects_root: Path
    project_dir: Path
    sessions: list[SessionSummary]
    settings: Settings


def run_tui(projects_root: Path, project_dir: Path) -> int:
    logger.info("browsing %s", project_dir)
    state = TuiState(
        projects_root=projects_root,
        project_dir=project_dir,
        sessions=list_sessions(project_dir),
        settings=Settings(),
    )

    while True:
        try:
            result = _main_menu(state)
        except OSError:
            logger.exception("failed to read session files")
            _show_message("Error", "Could not read session files; returning to main menu.")
            state.sessions = list_sessions(state.project_dir)
            continue
        if result == "quit":
            return 0


def _main_menu(state: TuiState) -> str:
    while True:
        options = [
            ("sessions", "Browse sessions"),
            ("search", "Search"),
            ("tools", "Tool usage"),
            ("project", "Switch project"),
            ("settings", "Settings"),
            ("quit", "Quit"),
        ]
        choice = _prompt_choice(
            "Main",
            options,
            allow_back=False,
            allow_quit=True,
            header_lines=[f"Project: {state.project_dir.name}", f"Sessions found: {len(state.sessions)}"],
        )
        if choice == "quit":
            return "quit"
        if choice == "sessions":
            result = _session_list_menu(state, state.sessions, ["Sessions"])
        elif choice == "search":
            result = _search_sessions(state)
        elif choice == "tools":
            _show_tool_usage(state, state.sessions, ["Tool usage"])
            result = None
        elif choice == "project":
            result = _switch_project(state)
        elif choice == "settings":
            result = _settings_menu(state)
        else:
            result = None
        if result == "quit":
            return "quit"


def _switch_project(state: TuiState) -> str | None:
    projects = list_project_dirs(state.projects_root)
    if not projects:
        _show_message("Switch project", f"No projects found under {state.projects_root}.")
        return "back"
    options = [
        (idx, f"{_shorten_project_key(project.key)} ({project.session_count})") for idx, project in enumerate(projects)
    ]
    choice = _prompt_choice("Switch project", options)
    if choice in ("back", "quit"):
        return choice
    _select_project(state, projects[choice].path)
    return "back"


def _select_project(state: TuiState, project_dir: Path) -> None:
    logger.info("switching to %s", project_dir)
    state.project_dir = project_dir
    state.sessions = list_sessions(project_dir)


def _shorten_project_key(key: str) -> str:
    return key if len(key) <= 60 else "..." + key[-57:]


def _search_sessions(state: TuiState) -> str | None:
    if not state.sessions:
        _show_message("Search", "No sessions found.")
        return "back"
    while True:
        query = _prompt_text("Search", "Search term")
        if query in ("back", "quit"):
            return query
        if not query:
            _show_message("Search", "Enter a search term or use 'b' to go back.")
            continue
        hits: list[SearchHit] = []
        for session in state.sessions:
            matches = search_messages(session_path(state.project_dir, session.session_id), query)
            if matches:
                hits.append(SearchHit(session=session, messages=matches))
        if not hits:
            _show_message("Search", "No matches. Try another query.")
            continue
        renderer, buffer = _text_renderer(state.settings)
        renderer.write_search_hits(query, hits)
        _page(_format_breadcrumb(["Search", query]), buffer.getvalue())


def _settings_menu(state: TuiState) -> str | None:
    settings = state.settings
    while True:
        options = [
            ("user_only", f"Prompts only: {settings.user_only}"),
            ("tools", f"Show tool names: {settings.show_tools}"),
            ("max_lines", f"Lines per message: {settings.max_lines}"),
        ]
        choice = _prompt_choice("Settings", options)
        if choice in ("back", "quit"):
            return choice
        if choice == "user_only":
            settings.user_only = not settings.user_only
        elif choice == "tools":
            settings.show_tools = not settings.show_tools
        elif choice == "max_lines":
            raw = _prompt_text("Settings > Lines per message", "Lines", default=str(settings.max_lines))
            if raw == "quit":
                return "quit"
            if raw and raw.isdecimal() and int(raw) > 0:
                settings.max_lines = int(raw)


def _session_list_menu(state: TuiState, sessions: list[SessionSummary], breadcrumb: list[str]) -> str | None:
    while True:
        if not sessions:
            _show_message(_format_breadcrumb(breadcrumb), "No sessions found.")
            return "back"
        options = [(idx, _format_session_line(idx, session)) for idx, session in enumerate(sessions)]
        choice = _prompt_choice(_format_breadcrumb(breadcrumb), options)
        if choice in ("back", "quit"):
            return choice
        selected = sessions[choice]
        result = _session_action_menu(state, selected, breadcrumb + [selected.session_id[:8]])
        if result == "quit":
            return "quit"


def _session_action_menu(state: TuiState, session: SessionSummary, breadcrumb: list[str]) -> str | None:
    path = session_path(state.project_dir, session.session_id)
    while True:
        options = [
            ("messages", "Show messages"),
            ("summary", "Show summary"),
            ("tools", "Tool usage"),
        ]
        choice = _prompt_choice(_format_breadcrumb(breadcrumb), options)
        if choice in ("back", "quit"):
            return choice
        renderer, buffer = _text_renderer(state.settings)
        if choice == "messages":
            renderer.write_messages(parse_messages(path, user_only=state.settings.user_only))
            _page(_format_breadcrumb(breadcrumb), buffer.getvalue())
        elif choice == "summary":
            renderer.write_session(parse_summary(path))
            _page(_format_breadcrumb(breadcrumb), buffer.getvalue())
        elif choice == "tools":
            _show_tool_usage(state, [session], breadcrumb + ["Tools"])


def _show_tool_usage(state: TuiState, sessions: list[SessionSummary], breadcrumb: list[str]) -> None:
    counts: Counter[str] = Counter()
    for session in sessions:
        tally_tool_uses(parse_messages(session_path(state.project_dir, session.session_id)), counts)
    renderer, buffer = _text_renderer(state.settings)
    renderer.write_tool_counts(rank_tool_counts(counts), len(sessions))
    _page(_format_breadcrumb(breadcrumb), buffer.getvalue())


def _text_renderer(settings: Settings) -> tuple[TableRenderer, io.StringIO]:
    buffer = io.StringIO()
    options = RenderOptions(max_lines=settings.max_lines, show_tools=settings.show_tools, color=False)
    return TableRenderer(buffer, options), buffer


def _page(title: str, content: str) -> None:
    _clear_screen()
    print(title)
    print("")
    pydoc.pager(content)


def _clear_screen() -> None:
    print("\033[2J\033[H", end="")


def _format_breadcrumb(breadcrumb: Sequence[str] | str) -> str:
    if isinstance(breadcrumb, str):
        return breadcrumb
    return " > ".join(breadcrumb)


def _nav_hint(allow_back: bool, allow_quit: bool) -> str:
    if allow_back and allow_quit:
        return "b = back | q = quit"
    if allow_back:
        return "b = back"
    if allow_quit:
        return "q = quit"
    return ""


def _show_message(title: Sequence[str] | str, message: str) -> None:
    _clear_screen()
    print(_format_breadcrumb(title))
    print("")
    print(message)
    input("Press Enter to continue...")


def _prompt_text(title: Sequence[str] | str, prompt_text: str, *, default: str | None = None) -> str:
    """Read one line; "b" and "q" (or Ctrl-C) navigate back and quit."""
    title_text = _format_breadcrumb(title)
    prompt_label = prompt_text
    if default:
        prompt_label += f" [{default}]"
    prompt_label += ": "
    _clear_screen()
    print(title_text)
    print("")
    print(_nav_hint(True, True))
    try:
        raw = prompt(prompt_label)
    except (EOFError, KeyboardInterrupt):
        return "quit"
    raw = raw.strip()
    if not raw and default is not None:
        raw = str(default)
    lowered = raw.lower()
    if lowered in ("b", "back"):
        return "back"
    if lowered in ("q", "quit"):
        return "quit"
    return raw


def _prompt_choice(
    title: Sequence[str] | str,
    options: list[tuple[object, str]],
    *,
    allow_back: bool = True,
    allow_quit: bool = True,
    header_lines: list[str] | None = None,
) -> object | str:
    if not options:
        return "back"
    title_text = _format_breadcrumb(title)
    hint = _nav_hint(allow_back, allow_quit)
    radio = RadioList(options)
    kb = KeyBindings()

    @kb.add("enter", eager=True)
    def _select(event) -> None:
        radio._handle_enter()
        event.app.exit(result=radio.current_value)

    if allow_back:
        @kb.add("b", eager=True)
        @kb.add("escape", eager=True)
        def _go_back(event) -> None:
            event.app.exit(result="back")

    if allow_quit:
        @kb.add("q", eager=True)
        @kb.add("c-c", eager=True)
        def _go_quit(event) -> None:
            event.app.exit(result="quit")

    rows: list[Label | RadioList] = [Label(title_text)]
    for line in header_lines or []:
        rows.append(Label(line))
    rows.append(Label(""))
    rows.append(radio)
    if hint:
        rows.append(Label(""))
        rows.append(Label(hint))
    app = Application(layout=Layout(HSplit(rows)), key_bindings=kb, full_screen=True)
    return app.run()


def _format_session_line(idx: int, session: SessionSummary) -> str:
    created = format_timestamp(session.created) or "unknown"
    branch = shorten_text(session.git_branch, 20)
    prompt_text = shorten_text(flatten_lines(session.first_prompt), 60, placeholder="")
    return f"{idx + 1:>3}. {created} | {branch} | {session.user_message_count} msgs | {prompt_text}"
