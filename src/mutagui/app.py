import subprocess
from functools import partial
from typing import Callable, List, Optional, Tuple

from rich.markup import escape
from rich.text import Text
from textual import work
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.containers import Container, VerticalScroll
from textual.css.query import NoMatches
from textual.screen import Screen
from textual.widgets import OptionList, Static
from textual.widgets.option_list import Option

from . import actions
from .config import DISPLAY_LAST_SYNC, Config
from .daemon import MutagenCli, SyncDaemon
from .data import Conflict, build_snapshot
from .editor import editor_command, is_gui_editor, launch_detached
from .errors import DaemonError
from .reconcile import Project, SpecState, SyncSpec
from .selection import ProjectHeader, SpecRow
from .state import ERROR, WARNING, AppState, BlockingOperation, StatusMessage


# ── Nerd Font icons ─────────────────────────────────────
_CHECK = chr(0xF00C)
_TIMES = chr(0xF00D)
_WARN = chr(0xF071)
_PAUSE = chr(0xF04C)
_PLAY = chr(0xF04B)
_ARROW_RIGHT = chr(0xF061)
_EXCHANGE = chr(0xF0EC)
_REFRESH = chr(0xF021)
_CIRCLE = chr(0xF111)
_O = chr(0xF10C)
_FOLDER = chr(0xF07B)
_FOLDER_OPEN = chr(0xF07C)
_KEYBOARD = chr(0xF11C)
_INFO = chr(0xF05A)
_CLOCK = chr(0xF017)
_HG = [chr(0xF250), chr(0xF251), chr(0xF252), chr(0xF253)]
_SEP = chr(0xE0B1)
_PIPE = chr(0x2502)

STATE_ICONS = {
    SpecState.NOT_RUNNING: _O,
    SpecState.RUNNING_TWO_WAY: _EXCHANGE,
    SpecState.RUNNING_PUSH: _ARROW_RIGHT,
}

STATUS_STYLES = {
    ERROR: "bold red",
    WARNING: "yellow",
}

TICK_SECONDS = 1


def _truncate(text, width):
    # type: (str, int) -> str
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


# ══════════════════════════════════════════════════════════
#  ProjectTreeList: OptionList driven by the selection model
# ══════════════════════════════════════════════════════════


class ProjectTreeList(OptionList):
    """Project/spec rows. j/k and arrows wrap around; enter folds."""

    BINDINGS = [
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
    ]

    def action_cursor_down(self) -> None:
        move = getattr(self.app, "move_selection", None)
        if callable(move):
            move(1)

    def action_cursor_up(self) -> None:
        move = getattr(self.app, "move_selection", None)
        if callable(move):
            move(-1)


# ══════════════════════════════════════════════════════════
#  Conflicts Screen (pushed via c)
# ══════════════════════════════════════════════════════════


class ConflictScreen(Screen):
    BINDINGS = [
        Binding("escape", "app.pop_screen", "Back"),
        Binding("c", "app.pop_screen", "Back", show=False),
        Binding("q", "app.pop_screen", "Back", show=False),
        Binding("j", "scroll_down", "Down", show=False),
        Binding("k", "scroll_up", "Up", show=False),
    ]

    def __init__(self, title, conflicts):
        # type: (str, List[Tuple[str, Conflict]]) -> None
        super().__init__()
        self._title = title
        self._conflicts = conflicts

    def compose(self) -> ComposeResult:
        yield Static("", id="conflicts-topbar")
        with VerticalScroll(id="conflicts-body"):
            yield Static("", id="conflicts-text")
        yield Static("", id="conflicts-footer")

    def on_mount(self) -> None:
        self.query_one("#conflicts-topbar", Static).update(
            " %s CONFLICTS %s %s (%d)"
            % (_WARN, _SEP, escape(self._title), len(self._conflicts))
        )
        self.query_one("#conflicts-footer", Static).update(
            " esc/c:back %s j/k:scroll" % _PIPE
        )
        self.query_one("#conflicts-text", Static).update(self._render_conflicts())

    def action_scroll_down(self) -> None:
        self.query_one("#conflicts-body", VerticalScroll).scroll_down()

    def action_scroll_up(self) -> None:
        self.query_one("#conflicts-body", VerticalScroll).scroll_up()

    def _render_conflicts(self):
        # type: () -> str
        lines = []  # type: List[str]
        for spec_name, conflict in self._conflicts:
            lines.append(
                " [bold cyan]%s[/]  [dim]root:[/] %s"
                % (escape(spec_name), escape(conflict.root or "/"))
            )
            for label, changes in (
                ("α", conflict.alpha_changes),
                ("β", conflict.beta_changes),
            ):
                for change in changes:
                    lines.append(
                        "   [magenta]%s[/] %s  [dim]%s %s %s[/]"
                        % (
                            label,
                            escape(change.path or "/"),
                            change.old.kind if change.old else "absent",
                            _ARROW_RIGHT,
                            change.new.kind if change.new else "absent",
                        )
                    )
            lines.append("")
        return "\n".join(lines)


# ══════════════════════════════════════════════════════════
#  Help Screen (pushed via ?)
# ══════════════════════════════════════════════════════════

HELP_KEYS = [
    ("j / k, ↓ / ↑", "move selection (wraps)"),
    ("h / l, ← / →, enter", "fold / unfold project"),
    ("r", "refresh now"),
    ("s", "start spec or every stopped spec in project"),
    ("t", "terminate spec or project"),
    ("f", "flush spec or project"),
    ("u", "resume spec or project"),
    ("space", "pause / resume spec or project"),
    ("p", "push alpha over beta (one-way replica)"),
    ("c", "show conflicts"),
    ("e", "edit project file"),
    ("m", "toggle paths / last sync"),
    ("?", "this help"),
    ("q", "quit"),
]


class HelpScreen(Screen):
    BINDINGS = [
        Binding("escape", "app.pop_screen", "Back"),
        Binding("question_mark", "app.pop_screen", "Back", show=False),
        Binding("q", "app.pop_screen", "Back", show=False),
    ]

    def compose(self) -> ComposeResult:
        yield Static(" %s KEYS" % _KEYBOARD, id="help-topbar")
        yield Static("", id="help-body")
        yield Static(" esc:back", id="help-footer")

    def on_mount(self) -> None:
        lines = [
            " [bold cyan]%-22s[/] %s" % (escape(key), escape(text))
            for key, text in HELP_KEYS
        ]
        self.query_one("#help-body", Static).update("\n".join(lines))


# ══════════════════════════════════════════════════════════
#  Main app
# ══════════════════════════════════════════════════════════


class MutaguiApp(App):
    CSS_PATH = "app.tcss"
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("h", "toggle_fold", "Fold", show=False),
        Binding("l", "toggle_fold", "Fold", show=False),
        Binding("left", "toggle_fold", "Fold", show=False),
        Binding("right", "toggle_fold", "Fold", show=False),
        Binding("s", "start", "Start"),
        Binding("t", "terminate", "Terminate"),
        Binding("f", "flush", "Flush"),
        Binding("u", "resume", "Resume"),
        Binding("space", "toggle_pause", "Pause"),
        Binding("p", "push", "Push"),
        Binding("c", "conflicts", "Conflicts"),
        Binding("e", "edit", "Edit"),
        Binding("m", "display_mode", "Mode"),
        Binding("question_mark", "help", "Help"),
    ]

    def __init__(self, daemon=None, config=None, project_dir=None):
        # type: (Optional[SyncDaemon], Optional[Config], Optional[str]) -> None
        super().__init__()
        self.daemon = daemon or MutagenCli()
        self.state = AppState(config)
        self.project_dir = project_dir
        self._refreshing = False
        self._command_running = False
        self._tick_count = 0

    def compose(self) -> ComposeResult:
        yield Static("", id="topbar")
        with Container(id="main-row"):
            yield ProjectTreeList(id="tree")
            with Container(id="detail-panel"):
                yield Static(" %s DETAIL" % _INFO, classes="panel-title")
                yield Static("", id="detail-body")
        yield Static("", id="statusbar")
        yield Static("", id="footerbar")

    def on_mount(self) -> None:
        theme = self.state.config.ui.theme
        if theme == "light":
            self.theme = "textual-light"
        elif theme == "dark":
            self.theme = "textual-dark"
        self._render_footerbar()
        self._render_all()
        self.query_one("#tree", ProjectTreeList).focus()
        self.refresh_sessions()
        self.set_interval(TICK_SECONDS, self._tick)
        self._apply_compact_mode(self.size.width, self.size.height)

    def on_resize(self, event) -> None:
        self._apply_compact_mode(event.size.width, event.size.height)

    def _apply_compact_mode(self, width, height):
        # type: (int, int) -> None
        try:
            panel = self.query_one("#detail-panel", Container)
        except NoMatches:
            return
        if height < 16 or width < 90:
            panel.add_class("hidden")
        else:
            panel.remove_class("hidden")

    def _tick(self) -> None:
        self._tick_count += 1
        if (
            not self._refreshing
            and not self._command_running
            and self.state.should_auto_refresh()
        ):
            self.refresh_sessions()
        self._render_topbar()

    # ── Refresh ────────────────────────────────────────────────────────

    def refresh_sessions(self, keep_status=False):
        # type: (bool) -> None
        self._refreshing = True
        self._load_snapshot(keep_status)

    @work(thread=True, exclusive=True, group="refresh")
    def _load_snapshot(self, keep_status) -> None:
        try:
            snapshot = build_snapshot(
                self.daemon, self.state.config.projects, self.project_dir
            )
        except DaemonError as exc:
            self.call_from_thread(self._refresh_failed, exc)
            return
        self.call_from_thread(self._apply_snapshot, snapshot, keep_status)

    def _apply_snapshot(self, snapshot, keep_status=False):
        self._refreshing = False
        self.state.apply_snapshot(snapshot, keep_status=keep_status)
        self._render_all()

    def _refresh_failed(self, error):
        # type: (DaemonError) -> None
        self._refreshing = False
        self.state.refresh_failed(error)
        self._render_topbar()
        self._render_statusbar()

    # ── Commands ───────────────────────────────────────────────────────

    def _run_command(self, label, command, blocking=False):
        # type: (str, Callable[[], StatusMessage], bool) -> None
        if self._command_running:
            self.state.status = StatusMessage.warning("Another command is still running")
            self._render_statusbar()
            return
        self._command_running = True
        if blocking:
            self.state.blocking = BlockingOperation(label)
        self.state.status = StatusMessage.info("%s..." % label)
        self._render_statusbar()
        self._execute(command)

    @work(thread=True, group="command")
    def _execute(self, command) -> None:
        message = command()
        self.call_from_thread(self._command_finished, message)

    def _report_progress(self, current, total):
        # type: (int, int) -> None
        """Progress callback for batch actions; called from the worker thread."""
        self.call_from_thread(self._set_progress, current, total)

    def _set_progress(self, current, total):
        # type: (int, int) -> None
        if self.state.blocking is not None:
            self.state.blocking.current = current
            self.state.blocking.total = total
            self._render_statusbar()

    def _command_finished(self, message):
        # type: (StatusMessage) -> None
        self._command_running = False
        self.state.blocking = None
        self.state.status = message
        self._render_statusbar()
        self.refresh_sessions(keep_status=True)

    def _dispatch(self, label, spec_action, project_action):
        # type: (str, Callable[..., StatusMessage], Callable[..., StatusMessage]) -> None
        found = self.state.selected_spec()
        if found is not None:
            project, spec = found
            self._run_command(
                "%s %s" % (label, spec.name),
                partial(spec_action, self.daemon, project, spec),
            )
            return
        project = self.state.selected_project()
        if project is None:
            self.state.status = StatusMessage.warning("Nothing selected")
            self._render_statusbar()
            return
        self._run_command(
            "%s %s" % (label, project.display_name),
            partial(project_action, self.daemon, project, progress=self._report_progress),
            blocking=True,
        )

    def action_start(self) -> None:
        self._dispatch("Starting", actions.start_spec, actions.start_project)

    def action_terminate(self) -> None:
        self._dispatch("Terminating", actions.terminate_spec, actions.terminate_project)

    def action_flush(self) -> None:
        self._dispatch("Flushing", actions.flush_spec, actions.flush_project)

    def action_resume(self) -> None:
        self._dispatch("Resuming", actions.resume_spec, actions.resume_project)

    def action_push(self) -> None:
        self._dispatch("Pushing", actions.push_spec, actions.push_project)

    def action_toggle_pause(self) -> None:
        self._dispatch("Toggling pause for", actions.toggle_pause, actions.toggle_pause)

    # ── View actions ───────────────────────────────────────────────────

    def action_refresh(self) -> None:
        self.state.status = StatusMessage.info("Refreshing...")
        self._render_statusbar()
        self.refresh_sessions()

    def move_selection(self, delta):
        # type: (int) -> None
        if delta > 0:
            self.state.selection.select_next()
        else:
            self.state.selection.select_previous()
        self._sync_highlight()
        self._render_detail()

    def action_toggle_fold(self) -> None:
        self.state.toggle_selected_fold()
        self._render_tree()
        self._render_detail()

    def action_display_mode(self) -> None:
        self.state.toggle_display_mode()
        self._render_tree()

    def action_help(self) -> None:
        self.push_screen(HelpScreen())

    def action_conflicts(self) -> None:
        conflicts = self.state.selected_conflicts()
        if not conflicts:
            self.state.status = StatusMessage.info("No conflicts in selection")
            self._render_statusbar()
            return
        found = self.state.selected_spec()
        if found is not None:
            title = found[1].name
        else:
            project = self.state.selected_project()
            title = project.display_name if project else ""
        self.push_screen(ConflictScreen(title, conflicts))

    def action_edit(self) -> None:
        project = self.state.selected_project()
        if project is None:
            return
        argv = editor_command(project.path)
        try:
            if is_gui_editor(argv[0]):
                launch_detached(argv)
                self.state.status = StatusMessage.info(
                    "Opened in %s: %s" % (argv[0], project.display_name)
                )
            else:
                with self.suspend():
                    subprocess.call(argv)
                self.state.status = StatusMessage.info(
                    "Edited %s" % project.display_name
                )
        except SuspendNotSupported:
            self.state.status = StatusMessage.error(
                "Cannot suspend the terminal; set $VISUAL to a GUI editor"
            )
        except OSError as exc:
            self.state.status = StatusMessage.error("Failed to launch editor: %s" % exc)
        self._render_statusbar()
        self.refresh_sessions(keep_status=True)

    # ── OptionList events ─────────────────────────────────────────────

    def on_option_list_option_highlighted(self, event):
        # type: (OptionList.OptionHighlighted) -> None
        if event.option_index != self.state.selection.cursor:
            self.state.selection.set_index(event.option_index)
        self._render_detail()

    def on_option_list_option_selected(self, event):
        # type: (OptionList.OptionSelected) -> None
        self.state.selection.set_index(event.option_index)
        self.action_toggle_fold()

    # ── Rendering ──────────────────────────────────────────────────────

    def _render_all(self) -> None:
        self._render_topbar()
        self._render_tree()
        self._render_detail()
        self._render_statusbar()

    def _sync_highlight(self) -> None:
        tree = self.query_one("#tree", ProjectTreeList)
        if tree.option_count > 0:
            tree.highlighted = self.state.selection.cursor

    def _render_tree(self) -> None:
        tree = self.query_one("#tree", ProjectTreeList)
        tree.clear_options()
        projects = self.state.projects
        for row in self.state.selection.rows:
            project = projects[row.project_index]
            if isinstance(row, ProjectHeader):
                tree.add_option(Option(self._format_header(project)))
            elif isinstance(row, SpecRow):
                spec = project.specs[row.spec_index]
                tree.add_option(Option(self._format_spec(spec)))
        self._sync_highlight()

    def _format_header(self, project):
        # type: (Project) -> Text
        icon = _FOLDER if project.folded else _FOLDER_OPEN
        parts = [
            "[bold]%s %s[/]" % (icon, escape(project.display_name)),
            "[dim]%s[/]" % project.status_summary(),
        ]
        paused = len(project.paused_specs())
        if paused:
            parts.append("[yellow]%s %d paused[/]" % (_PAUSE, paused))
        conflicts = project.conflict_count()
        if conflicts:
            parts.append("[bold red]%s %d conflict(s)[/]" % (_WARN, conflicts))
        return Text.from_markup("  ".join(parts))

    def _format_spec(self, spec):
        # type: (SyncSpec) -> Text
        icon = STATE_ICONS[spec.state]
        style = "green" if spec.is_running else "dim"
        if spec.is_paused:
            icon, style = _PAUSE, "yellow"
        name = spec.push_name if spec.is_push else spec.name
        line = "   [%s]%s[/] %s" % (style, icon, escape(_truncate(name, 28)))
        session = spec.session
        if session is None:
            return Text.from_markup(line + "  [dim]not running[/]")

        if self.state.display_mode == DISPLAY_LAST_SYNC:
            line += "  [dim]%s %s[/]" % (_CLOCK, session.time_ago())
        else:
            arrow = _ARROW_RIGHT if spec.is_push else _EXCHANGE
            line += "  %s %s %s %s %s" % (
                session.alpha.status_icon(),
                escape(_truncate(session.alpha_display(), 32)),
                arrow,
                session.beta.status_icon(),
                escape(_truncate(session.beta_display(), 32)),
            )
        line += "  [dim]%s[/]" % escape(session.status_text())
        if spec.has_conflicts():
            line += "  [bold red]%s %d[/]" % (_WARN, spec.conflict_count())
        return Text.from_markup(line)

    def _render_topbar(self) -> None:
        state = self.state
        spinner = _HG[self._tick_count % len(_HG)] if self._refreshing else _REFRESH
        parts = [
            " %s MUTAGUI" % spinner,
            "%s %d projects" % (_SEP, len(state.projects)),
            "%s %s %d/%d running" % (_SEP, _CIRCLE, state.running_count(), state.spec_count()),
        ]
        conflicts = state.conflict_count()
        if conflicts:
            parts.append("%s [bold red]%s %d CONFLICTS[/]" % (_SEP, _WARN, conflicts))
        if state.last_refresh is not None:
            parts.append(
                "%s %s %s" % (_SEP, _CLOCK, state.last_refresh.strftime("%H:%M:%S"))
            )
        if state.has_refresh_error:
            parts.append("%s [bold red]%s OFFLINE[/]" % (_SEP, _TIMES))
        self.query_one("#topbar", Static).update("  ".join(parts))

    def _render_statusbar(self) -> None:
        bar = self.query_one("#statusbar", Static)
        state = self.state
        if state.blocking is not None:
            bar.update(" [bold cyan]%s %s[/]" % (_HG[0], escape(state.blocking.progress_text())))
            return
        if state.status is None:
            bar.update("")
            return
        style = STATUS_STYLES.get(state.status.level, "green")
        bar.update(" [%s]%s[/]" % (style, escape(state.status.text)))

    def _render_footerbar(self) -> None:
        self.query_one("#footerbar", Static).update(
            " q:quit %s r:refresh %s j/k:select %s h/l:fold %s s:start %s t:terminate"
            " %s f:flush %s space:pause %s u:resume %s p:push %s c:conflicts"
            " %s e:edit %s m:mode %s ?:help"
            % ((_PIPE,) * 13)
        )

    def _render_detail(self) -> None:
        detail = self.query_one("#detail-body", Static)
        found = self.state.selected_spec()
        if found is not None:
            detail.update(self._spec_detail(*found))
            return
        project = self.state.selected_project()
        if project is None:
            detail.update(
                " [dim]No project files found. Add a mutagen.yml or set"
                " projects.search_paths in the config.[/]"
            )
            return
        detail.update(self._project_detail(project))

    def _project_detail(self, project):
        # type: (Project) -> str
        lines = [
            " [bold cyan]%s[/]" % escape(project.display_name),
            " [dim]%s[/]" % escape(project.path),
            "",
            " %s %s" % (_CIRCLE, project.status_summary()),
        ]
        paused = project.paused_specs()
        if paused:
            lines.append(
                " %s paused: %s" % (_PAUSE, ", ".join(escape(s.name) for s in paused))
            )
        conflicts = project.conflict_count()
        if conflicts:
            lines.append(" [bold red]%s %d conflict(s)[/] [dim]c to view[/]" % (_WARN, conflicts))
        lines.append("")
        for spec in project.specs:
            icon = STATE_ICONS[spec.state]
            lines.append(" %s %s" % (icon, escape(spec.name)))
        return "\n".join(lines)

    def _spec_detail(self, project, spec):
        # type: (Project, SyncSpec) -> str
        lines = [
            " [bold cyan]%s[/]  [dim]%s[/]" % (escape(spec.name), escape(project.display_name)),
        ]
        definition = project.config.sessions.get(spec.name)
        session = spec.session
        if session is None:
            lines.append(" [dim]not running. s to start, p to push[/]")
            if definition is not None:
                lines.append("")
                lines.append(" α %s" % escape(definition.alpha))
                lines.append(" β %s" % escape(definition.beta))
            return "\n".join(lines)

        mode = "push (one-way replica)" if spec.is_push else (session.mode or "two-way")
        lines.append(" [dim]%s  id:%s[/]" % (escape(mode), escape(session.identifier[:12])))
        lines.append("")
        lines.append(
            " %s %s" % (_PAUSE if session.paused else _PLAY, escape(session.status_text()))
        )
        for label, endpoint in (("α", session.alpha), ("β", session.beta)):
            stats = endpoint.stats_display()
            lines.append(
                " %s %s %s%s"
                % (
                    label,
                    endpoint.status_icon(),
                    escape(endpoint.display_path()),
                    "  [dim]%s[/]" % stats if stats else "",
                )
            )
        lines.append("")
        lines.append(" %s last sync %s" % (_CLOCK, session.time_ago()))
        lines.append(" %s %d successful cycle(s)" % (_CHECK, session.successful_cycles))
        if spec.has_conflicts():
            lines.append(
                " [bold red]%s %d conflict(s)[/] [dim]c to view, p to push alpha over beta[/]"
                % (_WARN, spec.conflict_count())
            )
        return "\n".join(lines)
