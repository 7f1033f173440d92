"""Application state shared by the Textual app and the actions.

``AppState`` owns the current project tree, the selection cursor and the
status line.  It is only mutated on the UI thread; workers hand it complete
snapshots or finished ``StatusMessage`` results.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from .config import DISPLAY_LAST_SYNC, DISPLAY_PATHS, Config
from .data import Conflict, DashboardSnapshot, SessionRecord, track_sync_times
from .reconcile import Project, SyncSpec, carry_fold_state, reconcile
from .selection import SelectionModel

INFO = "info"
WARNING = "warning"
ERROR = "error"

REFRESHED = "Sessions refreshed"


@dataclass(frozen=True)
class StatusMessage:
    level: str  # one of INFO, WARNING, ERROR
    text: str

    @classmethod
    def info(cls, text):
        # type: (str) -> StatusMessage
        return cls(INFO, text)

    @classmethod
    def warning(cls, text):
        # type: (str) -> StatusMessage
        return cls(WARNING, text)

    @classmethod
    def error(cls, text):
        # type: (str) -> StatusMessage
        return cls(ERROR, text)


@dataclass
class BlockingOperation:
    """A batch command in flight; the UI shows it instead of the tree cursor."""

    message: str
    current: int = 0
    total: int = 0

    def progress_text(self):
        # type: () -> str
        if self.total:
            return "%s (%d/%d)" % (self.message, self.current, self.total)
        return self.message


class AppState:
    def __init__(self, config=None):
        # type: (Optional[Config]) -> None
        self.config = config or Config()
        self.projects = []  # type: List[Project]
        self.sessions = []  # type: List[SessionRecord]
        self.selection = SelectionModel()
        self.status = None  # type: Optional[StatusMessage]
        self.last_refresh = None  # type: Optional[datetime]
        self.has_refresh_error = False
        self.display_mode = self.config.ui.default_display_mode
        self.blocking = None  # type: Optional[BlockingOperation]

    # ── refresh ───────────────────────────────────────────

    def apply_snapshot(self, snapshot, now=None, keep_status=False):
        # type: (DashboardSnapshot, Optional[datetime], bool) -> None
        """Replace the tree with one built from ``snapshot``.

        ``keep_status`` leaves a command's result on the status line instead
        of the generic refresh message.
        """
        now = now or datetime.now()
        self.sessions = track_sync_times(
            self.sessions, snapshot.sessions, self.last_refresh is None, now
        )
        fresh = carry_fold_state(self.projects, reconcile(snapshot.configs, self.sessions))
        fresh.sort(key=lambda p: p.display_name)
        self.projects = fresh
        self.selection.rebuild(self.projects)
        recovered = self.has_refresh_error
        self.has_refresh_error = False
        self.last_refresh = now

        if keep_status and not recovered and self.status is not None:
            return
        if snapshot.errors:
            self.status = StatusMessage.warning(
                "Skipped %d project file(s): %s" % (len(snapshot.errors), snapshot.errors[0])
            )
        else:
            self.status = StatusMessage.info(REFRESHED)

    def refresh_failed(self, error):
        # type: (Exception) -> None
        self.status = StatusMessage.error("Error: %s (press 'r' to retry)" % error)
        self.has_refresh_error = True

    def should_auto_refresh(self, now=None):
        # type: (Optional[datetime]) -> bool
        if not self.config.refresh.enabled or self.has_refresh_error:
            return False
        if self.last_refresh is None:
            return True
        elapsed = ((now or datetime.now()) - self.last_refresh).total_seconds()
        return elapsed >= self.config.refresh.interval_secs

    # ── view toggles ──────────────────────────────────────

    def toggle_fold(self, project_index):
        # type: (int) -> None
        self.selection.toggle_fold(self.projects, project_index)

    def toggle_selected_fold(self):
        # type: () -> None
        index = self.selection.selected_project_index()
        if index is not None:
            self.toggle_fold(index)

    def toggle_display_mode(self):
        # type: () -> None
        if self.display_mode == DISPLAY_PATHS:
            self.display_mode = DISPLAY_LAST_SYNC
        else:
            self.display_mode = DISPLAY_PATHS

    # ── selection lookups ─────────────────────────────────

    def selected_project(self):
        # type: () -> Optional[Project]
        index = self.selection.selected_project_index()
        if index is None or index >= len(self.projects):
            return None
        return self.projects[index]

    def selected_spec(self):
        # type: () -> Optional[Tuple[Project, SyncSpec]]
        found = self.selection.selected_spec()
        if found is None:
            return None
        p_idx, s_idx = found
        if p_idx >= len(self.projects) or s_idx >= len(self.projects[p_idx].specs):
            return None
        project = self.projects[p_idx]
        return project, project.specs[s_idx]

    def selected_conflicts(self):
        # type: () -> List[Tuple[str, Conflict]]
        """Conflicts of the selected spec, or of every spec in the selected project."""
        found = self.selected_spec()
        if found is not None:
            specs = [found[1]]
        else:
            project = self.selected_project()
            specs = project.specs if project else []
        return [(spec.name, c) for spec in specs for c in spec.conflicts]

    # ── totals for the top bar ────────────────────────────

    def running_count(self):
        # type: () -> int
        return sum(len(p.running_specs()) for p in self.projects)

    def spec_count(self):
        # type: () -> int
        return sum(len(p.specs) for p in self.projects)

    def conflict_count(self):
        # type: () -> int
        return sum(p.conflict_count() for p in self.projects)
