from dataclasses import dataclass, field
from datetime import datetime, timedelta
import json
import logging
import os
from typing import Any, Dict, List, Optional

from .errors import DaemonError
from .projects import ProjectConfig, discover_project_files


logger = logging.getLogger(__name__)

ONE_WAY_REPLICA = "one-way-replica"

# Endpoint status glyphs
ICON_DISCONNECTED = "⊗"  # circled times
ICON_SCANNING = "⟳"  # clockwise arrow
ICON_READY = "✓"  # check

# Sync-time tracking states
SYNC_NEVER = "never"
SYNC_UNKNOWN = "unknown"
SYNC_AT = "at"


@dataclass
class FileState:
    kind: str
    digest: Optional[str] = None

    @classmethod
    def from_dict(cls, d):
        # type: (Optional[Dict[str, Any]]) -> Optional[FileState]
        if not d:
            return None
        return cls(kind=str(d.get("kind", "")), digest=d.get("digest"))


@dataclass
class Change:
    path: str
    old: Optional[FileState] = None
    new: Optional[FileState] = None

    @classmethod
    def from_dict(cls, d):
        # type: (Dict[str, Any]) -> Change
        return cls(
            path=str(d.get("path", "")),
            old=FileState.from_dict(d.get("old")),
            new=FileState.from_dict(d.get("new")),
        )


@dataclass
class Conflict:
    root: str
    alpha_changes: List[Change] = field(default_factory=list)
    beta_changes: List[Change] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d):
        # type: (Dict[str, Any]) -> Conflict
        return cls(
            root=str(d.get("root", "")),
            alpha_changes=[Change.from_dict(c) for c in d.get("alphaChanges") or []],
            beta_changes=[Change.from_dict(c) for c in d.get("betaChanges") or []],
        )


@dataclass
class StagingProgress:
    path: Optional[str] = None
    received_files: Optional[int] = None
    expected_files: Optional[int] = None
    received_size: Optional[int] = None
    expected_size: Optional[int] = None

    @classmethod
    def from_dict(cls, d):
        # type: (Optional[Dict[str, Any]]) -> Optional[StagingProgress]
        if not d:
            return None
        return cls(
            path=d.get("path"),
            received_files=d.get("receivedFiles"),
            expected_files=d.get("expectedFiles"),
            received_size=d.get("receivedSize"),
            expected_size=d.get("expectedSize"),
        )


@dataclass
class Endpoint:
    protocol: str
    path: str
    host: Optional[str] = None
    connected: bool = False
    scanned: bool = False
    directories: Optional[int] = None
    files: Optional[int] = None
    symbolic_links: Optional[int] = None
    total_file_size: Optional[int] = None
    staging_progress: Optional[StagingProgress] = None

    @classmethod
    def from_dict(cls, d):
        # type: (Optional[Dict[str, Any]]) -> Endpoint
        d = d or {}
        return cls(
            protocol=str(d.get("protocol", "local")),
            path=str(d.get("path", "")),
            host=d.get("host") or None,
            connected=bool(d.get("connected", False)),
            scanned=bool(d.get("scanned", False)),
            directories=d.get("directories"),
            files=d.get("files"),
            symbolic_links=d.get("symbolicLinks"),
            total_file_size=d.get("totalFileSize"),
            staging_progress=StagingProgress.from_dict(d.get("stagingProgress")),
        )

    def path_with_tilde(self):
        # type: () -> str
        home = os.path.expanduser("~")
        if self.host is None and home and home != "~" and self.path.startswith(home):
            return "~" + self.path[len(home):]
        return self.path

    def display_path(self):
        # type: () -> str
        if self.host:
            return "%s:%s" % (self.host, self.path)
        return self.path_with_tilde()

    def status_icon(self):
        # type: () -> str
        if not self.connected:
            return ICON_DISCONNECTED
        if not self.scanned:
            return ICON_SCANNING
        return ICON_READY

    def stats_display(self):
        # type: () -> str
        if self.files is not None and self.directories is not None:
            return "%sf/%sd" % (self.files, self.directories)
        if self.files is not None:
            return "%sf" % self.files
        if self.directories is not None:
            return "%sd" % self.directories
        return ""


@dataclass
class SessionRecord:
    name: str
    identifier: str
    alpha: Endpoint
    beta: Endpoint
    status: str = ""
    paused: bool = False
    mode: Optional[str] = None
    creation_time: Optional[str] = None
    successful_cycles: int = 0
    conflicts: List[Conflict] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    # Not reported by the daemon; filled in by track_sync_times()
    sync_time: str = SYNC_UNKNOWN
    last_sync: Optional[datetime] = None

    @classmethod
    def from_dict(cls, d):
        # type: (Dict[str, Any]) -> SessionRecord
        return cls(
            name=str(d.get("name", "")),
            identifier=str(d.get("identifier", "")),
            alpha=Endpoint.from_dict(d.get("alpha")),
            beta=Endpoint.from_dict(d.get("beta")),
            status=str(d.get("status", "") or ""),
            paused=bool(d.get("paused", False)),
            mode=d.get("mode") or None,
            creation_time=d.get("creationTime"),
            successful_cycles=int(d.get("successfulCycles") or 0),
            conflicts=[Conflict.from_dict(c) for c in d.get("conflicts") or []],
            labels=dict(d.get("labels") or {}),
        )

    @property
    def is_one_way(self) -> bool:
        return self.mode == ONE_WAY_REPLICA

    def conflict_count(self):
        # type: () -> int
        return len(self.conflicts)

    def has_conflicts(self):
        # type: () -> bool
        return bool(self.conflicts)

    def alpha_display(self):
        # type: () -> str
        return self.alpha.display_path()

    def beta_display(self):
        # type: () -> str
        return self.beta.display_path()

    def status_icon(self):
        # type: () -> str
        status = self.status.lower()
        for needle, icon in _STATUS_ICONS:
            if needle in status:
                return icon
        return "•"

    def status_text(self):
        # type: () -> str
        """Short human-readable status, with scan/staging progress when known."""
        status = self.status.lower()
        if "watching" in status:
            return "Watching"
        if "scanning" in status:
            return self._progress_text("Scanning", status)
        if "staging" in status:
            return self._progress_text("Staging", status)
        for needle, text in _STATUS_TEXTS:
            if needle in status:
                return text
        return "Unknown"

    def _progress_text(self, verb, status):
        # type: (str, str) -> str
        side = ""
        endpoint = None  # type: Optional[Endpoint]
        if "alpha" in status:
            side, endpoint = "α", self.alpha
        elif "beta" in status:
            side, endpoint = "β", self.beta
        label = ("%s %s" % (verb, side)).strip()
        if endpoint is None:
            return label
        if verb == "Scanning":
            if endpoint.files and endpoint.files >= 1000:
                return "%s (%s files)" % (label, format_number(endpoint.files))
            return label
        progress = endpoint.staging_progress
        if progress and progress.received_files is not None and progress.expected_files:
            pct = progress.received_files * 100 // progress.expected_files
            return "%s (%s/%s %s%%)" % (
                label,
                format_number(progress.received_files),
                format_number(progress.expected_files),
                pct,
            )
        return label

    def time_ago(self, now=None):
        # type: (Optional[datetime]) -> str
        if self.last_sync is None:
            return "unknown" if self.sync_time == SYNC_UNKNOWN else "never"
        return time_ago(self.last_sync, now)


_STATUS_ICONS = [
    ("watching", "\U0001f441"),
    ("scanning", "\U0001f50d"),
    ("staging", "\U0001f4e6"),
    ("reconcil", "⚖"),
    ("saving", "\U0001f4be"),
    ("connect", "\U0001f50c"),
    ("transition", "⏳"),
    ("halt", "⛔"),
]

_STATUS_TEXTS = [
    ("reconcil", "Reconciling"),
    ("saving", "Saving"),
    ("waiting", "Waiting"),
    ("connect", "Connecting"),
    ("transition", "Transitioning"),
    ("halt", "Halted"),
]


@dataclass
class DashboardSnapshot:
    sessions: List[SessionRecord]
    configs: List[ProjectConfig]
    errors: List[str]


def format_number(n):
    # type: (int) -> str
    return "{:,}".format(int(n))


def parse_sessions(text):
    # type: (str) -> List[SessionRecord]
    """Parse ``mutagen sync list --template '{{json .}}'`` output."""
    trimmed = (text or "").strip()
    if not trimmed or trimmed == "null":
        return []
    try:
        payload = json.loads(trimmed)
    except ValueError as exc:
        raise DaemonError("Failed to parse mutagen output: %s" % exc)
    if not isinstance(payload, list):
        raise DaemonError("Unexpected mutagen output: expected a JSON list")
    return [SessionRecord.from_dict(item) for item in payload if isinstance(item, dict)]


def track_sync_times(previous, sessions, first_refresh, now=None):
    # type: (List[SessionRecord], List[SessionRecord], bool, Optional[datetime]) -> List[SessionRecord]
    """Carry last-sync observations across refreshes, keyed by identifier.

    The daemon only reports a cumulative cycle counter, so a sync is
    "observed" when that counter grows between two refreshes.
    """
    now = now or datetime.now()
    by_id = dict((s.identifier, s) for s in previous)
    for session in sessions:
        old = by_id.get(session.identifier)
        if old is not None:
            if session.successful_cycles > old.successful_cycles:
                session.sync_time = SYNC_AT
                session.last_sync = now
            else:
                session.sync_time = old.sync_time
                session.last_sync = old.last_sync
        elif first_refresh:
            session.sync_time = SYNC_UNKNOWN
            session.last_sync = None
        elif session.successful_cycles > 0:
            session.sync_time = SYNC_AT
            session.last_sync = now
        else:
            session.sync_time = SYNC_NEVER
            session.last_sync = None
    return sessions


def time_ago(value, now=None):
    # type: (datetime, Optional[datetime]) -> str
    delta = (now or datetime.now()) - value
    seconds = int(delta.total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 120:
        return "1 min ago"
    if delta < timedelta(hours=1):
        return "%d mins ago" % (seconds // 60)
    if delta < timedelta(hours=2):
        return "1 hour ago"
    if delta < timedelta(days=1):
        return "%d hours ago" % (seconds // 3600)
    if delta < timedelta(days=2):
        return "1 day ago"
    return "%d days ago" % delta.days


def build_snapshot(daemon, discovery=None, project_dir=None):
    # type: (Any, Any, Optional[str]) -> DashboardSnapshot
    """Query the daemon and the filesystem for one complete refresh.

    Raises DaemonError when the session list cannot be fetched; there is no
    such thing as a partial snapshot.
    """
    sessions = daemon.list_sessions()
    errors = []  # type: List[str]
    configs = discover_project_files(project_dir, discovery, errors=errors)
    logger.debug(
        "snapshot: %d sessions, %d project files, %d errors",
        len(sessions),
        len(configs),
        len(errors),
    )
    return DashboardSnapshot(sessions=sessions, configs=configs, errors=errors)
