"""Reconciliation of project files with live sessions.

Each refresh produces a brand new ``Project`` list from the parsed project
files and the daemon's session list.  Nothing here performs I/O or raises;
given the same inputs the output is the same.

A spec named ``web`` is matched by:

* a session named ``web`` whose mode is not one-way-replica (two-way), or
* a session named ``web-push`` whose mode is one-way-replica (push).

If both exist the two-way session wins.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .data import Conflict, SessionRecord
from .projects import ProjectConfig

PUSH_SUFFIX = "-push"


class SpecState(enum.Enum):
    NOT_RUNNING = "not_running"
    RUNNING_TWO_WAY = "running_two_way"
    RUNNING_PUSH = "running_push"


@dataclass
class SyncSpec:
    name: str
    state: SpecState = SpecState.NOT_RUNNING
    session: Optional[SessionRecord] = None

    @property
    def is_running(self) -> bool:
        return self.state is not SpecState.NOT_RUNNING

    @property
    def is_push(self) -> bool:
        return self.state is SpecState.RUNNING_PUSH

    @property
    def is_paused(self) -> bool:
        return self.session is not None and self.session.paused

    @property
    def push_name(self) -> str:
        return self.name + PUSH_SUFFIX

    def conflict_count(self):
        # type: () -> int
        return self.session.conflict_count() if self.session else 0

    def has_conflicts(self):
        # type: () -> bool
        return self.conflict_count() > 0

    @property
    def conflicts(self) -> List[Conflict]:
        return list(self.session.conflicts) if self.session else []


@dataclass
class Project:
    config: ProjectConfig
    specs: List[SyncSpec] = field(default_factory=list)
    folded: bool = True

    @property
    def path(self) -> str:
        return self.config.path

    @property
    def display_name(self) -> str:
        return self.config.display_name

    def conflict_count(self):
        # type: () -> int
        return sum(s.conflict_count() for s in self.specs if s.session is not None)

    def is_active(self):
        # type: () -> bool
        return any(s.is_running for s in self.specs)

    def running_specs(self):
        # type: () -> List[SyncSpec]
        return [s for s in self.specs if s.is_running]

    def paused_specs(self):
        # type: () -> List[SyncSpec]
        return [s for s in self.specs if s.is_running and s.is_paused]

    def status_summary(self):
        # type: () -> str
        running = len(self.running_specs())
        total = len(self.specs)
        if running == 0:
            return "not running"
        if running == total:
            return "all running (%d)" % total
        return "%d/%d running" % (running, total)


def build_sync_specs(config, sessions):
    # type: (ProjectConfig, List[SessionRecord]) -> List[SyncSpec]
    two_way = {}  # type: Dict[str, SessionRecord]
    push = {}  # type: Dict[str, SessionRecord]
    for session in sessions:
        # First session per name wins when the daemon reports duplicates
        if session.is_one_way:
            push.setdefault(session.name, session)
        else:
            two_way.setdefault(session.name, session)

    specs = []  # type: List[SyncSpec]
    for name in sorted(config.sessions):
        session = two_way.get(name)
        if session is not None:
            specs.append(SyncSpec(name, SpecState.RUNNING_TWO_WAY, session))
            continue
        session = push.get(name + PUSH_SUFFIX)
        if session is not None:
            specs.append(SyncSpec(name, SpecState.RUNNING_PUSH, session))
            continue
        specs.append(SyncSpec(name))
    return specs


def should_auto_unfold(specs):
    # type: (List[SyncSpec]) -> bool
    """Unfold projects that need attention: conflicts, partly running, or mixed modes."""
    if any(s.has_conflicts() for s in specs):
        return True
    running = sum(1 for s in specs if s.is_running)
    if 0 < running < len(specs):
        return True
    states = set(s.state for s in specs)
    return SpecState.RUNNING_TWO_WAY in states and SpecState.RUNNING_PUSH in states


def reconcile(configs, sessions):
    # type: (List[ProjectConfig], List[SessionRecord]) -> List[Project]
    projects = []  # type: List[Project]
    for config in configs:
        specs = build_sync_specs(config, sessions)
        projects.append(
            Project(config=config, specs=specs, folded=not should_auto_unfold(specs))
        )
    return projects


def carry_fold_state(previous, fresh):
    # type: (List[Project], List[Project]) -> List[Project]
    """Keep the operator's fold choices for projects that survived a refresh."""
    folded_by_path = dict((p.path, p.folded) for p in previous)
    for project in fresh:
        if project.path in folded_by_path:
            project.folded = folded_by_path[project.path]
    return fresh
