"""Operator commands: start, stop, pause, flush and push sync specs.

Every function takes the daemon plus the project (and spec) it acts on and
returns a ``StatusMessage``.  Daemon failures are reported in the message,
never raised, so the functions are safe to run in a worker thread while the
UI keeps its last good tree.

Project-level commands run one daemon call per spec, in order, and report
progress through an optional ``progress(current, total)`` callback.
"""

import logging
import os
from functools import partial
from typing import Callable, List, Optional, Tuple

from .daemon import SyncDaemon
from .endpoint import EndpointAddress
from .errors import DaemonError
from .reconcile import Project, SpecState, SyncSpec
from .state import StatusMessage

logger = logging.getLogger(__name__)

Progress = Optional[Callable[[int, int], None]]
Step = Tuple[str, Callable[[], None]]


# ── helpers ───────────────────────────────────────────────


def resolve_endpoint(project, endpoint):
    # type: (Project, str) -> str
    """Relative local endpoints are relative to the project file's directory."""
    address = EndpointAddress.parse(endpoint).expand_tilde()
    if address.is_local and not os.path.isabs(address.path):
        base = os.path.dirname(os.path.abspath(project.path))
        return os.path.normpath(os.path.join(base, address.path))
    if address.is_local:
        return address.path
    return endpoint


def _endpoints(project, name):
    # type: (Project, str) -> Tuple[str, str]
    definition = project.config.sessions[name]
    return (
        resolve_endpoint(project, definition.alpha),
        resolve_endpoint(project, definition.beta),
    )


def _prepare_endpoints(daemon, alpha, beta):
    # type: (SyncDaemon, str, str) -> None
    try:
        daemon.ensure_endpoint_directory(alpha)
    except DaemonError as exc:
        raise DaemonError("Failed to create alpha directory: %s" % exc, exc.stderr)
    try:
        daemon.ensure_endpoint_directory(beta)
    except DaemonError as exc:
        raise DaemonError("Failed to create beta directory: %s" % exc, exc.stderr)


def _create_two_way(daemon, project, spec):
    # type: (SyncDaemon, Project, SyncSpec) -> None
    alpha, beta = _endpoints(project, spec.name)
    _prepare_endpoints(daemon, alpha, beta)
    definition = project.config.sessions[spec.name]
    daemon.create_two_way_session(
        spec.name,
        alpha,
        beta,
        ignore=project.config.ignore_patterns(spec.name),
        mode=definition.mode,
    )


def _create_push(daemon, project, name):
    # type: (SyncDaemon, Project, str) -> None
    alpha, beta = _endpoints(project, name)
    _prepare_endpoints(daemon, alpha, beta)
    daemon.create_push_session(
        name + "-push", alpha, beta, ignore=project.config.ignore_patterns(name)
    )


def _run_batch(verb, noun, steps, progress=None):
    # type: (str, str, List[Step], Progress) -> StatusMessage
    """Run ``steps`` in order and summarize; one failure does not stop the rest."""
    done = 0
    errors = []  # type: List[str]
    total = len(steps)
    for index, (label, step) in enumerate(steps, 1):
        if progress is not None:
            progress(index, total)
        try:
            step()
            done += 1
        except DaemonError as exc:
            logger.warning("%s %s failed: %s", verb, label, exc)
            errors.append("%s: %s" % (label, exc))

    if not errors:
        return StatusMessage.info("%s %d %s(s)" % (verb, done, noun))
    if done:
        return StatusMessage.warning(
            "%s %d %s(s), %d failed. First error: %s"
            % (verb, done, noun, len(errors), errors[0])
        )
    return StatusMessage.error(
        "Failed to %s %d %s(s). First error: %s"
        % (_INFINITIVES[verb], len(errors), noun, errors[0])
    )


_INFINITIVES = {
    "Started": "start",
    "Terminated": "terminate",
    "Flushed": "flush",
    "Paused": "pause",
    "Resumed": "resume",
    "Created": "create",
}


# ── single spec ───────────────────────────────────────────


def pause_spec(daemon, project, spec):
    # type: (SyncDaemon, Project, SyncSpec) -> StatusMessage
    if spec.session is None:
        return StatusMessage.warning("%s is not running" % spec.name)
    try:
        daemon.pause_session(spec.session.identifier)
    except DaemonError as exc:
        return StatusMessage.error("Failed to pause: %s" % exc)
    return StatusMessage.info("Paused spec: %s" % spec.name)


def resume_spec(daemon, project, spec):
    # type: (SyncDaemon, Project, SyncSpec) -> StatusMessage
    if spec.session is None:
        return StatusMessage.warning("%s is not running" % spec.name)
    try:
        daemon.resume_session(spec.session.identifier)
    except DaemonError as exc:
        return StatusMessage.error("Failed to resume: %s" % exc)
    return StatusMessage.info("Resumed spec: %s" % spec.name)


def terminate_spec(daemon, project, spec):
    # type: (SyncDaemon, Project, SyncSpec) -> StatusMessage
    if spec.session is None:
        return StatusMessage.warning("%s is not running" % spec.name)
    try:
        daemon.terminate_session(spec.session.identifier)
    except DaemonError as exc:
        return StatusMessage.error("Failed to terminate: %s" % exc)
    return StatusMessage.info("Terminated spec: %s" % spec.name)


def flush_spec(daemon, project, spec):
    # type: (SyncDaemon, Project, SyncSpec) -> StatusMessage
    if spec.session is None:
        return StatusMessage.warning("%s is not running" % spec.name)
    try:
        daemon.flush_session(spec.session.identifier)
    except DaemonError as exc:
        return StatusMessage.error("Failed to flush: %s" % exc)
    return StatusMessage.info("Flushed spec: %s" % spec.name)


def start_spec(daemon, project, spec):
    # type: (SyncDaemon, Project, SyncSpec) -> StatusMessage
    if spec.is_running:
        return StatusMessage.info("%s is already running" % spec.name)
    if spec.name not in project.config.sessions:
        return StatusMessage.error("Session definition not found: %s" % spec.name)
    try:
        _create_two_way(daemon, project, spec)
    except DaemonError as exc:
        return StatusMessage.error("Failed to start spec: %s" % exc)
    return StatusMessage.info("Started spec: %s" % spec.name)


def push_spec(daemon, project, spec):
    # type: (SyncDaemon, Project, SyncSpec) -> StatusMessage
    """Replace a two-way session with a one-way push from alpha to beta."""
    if spec.name not in project.config.sessions:
        return StatusMessage.error("Session definition not found: %s" % spec.name)
    if spec.state is SpecState.RUNNING_PUSH:
        return StatusMessage.info("%s is already pushing" % spec.name)
    if spec.state is SpecState.RUNNING_TWO_WAY and spec.session is not None:
        try:
            daemon.terminate_session(spec.session.identifier)
        except DaemonError as exc:
            return StatusMessage.error("Failed to terminate %s: %s" % (spec.name, exc))
    try:
        _create_push(daemon, project, spec.name)
    except DaemonError as exc:
        return StatusMessage.error("Failed to create push session: %s" % exc)
    return StatusMessage.info("Created push session: %s" % spec.push_name)


def toggle_pause(daemon, project, spec=None, progress=None):
    # type: (SyncDaemon, Project, Optional[SyncSpec], Progress) -> StatusMessage
    """Pause or resume a spec, or a whole project when ``spec`` is None.

    A project is paused when any of its running specs is still active, and
    resumed when all of them are already paused.
    """
    if spec is not None:
        if spec.is_paused:
            return resume_spec(daemon, project, spec)
        return pause_spec(daemon, project, spec)

    running = project.running_specs()
    if not running:
        return StatusMessage.info("Project has no running specs. Use 's' to start.")
    if any(not s.is_paused for s in running):
        return pause_project(daemon, project, progress)
    return resume_project(daemon, project, progress)


# ── whole project ─────────────────────────────────────────


def start_project(daemon, project, progress=None):
    # type: (SyncDaemon, Project, Progress) -> StatusMessage
    """Start every spec that is not running.

    When nothing runs yet the project file is handed to ``mutagen project
    start`` as a whole; otherwise each missing spec gets its own session.
    """
    if not project.specs:
        return StatusMessage.error("No sessions defined in project file")
    pending = [s for s in project.specs if not s.is_running]
    if not pending:
        return StatusMessage.warning("All sessions already running")
    if len(pending) == len(project.specs):
        if progress is not None:
            progress(1, 1)
        try:
            daemon.start_project(project.path)
        except DaemonError as exc:
            return StatusMessage.error("Failed to start project: %s" % exc)
        return StatusMessage.info("Started project: %s" % project.display_name)
    steps = [
        (s.name, partial(_create_two_way, daemon, project, s)) for s in pending
    ]  # type: List[Step]
    return _run_batch("Started", "session", steps, progress)


def terminate_project(daemon, project, progress=None):
    # type: (SyncDaemon, Project, Progress) -> StatusMessage
    running = project.running_specs()
    if not running:
        return StatusMessage.info("No running specs to terminate")
    steps = [
        (s.name, partial(daemon.terminate_session, s.session.identifier)) for s in running
    ]  # type: List[Step]
    return _run_batch("Terminated", "session", steps, progress)


def flush_project(daemon, project, progress=None):
    # type: (SyncDaemon, Project, Progress) -> StatusMessage
    running = project.running_specs()
    if not running:
        return StatusMessage.info("No running specs to flush")
    steps = [
        (s.name, partial(daemon.flush_session, s.session.identifier)) for s in running
    ]  # type: List[Step]
    return _run_batch("Flushed", "session", steps, progress)


def pause_project(daemon, project, progress=None):
    # type: (SyncDaemon, Project, Progress) -> StatusMessage
    active = [s for s in project.running_specs() if not s.is_paused]
    if not active:
        return StatusMessage.info("No running specs to pause")
    steps = [
        (s.name, partial(daemon.pause_session, s.session.identifier)) for s in active
    ]  # type: List[Step]
    return _run_batch("Paused", "session", steps, progress)


def resume_project(daemon, project, progress=None):
    # type: (SyncDaemon, Project, Progress) -> StatusMessage
    paused = project.paused_specs()
    if not paused:
        return StatusMessage.info("No paused specs to resume")
    steps = [
        (s.name, partial(daemon.resume_session, s.session.identifier)) for s in paused
    ]  # type: List[Step]
    return _run_batch("Resumed", "session", steps, progress)


def push_project(daemon, project, progress=None):
    # type: (SyncDaemon, Project, Progress) -> StatusMessage
    """Terminate everything running, then push every defined spec."""
    if not project.config.sessions:
        return StatusMessage.error("No sessions defined in project file")
    for spec in project.running_specs():
        try:
            daemon.terminate_session(spec.session.identifier)
        except DaemonError as exc:
            # best effort; the create below reports a stuck session
            logger.warning("terminate %s before push failed: %s", spec.name, exc)
    steps = [
        (name, partial(_create_push, daemon, project, name))
        for name in sorted(project.config.sessions)
    ]  # type: List[Step]
    return _run_batch("Created", "push session", steps, progress)
