"""Daemon adapter layer.

Thin abstraction over the Mutagen daemon.  The only concrete implementation
is ``MutagenCli``, which shells out to the ``mutagen`` binary; tests swap in
a fake subprocess runner or their own ``SyncDaemon`` subclass.

Timeouts: 5s for single-session commands, 10s for project commands, 15s for
session creation.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence

from .data import ONE_WAY_REPLICA, SessionRecord, parse_sessions
from .endpoint import DOCKER, LOCAL, SSH, EndpointAddress
from .errors import DaemonError

logger = logging.getLogger(__name__)

SESSION_TIMEOUT = 5
PROJECT_TIMEOUT = 10
CREATE_TIMEOUT = 15
MKDIR_TIMEOUT = 30

LIST_TEMPLATE = "{{json .}}"


# ── Abstract adapter ─────────────────────────────────────


class SyncDaemon(ABC):
    """Interface to whatever runs the sync sessions.

    Every method raises ``DaemonError`` on failure.
    """

    @abstractmethod
    def list_sessions(self):
        # type: () -> List[SessionRecord]
        ...

    @abstractmethod
    def pause_session(self, identifier):
        # type: (str) -> None
        ...

    @abstractmethod
    def resume_session(self, identifier):
        # type: (str) -> None
        ...

    @abstractmethod
    def terminate_session(self, identifier):
        # type: (str) -> None
        ...

    @abstractmethod
    def flush_session(self, identifier):
        # type: (str) -> None
        ...

    @abstractmethod
    def start_project(self, project_file):
        # type: (str) -> None
        ...

    @abstractmethod
    def create_two_way_session(self, name, alpha, beta, ignore=None, mode=None):
        # type: (str, str, str, Optional[Sequence[str]], Optional[str]) -> None
        ...

    @abstractmethod
    def create_push_session(self, name, alpha, beta, ignore=None):
        # type: (str, str, str, Optional[Sequence[str]]) -> None
        """Create a one-way-replica session that overwrites beta with alpha."""
        ...

    @abstractmethod
    def ensure_endpoint_directory(self, endpoint):
        # type: (str) -> None
        """Make sure the directory behind an endpoint exists."""
        ...


# ── mutagen CLI implementation ───────────────────────────


class MutagenCli(SyncDaemon):
    """Runs ``mutagen`` subcommands and checks their exit status."""

    def __init__(self, binary="mutagen", runner=None):
        # type: (str, Optional[Callable[..., Any]]) -> None
        self._binary = binary
        self._runner = runner or subprocess.run

    def _run(self, args, timeout, program=None):
        # type: (List[str], int, Optional[str]) -> str
        argv = [program or self._binary] + args
        description = " ".join(argv[:3])
        logger.debug("running %s", argv)
        try:
            result = self._runner(
                argv,
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            raise DaemonError("%s not found on PATH" % argv[0])
        except subprocess.TimeoutExpired:
            raise DaemonError("%s timed out after %ds" % (description, timeout))
        except OSError as exc:
            raise DaemonError("%s failed: %s" % (description, exc))

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            logger.info("%s exited %d: %s", description, result.returncode, stderr)
            raise DaemonError("%s failed: %s" % (description, stderr), stderr=stderr)
        return result.stdout or ""

    # ── sessions ──────────────────────────────────────────

    def list_sessions(self):
        # type: () -> List[SessionRecord]
        output = self._run(["sync", "list", "--template", LIST_TEMPLATE], SESSION_TIMEOUT)
        return parse_sessions(output)

    def pause_session(self, identifier):
        # type: (str) -> None
        self._run(["sync", "pause", identifier], SESSION_TIMEOUT)

    def resume_session(self, identifier):
        # type: (str) -> None
        self._run(["sync", "resume", identifier], SESSION_TIMEOUT)

    def terminate_session(self, identifier):
        # type: (str) -> None
        self._run(["sync", "terminate", identifier], SESSION_TIMEOUT)

    def flush_session(self, identifier):
        # type: (str) -> None
        self._run(["sync", "flush", identifier], SESSION_TIMEOUT)

    # ── projects ──────────────────────────────────────────

    def start_project(self, project_file):
        # type: (str) -> None
        self._run(["project", "start", "-f", project_file], PROJECT_TIMEOUT)

    # ── creation ──────────────────────────────────────────

    def create_two_way_session(self, name, alpha, beta, ignore=None, mode=None):
        # type: (str, str, str, Optional[Sequence[str]], Optional[str]) -> None
        args = ["sync", "create", alpha, beta, "--name", name]
        if mode and mode != ONE_WAY_REPLICA:
            args.extend(["--sync-mode", mode])
        for pattern in ignore or []:
            args.extend(["--ignore", pattern])
        self._run(args, CREATE_TIMEOUT)

    def create_push_session(self, name, alpha, beta, ignore=None):
        # type: (str, str, str, Optional[Sequence[str]]) -> None
        args = ["sync", "create", alpha, beta, "--name", name]
        args.extend(["--sync-mode", ONE_WAY_REPLICA])
        for pattern in ignore or []:
            args.extend(["--ignore", pattern])
        self._run(args, CREATE_TIMEOUT)

    def ensure_endpoint_directory(self, endpoint):
        # type: (str) -> None
        address = EndpointAddress.parse(endpoint).expand_tilde()
        if address.kind == LOCAL:
            try:
                os.makedirs(address.path, exist_ok=True)
            except OSError as exc:
                raise DaemonError("cannot create %s: %s" % (address.path, exc))
        elif address.kind == SSH:
            args = []  # type: List[str]
            if address.port:
                args.extend(["-p", str(address.port)])
            args.extend([address.ssh_destination(), "mkdir", "-p", address.path])
            self._run(args, MKDIR_TIMEOUT, program="ssh")
        elif address.kind == DOCKER:
            args = ["exec", address.container or "", "mkdir", "-p", address.path]
            self._run(args, MKDIR_TIMEOUT, program="docker")
