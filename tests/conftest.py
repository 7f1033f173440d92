"""Shared pytest fixtures for mutagui tests."""

import pytest

from mutagui.daemon import SyncDaemon
from mutagui.data import SessionRecord
from mutagui.errors import DaemonError
from mutagui.projects import ProjectConfig, SyncSpecDefinition
from mutagui.reconcile import Project, SpecState, SyncSpec


def session_dict(
    name,
    identifier=None,
    mode=None,
    paused=False,
    conflicts=0,
    cycles=0,
    status="Watching for changes",
):
    """A session as ``mutagen sync list --template '{{json .}}'`` reports it."""
    d = {
        "name": name,
        "identifier": identifier or "sync_%s" % name,
        "alpha": {
            "protocol": "local",
            "path": "/src/%s" % name,
            "connected": True,
            "scanned": True,
            "files": 12,
            "directories": 3,
        },
        "beta": {
            "protocol": "ssh",
            "host": "server",
            "path": "/dst/%s" % name,
            "connected": True,
            "scanned": True,
        },
        "status": status,
        "paused": paused,
        "successfulCycles": cycles,
        "conflicts": [
            {
                "root": "file%d" % i,
                "alphaChanges": [{"path": "file%d" % i, "new": {"kind": "file"}}],
                "betaChanges": [{"path": "file%d" % i, "old": {"kind": "file"}}],
            }
            for i in range(conflicts)
        ],
    }
    if mode:
        d["mode"] = mode
    return d


@pytest.fixture
def make_session():
    def _make(name, **kwargs):
        return SessionRecord.from_dict(session_dict(name, **kwargs))

    return _make


@pytest.fixture
def make_config():
    def _make(names, path="/work/app/mutagen.yml", defaults=None):
        sessions = dict(
            (n, SyncSpecDefinition(alpha="./%s" % n, beta="server:/srv/%s" % n))
            for n in names
        )
        return ProjectConfig(path=path, sessions=sessions, defaults=defaults)

    return _make


@pytest.fixture
def make_project(make_config, make_session):
    """Project with one spec per entry; ``running`` maps spec names to session kwargs."""

    def _make(names, running=None, path="/work/app/mutagen.yml", folded=False):
        running = running or {}
        specs = []
        for name in sorted(names):
            if name in running:
                kwargs = dict(running[name])
                push = kwargs.pop("push", False)
                if push:
                    session = make_session(
                        name + "-push", mode="one-way-replica", **kwargs
                    )
                    specs.append(SyncSpec(name, SpecState.RUNNING_PUSH, session))
                else:
                    session = make_session(name, **kwargs)
                    specs.append(SyncSpec(name, SpecState.RUNNING_TWO_WAY, session))
            else:
                specs.append(SyncSpec(name))
        return Project(config=make_config(names, path=path), specs=specs, folded=folded)

    return _make


class FakeDaemon(SyncDaemon):
    """Records every call; ``fail`` maps method names to True or a set of failing args."""

    def __init__(self, sessions=None, fail=None):
        self.sessions = list(sessions or [])
        self.fail = dict(fail or {})
        self.calls = []

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        failing = self.fail.get(method)
        if failing is True or (failing and args and args[0] in failing):
            raise DaemonError("%s failed" % method, stderr="boom")

    def methods(self):
        return [c[0] for c in self.calls]

    def list_sessions(self):
        self._record("list_sessions")
        return list(self.sessions)

    def pause_session(self, identifier):
        self._record("pause_session", identifier)

    def resume_session(self, identifier):
        self._record("resume_session", identifier)

    def terminate_session(self, identifier):
        self._record("terminate_session", identifier)

    def flush_session(self, identifier):
        self._record("flush_session", identifier)

    def start_project(self, project_file):
        self._record("start_project", project_file)

    def create_two_way_session(self, name, alpha, beta, ignore=None, mode=None):
        self._record("create_two_way_session", name, alpha, beta, list(ignore or []), mode)

    def create_push_session(self, name, alpha, beta, ignore=None):
        self._record("create_push_session", name, alpha, beta, list(ignore or []))

    def ensure_endpoint_directory(self, endpoint):
        self._record("ensure_endpoint_directory", endpoint)


@pytest.fixture
def make_daemon():
    return FakeDaemon


@pytest.fixture
def daemon():
    return FakeDaemon()
