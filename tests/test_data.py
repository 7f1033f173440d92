"""Tests for data.py: session parsing, display helpers, sync-time tracking and snapshots."""

import json
from datetime import datetime, timedelta

import pytest

from conftest import session_dict
from mutagui.data import (
    ICON_DISCONNECTED,
    ICON_READY,
    ICON_SCANNING,
    SYNC_AT,
    SYNC_NEVER,
    SYNC_UNKNOWN,
    Endpoint,
    SessionRecord,
    build_snapshot,
    format_number,
    parse_sessions,
    time_ago,
    track_sync_times,
)
from mutagui.errors import DaemonError

NOW = datetime(2024, 5, 1, 12, 0, 0)


class TestParseSessions:
    @pytest.mark.parametrize("text", ["", "   \n", "null", "null\n"])
    def test_empty_output(self, text):
        assert parse_sessions(text) == []

    def test_invalid_json_raises(self):
        with pytest.raises(DaemonError):
            parse_sessions("{not json")

    def test_non_list_raises(self):
        with pytest.raises(DaemonError):
            parse_sessions('{"name": "web"}')

    def test_full_record(self):
        payload = [session_dict("web", mode="two-way-safe", conflicts=2, cycles=7)]
        payload[0]["labels"] = {"team": "infra"}
        payload[0]["creationTime"] = "2024-05-01T10:00:00Z"

        [session] = parse_sessions(json.dumps(payload))

        assert session.name == "web"
        assert session.identifier == "sync_web"
        assert session.mode == "two-way-safe"
        assert session.successful_cycles == 7
        assert session.conflict_count() == 2
        assert session.has_conflicts() is True
        assert session.labels == {"team": "infra"}
        assert session.creation_time == "2024-05-01T10:00:00Z"
        assert session.alpha.files == 12
        assert session.beta.host == "server"
        assert session.conflicts[0].alpha_changes[0].new.kind == "file"
        assert session.conflicts[0].alpha_changes[0].old is None

    def test_missing_optional_keys(self):
        text = json.dumps(
            [
                {
                    "name": "bare",
                    "identifier": "sync_1",
                    "alpha": {"protocol": "local", "path": "/a"},
                    "beta": {"protocol": "local", "path": "/b"},
                    "status": "Watching for changes",
                    "paused": False,
                }
            ]
        )

        [session] = parse_sessions(text)

        assert session.mode is None
        assert session.is_one_way is False
        assert session.conflicts == []
        assert session.labels == {}
        assert session.successful_cycles == 0
        assert session.alpha.host is None
        assert session.alpha.files is None


class TestEndpoint:
    def test_remote_display_path(self):
        endpoint = Endpoint(protocol="ssh", path="/srv/web", host="server")
        assert endpoint.display_path() == "server:/srv/web"

    def test_home_shown_as_tilde(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/dev")
        endpoint = Endpoint(protocol="local", path="/home/dev/code/web")
        assert endpoint.display_path() == "~/code/web"

    def test_status_icon(self):
        assert Endpoint("local", "/a").status_icon() == ICON_DISCONNECTED
        assert Endpoint("local", "/a", connected=True).status_icon() == ICON_SCANNING
        assert (
            Endpoint("local", "/a", connected=True, scanned=True).status_icon()
            == ICON_READY
        )

    def test_stats_display(self):
        assert Endpoint("local", "/a", files=12, directories=3).stats_display() == "12f/3d"
        assert Endpoint("local", "/a", files=12).stats_display() == "12f"
        assert Endpoint("local", "/a").stats_display() == ""


class TestStatusText:
    @pytest.mark.parametrize(
        "status, expected",
        [
            ("Watching for changes", "Watching"),
            ("Reconciling changes", "Reconciling"),
            ("Saving archive", "Saving"),
            ("Waiting 5 seconds for rescan", "Waiting"),
            ("Connecting to beta", "Connecting"),
            ("Halted on root emptied", "Halted"),
            ("", "Unknown"),
        ],
    )
    def test_simple_states(self, make_session, status, expected):
        assert make_session("web", status=status).status_text() == expected

    def test_scanning_large_tree_shows_file_count(self):
        d = session_dict("web", status="Scanning files on alpha")
        d["alpha"]["files"] = 1234
        session = SessionRecord.from_dict(d)

        assert session.status_text() == "Scanning α (1,234 files)"

    def test_staging_shows_progress(self):
        d = session_dict("web", status="Staging files on beta")
        d["beta"]["stagingProgress"] = {"receivedFiles": 3, "expectedFiles": 10}
        session = SessionRecord.from_dict(d)

        assert session.status_text() == "Staging β (3/10 30%)"

    def test_format_number(self):
        assert format_number(1234567) == "1,234,567"
        assert format_number(12) == "12"


class TestTrackSyncTimes:
    def test_first_refresh_is_unknown(self, make_session):
        [session] = track_sync_times([], [make_session("web", cycles=5)], True, NOW)

        assert session.sync_time == SYNC_UNKNOWN
        assert session.last_sync is None
        assert session.time_ago(NOW) == "unknown"

    def test_cycle_growth_records_sync(self, make_session):
        previous = track_sync_times([], [make_session("web", cycles=5)], True, NOW)
        later = NOW + timedelta(minutes=3)

        [session] = track_sync_times(previous, [make_session("web", cycles=6)], False, later)

        assert session.sync_time == SYNC_AT
        assert session.last_sync == later

    def test_unchanged_counter_keeps_previous(self, make_session):
        previous = track_sync_times([], [make_session("web", cycles=5)], True, NOW)
        previous = track_sync_times(previous, [make_session("web", cycles=6)], False, NOW)

        [session] = track_sync_times(
            previous, [make_session("web", cycles=6)], False, NOW + timedelta(hours=1)
        )

        assert session.sync_time == SYNC_AT
        assert session.last_sync == NOW
        assert session.time_ago(NOW + timedelta(hours=1)) == "1 hour ago"

    def test_new_session_later_with_cycles(self, make_session):
        [session] = track_sync_times([], [make_session("web", cycles=1)], False, NOW)

        assert session.sync_time == SYNC_AT
        assert session.last_sync == NOW

    def test_new_session_later_without_cycles(self, make_session):
        [session] = track_sync_times([], [make_session("web", cycles=0)], False, NOW)

        assert session.sync_time == SYNC_NEVER
        assert session.time_ago(NOW) == "never"

    def test_keyed_by_identifier_not_name(self, make_session):
        previous = track_sync_times(
            [], [make_session("web", identifier="id1", cycles=5)], False, NOW
        )

        [session] = track_sync_times(
            previous, [make_session("web", identifier="id2", cycles=0)], False, NOW
        )

        assert session.sync_time == SYNC_NEVER


class TestTimeAgo:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=5), "just now"),
            (timedelta(seconds=90), "1 min ago"),
            (timedelta(minutes=12), "12 mins ago"),
            (timedelta(minutes=75), "1 hour ago"),
            (timedelta(hours=5), "5 hours ago"),
            (timedelta(hours=30), "1 day ago"),
            (timedelta(days=4), "4 days ago"),
        ],
    )
    def test_buckets(self, delta, expected):
        assert time_ago(NOW - delta, NOW) == expected


class TestBuildSnapshot:
    def test_collects_sessions_and_project_files(
        self, tmp_path, monkeypatch, make_daemon, make_session
    ):
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        (tmp_path / "mutagen.yml").write_text(
            "sync:\n  web:\n    alpha: ./web\n    beta: server:/srv/web\n"
        )
        (tmp_path / "mutagen-bad.yml").write_text("sync: [oops\n")
        daemon = make_daemon(sessions=[make_session("web")])

        snapshot = build_snapshot(daemon, project_dir=str(tmp_path))

        assert [s.name for s in snapshot.sessions] == ["web"]
        assert [c.display_name for c in snapshot.configs] == ["mutagen"]
        assert len(snapshot.errors) == 1

    def test_daemon_failure_raises(self, tmp_path, make_daemon):
        daemon = make_daemon(fail={"list_sessions": True})

        with pytest.raises(DaemonError):
            build_snapshot(daemon, project_dir=str(tmp_path))
