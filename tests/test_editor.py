"""Tests for editor.py: editor selection and GUI detection."""

import subprocess
from unittest.mock import patch

import pytest

from mutagui.editor import editor_command, get_editor, is_gui_editor, launch_detached


class TestGetEditor:
    def test_visual_wins(self):
        assert get_editor({"VISUAL": "code", "EDITOR": "nano"}) == "code"

    def test_editor(self):
        assert get_editor({"EDITOR": "nano"}) == "nano"

    def test_default(self):
        assert get_editor({}) == "vim"

    def test_empty_values_fall_through(self):
        assert get_editor({"VISUAL": "", "EDITOR": ""}) == "vim"


class TestEditorCommand:
    def test_appends_path(self):
        assert editor_command("/w/mutagen.yml", {"EDITOR": "nvim"}) == ["nvim", "/w/mutagen.yml"]

    def test_keeps_editor_flags(self):
        assert editor_command("/w/m.yml", {"EDITOR": "code --wait"}) == [
            "code",
            "--wait",
            "/w/m.yml",
        ]


class TestIsGuiEditor:
    @pytest.mark.parametrize(
        "editor", ["code", "/usr/local/bin/code", "zed", "subl", "gvim", "Code-Insiders"]
    )
    def test_gui(self, editor):
        assert is_gui_editor(editor, {}) is True

    @pytest.mark.parametrize("editor", ["vim", "nvim", "/usr/bin/nano", "hx", "emacs"])
    def test_terminal(self, editor):
        assert is_gui_editor(editor, {}) is False

    def test_unknown_needs_terminal(self):
        assert is_gui_editor("myeditor", {}) is False

    def test_ssh_session_forces_terminal(self):
        assert is_gui_editor("code", {"SSH_CLIENT": "10.0.0.1 5555 22"}) is False
        assert is_gui_editor("code", {"SSH_TTY": "/dev/pts/1"}) is False

    @pytest.mark.parametrize("value", ["1", "true", "TRUE"])
    def test_override(self, value):
        assert is_gui_editor("vim", {"MUTAGUI_EDITOR_IS_GUI": value, "SSH_TTY": "x"}) is True


class TestLaunchDetached:
    @patch("mutagui.editor.subprocess.Popen")
    def test_detaches_from_terminal(self, mock_popen):
        launch_detached(["code", "/w/mutagen.yml"])

        mock_popen.assert_called_once_with(
            ["code", "/w/mutagen.yml"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
