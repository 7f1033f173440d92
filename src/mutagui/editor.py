"""Opening project files in the user's editor."""

import os
import shlex
import subprocess
from typing import List, Mapping, Optional

GUI_EDITORS = [
    "code", "code-insiders", "zed", "subl", "sublime", "sublime_text",
    "atom", "gedit", "gnome-text-editor", "kwrite", "kate", "mousepad",
    "xed", "pluma", "bbedit", "textmate", "textedit", "xcode", "macvim", "gvim",
]

TERMINAL_EDITORS = [
    "vim", "vi", "nvim", "nano", "emacs", "emacsclient", "ed", "ex",
    "joe", "jed", "pico", "micro", "helix", "hx", "kakoune", "kak",
]


def get_editor(environ=None):
    # type: (Optional[Mapping[str, str]]) -> str
    env = os.environ if environ is None else environ
    return env.get("VISUAL") or env.get("EDITOR") or "vim"


def editor_command(path, environ=None):
    # type: (str, Optional[Mapping[str, str]]) -> List[str]
    """argv that opens ``path``; ``$EDITOR`` may carry its own flags."""
    parts = shlex.split(get_editor(environ)) or ["vim"]
    return parts + [path]


def is_gui_editor(editor, environ=None):
    # type: (str, Optional[Mapping[str, str]]) -> bool
    """Whether ``editor`` opens its own window instead of taking the terminal."""
    env = os.environ if environ is None else environ
    if env.get("MUTAGUI_EDITOR_IS_GUI", "").lower() in ("1", "true"):
        return True
    # No display over SSH
    if env.get("SSH_CLIENT") or env.get("SSH_TTY"):
        return False

    name = os.path.basename(editor).lower()
    if any(gui in name for gui in GUI_EDITORS):
        return True
    if any(term in name for term in TERMINAL_EDITORS):
        return False
    # Unknown editors are assumed to need the terminal
    return False


def launch_detached(argv):
    # type: (List[str]) -> None
    """Start a GUI editor without waiting for it.  Raises OSError."""
    subprocess.Popen(
        argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
