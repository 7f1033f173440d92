"""Exceptions raised at the edges of mutagui.

The reconciliation and selection core never raises; these only come out of
the collaborators that talk to the daemon, the filesystem or the config file.
"""


class MutaguiError(Exception):
    """Base class for every mutagui error."""


class DaemonError(MutaguiError):
    """A mutagen command failed, timed out, or produced unreadable output."""

    def __init__(self, message, stderr=""):
        # type: (str, str) -> None
        super().__init__(message)
        self.stderr = stderr


class ProjectFileError(MutaguiError):
    """A project file could not be read or parsed."""

    def __init__(self, path, reason):
        # type: (str, str) -> None
        super().__init__("%s: %s" % (path, reason))
        self.path = path
        self.reason = reason


class ConfigError(MutaguiError):
    """The user configuration file is invalid."""
