"""Terminal dashboard for Mutagen sync sessions."""

__version__ = "0.1.0"
