import json
import logging
import os
import sys
from typing import List, Optional

DEFAULT_LOG_FILE = os.path.expanduser("~/.local/share/mutagui/mutagui.log")

_TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg (and exc when set)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(debug_format):
    # type: (str) -> logging.Formatter
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATE_FORMAT)
    return logging.Formatter(_TEXT_FORMAT, datefmt=_DATE_FORMAT)


def resolve_log_file(log_file=None):
    # type: (Optional[str]) -> str
    return log_file or os.getenv("LOG_FILE") or DEFAULT_LOG_FILE


def setup_logging(
    mode: str = "tui",
    debug: bool = False,
    log_file: Optional[str] = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging for the dashboard or the one-shot CLI.

    Args:
        mode: "tui" logs to a file only, since the terminal belongs to the
              dashboard. "cli" logs to stderr, plus ``log_file`` when given.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Log file path (overrides the LOG_FILE env var).
        debug_format: "text" (default) or "json".

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR. Default: WARNING.
        LOG_FILE: Log file path for tui mode.
                  Default: ~/.local/share/mutagui/mutagui.log
    """
    env_level = os.getenv("LOG_LEVEL", "WARNING").upper()
    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.WARNING)

    handlers = []  # type: List[logging.Handler]
    if mode == "tui":
        path = resolve_log_file(log_file)
        parent = os.path.dirname(path)
        if parent and not os.path.isdir(parent):
            os.makedirs(parent, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a")
        file_handler.setFormatter(_formatter(debug_format))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_formatter(debug_format))
        handlers.append(stderr_handler)
        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(_formatter(debug_format))
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Silence asyncio unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("asyncio").setLevel(logging.WARNING)
