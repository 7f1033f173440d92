"""mutagui CLI: the dashboard, plus a one-shot listing for scripts.

Usage:
    mutagui [-d DIR] [--config PATH] [--debug] [--log-file PATH]
    mutagui list [-d DIR] [--config PATH]

``list`` prints the reconciled project tree in grep-friendly ``key=value``
lines and exits 1 when the daemon cannot be reached.
"""

import argparse
import logging
import sys

from .config import Config, load_config
from .daemon import MutagenCli
from .data import build_snapshot
from .errors import ConfigError, DaemonError
from .logger import setup_logging
from .state import AppState

logger = logging.getLogger(__name__)


def _daemon():
    # type: () -> MutagenCli
    return MutagenCli()


def _load_config(path):
    # type: (str) -> Config
    try:
        return load_config(path)
    except ConfigError as exc:
        logger.warning("Ignoring invalid config, using defaults: %s", exc)
        return Config()


def _print_project(project):
    print(
        "project=%s  path=%s  running=%d/%d  conflicts=%d  folded=%s"
        % (
            project.display_name,
            project.path,
            len(project.running_specs()),
            len(project.specs),
            project.conflict_count(),
            "true" if project.folded else "false",
        )
    )
    for spec in project.specs:
        line = "  spec=%s  state=%s" % (spec.name, spec.state.value)
        session = spec.session
        if session is not None:
            line += "  session=%s  status=%s  paused=%s  conflicts=%d" % (
                session.identifier,
                session.status_text(),
                "true" if session.paused else "false",
                spec.conflict_count(),
            )
        print(line)


def cmd_list(args, config):
    # type: (argparse.Namespace, Config) -> int
    state = AppState(config)
    try:
        snapshot = build_snapshot(_daemon(), config.projects, args.dir)
    except DaemonError as exc:
        print("Error: %s" % exc, file=sys.stderr)
        return 1
    state.apply_snapshot(snapshot)
    for error in snapshot.errors:
        print("skipped=%s" % error)
    if not state.projects:
        print("No project files found.")
        return 0
    for project in state.projects:
        _print_project(project)
    return 0


def cmd_tui(args, config):
    # type: (argparse.Namespace, Config) -> int
    # Textual is only imported for the dashboard
    from .app import MutaguiApp

    app = MutaguiApp(config=config, project_dir=args.dir)
    app.run()
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="mutagui",
        description="Terminal dashboard for Mutagen sync sessions",
    )
    parser.add_argument(
        "-d", "--dir", default=None, help="Directory to search for project files"
    )
    parser.add_argument("--config", default=None, help="Config file path")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--log-file", default=None, help="Log file path")
    parser.add_argument(
        "--log-format", choices=["text", "json"], default="text", help="Log format"
    )
    sub = parser.add_subparsers(dest="command")

    p_list = sub.add_parser("list", help="Print projects and specs, then exit")
    p_list.add_argument(
        "-d",
        "--dir",
        default=argparse.SUPPRESS,
        help="Directory to search for project files",
    )

    args = parser.parse_args(argv)

    mode = "cli" if args.command == "list" else "tui"
    setup_logging(
        mode=mode, debug=args.debug, log_file=args.log_file, debug_format=args.log_format
    )
    config = _load_config(args.config)

    dispatch = {
        "list": cmd_list,
    }
    handler = dispatch.get(args.command, cmd_tui)
    sys.exit(handler(args, config))


if __name__ == "__main__":
    main()
