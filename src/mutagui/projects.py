"""Mutagen project files: parsing and discovery.

A project file is a ``mutagen.yml`` (or ``mutagen-<target>.yml``) whose
``sync`` mapping declares named sync specs:

    sync:
      defaults:
        ignore:
          vcs: true
      web:
        alpha: ./web
        beta: server:/srv/web
        ignore: [node_modules]

Files that fail to parse are skipped; the reason is logged and collected so
the dashboard can surface it without aborting a refresh.
"""

import fnmatch
import glob as globmod
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .errors import ProjectFileError


logger = logging.getLogger(__name__)

VCS_DIRECTORIES = [".git", ".svn", ".hg", ".bzr", "_darcs", ".fossil-settings"]

# Subdirectories checked in every ancestor of the base directory
ANCESTOR_SUBDIRS = ["mutagen", ".mutagen", "config", "conf"]

FILE_PATTERNS = ["mutagen.yml", "mutagen-*.yml", ".mutagen.yml", ".mutagen-*.yml"]


@dataclass(frozen=True)
class SyncSpecDefinition:
    alpha: str
    beta: str
    mode: Optional[str] = None
    ignore: Any = None

    def ignore_patterns(self, defaults=None):
        # type: (Optional[Dict[str, Any]]) -> List[str]
        """Ignore patterns for this spec, defaults first, without duplicates.

        Accepts ``[a, b]``, ``{paths: [a, b]}`` and ``{vcs: true}``.
        """
        patterns = []  # type: List[str]
        if defaults and isinstance(defaults, dict):
            _extend_patterns(defaults.get("ignore"), patterns)
        _extend_patterns(self.ignore, patterns)
        return patterns


def _extend_patterns(value, patterns):
    # type: (Any, List[str]) -> None
    if isinstance(value, list):
        items = value
    elif isinstance(value, dict):
        items = []
        if value.get("vcs") is True:
            items.extend(VCS_DIRECTORIES)
        paths = value.get("paths")
        if isinstance(paths, list):
            items.extend(paths)
        # regex rules are not expressible as --ignore patterns
    else:
        return
    for item in items:
        if isinstance(item, str) and item not in patterns:
            patterns.append(item)


@dataclass
class ProjectConfig:
    path: str
    sessions: Dict[str, SyncSpecDefinition] = field(default_factory=dict)
    defaults: Optional[Dict[str, Any]] = None

    @property
    def target_name(self) -> Optional[str]:
        return extract_target_name(self.path)

    @property
    def display_name(self) -> str:
        target = self.target_name
        if target:
            return "mutagen-%s" % target
        name = os.path.basename(self.path)
        if name.endswith(".yml"):
            return name[: -len(".yml")]
        return name

    def ignore_patterns(self, spec_name):
        # type: (str) -> List[str]
        definition = self.sessions.get(spec_name)
        if definition is None:
            return []
        return definition.ignore_patterns(self.defaults)


def extract_target_name(path):
    # type: (str) -> Optional[str]
    name = os.path.basename(path)
    if not name.endswith(".yml"):
        return None
    for prefix in ("mutagen-", ".mutagen-"):
        if name.startswith(prefix):
            return name[len(prefix) : -len(".yml")] or None
    return None


def load_project_file(path):
    # type: (str) -> ProjectConfig
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ProjectFileError(path, "failed to read: %s" % exc)
    except UnicodeDecodeError as exc:
        raise ProjectFileError(path, "not valid UTF-8: %s" % exc)
    except yaml.YAMLError as exc:
        raise ProjectFileError(path, "failed to parse: %s" % exc)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProjectFileError(path, "top level is not a mapping")

    sync = data.get("sync")
    if not isinstance(sync, dict):
        return ProjectConfig(path=path)

    sessions = {}  # type: Dict[str, SyncSpecDefinition]
    defaults = None  # type: Optional[Dict[str, Any]]
    for key, value in sync.items():
        name = str(key)
        if name == "defaults":
            if isinstance(value, dict) and value:
                defaults = value
            continue
        if not isinstance(value, dict):
            raise ProjectFileError(path, "sync spec %r is not a mapping" % name)
        alpha = value.get("alpha")
        beta = value.get("beta")
        if not isinstance(alpha, str) or not isinstance(beta, str):
            raise ProjectFileError(path, "sync spec %r needs alpha and beta" % name)
        mode = value.get("mode")
        sessions[name] = SyncSpecDefinition(
            alpha=alpha,
            beta=beta,
            mode=str(mode) if mode else None,
            ignore=value.get("ignore"),
        )
    return ProjectConfig(path=path, sessions=sessions, defaults=defaults)


def expand_tilde(path):
    # type: (str) -> str
    if path == "~" or path.startswith("~/"):
        return os.path.expanduser(path)
    return path


def build_search_patterns(base_dir=None, home=None):
    # type: (Optional[str], Optional[str]) -> List[str]
    """Glob patterns searched for project files, in priority order."""
    start = base_dir or "."
    patterns = []  # type: List[str]

    for name in FILE_PATTERNS:
        patterns.append(os.path.join(start, name))
    for subdir in ("mutagen", ".mutagen", "config/mutagen", "conf/mutagen"):
        patterns.append(os.path.join(start, subdir, "*.yml"))
    # Direct children only, for multi-project directories like ~/code
    for name in FILE_PATTERNS:
        patterns.append(os.path.join(start, "*", name))

    directory = os.path.abspath(start)
    while True:
        for subdir in ANCESTOR_SUBDIRS:
            candidate = os.path.join(directory, subdir)
            if os.path.isdir(candidate):
                patterns.append(os.path.join(candidate, "*.yml"))
        parent = os.path.dirname(directory)
        if parent == directory or parent == os.sep:
            break
        if home and os.path.abspath(directory) == os.path.abspath(home):
            break
        directory = parent

    if home:
        patterns.append(os.path.join(home, ".config", "mutagen", "projects", "*.yml"))
        patterns.append(os.path.join(home, ".mutagen", "projects", "*.yml"))
    return patterns


def should_exclude(path, exclude_patterns):
    # type: (str, List[str]) -> bool
    """True when any path component matches an exclude pattern.

    Components are compared whole (or as shell wildcards) so that ``target``
    excludes ``./target/`` but not ``./targeting-app/``.
    """
    if not exclude_patterns:
        return False
    parts = [p for p in os.path.normpath(path).split(os.sep) if p]
    for part in parts:
        for pattern in exclude_patterns:
            if part == pattern or fnmatch.fnmatchcase(part, pattern):
                return True
    return False


def discover_project_files(base_dir=None, discovery=None, errors=None):
    # type: (Optional[str], Any, Optional[List[str]]) -> List[ProjectConfig]
    """Find and parse project files around ``base_dir``.

    ``discovery`` is a ``DiscoveryConfig`` (search paths and exclude
    patterns). Parse failures are appended to ``errors`` when given.
    """
    home = os.environ.get("HOME") or None
    patterns = build_search_patterns(base_dir, home)
    exclude = []  # type: List[str]
    if discovery is not None:
        for extra in discovery.search_paths:
            root = expand_tilde(str(extra))
            for name in FILE_PATTERNS:
                patterns.append(os.path.join(root, name))
        exclude = list(discovery.exclude_patterns)

    configs = []  # type: List[ProjectConfig]
    seen = set()  # type: set
    for pattern in patterns:
        for entry in sorted(globmod.glob(pattern)):
            if not os.path.isfile(entry):
                continue
            if should_exclude(entry, exclude):
                continue
            canonical = os.path.realpath(entry)
            if canonical in seen:
                continue
            seen.add(canonical)
            try:
                configs.append(load_project_file(entry))
            except ProjectFileError as exc:
                logger.warning("Skipping project file %s", exc)
                if errors is not None:
                    errors.append(str(exc))
    return configs
