"""Flattened row list and cursor over the project tree.

The tree is displayed as one list: a header row per project followed by its
spec rows when the project is unfolded.  The row list is rebuilt from
scratch after every refresh; the cursor is a plain index that is clamped
into the new list rather than re-anchored to a particular spec.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from .reconcile import Project


@dataclass(frozen=True)
class ProjectHeader:
    project_index: int


@dataclass(frozen=True)
class SpecRow:
    project_index: int
    spec_index: int


Row = Union[ProjectHeader, SpecRow]


def build_rows(projects):
    # type: (List[Project]) -> List[Row]
    rows = []  # type: List[Row]
    for p_idx, project in enumerate(projects):
        rows.append(ProjectHeader(p_idx))
        if not project.folded:
            for s_idx in range(len(project.specs)):
                rows.append(SpecRow(p_idx, s_idx))
    return rows


class SelectionModel:
    """Cursor over the rows of the project tree.  No method raises."""

    def __init__(self):
        # type: () -> None
        self._rows = []  # type: List[Row]
        self._cursor = 0

    @property
    def rows(self) -> List[Row]:
        return list(self._rows)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self):
        # type: () -> int
        return len(self._rows)

    def rebuild(self, projects):
        # type: (List[Project]) -> None
        self._rows = build_rows(projects)
        if not self._rows:
            self._cursor = 0
        elif self._cursor >= len(self._rows):
            self._cursor = len(self._rows) - 1

    def select_next(self):
        # type: () -> None
        if self._rows:
            self._cursor = (self._cursor + 1) % len(self._rows)

    def select_previous(self):
        # type: () -> None
        if self._rows:
            self._cursor = (self._cursor - 1) % len(self._rows)

    def set_index(self, index):
        # type: (int) -> None
        if not self._rows:
            self._cursor = 0
            return
        self._cursor = max(0, min(index, len(self._rows) - 1))

    def row_at(self, index):
        # type: (int) -> Optional[Row]
        if 0 <= index < len(self._rows):
            return self._rows[index]
        return None

    def selected_row(self):
        # type: () -> Optional[Row]
        return self.row_at(self._cursor)

    def selected_project_index(self):
        # type: () -> Optional[int]
        row = self.selected_row()
        return row.project_index if row is not None else None

    def selected_spec(self):
        # type: () -> Optional[Tuple[int, int]]
        row = self.selected_row()
        if isinstance(row, SpecRow):
            return row.project_index, row.spec_index
        return None

    def is_project_selected(self):
        # type: () -> bool
        return isinstance(self.selected_row(), ProjectHeader)

    def is_spec_selected(self):
        # type: () -> bool
        return isinstance(self.selected_row(), SpecRow)

    def toggle_fold(self, projects, project_index):
        # type: (List[Project], int) -> None
        if not 0 <= project_index < len(projects):
            return
        project = projects[project_index]
        project.folded = not project.folded
        self.rebuild(projects)
