"""
Pointer-gesture state machine over a materialized grid.

States are ``idle``, ``dragging`` and ``editing``. Cell drags build a
rectangle that is committed on release; header drags span every row.
A click without movement either opens the inline capacity editor (root rows
of the Projects view) or hands the cell to the assignment editor callback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Sequence, Tuple

from .io_utils import parse_effort
from .models import DEFAULT_CAPACITY, ID_SEPARATOR, Forest, Row

logger = logging.getLogger(__name__)

SelectionState = Literal["idle", "dragging", "editing"]
OpenEditor = Callable[[str, str], None]
InlineSave = Callable[[str, str, float, bool], None]


@dataclass(frozen=True)
class CellCoordinate:
    row_index: int
    month_index: int


@dataclass(frozen=True)
class SelectionRange:
    start: CellCoordinate
    end: CellCoordinate

    @property
    def bounds(self) -> Tuple[int, int, int, int]:
        return (
            min(self.start.row_index, self.end.row_index),
            max(self.start.row_index, self.end.row_index),
            min(self.start.month_index, self.end.month_index),
            max(self.start.month_index, self.end.month_index),
        )

    @property
    def row_count(self) -> int:
        min_row, max_row, _, _ = self.bounds
        return max_row - min_row + 1

    @property
    def column_count(self) -> int:
        _, _, min_col, max_col = self.bounds
        return max_col - min_col + 1

    def is_single_cell(self) -> bool:
        return self.start == self.end

    def contains(self, row_index: int, month_index: int) -> bool:
        min_row, max_row, min_col, max_col = self.bounds
        return min_row <= row_index <= max_row and min_col <= month_index <= max_col


@dataclass
class EditingCell:
    resource_id: str
    month: str
    value: str

    @property
    def is_capacity(self) -> bool:
        return ID_SEPARATOR not in self.resource_id


class SelectionEngine:
    def __init__(
        self,
        rows: Sequence[Row],
        months: Sequence[str],
        view: Forest = "people",
        *,
        on_open_editor: Optional[OpenEditor] = None,
        on_inline_save: Optional[InlineSave] = None,
        default_capacity: float = DEFAULT_CAPACITY,
    ) -> None:
        self.rows: List[Row] = list(rows)
        self.months: List[str] = list(months)
        self.view = view
        self.on_open_editor = on_open_editor
        self.on_inline_save = on_inline_save
        self.default_capacity = default_capacity

        self.state: SelectionState = "idle"
        self.range: Optional[SelectionRange] = None
        self.pending: Optional[SelectionRange] = None
        self.selected_ids: List[str] = []
        self.selected_months: List[int] = []
        self.editing: Optional[EditingCell] = None
        self._whole_column = False

    def update_rows(self, rows: Sequence[Row]) -> None:
        self.rows = list(rows)

    # --- drag gestures -------------------------------------------------

    def _resource_row_indices(self) -> List[int]:
        return [idx for idx, row in enumerate(self.rows) if row.kind == "resource"]

    def pointer_down(self, row_index: int, month_index: int) -> None:
        if self.state == "editing":
            return
        origin = CellCoordinate(row_index, month_index)
        self._whole_column = False
        self.pending = SelectionRange(origin, origin)
        self.state = "dragging"

    def header_down(self, month_index: int) -> None:
        if self.state == "editing":
            return
        indices = self._resource_row_indices()
        if not indices:
            return
        self._whole_column = True
        self.pending = SelectionRange(
            CellCoordinate(indices[0], month_index),
            CellCoordinate(indices[-1], month_index),
        )
        self.state = "dragging"

    def pointer_enter(self, row_index: int, month_index: int) -> None:
        if self.state != "dragging" or self.pending is None:
            return
        if self._whole_column:
            indices = self._resource_row_indices()
            row_index = indices[-1] if indices else row_index
        self.pending = SelectionRange(self.pending.start, CellCoordinate(row_index, month_index))

    def header_enter(self, month_index: int) -> None:
        if self.state != "dragging" or not self._whole_column:
            return
        self.pointer_enter(-1, month_index)

    def pointer_up(self) -> None:
        """Release over the grid: commit a drag, or resolve a click."""
        if self.state != "dragging" or self.pending is None:
            return
        pending = self.pending
        self.pending = None
        self.state = "idle"
        if self._whole_column:
            self._release_header(pending)
        elif not pending.is_single_cell():
            self._commit(pending)
        else:
            self._click(pending.start)
        self._whole_column = False

    def header_up(self) -> None:
        self.pointer_up()

    def cancel_drag(self) -> None:
        self.pending = None
        self._whole_column = False
        if self.state == "dragging":
            self.state = "idle"

    def _commit(self, selection: SelectionRange) -> None:
        self.range = selection
        self.selected_months = []

    def _release_header(self, selection: SelectionRange) -> None:
        if selection.start.month_index != selection.end.month_index:
            self._commit(selection)
            return
        self.toggle_month(selection.start.month_index)

    def toggle_month(self, month_index: int) -> None:
        if not self.rows:
            return
        if month_index in self.selected_months:
            self.selected_months = [idx for idx in self.selected_months if idx != month_index]
        else:
            self.selected_months = self.selected_months + [month_index]
        self.range = None

    def _click(self, coord: CellCoordinate) -> None:
        if not (0 <= coord.row_index < len(self.rows)) or not (0 <= coord.month_index < len(self.months)):
            return
        resource = self.rows[coord.row_index].resource
        if resource is None:
            return
        month = self.months[coord.month_index]
        if self.view == "projects" and resource.is_root:
            cell = resource.cell(month)
            capacity = cell.capacity if cell is not None else self.default_capacity
            self.editing = EditingCell(resource_id=resource.id, month=month, value=f"{capacity:g}")
            self.state = "editing"
            return
        if self.on_open_editor is not None:
            self.on_open_editor(resource.id, month)

    # --- inline editor -------------------------------------------------

    def type_value(self, text: str) -> None:
        if self.editing is not None:
            self.editing.value = text

    def commit_edit(self) -> bool:
        """Blur or Enter: save a valid non-negative number, then return to idle."""
        editing = self.editing
        self.editing = None
        if self.state == "editing":
            self.state = "idle"
        if editing is None:
            return False
        try:
            value = parse_effort(editing.value)
        except ValueError as exc:
            logger.debug("inline edit of %s discarded: %s", editing.resource_id, exc)
            return False
        if self.on_inline_save is not None:
            self.on_inline_save(editing.resource_id, editing.month, value, editing.is_capacity)
        return True

    def cancel_edit(self) -> None:
        self.editing = None
        if self.state == "editing":
            self.state = "idle"

    def key_press(self, key: str) -> None:
        if self.state != "editing":
            return
        if key == "Enter":
            self.commit_edit()
        elif key == "Escape":
            self.cancel_edit()

    # --- row selection and toolbar ------------------------------------

    def toggle_row(self, resource_id: str) -> bool:
        if self.view == "projects":
            return False
        if resource_id in self.selected_ids:
            self.selected_ids = [rid for rid in self.selected_ids if rid != resource_id]
        else:
            self.selected_ids = self.selected_ids + [resource_id]
        return True

    def select_rows(self, resource_ids: Sequence[str]) -> None:
        if self.view == "projects":
            return
        self.selected_ids = list(dict.fromkeys(resource_ids))

    def clear(self) -> None:
        self.selected_ids = []
        self.selected_months = []
        self.range = None
        self.pending = None

    def _counted_ids(self) -> List[str]:
        return [] if self.view == "projects" else self.selected_ids

    def selection_count(self) -> int:
        ids = self._counted_ids()
        if self.range is not None and not ids and not self.selected_months:
            return self.range.row_count * self.range.column_count
        return len(ids) + len(self.selected_months)

    def has_selection(self) -> bool:
        return (
            bool(self._counted_ids())
            or (self.range is not None and not self.range.is_single_cell())
            or bool(self.selected_months)
        )

    def selection_label(self) -> str:
        if self._counted_ids():
            return "Employees selected" if self.view == "people" else "Projects selected"
        if self.range is not None and not self.range.is_single_cell():
            return "Cells selected"
        if self.selected_months:
            return "Months selected"
        return "Selection Active"

    def bulk_targets(self) -> Tuple[List[str], List[str]]:
        """Resource ids and month labels a bulk assignment should start from."""
        ids = list(self._counted_ids())
        month_indices = set(self.selected_months)
        if self.range is not None:
            min_row, max_row, min_col, max_col = self.range.bounds
            if not ids:
                for idx in range(min_row, max_row + 1):
                    if 0 <= idx < len(self.rows) and self.rows[idx].resource is not None:
                        ids.append(self.rows[idx].resource.id)
            month_indices.update(range(min_col, max_col + 1))
        months = [self.months[idx] for idx in sorted(month_indices) if 0 <= idx < len(self.months)]
        return list(dict.fromkeys(ids)), months
