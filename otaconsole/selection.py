"""Checkbox selection state for the device table.

The table renders one checkbox per row plus a "select all" header checkbox.
The header mirrors the rows: checked when every visible, enabled row is
checked, unchecked when none is, indeterminate otherwise. Hidden and disabled
rows never count toward the totals and are never toggled by "select all".

The page holds the checked ids and posts them with every click and every
bulk action; the server rebuilds the state from the current rows. A fresh
render starts with nothing checked.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class HeaderState(str, Enum):
    UNCHECKED = "unchecked"
    CHECKED = "checked"
    INDETERMINATE = "indeterminate"


@dataclass
class SelectableRow:
    id: str
    visible: bool = True
    disabled: bool = False

    @property
    def selectable(self) -> bool:
        return self.visible and not self.disabled


@dataclass
class SelectionState:
    rows: list[SelectableRow] = field(default_factory=list)
    selected: list[str] = field(default_factory=list)  # in the order rows were checked

    @classmethod
    def for_rows(cls, rows: list[SelectableRow]) -> "SelectionState":
        return cls(rows=list(rows))

    def _row(self, row_id: str) -> SelectableRow | None:
        for row in self.rows:
            if row.id == row_id:
                return row
        return None

    def toggle(self, row_id: str, checked: bool) -> None:
        row = self._row(row_id)
        if row is None or not row.selectable:
            return
        if checked and row_id not in self.selected:
            self.selected.append(row_id)
        elif not checked and row_id in self.selected:
            self.selected.remove(row_id)

    def select_all(self, checked: bool) -> None:
        for row in self.rows:
            if row.selectable:
                self.toggle(row.id, checked)

    def is_checked(self, row_id: str) -> bool:
        return row_id in self.selected

    def selected_ids(self) -> list[str]:
        # Rows can be hidden after being checked; they drop out of the action set.
        selectable = {row.id for row in self.rows if row.selectable}
        return [row_id for row_id in self.selected if row_id in selectable]

    @property
    def count(self) -> int:
        return len(self.selected_ids())

    @property
    def header(self) -> HeaderState:
        total = sum(1 for row in self.rows if row.selectable)
        checked = self.count
        if checked == 0:
            return HeaderState.UNCHECKED
        if checked == total:
            return HeaderState.CHECKED
        return HeaderState.INDETERMINATE

    @property
    def count_label(self) -> str:
        count = self.count
        return f"{count} device{'s' if count != 1 else ''} selected"

    @property
    def actions_enabled(self) -> bool:
        return self.count > 0

    def clear(self) -> None:
        self.selected.clear()

    def summary(self) -> dict:
        """What the page needs to redraw the header checkbox and bulk buttons."""
        header = self.header
        return {
            "selected": self.selected_ids(),
            "count": self.count,
            "count_label": self.count_label,
            "select_all_checked": header is HeaderState.CHECKED,
            "select_all_indeterminate": header is HeaderState.INDETERMINATE,
            "actions_enabled": self.actions_enabled,
        }

    @classmethod
    def from_ids(cls, rows: list[SelectableRow], selected: Iterable[str]) -> "SelectionState":
        """Rebuild a selection by checking ``selected`` in order over ``rows``."""
        state = cls.for_rows(rows)
        for row_id in selected:
            state.toggle(row_id, True)
        return state
