from pydantic import BaseModel


class SelectionChange(BaseModel):
    """Checkbox state the device page sends along with every click."""
    rows: list[str] = []  # ids of the visible, enabled rows in table order
    selected: list[str] = []  # checked ids in the order they were checked


class SelectionToggle(SelectionChange):
    """One row checkbox changed."""
    device_id: str
    checked: bool


class SelectAll(SelectionChange):
    checked: bool


class SelectionSummary(BaseModel):
    selected: list[str]
    count: int
    count_label: str
    select_all_checked: bool
    select_all_indeterminate: bool
    actions_enabled: bool
