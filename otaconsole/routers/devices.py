import logging

from fastapi import APIRouter, Depends, Form, Query, Request

from ..api_client import RemoteApi
from ..errors import ConsoleError, ValidationFailed, describe_failure
from ..notifications import Confirmation, Notifier
from ..pages import confirm_page, redirect, render
from ..schemas import SelectAll, SelectionChange, SelectionSummary, SelectionToggle, UserInfo
from ..selection import SelectableRow, SelectionState
from ..session import get_api, require_user
from ..tables import DeviceFilters, DeviceTable
from ..workflows import (
    apply_grouped_update,
    bulk_update_latest,
    delete_device,
    edit_device,
    group_selection,
    load_edit_form,
    load_version_choice,
    prepare_grouped_update,
    update_single_version,
)

router = APIRouter(prefix="/devices", tags=["devices"])
logger = logging.getLogger("otaconsole.devices")


def query_filters(location: str = "", is_connect: str = "", status: str = "") -> DeviceFilters:
    return DeviceFilters(location=location, is_connect=is_connect, status=status)


def form_filters(
    filter_location: str = Form(""),
    filter_is_connect: str = Form(""),
    filter_status: str = Form(""),
) -> DeviceFilters:
    """Filters the device page was showing when the action was posted."""
    return DeviceFilters(location=filter_location, is_connect=filter_is_connect, status=filter_status)


def _page_selection(change: SelectionChange) -> SelectionState:
    rows = [SelectableRow(id=row_id) for row_id in change.rows]
    return SelectionState.from_ids(rows, change.selected)


def _confirm(request: Request, confirmation: Confirmation, filters: DeviceFilters):
    confirmation.fields = confirmation.fields + filters.form_fields()
    confirmation.cancel_url = filters.url
    return confirm_page(request, confirmation)


@router.get("")
async def list_devices(
    request: Request,
    filters: DeviceFilters = Depends(query_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    """Device table. Every render starts from a fresh fetch and an empty selection."""
    load_error = None
    try:
        table = await DeviceTable.load(api, filters)
    except ConsoleError as e:
        logger.error("Failed to load devices: %s", e)
        table = DeviceTable(filters=filters)
        load_error = describe_failure("Failed to load devices. ", e)

    return render(request, "devices.html", {
        "table": table,
        "filters": filters,
        "selection": table.selection(),
        "load_error": load_error,
    })


@router.post("/selection", response_model=SelectionSummary)
async def toggle_selection(
    change: SelectionToggle,
    info: UserInfo = Depends(require_user),
):
    selection = _page_selection(change)
    selection.toggle(change.device_id, change.checked)
    return selection.summary()


@router.post("/selection/all", response_model=SelectionSummary)
async def select_all(
    change: SelectAll,
    info: UserInfo = Depends(require_user),
):
    selection = _page_selection(change)
    selection.select_all(change.checked)
    return selection.summary()


@router.post("/update-latest")
async def update_latest(
    request: Request,
    device_ids: list[str] = Form([]),
    confirmed: bool = Form(False),
    filters: DeviceFilters = Depends(form_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    try:
        table = await DeviceTable.load(api, filters)
    except ConsoleError as e:
        notifier.error(describe_failure("Failed to update selected devices. ", e))
        return redirect(request, filters.url, notifier)

    outcome = await bulk_update_latest(api, table.selection(device_ids), notifier, confirmed=confirmed)
    if outcome.confirmation:
        return _confirm(request, outcome.confirmation, filters)
    return redirect(request, filters.url, notifier)


@router.get("/update-optional")
async def optional_versions_page(
    request: Request,
    device_ids: list[str] = Query([]),
    filters: DeviceFilters = Depends(query_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    """Per-device-name version picker for the selected rows."""
    notifier = Notifier()
    try:
        table = await DeviceTable.load(api, filters)
    except ConsoleError as e:
        notifier.error(describe_failure("Failed to load devices. ", e))
        return redirect(request, filters.url, notifier)

    groups = prepare_grouped_update(table, table.selection(device_ids), notifier)
    if not groups:
        return redirect(request, filters.url, notifier)
    return render(request, "optional_versions.html", {"groups": groups, "filters": filters})


@router.post("/update-optional")
async def apply_optional_versions(
    request: Request,
    filters: DeviceFilters = Depends(form_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    form = await request.form()
    choices = {}
    index = 0
    while f"group_{index}" in form:
        choices[str(form[f"group_{index}"])] = str(form.get(f"version_{index}", ""))
        index += 1

    notifier = Notifier()
    try:
        table = await DeviceTable.load(api, filters)
    except ConsoleError as e:
        notifier.error(describe_failure("Failed to update devices. ", e))
        return redirect(request, filters.url, notifier)

    # Regroup against the current table; devices removed meanwhile drop out
    selection = table.selection(str(device_id) for device_id in form.getlist("device_ids"))
    groups = {group.name: group.device_ids for group in group_selection(table, selection)}
    await apply_grouped_update(api, groups, choices, notifier)
    return redirect(request, filters.url, notifier)


@router.get("/{device_id}/update")
async def choose_version_page(
    request: Request,
    device_id: str,
    filters: DeviceFilters = Depends(query_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    try:
        choice = await load_version_choice(api, device_id)
    except ValidationFailed:
        notifier.error("Device not found!")
        return redirect(request, filters.url, notifier)
    except ConsoleError as e:
        notifier.error(describe_failure("Failed to load device information. ", e))
        return redirect(request, filters.url, notifier)
    return render(request, "choose_version.html", {"choice": choice, "filters": filters})


@router.post("/{device_id}/update")
async def update_device_version(
    request: Request,
    device_id: str,
    version: str = Form(""),
    confirmed: bool = Form(False),
    filters: DeviceFilters = Depends(form_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    outcome = await update_single_version(api, device_id, version, notifier, confirmed=confirmed)
    if outcome.confirmation:
        return _confirm(request, outcome.confirmation, filters)
    if not outcome.ok and version == "":
        return redirect(request, f"/devices/{device_id}/update{filters.query_suffix}", notifier)
    return redirect(request, filters.url, notifier)


@router.post("/{device_id}/delete")
async def delete(
    request: Request,
    device_id: str,
    confirmed: bool = Form(False),
    filters: DeviceFilters = Depends(form_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    try:
        table = await DeviceTable.load(api)
    except ConsoleError as e:
        notifier.error(describe_failure("Failed to delete device. ", e))
        return redirect(request, filters.url, notifier)

    outcome = await delete_device(api, table, device_id, notifier, confirmed=confirmed)
    if outcome.confirmation:
        return _confirm(request, outcome.confirmation, filters)
    return redirect(request, filters.url, notifier)


@router.get("/{device_id}/edit")
async def edit_page(
    request: Request,
    device_id: str,
    filters: DeviceFilters = Depends(query_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    try:
        form = await load_edit_form(api, device_id)
    except ConsoleError as e:
        notifier.error(describe_failure(
            "Failed to load device information. ", e, not_found="Device not found. It may have been deleted."))
        return redirect(request, filters.url, notifier)
    return render(request, "edit_device.html", {"form": form, "filters": filters})


@router.post("/{device_id}/edit")
async def edit(
    request: Request,
    device_id: str,
    name: str = Form(""),
    location: str = Form(""),
    filters: DeviceFilters = Depends(form_filters),
    info: UserInfo = Depends(require_user),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    outcome = await edit_device(api, device_id, name, location, notifier)
    if not outcome.ok:
        return redirect(request, f"/devices/{device_id}/edit{filters.query_suffix}", notifier)
    return redirect(request, filters.url, notifier)
