"""User actions against the remote service.

Every workflow runs the same steps: check preconditions, ask for
confirmation, mark the affected rows busy, call the remote service under a
client-side timeout, then either apply the result and notify or restore the
previous state and report the error. Nothing is retried.

Workflows catch ConsoleError at their own boundary and turn it into a toast.
AuthenticationRequired is left to propagate.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable

from .api_client import RemoteApi
from .config import settings
from .errors import (
    AuthenticationRequired,
    ConsoleError,
    RemoteApiError,
    RequestTimeout,
    UnexpectedResponse,
    ValidationFailed,
    describe_failure,
)
from .notifications import Confirmation, Notifier
from .schemas import Device, DeviceInfoUpdate, FirmwareUpload, LoginResponse, UserInfo, VersionMap
from .selection import SelectionState
from .tables import DeviceTable, fetch_devices, fetch_version_map, latest_version

logger = logging.getLogger("otaconsole.workflows")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def _plural(count: int, noun: str = "device") -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


# Calls still running after their timer fired; held here until they settle
_detached: set[asyncio.Future] = set()


def _forget(task: asyncio.Future) -> None:
    _detached.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Late failure after timeout: %s", exc)


async def guarded(call: Awaitable, timeout: float | None = None) -> Any:
    """Await ``call`` or raise RequestTimeout, whichever comes first.

    The underlying request is not cancelled when the timer wins; its late
    result is discarded.
    """
    timeout = settings.action_timeout_seconds if timeout is None else timeout
    task = asyncio.ensure_future(call)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout)
    except asyncio.TimeoutError:
        _detached.add(task)
        task.add_done_callback(_forget)
        raise RequestTimeout(timeout) from None


def _check_response(response: Any, default_error: str) -> dict:
    """Reject empty responses and bodies carrying an ``error`` field."""
    if not response:
        raise UnexpectedResponse()
    if not isinstance(response, dict):
        return {}
    if response.get("error"):
        raise UnexpectedResponse(str(response["error"]) or default_error)
    return response


@dataclass
class Outcome:
    ok: bool = False
    # Set when the action is waiting on the user's yes/no
    confirmation: Confirmation | None = None
    details: dict = field(default_factory=dict)


async def find_device(api: RemoteApi, device_id: str) -> Device:
    devices = await fetch_devices(api)
    for device in devices:
        if device.device_id and device.device_id == device_id:
            return device
    raise ValidationFailed(f'Device with ID "{device_id}" not found')


# =============================================================================
# Login
# =============================================================================

def validate_credentials(email: str, password: str) -> str | None:
    """Return the first problem with the login form, or None."""
    if not email:
        return "Please enter your email address"
    if not EMAIL_RE.match(email):
        return "Please enter a valid email address"
    if not password:
        return "Please enter your password"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    return None


async def sign_in(api: RemoteApi, email: str, password: str, notifier: Notifier) -> Outcome:
    email = email.strip()
    password = password.strip()
    problem = validate_credentials(email, password)
    if problem:
        notifier.error(problem)
        return Outcome()

    logger.info("Signing in %s", email)
    try:
        login = LoginResponse.model_validate(await api.login(email, password) or {})
        if not login.access_token:
            notifier.error("Login failed. Please check your credentials.")
            return Outcome()

        api.token = login.access_token
        info = UserInfo.model_validate(await api.get_info() or {})
    except RemoteApiError as e:
        logger.warning("Login rejected for %s: %s", email, e)
        if e.status_code in (400, 401, 403):
            notifier.error("Login failed. Please check your credentials.")
        else:
            notifier.error("Login failed. Please check your connection and try again.")
        return Outcome()
    except (ConsoleError, AuthenticationRequired, ValueError) as e:
        logger.warning("Login failed for %s: %s", email, e)
        notifier.error("Login failed. Please check your connection and try again.")
        return Outcome()

    if info.user is None or not info.user.role:
        notifier.error("Failed to get user information. Please try again.")
        return Outcome()

    notifier.success("Login successful! Redirecting...")
    return Outcome(ok=True, details={"token": login.access_token, "info": info})


async def request_password_reset(api: RemoteApi, email: str, notifier: Notifier) -> Outcome:
    email = email.strip()
    if not EMAIL_RE.match(email):
        notifier.error("Please enter a valid email address")
        return Outcome()
    try:
        await guarded(api.forgot_password(email))
    except (ConsoleError, AuthenticationRequired) as e:
        logger.warning("Password reset request failed: %s", e)
        notifier.error(describe_failure("Failed to request a password reset. ", e))
        return Outcome()
    notifier.success(f"Password reset instructions were sent to {email}.")
    return Outcome(ok=True)


# =============================================================================
# Update to latest (bulk)
# =============================================================================

async def bulk_update_latest(
    api: RemoteApi,
    selection: SelectionState,
    notifier: Notifier,
    confirmed: bool = False,
) -> Outcome:
    device_ids = selection.selected_ids()
    if not device_ids:
        notifier.warning("Please select at least one device to update.")
        return Outcome()

    device_ids = [device_id for device_id in device_ids if device_id]
    if not device_ids:
        notifier.error("Invalid device selection.")
        return Outcome()

    if not confirmed:
        return Outcome(confirmation=Confirmation(
            title="Update to latest version",
            message=f"Are you sure you want to update {len(device_ids)} selected "
                    f"device{'s' if len(device_ids) != 1 else ''}?",
            action="/devices/update-latest",
            fields=[("device_ids", device_id) for device_id in device_ids],
            confirm_label="Update",
        ))

    logger.info("Updating %d device(s) to latest: %s", len(device_ids), device_ids)
    try:
        response = await guarded(api.update_device(device_ids))
        _check_response(response, "Bulk update failed")
    except ConsoleError as e:
        logger.warning("Bulk update failed: %s", e)
        notifier.error(describe_failure("Failed to update selected devices. ", e))
        return Outcome()

    selection.clear()
    notifier.success(f"{_plural(len(device_ids))} updated successfully!", 5000)
    return Outcome(ok=True, details={"device_ids": device_ids})


# =============================================================================
# Update one device to a chosen version
# =============================================================================

@dataclass
class VersionChoice:
    device: Device
    versions: list[str]

    def label(self, version: str) -> str:
        return f"{version} (Current)" if version == self.device.version else version


async def load_version_choice(api: RemoteApi, device_id: str) -> VersionChoice:
    device = await find_device(api, device_id)
    version_map = await fetch_version_map(api)
    versions = [entry.version for entry in version_map.get(device.name, []) if entry.version]
    return VersionChoice(device=device, versions=versions)


async def update_single_version(
    api: RemoteApi,
    device_id: str,
    version: str,
    notifier: Notifier,
    confirmed: bool = False,
) -> Outcome:
    try:
        choice = await load_version_choice(api, device_id)
    except ValidationFailed:
        notifier.error("Device not found!")
        return Outcome()
    except ConsoleError as e:
        notifier.error(describe_failure("Failed to load device information. ", e))
        return Outcome()

    device = choice.device
    if not version:
        notifier.warning("Please select a version to update to.")
        return Outcome()
    if version == device.version:
        notifier.warning(f'Device "{device.name}" is already running version {version}.')
        return Outcome()
    if version not in choice.versions:
        notifier.error(f'Version {version} is not available for "{device.name}".')
        return Outcome()

    if not confirmed:
        return Outcome(confirmation=Confirmation(
            title="Update device",
            message=f'Are you sure you want to update device "{device.name}" '
                    f"(ID: {device.device_id}) to version {version}?",
            action=f"/devices/{device.device_id}/update",
            fields=[("version", version)],
            confirm_label="Update",
        ))

    logger.info("Updating device %s to version %s", device.device_id, version)
    try:
        response = await guarded(api.update_device_version([device.device_id], version))
        _check_response(response, "Update failed")
    except ConsoleError as e:
        logger.warning("Update of %s failed: %s", device.device_id, e)
        notifier.error(describe_failure(f'Failed to update device "{device.name}". ', e))
        return Outcome()

    notifier.success(f'Device "{device.name}" updated to version {version}!', 5000)
    return Outcome(ok=True, details={"device_id": device.device_id, "version": version})


# =============================================================================
# Grouped optional-version update
# =============================================================================

@dataclass
class VersionGroup:
    name: str
    device_ids: list[str]
    versions: list[str]

    @property
    def count_label(self) -> str:
        return _plural(len(self.device_ids))


def group_selection(table: DeviceTable, selection: SelectionState) -> list[VersionGroup]:
    """Group the selected rows by device name, in selection order."""
    groups: dict[str, VersionGroup] = {}
    for device_id in selection.selected_ids():
        row = table.row(device_id)
        if row is None:
            continue
        name = row.device.name
        if name not in groups:
            versions = []
            for entry in table.version_map.get(name, []):
                if entry.version and entry.version not in versions:
                    versions.append(entry.version)
            groups[name] = VersionGroup(name=name, device_ids=[], versions=versions)
        groups[name].device_ids.append(device_id)
    return list(groups.values())


def prepare_grouped_update(
    table: DeviceTable,
    selection: SelectionState,
    notifier: Notifier,
) -> list[VersionGroup]:
    if not selection.selected_ids():
        notifier.warning("Please select at least one device to update.")
        return []
    groups = group_selection(table, selection)
    if not groups:
        notifier.error("Invalid device selection.")
    return groups


async def _update_group(api: RemoteApi, name: str, device_ids: list[str], version: str) -> Exception | None:
    try:
        response = await guarded(api.update_device_version(device_ids, version))
        _check_response(response, "Update failed")
    except ConsoleError as e:
        logger.warning("Grouped update of %s to %s failed: %s", name, version, e)
        return e
    logger.info("Grouped update: %d %s device(s) -> %s", len(device_ids), name, version)
    return None


async def apply_grouped_update(
    api: RemoteApi,
    groups: dict[str, list[str]],
    choices: dict[str, str],
    notifier: Notifier,
) -> Outcome:
    """Send one version update per device-name group.

    Groups run concurrently and fail independently; every call has settled
    before this returns.
    """
    plan = [(name, device_ids, choices[name]) for name, device_ids in groups.items()
            if device_ids and choices.get(name)]
    if not plan:
        notifier.warning("Please choose a target version for at least one device group.")
        return Outcome()

    results = await asyncio.gather(*(_update_group(api, name, ids, version) for name, ids, version in plan))

    updated, failed = [], []
    for (name, device_ids, version), error in zip(plan, results):
        if error is None:
            updated.append(name)
            notifier.success(f"{_plural(len(device_ids))} of {name} set to version {version}.")
        else:
            failed.append(name)
            notifier.error(describe_failure(f"Failed to update devices for {name}: ", error))

    if not failed:
        notifier.success("Optional version updates applied successfully!")
    return Outcome(ok=not failed, details={"updated": updated, "failed": failed})


# =============================================================================
# Delete device
# =============================================================================

async def delete_device(
    api: RemoteApi,
    table: DeviceTable,
    device_id: str,
    notifier: Notifier,
    confirmed: bool = False,
) -> Outcome:
    row = table.row(device_id)
    if row is None:
        notifier.error("Device not found in the table.")
        return Outcome()
    name = row.device.name or f"Device {device_id}"

    if not confirmed:
        return Outcome(confirmation=Confirmation(
            title="Delete device",
            message=f'Device: "{name}" (ID: {device_id}). '
                    "This action cannot be undone. Are you sure you want to proceed?",
            action=f"/devices/{device_id}/delete",
            fields=[],
            confirm_label="Delete",
        ))

    row.busy = True
    try:
        result = await guarded(api.delete_device(device_id))
        result = _check_response(result, "Delete operation failed")
        if not (result.get("message") or result.get("success") is not False):
            raise UnexpectedResponse("Unexpected response from server")
    except ConsoleError as e:
        row.busy = False
        logger.warning("Delete of %s failed: %s", device_id, e)
        notifier.error(describe_failure("Failed to delete device. ", e))
        return Outcome()

    table.remove(device_id)
    logger.info("Deleted device %s", device_id)
    notifier.success(f'Device "{name}" deleted successfully!')
    return Outcome(ok=True, details={"device_count": table.device_count_label})


# =============================================================================
# Edit device info
# =============================================================================

@dataclass
class EditForm:
    device: Device
    device_names: list[str]


async def load_edit_form(api: RemoteApi, device_id: str) -> EditForm:
    device = await find_device(api, device_id)
    version_map = await fetch_version_map(api)
    return EditForm(device=device, device_names=list(version_map))


async def edit_device(
    api: RemoteApi,
    device_id: str,
    name: str,
    location: str,
    notifier: Notifier,
) -> Outcome:
    name = (name or "").strip()
    if not name:
        notifier.error("Device name is required.")
        return Outcome()

    prefix = "Failed to update device. "
    not_found = "Device not found. It may have been deleted."
    try:
        version_map: VersionMap = await fetch_version_map(api)
        version = latest_version(version_map, name)
        if version is None:
            raise ValidationFailed(f'No firmware is published for "{name}".')
        info = DeviceInfoUpdate(device_id=device_id, name=name, location=(location or "").strip(), version=version)
        response = await guarded(api.update_device_info(info))
        _check_response(response, "Update failed")
    except ConsoleError as e:
        logger.warning("Edit of %s failed: %s", device_id, e)
        notifier.error(describe_failure(prefix, e, not_found=not_found))
        return Outcome()

    logger.info("Updated info for device %s", device_id)
    notifier.success(f'Device "{name}" updated successfully!')
    return Outcome(ok=True, details={"device_id": device_id, "version": version})


# =============================================================================
# Firmware
# =============================================================================

async def delete_firmware(
    api: RemoteApi,
    device_name: str,
    version: str,
    notifier: Notifier,
    confirmed: bool = False,
) -> Outcome:
    if not device_name or not version:
        notifier.error("Missing device name or firmware version.")
        return Outcome()

    if not confirmed:
        return Outcome(confirmation=Confirmation(
            title="Delete firmware",
            message=f"Are you sure you want to delete firmware version {version} "
                    f"for {device_name}? This cannot be undone.",
            action="/firmware/delete",
            fields=[("device_name", device_name), ("version", version)],
            confirm_label="Delete",
            cancel_url="/firmware",
        ))

    try:
        response = await guarded(api.delete_firmware(device_name, version))
        if not isinstance(response, dict) or not response.get("success"):
            message = response.get("message") if isinstance(response, dict) else None
            raise UnexpectedResponse(message or f"Failed to delete firmware version {version} for {device_name}")
    except ConsoleError as e:
        logger.warning("Delete of firmware %s %s failed: %s", device_name, version, e)
        notifier.error(describe_failure(f"Failed to delete firmware version {version}. ", e))
        return Outcome()

    logger.info("Deleted firmware %s %s", device_name, version)
    notifier.success(response.get("message") or f"Successfully deleted firmware version {version} for {device_name}")
    return Outcome(ok=True)


async def upload_firmware(
    api: RemoteApi,
    meta: FirmwareUpload,
    filename: str,
    content: bytes,
    notifier: Notifier,
) -> Outcome:
    if not meta.device_name.strip():
        notifier.error("Device name is required.")
        return Outcome()
    if not meta.version.strip():
        notifier.error("Version is required.")
        return Outcome()
    if not content:
        notifier.error("Please choose a firmware file to upload.")
        return Outcome()

    try:
        response = await guarded(api.upload_firmware(meta, filename or f"{meta.device_name}_{meta.version}.bin", content))
        _check_response(response, "Upload failed")
    except ConsoleError as e:
        logger.warning("Upload of %s %s failed: %s", meta.device_name, meta.version, e)
        notifier.error(describe_failure("Failed to upload firmware. ", e))
        return Outcome()

    logger.info("Uploaded firmware %s %s (%d bytes)", meta.device_name, meta.version, len(content))
    notifier.success(f"Firmware {meta.version} for {meta.device_name} uploaded successfully!")
    return Outcome(ok=True)
