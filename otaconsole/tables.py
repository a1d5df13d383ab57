"""Device and firmware table controllers.

Both tables are rebuilt from scratch on every load: fetch, filter, sort,
render. Nothing is diffed against the previous render.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import urlencode

from pydantic import ValidationError

from .api_client import RemoteApi
from .errors import ConsoleError, UnexpectedResponse
from .schemas import Device, DeviceList, FirmwareVersion, VersionMap, parse_version_map
from .selection import SelectableRow, SelectionState
from .versions import format_release_date, sort_by_release_date, sort_by_version

logger = logging.getLogger("otaconsole.tables")

STATUS_BADGES = {
    "done": ("Done", "status-up-to-date"),
    "failed": ("Failed", "status-outdated"),
    "waiting": ("Waiting", "status-update-available"),
}

CHANGELOG_PREVIEW = 50

# Device filters carried through action forms as hidden fields
FORM_PREFIX = "filter_"


def latest_version(version_map: VersionMap, device_name: str) -> str | None:
    entries = version_map.get(device_name) or []
    return entries[0].version if entries else None


async def fetch_version_map(api: RemoteApi) -> VersionMap:
    payload = await api.get_versions_list()
    if payload is not None and not isinstance(payload, dict):
        raise UnexpectedResponse("Unexpected firmware list format")
    try:
        return parse_version_map(payload)
    except ValidationError as e:
        raise UnexpectedResponse("Unexpected firmware list format") from e


async def fetch_devices(api: RemoteApi) -> list[Device]:
    payload = await api.get_device_list()
    if not payload:
        return []
    if isinstance(payload, list):
        payload = {"devices": payload}
    try:
        return DeviceList.model_validate(payload).devices
    except ValidationError as e:
        logger.error("Malformed device list: %s", e)
        raise UnexpectedResponse("Unexpected device list format") from e


# =============================================================================
# Devices
# =============================================================================

@dataclass
class DeviceFilters:
    location: str = ""
    is_connect: str = ""
    status: str = ""

    def matches(self, device: Device) -> bool:
        location = self.location.strip().lower()
        if location and location not in (device.location or "").lower():
            return False
        if self.is_connect and device.is_connect != self.is_connect:
            return False
        if self.status and device.status != self.status:
            return False
        return True

    @property
    def active(self) -> bool:
        return bool(self.location.strip() or self.is_connect or self.status)

    def params(self) -> dict[str, str]:
        """Active filters as /devices query parameters."""
        values = {"location": self.location.strip(), "is_connect": self.is_connect, "status": self.status}
        return {name: value for name, value in values.items() if value}

    @property
    def query_suffix(self) -> str:
        query = urlencode(self.params())
        return f"?{query}" if query else ""

    @property
    def url(self) -> str:
        return "/devices" + self.query_suffix

    def form_fields(self) -> list[tuple[str, str]]:
        # Prefixed: the edit form posts its own "location"
        return [(FORM_PREFIX + name, value) for name, value in self.params().items()]


@dataclass
class DeviceRow:
    device: Device
    latest_version: str | None
    busy: bool = False

    @property
    def device_id(self) -> str:
        return self.device.device_id

    @property
    def connection(self) -> str:
        return (self.device.is_connect or "unknown").lower()

    @property
    def warning_label(self) -> str:
        return self.device.warning or "Normal"

    @property
    def status_badge(self) -> tuple[str, str]:
        status = self.device.status or ""
        return STATUS_BADGES.get(status, (status, ""))

    @property
    def needs_update(self) -> bool:
        return bool(self.latest_version) and self.latest_version != self.device.version

    @property
    def disabled(self) -> bool:
        return self.busy or not self.device_id


@dataclass
class DeviceTable:
    rows: list[DeviceRow] = field(default_factory=list)
    version_map: VersionMap = field(default_factory=dict)
    filters: DeviceFilters = field(default_factory=DeviceFilters)

    @classmethod
    def build(cls, devices: list[Device], version_map: VersionMap, filters: DeviceFilters) -> "DeviceTable":
        rows = [
            DeviceRow(device=device, latest_version=latest_version(version_map, device.name) or device.version)
            for device in devices
            if filters.matches(device)
        ]
        return cls(rows=rows, version_map=version_map, filters=filters)

    @classmethod
    async def load(cls, api: RemoteApi, filters: DeviceFilters | None = None) -> "DeviceTable":
        filters = filters or DeviceFilters()
        devices = await fetch_devices(api)
        try:
            version_map = await fetch_version_map(api)
        except ConsoleError as e:
            # Latest-version column falls back to each device's current version
            logger.warning("Firmware list unavailable: %s", e)
            version_map = {}
        return cls.build(devices, version_map, filters)

    def row(self, device_id: str) -> DeviceRow | None:
        for row in self.rows:
            if row.device_id == device_id:
                return row
        return None

    def remove(self, device_id: str) -> None:
        self.rows = [row for row in self.rows if row.device_id != device_id]

    def selection_rows(self) -> list[SelectableRow]:
        return [SelectableRow(id=row.device_id, disabled=row.disabled) for row in self.rows]

    def selection(self, device_ids: Iterable[str] = ()) -> SelectionState:
        """Selection over the current rows, checked in the given order.

        Ids that are no longer in the table, or whose row is disabled, are dropped.
        """
        return SelectionState.from_ids(self.selection_rows(), device_ids)

    @property
    def device_count_label(self) -> str:
        count = len(self.rows)
        return f"{count} device{'s' if count != 1 else ''}"

    @property
    def device_names(self) -> list[str]:
        return list(self.version_map)


# =============================================================================
# Firmware
# =============================================================================

@dataclass
class FirmwareFilters:
    device_name: str = ""
    sort_version: str = ""
    sort_date: str = ""


@dataclass
class FirmwareRow:
    device_name: str
    entry: FirmwareVersion

    @property
    def version(self) -> str:
        return self.entry.version or "N/A"

    @property
    def released(self) -> str:
        return format_release_date(self.entry.release_date)

    @property
    def changelog(self) -> str:
        return self.entry.changelog or "No changelog available"

    @property
    def changelog_preview(self) -> str:
        text = self.changelog
        if self.entry.changelog and len(text) > CHANGELOG_PREVIEW:
            return text[:CHANGELOG_PREVIEW] + "..."
        return text

    @property
    def download_url(self) -> str:
        return self.entry.file_url or "#"


@dataclass
class FirmwareTable:
    rows: list[FirmwareRow] = field(default_factory=list)
    device_names: list[str] = field(default_factory=list)
    filters: FirmwareFilters = field(default_factory=FirmwareFilters)
    empty_message: str | None = None
    failed: bool = False

    @classmethod
    def build(cls, version_map: VersionMap, filters: FirmwareFilters) -> "FirmwareTable":
        device_names = list(version_map)
        if not any(version_map.values()):
            return cls(device_names=device_names, filters=filters, empty_message="No firmware versions available.")

        rows = [FirmwareRow(device_name=name, entry=entry) for name, entries in version_map.items() for entry in entries]

        name_filter = filters.device_name.strip().lower()
        if name_filter:
            rows = [row for row in rows if name_filter in row.device_name.lower()]

        rows = sort_by_version(rows, filters.sort_version, key=lambda row: row.entry.version)
        rows = sort_by_release_date(rows, filters.sort_date, key=lambda row: row.entry.release_date)

        empty_message = None if rows else "No firmware versions match your filter criteria."
        return cls(rows=rows, device_names=device_names, filters=filters, empty_message=empty_message)

    @classmethod
    async def load(cls, api: RemoteApi, filters: FirmwareFilters | None = None) -> "FirmwareTable":
        filters = filters or FirmwareFilters()
        try:
            version_map = await fetch_version_map(api)
        except ConsoleError as e:
            logger.error("Failed to load firmware versions: %s", e)
            return cls(
                filters=filters,
                empty_message="Failed to load firmware versions. Please try refreshing.",
                failed=True,
            )
        return cls.build(version_map, filters)
