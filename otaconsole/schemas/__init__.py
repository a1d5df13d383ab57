from .device import Device, DeviceList, DeviceInfoUpdate
from .firmware import FirmwareVersion, FirmwareUpload, VersionMap, parse_version_map
from .selection import SelectionChange, SelectionToggle, SelectAll, SelectionSummary
from .user import LoginResponse, User, UserInfo

__all__ = [
    "Device", "DeviceList", "DeviceInfoUpdate",
    "FirmwareVersion", "FirmwareUpload", "VersionMap", "parse_version_map",
    "SelectionChange", "SelectionToggle", "SelectAll", "SelectionSummary",
    "LoginResponse", "User", "UserInfo",
]
