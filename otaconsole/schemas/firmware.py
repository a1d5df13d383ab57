from pydantic import AliasChoices, BaseModel, Field


class FirmwareVersion(BaseModel):
    """One firmware artifact published for a device name."""
    version: str | None = None
    release_date: str | float | None = Field(
        default=None,
        validation_alias=AliasChoices("release_date", "released_date", "released"),
    )
    changelog: str | None = None
    file_url: str | None = None

    class Config:
        extra = "ignore"
        populate_by_name = True


# Keyed by device name, entries in server order (newest first).
VersionMap = dict[str, list[FirmwareVersion]]


def parse_version_map(payload: dict | None) -> VersionMap:
    """Build a version map from the raw list-versions response.

    Keys whose value is not a list are skipped.
    """
    version_map: VersionMap = {}
    for device_name, entries in (payload or {}).items():
        if not isinstance(entries, list):
            continue
        version_map[device_name] = [
            FirmwareVersion.model_validate(entry) for entry in entries if isinstance(entry, dict)
        ]
    return version_map


class FirmwareUpload(BaseModel):
    """Metadata sent alongside an uploaded firmware binary."""
    device_name: str
    version: str
    changelog: str | None = None
