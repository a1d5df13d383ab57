from pydantic import BaseModel


class Device(BaseModel):
    device_id: str = ""
    name: str = ""
    location: str | None = None
    version: str | None = None
    is_connect: str | None = None
    warning: str | None = None
    status: str | None = None

    class Config:
        extra = "ignore"
        coerce_numbers_to_str = True


class DeviceList(BaseModel):
    devices: list[Device] = []


class DeviceInfoUpdate(BaseModel):
    """Body for the update-device-info call."""
    device_id: str
    name: str
    location: str = ""
    version: str | None = None
