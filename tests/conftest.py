import copy

import pytest
from fastapi.testclient import TestClient

from otaconsole.main import app
from otaconsole.session import get_api

DEVICES = [
    {"device_id": "d1", "name": "sensor-a", "location": "Hanoi Lab", "version": "1.0.0",
     "is_connect": "online", "warning": None, "status": "done"},
    {"device_id": "d2", "name": "sensor-a", "location": "Da Nang", "version": "1.2.0",
     "is_connect": "offline", "warning": "Low battery", "status": "failed"},
    {"device_id": "d3", "name": "gateway-b", "location": "hanoi depot", "version": "2.0",
     "is_connect": "online", "warning": "", "status": "waiting"},
    {"device_id": "d4", "name": "gateway-b", "location": "Saigon", "version": "2.1",
     "is_connect": "Online", "warning": None, "status": "pending"},
]

VERSIONS = {
    "sensor-a": [
        {"version": "1.10.0", "release_date": "2025-07-09T07:11:12.598639",
         "changelog": "Adds humidity calibration and fixes the watchdog reset loop on cold boot.",
         "file_url": "https://files.example.com/sensor-a/1.10.0.bin"},
        {"version": "1.2.0", "release_date": "2025-05-01T00:00:00", "changelog": "Bug fixes"},
        {"version": "1.0.0", "release_date": "2024-11-20T08:30:00"},
    ],
    "gateway-b": [
        {"version": "2.1", "release_date": "2025-06-15T10:00:00"},
        {"version": "2.0", "released_date": "2024-12-01T00:00:00"},
    ],
}


class FakeRemoteApi:
    """In-memory stand-in for RemoteApi that records every call."""

    def __init__(self, devices=None, versions=None, role="user"):
        self.token = None
        self.role = role
        self.devices = copy.deepcopy(DEVICES if devices is None else devices)
        self.versions = copy.deepcopy(VERSIONS if versions is None else versions)
        self.calls = []
        self.failures = {}
        self.responses = {}

    async def _call(self, name, *args, default=None):
        self.calls.append((name, args))
        if name in self.failures:
            raise self.failures[name]
        return self.responses.get(name, default)

    def called(self, name):
        return [args for call, args in self.calls if call == name]

    async def login(self, email, password):
        return await self._call("login", email, default={"access_token": "tok-123"})

    async def forgot_password(self, email):
        return await self._call("forgot_password", email, default={"message": "sent"})

    async def get_info(self):
        return await self._call("get_info", default={"user": {"id": 7, "name": "Ada", "role": self.role}})

    async def get_device_list(self):
        return await self._call("get_device_list", default={"devices": self.devices})

    async def get_versions_list(self):
        return await self._call("get_versions_list", default=self.versions)

    async def delete_device(self, device_id):
        return await self._call("delete_device", device_id, default={"message": "Device deleted"})

    async def update_device_info(self, info):
        return await self._call("update_device_info", info, default={"message": "updated"})

    async def update_device_version(self, device_ids, version):
        return await self._call("update_device_version", list(device_ids), version, default={"message": "queued"})

    async def update_device(self, device_ids):
        return await self._call("update_device", list(device_ids), default={"message": "queued"})

    async def delete_firmware(self, device_name, version):
        return await self._call("delete_firmware", device_name, version,
                                default={"success": True, "message": f"Deleted {device_name} {version}"})

    async def upload_firmware(self, meta, filename, content):
        return await self._call("upload_firmware", meta, filename, content, default={"message": "uploaded"})


@pytest.fixture
def fake_api():
    return FakeRemoteApi()


@pytest.fixture
def client(fake_api):
    app.dependency_overrides[get_api] = lambda: fake_api
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def sign_in(client, fake_api, role="user"):
    fake_api.role = role
    response = client.post(
        "/login",
        data={"email": "ada@example.com", "password": "secret123"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return response
