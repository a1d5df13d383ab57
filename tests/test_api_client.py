"""
Remote API client against an httpx.MockTransport:
1. Auth header and content type per endpoint
2. Non-2xx responses become RemoteApiError with the server's message
3. Transport failures and timeouts map to console errors
4. A rejected token ends the session
"""

import json

import httpx
import pytest

from otaconsole.api_client import RemoteApi
from otaconsole.errors import AuthenticationRequired, RemoteApiError, RequestTimeout, TransportError
from otaconsole.schemas import DeviceInfoUpdate, FirmwareUpload


def make_api(handler, token="tok-123"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://ota.test")
    return RemoteApi(client, token=token)


async def test_device_list_sends_bearer_token():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("authorization")
        seen["content_type"] = request.headers.get("content-type")
        seen["path"] = request.url.path
        return httpx.Response(200, json={"devices": []})

    api = make_api(handler)
    assert await api.get_device_list() == {"devices": []}
    assert seen == {"auth": "Bearer tok-123", "content_type": "application/json", "path": "/api/my-devices"}


async def test_versions_list_is_public():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"sensor-a": []})

    api = make_api(handler, token=None)
    assert await api.get_versions_list() == {"sensor-a": []}
    assert seen["auth"] is None


async def test_missing_token_never_hits_the_network():
    def handler(request: httpx.Request):
        raise AssertionError("request should not be sent")

    api = make_api(handler, token=None)
    with pytest.raises(AuthenticationRequired):
        await api.get_info()


async def test_update_bodies():
    bodies = []

    def handler(request: httpx.Request):
        bodies.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"message": "ok"})

    api = make_api(handler)
    await api.update_device_version(["d1", "d2"], "1.10.0")
    await api.update_device(["d3"])
    await api.delete_device("d4")
    await api.update_device_info(DeviceInfoUpdate(device_id="d1", name="sensor-a", location="Lab", version="1.10.0"))

    assert bodies == [
        ("POST", "/api/update-device-version", {"device_ids": ["d1", "d2"], "version": "1.10.0"}),
        ("POST", "/api/update-device", {"device_ids": ["d3"]}),
        ("DELETE", "/api/delete-device", {"device_id": "d4"}),
        ("POST", "/api/update-device-info",
         {"device_id": "d1", "name": "sensor-a", "location": "Lab", "version": "1.10.0"}),
    ]


async def test_delete_firmware_uses_query_params():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"success": True})

    api = make_api(handler)
    await api.delete_firmware("sensor-a", "1.0.0")
    assert seen == {"method": "DELETE", "params": {"device_name": "sensor-a", "version": "1.0.0"}}


async def test_upload_is_multipart():
    seen = {}

    def handler(request: httpx.Request):
        seen["content_type"] = request.headers.get("content-type")
        seen["body"] = request.content
        return httpx.Response(200, json={"message": "uploaded"})

    api = make_api(handler)
    meta = FirmwareUpload(device_name="sensor-a", version="1.11.0", changelog="Faster boot")
    await api.upload_firmware(meta, "sensor-a.bin", b"\x00\x01firmware")

    assert seen["content_type"].startswith("multipart/form-data; boundary=")
    assert b'name="file"; filename="sensor-a.bin"' in seen["body"]
    assert b"\x00\x01firmware" in seen["body"]
    assert b"Faster boot" in seen["body"]


async def test_error_message_from_json_body():
    def handler(request: httpx.Request):
        return httpx.Response(404, json={"message": "Device not found"})

    api = make_api(handler)
    with pytest.raises(RemoteApiError) as excinfo:
        await api.delete_device("nope")

    assert excinfo.value.status_code == 404
    assert str(excinfo.value) == "HTTP error! status: 404 - Device not found"


async def test_error_field_and_unknown_error():
    responses = iter([
        httpx.Response(500, json={"error": "database down"}),
        httpx.Response(500, json={"ok": False}),
        httpx.Response(502, text="<html>bad gateway</html>"),
    ])

    api = make_api(lambda request: next(responses))
    messages = []
    for _ in range(3):
        with pytest.raises(RemoteApiError) as excinfo:
            await api.get_versions_list()
        messages.append(excinfo.value.detail)

    assert messages == ["database down", "Unknown error", "Bad Gateway"]


async def test_rejected_token_requires_sign_in():
    api = make_api(lambda request: httpx.Response(401, json={"message": "Token expired"}))
    with pytest.raises(AuthenticationRequired):
        await api.get_device_list()


async def test_unauthenticated_401_is_a_plain_error():
    api = make_api(lambda request: httpx.Response(401, json={"message": "Invalid credentials"}), token=None)
    with pytest.raises(RemoteApiError) as excinfo:
        await api.login("ada@example.com", "wrong-password")
    assert excinfo.value.status_code == 401


async def test_connection_failure():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    api = make_api(handler)
    with pytest.raises(TransportError) as excinfo:
        await api.get_versions_list()
    assert str(excinfo.value) == "Network error: connection refused"


async def test_read_timeout():
    def handler(request: httpx.Request):
        raise httpx.ReadTimeout("timed out", request=request)

    api = make_api(handler)
    with pytest.raises(RequestTimeout):
        await api.get_versions_list()


async def test_empty_body_returns_none():
    api = make_api(lambda request: httpx.Response(204))
    assert await api.delete_firmware("sensor-a", "1.0.0") is None


async def test_password_reset_works_signed_out():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"message": "sent"})

    api = make_api(handler, token=None)
    assert await api.forgot_password("ada@example.com") == {"message": "sent"}
    assert seen["auth"] is None
