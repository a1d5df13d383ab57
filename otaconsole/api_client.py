"""Client for the remote device/firmware REST service."""
import logging
from typing import Any

import httpx

from .errors import AuthenticationRequired, RemoteApiError, RequestTimeout, TransportError
from .schemas import DeviceInfoUpdate, FirmwareUpload

logger = logging.getLogger("otaconsole.api")


class RemoteApi:
    """Thin wrapper adding bearer-token auth and uniform error surfacing.

    One instance is built per request around the application's shared
    ``httpx.AsyncClient``; ``token`` is the caller's session token.
    """

    def __init__(self, client: httpx.AsyncClient, token: str | None = None):
        self._client = client
        self.token = token

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        body: Any = None,
        params: dict | None = None,
        files: dict | None = None,
        data: dict | None = None,
        token_needed: bool = False,
    ) -> Any:
        if not method or not endpoint:
            raise ValueError("Method and endpoint are required")

        headers = {}
        if token_needed:
            if not self.token:
                raise AuthenticationRequired()
            headers["Authorization"] = f"Bearer {self.token}"
        # Multipart bodies get their Content-Type (with boundary) from httpx
        if files is None:
            headers["Content-Type"] = "application/json"

        try:
            response = await self._client.request(
                method,
                endpoint,
                headers=headers,
                params=params,
                json=body if files is None else None,
                files=files,
                data=data,
            )
        except httpx.TimeoutException as e:
            logger.error("%s %s timed out: %s", method, endpoint, e)
            raise RequestTimeout(self._client.timeout.read or 0) from e
        except httpx.TransportError as e:
            logger.error("%s %s failed: %s", method, endpoint, e)
            raise TransportError(str(e)) from e

        if not response.is_success:
            detail = _error_detail(response)
            logger.error("%s %s -> %s %s", method, endpoint, response.status_code, detail)
            if response.status_code == 401 and token_needed:
                raise AuthenticationRequired("Your session has expired. Please sign in again.")
            raise RemoteApiError(response.status_code, detail)

        if not response.content:
            return None
        return response.json()

    async def login(self, email: str, password: str) -> Any:
        return await self._request("POST", "/api/login", body={"email": email, "password": password})

    async def forgot_password(self, email: str) -> Any:
        # Reached from the login page, so the token is sent only when there is one
        return await self._request("POST", "/api/forgot-password", body={"email": email}, token_needed=bool(self.token))

    async def get_info(self) -> Any:
        return await self._request("GET", "/api/me", token_needed=True)

    async def get_device_list(self) -> Any:
        return await self._request("GET", "/api/my-devices", token_needed=True)

    async def get_versions_list(self) -> Any:
        return await self._request("GET", "/api/list-versions")

    async def delete_device(self, device_id: str) -> Any:
        return await self._request("DELETE", "/api/delete-device", body={"device_id": device_id}, token_needed=True)

    async def update_device_info(self, info: DeviceInfoUpdate) -> Any:
        return await self._request("POST", "/api/update-device-info", body=info.model_dump(), token_needed=True)

    async def update_device_version(self, device_ids: list[str], version: str) -> Any:
        return await self._request(
            "POST",
            "/api/update-device-version",
            body={"device_ids": device_ids, "version": version},
            token_needed=True,
        )

    async def update_device(self, device_ids: list[str]) -> Any:
        """Trigger an update to the latest published version."""
        return await self._request("POST", "/api/update-device", body={"device_ids": device_ids})

    async def delete_firmware(self, device_name: str, version: str) -> Any:
        return await self._request(
            "DELETE",
            "/api/delete-version",
            params={"device_name": device_name, "version": version},
        )

    async def upload_firmware(self, meta: FirmwareUpload, filename: str, content: bytes) -> Any:
        form = {"device_name": meta.device_name, "version": meta.version}
        if meta.changelog:
            form["changelog"] = meta.changelog
        return await self._request(
            "POST",
            "/api/upload-firmware",
            files={"file": (filename, content, "application/octet-stream")},
            data=form,
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error") or "Unknown error"
    return "Unknown error"
