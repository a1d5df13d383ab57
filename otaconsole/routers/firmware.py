import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from ..api_client import RemoteApi
from ..errors import ConsoleError
from ..notifications import Notifier
from ..pages import confirm_page, redirect, render
from ..schemas import FirmwareUpload, UserInfo
from ..session import get_api, require_admin
from ..tables import FirmwareFilters, FirmwareTable, fetch_version_map
from ..workflows import delete_firmware, upload_firmware

router = APIRouter(prefix="/firmware", tags=["firmware"])
logger = logging.getLogger("otaconsole.firmware")


@router.get("")
async def list_firmware(
    request: Request,
    device_name: str = "",
    sort_version: str = "",
    sort_date: str = "",
    info: UserInfo = Depends(require_admin),
    api: RemoteApi = Depends(get_api),
):
    """Firmware versions for every device name, filtered and sorted."""
    filters = FirmwareFilters(device_name=device_name, sort_version=sort_version, sort_date=sort_date)
    table = await FirmwareTable.load(api, filters)
    return render(request, "firmware.html", {"table": table, "filters": filters})


@router.post("/delete")
async def delete(
    request: Request,
    device_name: str = Form(""),
    version: str = Form(""),
    confirmed: bool = Form(False),
    info: UserInfo = Depends(require_admin),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    outcome = await delete_firmware(api, device_name, version, notifier, confirmed=confirmed)
    if outcome.confirmation:
        return confirm_page(request, outcome.confirmation)
    return redirect(request, "/firmware", notifier)


@router.get("/upload")
async def upload_page(
    request: Request,
    info: UserInfo = Depends(require_admin),
    api: RemoteApi = Depends(get_api),
):
    try:
        device_names = list(await fetch_version_map(api))
    except ConsoleError as e:
        logger.warning("Device names unavailable for upload form: %s", e)
        device_names = []
    return render(request, "upload.html", {"device_names": device_names})


@router.post("/upload")
async def upload(
    request: Request,
    file: UploadFile = File(...),
    device_name: str = Form(""),
    version: str = Form(""),
    changelog: str = Form(""),
    info: UserInfo = Depends(require_admin),
    api: RemoteApi = Depends(get_api),
):
    """Forward an uploaded binary to the remote firmware store."""
    content = await file.read()
    meta = FirmwareUpload(device_name=device_name.strip(), version=version.strip(), changelog=changelog.strip() or None)

    notifier = Notifier()
    outcome = await upload_firmware(api, meta, file.filename, content, notifier)
    if not outcome.ok:
        return redirect(request, "/firmware/upload", notifier)
    return redirect(request, "/firmware", notifier)
