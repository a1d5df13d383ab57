import logging

from fastapi import APIRouter, Depends, Form, Request

from ..api_client import RemoteApi
from ..notifications import Notifier
from ..pages import redirect, render
from ..session import clear_session, current_user, get_api, landing_page, store_login
from ..workflows import request_password_reset, sign_in

router = APIRouter(tags=["auth"])
logger = logging.getLogger("otaconsole.auth")


@router.get("/")
async def index(request: Request):
    """Send signed-in users to their landing page, everyone else to login."""
    info = current_user(request)
    return redirect(request, landing_page(info) if info else "/login")


@router.get("/login")
async def login_page(request: Request):
    info = current_user(request)
    if info:
        return redirect(request, landing_page(info))
    return render(request, "login.html", {"email": ""})


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    outcome = await sign_in(api, email, password, notifier)
    if not outcome.ok:
        notifier.flush_to(request.session)
        return render(request, "login.html", {"email": email.strip()})

    info = outcome.details["info"]
    clear_session(request.session)
    store_login(request.session, outcome.details["token"], info)
    logger.info("User %s signed in with role %s", info.user.id, info.user.role)
    return redirect(request, landing_page(info), notifier)


@router.post("/logout")
async def logout(request: Request):
    clear_session(request.session)
    notifier = Notifier()
    notifier.success("Logged out successfully.")
    return redirect(request, "/login", notifier)


@router.get("/forgot-password")
async def forgot_password_page(request: Request):
    return render(request, "forgot_password.html", {"email": ""})


@router.post("/forgot-password")
async def forgot_password(
    request: Request,
    email: str = Form(""),
    api: RemoteApi = Depends(get_api),
):
    notifier = Notifier()
    outcome = await request_password_reset(api, email, notifier)
    if outcome.ok:
        return redirect(request, "/login", notifier)
    notifier.flush_to(request.session)
    return render(request, "forgot_password.html", {"email": email.strip()})
