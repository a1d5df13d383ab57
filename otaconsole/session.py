"""Session state and the auth guards used as FastAPI dependencies."""
import logging

from fastapi import Depends, Request

from .api_client import RemoteApi
from .config import settings
from .errors import AuthenticationRequired
from .schemas import UserInfo

logger = logging.getLogger("otaconsole.session")

TOKEN_KEY = "user_token"
USER_KEY = "user_info"


class NotAuthorized(Exception):
    """Signed in, but the role may not open this page."""


def store_login(session: dict, token: str, info: UserInfo) -> None:
    session[TOKEN_KEY] = token
    session[USER_KEY] = info.model_dump(mode="json")


def clear_session(session: dict) -> None:
    session.clear()


def current_user(request: Request) -> UserInfo | None:
    token = request.session.get(TOKEN_KEY)
    raw = request.session.get(USER_KEY)
    if not token or not raw:
        return None
    try:
        info = UserInfo.model_validate(raw)
    except ValueError:
        logger.warning("Discarding malformed user info in session")
        return None
    if info.user is None or not info.user.role:
        return None
    return info


def require_user(request: Request) -> UserInfo:
    info = current_user(request)
    if info is None:
        raise AuthenticationRequired()
    return info


def require_admin(info: UserInfo = Depends(require_user)) -> UserInfo:
    if info.user.role != settings.admin_role:
        logger.info("Role %r may not open admin pages", info.user.role)
        raise NotAuthorized()
    return info


def get_api(request: Request) -> RemoteApi:
    return RemoteApi(request.app.state.http, token=request.session.get(TOKEN_KEY))


def landing_page(info: UserInfo) -> str:
    return "/firmware" if info.user.role == settings.admin_role else "/devices"
