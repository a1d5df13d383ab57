"""Template rendering shared by the page routers."""
from pathlib import Path

from fastapi import Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from .notifications import Confirmation, Notifier, pop_toasts
from .session import current_user

templates_dir = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(templates_dir))


def render(request: Request, name: str, context: dict | None = None, status_code: int = 200):
    """Render a page, consuming any toasts queued in the session."""
    page = {
        "account": current_user(request),
        "toasts": pop_toasts(request.session),
    }
    page.update(context or {})
    return templates.TemplateResponse(request, name, page, status_code=status_code)


def redirect(request: Request, url: str, notifier: Notifier | None = None) -> RedirectResponse:
    if notifier is not None:
        notifier.flush_to(request.session)
    return RedirectResponse(url, status_code=303)


def confirm_page(request: Request, confirmation: Confirmation):
    return render(request, "confirm.html", {"confirmation": confirmation})
