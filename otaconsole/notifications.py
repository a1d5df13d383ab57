"""Toast notifications and confirmation prompts.

Toasts are queued in the session and shown once by the next rendered page.
"""
from dataclasses import asdict, dataclass

from .config import settings

TOAST_SESSION_KEY = "toasts"

ICONS = {"success": "✅", "error": "❌", "warning": "⚠️", "info": "ℹ️"}


@dataclass
class Toast:
    message: str
    level: str = "info"
    duration_ms: int = 4000

    @property
    def icon(self) -> str:
        return ICONS.get(self.level, ICONS["info"])


class Notifier:
    """Collects toasts raised while a workflow runs."""

    def __init__(self):
        self.toasts: list[Toast] = []

    def notify(self, message: str, level: str = "info", duration_ms: int | None = None) -> Toast:
        if duration_ms is None:
            duration_ms = settings.error_toast_duration_ms if level == "error" else settings.toast_duration_ms
        toast = Toast(message=message, level=level, duration_ms=duration_ms)
        self.toasts.append(toast)
        return toast

    def success(self, message: str, duration_ms: int | None = None) -> Toast:
        return self.notify(message, "success", duration_ms)

    def error(self, message: str, duration_ms: int | None = None) -> Toast:
        return self.notify(message, "error", duration_ms)

    def warning(self, message: str, duration_ms: int | None = None) -> Toast:
        return self.notify(message, "warning", duration_ms)

    def info(self, message: str, duration_ms: int | None = None) -> Toast:
        return self.notify(message, "info", duration_ms)

    @property
    def failed(self) -> bool:
        return any(toast.level == "error" for toast in self.toasts)

    def flush_to(self, session: dict) -> None:
        """Queue the collected toasts for the next page render."""
        queued = session.get(TOAST_SESSION_KEY, [])
        queued.extend(asdict(toast) for toast in self.toasts)
        session[TOAST_SESSION_KEY] = queued
        self.toasts = []


def pop_toasts(session: dict) -> list[Toast]:
    return [Toast(**data) for data in session.pop(TOAST_SESSION_KEY, [])]


@dataclass
class Confirmation:
    """A yes/no prompt rendered before a destructive or fleet-wide action.

    ``action`` is the URL the form posts back to and ``fields`` the hidden
    inputs carried along; the repost adds ``confirmed=1``.
    """
    title: str
    message: str
    action: str
    fields: list[tuple[str, str]]
    confirm_label: str = "Confirm"
    cancel_url: str = "/devices"
