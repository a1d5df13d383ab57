"""Error taxonomy shared by the API client, workflows and routers."""


class ConsoleError(Exception):
    """Base class for every failure the console turns into a user message."""


class RemoteApiError(ConsoleError):
    """The remote service answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP error! status: {status_code} - {detail}")


class TransportError(ConsoleError):
    """The request never produced a response (DNS, refused connection, reset)."""

    def __init__(self, detail: str):
        super().__init__(f"Network error: {detail}")


class RequestTimeout(ConsoleError):
    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__("Request timeout")


class UnexpectedResponse(ConsoleError):
    pass


class ValidationFailed(ConsoleError):
    pass


class AuthenticationRequired(Exception):
    """No usable session or the token was rejected.

    Not a ConsoleError: workflow boundaries must let it reach the app-wide
    handler that redirects to the login page.
    """

    def __init__(self, message: str = "Please sign in to continue."):
        super().__init__(message)


# Suffixes appended to a workflow prefix such as "Failed to delete device. "
_TIMEOUT_HINT = "The request timed out. Please check your connection and try again."
_NETWORK_HINT = "Network error. Please check your connection."
_NO_RESPONSE_HINT = "No response from server. Please try again later."


def describe_failure(prefix: str, exc: Exception, not_found: str | None = None) -> str:
    """Build the message shown in an error toast for a failed workflow.

    ``not_found`` replaces the server text when it reports a missing record,
    e.g. "Device not found. It may have been deleted."
    """
    if isinstance(exc, RequestTimeout):
        return prefix + _TIMEOUT_HINT
    if isinstance(exc, TransportError):
        return prefix + _NETWORK_HINT
    if isinstance(exc, UnexpectedResponse) and not str(exc):
        return prefix + _NO_RESPONSE_HINT
    message = str(exc)
    if not_found and "not found" in message.lower():
        return prefix + not_found
    return prefix + (message or "Please try again.")
