"""Domain exceptions raised by the stockview services.

Routers translate these into HTTP responses; the scrape job runner turns
automation failures into a ``failed`` session with a readable message.
"""


class StockviewError(Exception):
    """Base class for all stockview errors."""


class ValidationError(StockviewError):
    """Input rejected before any state change."""


class DuplicateNameError(ValidationError):
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} named '{name}' already exists")


class NotFoundError(StockviewError):
    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str):
        super().__init__("Scrape session", session_id)


class InvalidTransitionError(StockviewError):
    def __init__(self, session_id: str, current: str, target: str):
        self.session_id = session_id
        self.current = current
        self.target = target
        super().__init__(f"Scrape session {session_id} cannot move from '{current}' to '{target}'")


class AutomationError(StockviewError):
    """Browser automation failed; the message is shown to the user."""

    kind = "automation"


class LoginError(AutomationError):
    pass


class ElementNotFoundError(AutomationError):
    pass


class NavigationError(AutomationError):
    pass


class CaptchaDetectedError(AutomationError):
    pass


class ExtractionTimeoutError(AutomationError):
    pass


class OTPTimeoutError(AutomationError):
    kind = "otp_timeout"

    def __init__(self, session_id: str, timeout: float):
        self.session_id = session_id
        self.timeout = timeout
        super().__init__(f"OTP not provided in time (waited {timeout:g}s)")


class ScrapeCancelledError(StockviewError):
    def __init__(self, session_id: str = ""):
        self.session_id = session_id
        super().__init__(f"Scrape session {session_id} was cancelled" if session_id else "Scrape was cancelled")
