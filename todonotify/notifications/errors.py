"""
Exceptions raised by the notification subsystem.
"""


class NotificationError(Exception):
    """Base class for notification subsystem errors."""

    pass


class AuthenticationRequiredError(NotificationError):
    """Raised when an operation needs a session and none is available."""

    pass


class MalformedEventError(NotificationError):
    """Raised when an inbound stream payload cannot be decoded."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class SettingsAPIError(NotificationError):
    """Raised when the settings endpoint fails or returns an error body."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class SettingsUpdateError(NotificationError):
    """Raised when a settings update could not be persisted remotely."""

    pass


class NativeDispatchError(NotificationError):
    """Raised when a native notification could not be shown."""

    pass
