"""Errors raised by the TV connection and command layer."""


class TVError(Exception):
    """Base class for all TV control errors."""


class NotConnectedError(TVError):
    def __init__(self, message: str = "Not connected to any TV"):
        super().__init__(message)


class UnknownAppError(TVError):
    def __init__(self, app_name: str, message: str | None = None):
        self.app_name = app_name
        super().__init__(message or f"Unknown app: {app_name}")


class HandshakeTimeoutError(TVError):
    def __init__(self, message: str = "Connection timed out - no response from TV"):
        super().__init__(message)


class HandshakeRejectedError(TVError):
    """The TV refused pairing. The user has to allow the device on the TV."""

    HINT = "Allow the device in TV Settings > General > External Device Manager."

    def __init__(self, message: str = "TV rejected the connection"):
        self.hint = self.HINT
        super().__init__(f"{message}. {self.HINT}")


class TransportClosedError(TVError):
    def __init__(self, message: str = "TV closed the connection"):
        super().__init__(message)


class NetworkError(TVError):
    """A REST call to the TV failed or returned an error."""


class NotFoundError(TVError):
    """No saved TV to act on."""
