"""
Error taxonomy for the dashboard
None of these are fatal: each one degrades a single panel
"""

from typing import Optional


class DashboardError(Exception):
    """Base class for every error the dashboard surfaces"""


class FetchFailed(DashboardError):
    """A REST call returned a non-success status or could not be made"""

    def __init__(self, source: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.source = source
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.message} (HTTP {self.status})"
        return self.message


class StreamError(DashboardError):
    """Transport-level failure on the live quote connection"""

    def __init__(self, message: str = "Error connecting to the WebSocket. Please try again."):
        super().__init__(message)
        self.message = message


class StreamClosedUnexpectedly(StreamError):
    """The live quote connection dropped without a clean close handshake"""

    def __init__(self, message: str = "WebSocket connection closed unexpectedly."):
        super().__init__(message)


class CredentialError(DashboardError, ValueError):
    """Malformed credentials, rejected before any network call"""


class AuthError(DashboardError):
    """The identity provider refused the credentials"""
