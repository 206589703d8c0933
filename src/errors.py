"""
Exception types for the practice analytics library.

Load and authentication failures propagate to callers. Flush failures are
re-raised only after the emergency snapshot has been written, so callers can
log them without losing local state.
"""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for analytics persistence errors."""


class AuthenticationError(AnalyticsError):
    """No identity available, or the session-token exchange was rejected."""


class RemoteStoreError(AnalyticsError):
    """Non-success response or transport failure talking to the remote store.

    Attributes:
        status_code: HTTP status of the failed response, None for transport errors.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SnapshotError(AnalyticsError):
    """An emergency snapshot could not be decoded."""
