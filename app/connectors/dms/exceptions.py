"""Exceptions for the DMS connector (never leave fetch_bookings)."""
from typing import Optional


class DmsApiError(Exception):
    """HTTP or payload-level failure talking to the DMS."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
