"""DMS (dealer management system) booking connector."""
from app.connectors.dms.booking import (
    BookingAdapter,
    BookingFetchResult,
    ConnectionTestResult,
    DmsCredentials,
    ExternalBooking,
)

__all__ = [
    "BookingAdapter",
    "BookingFetchResult",
    "ConnectionTestResult",
    "DmsCredentials",
    "ExternalBooking",
]
