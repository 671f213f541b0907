"""Adapter contract: transient booking records and the fetch result shape."""
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class DmsCredentials:
    """Decrypted credentials for one organization's DMS."""

    api_url: str
    username: str
    password: str
    site: Optional[int] = None


@dataclass
class ExternalBooking:
    """One appointment fetched from the DMS. Never persisted."""

    booking_id: str
    status: str = ""
    booking_date: str = ""   # YYYY-MM-DD
    booking_time: str = ""   # HH:MM
    description: Optional[str] = None
    service_type: Optional[str] = None

    customer_id: str = ""
    customer_title: Optional[str] = None
    customer_first_name: str = ""
    customer_last_name: str = ""
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_mobile: Optional[str] = None

    vehicle_id: str = ""
    vehicle_reg: str = ""
    vehicle_vin: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_color: Optional[str] = None
    vehicle_fuel_type: Optional[str] = None
    vehicle_mileage: Optional[int] = None


@dataclass
class BookingFetchResult:
    success: bool
    bookings: list[ExternalBooking] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ConnectionTestResult:
    success: bool
    message: str


class BookingAdapter(Protocol):
    """Anything that can list bookings for a date. Must return, never raise."""

    def fetch_bookings(
        self,
        credentials: DmsCredentials,
        date: str,
        site_id: Optional[str] = None,
        service_types: Optional[Sequence[str]] = None,
        end_date: Optional[str] = None,
    ) -> BookingFetchResult:
        ...

    def test_connection(self, credentials: DmsCredentials) -> ConnectionTestResult:
        ...
