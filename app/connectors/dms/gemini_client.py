"""Gemini OSI DMS client (HTTP basic auth, diary bookings endpoint)."""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import requests

from app.connectors.dms.booking import (
    BookingFetchResult,
    ConnectionTestResult,
    DmsCredentials,
    ExternalBooking,
)
from app.connectors.dms.exceptions import DmsApiError

logger = logging.getLogger(__name__)

DIARY_ENDPOINT = "api/v2/workshop/get-diary-bookings"
RETRY_DELAY_BASE = 1.0  # seconds

_CONNECTION_ERRORS = {
    401: "Authentication failed - check username and password",
    403: "Access denied - check permissions",
    404: "API endpoint not found - check the API URL",
}


def _connection_error_message(error: DmsApiError) -> str:
    if error.status_code in _CONNECTION_ERRORS:
        return _CONNECTION_ERRORS[error.status_code]
    if error.status_code is None and error.retryable:
        return "Cannot reach server - check the API URL is correct"
    return str(error) or "Connection failed"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _split_datetime(value: Any) -> tuple[str, str]:
    """'2026-01-15T09:30:00' -> ('2026-01-15', '09:30'). Missing parts are ''."""
    s = _text(value) or ""
    if "T" not in s:
        return s[:10], ""
    day, _, clock = s.partition("T")
    return day, clock[:5]


def map_diary_booking(raw: dict[str, Any]) -> ExternalBooking:
    """Map one `result.Bookings[]` item onto an ExternalBooking."""
    vehicle = raw.get("Vehicle") or {}
    customer = raw.get("InvoiceTo") or {}
    booking_date, booking_time = _split_datetime(raw.get("DueDateTime"))
    registration = _text(vehicle.get("Registration")) or ""

    return ExternalBooking(
        booking_id=str(raw.get("BookingID") or ""),
        status=_text(raw.get("ArrivalStatus")) or "PENDING",
        booking_date=booking_date,
        booking_time=booking_time,
        description=_text(raw.get("Notes")),
        service_type=_text(raw.get("Workshop")) or "service",
        customer_id=str(customer.get("CustomerID") or customer.get("Reference") or ""),
        customer_title=_text(customer.get("Title")),
        customer_first_name=_text(customer.get("Forename")) or "",
        customer_last_name=_text(customer.get("Surname")) or "",
        customer_email=_text(customer.get("Email")),
        customer_phone=_text(customer.get("Telephone")),
        customer_mobile=_text(customer.get("Mobile")),
        # Gemini has no separate vehicle id; the registration is the stable key
        vehicle_id=registration,
        vehicle_reg=registration,
        vehicle_vin=_text(vehicle.get("ChassisNumber")),
        vehicle_make=_text(vehicle.get("Make")),
        vehicle_model=_text(vehicle.get("Model")),
        vehicle_color=_text(vehicle.get("Colour")),
        vehicle_fuel_type=_text(vehicle.get("FuelType")),
        vehicle_mileage=_int(vehicle.get("CurrentMileage")),
    )


class GeminiOsiClient:
    """
    Gemini OSI workshop API client.
    Retries 429 / 5xx / timeouts with exponential backoff; 4xx fails immediately.
    """

    def __init__(
        self,
        timeout_seconds: int = 30,
        max_retries: int = 3,
        default_site: int = 1,
        session: Optional[requests.Session] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(1, max_retries)
        self.default_site = default_site
        self._session = session or requests.Session()

    def _request(
        self,
        credentials: DmsCredentials,
        endpoint: str,
        params: dict[str, Any],
        max_retries: Optional[int] = None,
    ) -> dict[str, Any]:
        url = f"{credentials.api_url.rstrip('/')}/{endpoint.lstrip('/')}"
        attempts = max(1, max_retries) if max_retries is not None else self.max_retries
        last_error: Optional[DmsApiError] = None

        for attempt in range(1, attempts + 1):
            try:
                resp = self._session.get(
                    url,
                    params=params,
                    auth=(credentials.username, credentials.password),
                    headers={"Accept": "application/json", "User-Agent": "VHC-Platform/1.0"},
                    timeout=self.timeout_seconds,
                )
            except requests.Timeout:
                last_error = DmsApiError("Request timed out", retryable=True)
            except requests.ConnectionError:
                last_error = DmsApiError("Network error connecting to DMS", retryable=True)
            else:
                if resp.status_code == 429:
                    retry_after = _int(resp.headers.get("Retry-After"))
                    last_error = DmsApiError("Rate limited by DMS", 429, retryable=True)
                    if attempt < attempts:
                        delay = retry_after if retry_after is not None else RETRY_DELAY_BASE * 2 ** attempt
                        logger.warning("[DMS] Rate limited (attempt %d), retrying in %ss", attempt, delay)
                        time.sleep(delay)
                        continue
                    break
                if resp.status_code >= 500:
                    last_error = DmsApiError(f"DMS server error: {resp.status_code}", resp.status_code, retryable=True)
                elif resp.status_code >= 400:
                    message = f"DMS API error: {resp.status_code}"
                    try:
                        body = resp.json()
                        if isinstance(body, dict):
                            message = body.get("error") or body.get("message") or message
                    except ValueError:
                        pass
                    raise DmsApiError(str(message), resp.status_code, retryable=False)
                else:
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise DmsApiError(f"Invalid JSON from DMS: {e}") from e

            if attempt < attempts:
                delay = RETRY_DELAY_BASE * 2 ** (attempt - 1)
                logger.warning("[DMS] %s (attempt %d), retrying in %.0fs", last_error, attempt, delay)
                time.sleep(delay)

        raise last_error or DmsApiError("Request failed after all retries")

    def fetch_bookings(
        self,
        credentials: DmsCredentials,
        date: str,
        site_id: Optional[str] = None,
        service_types: Optional[Sequence[str]] = None,
        end_date: Optional[str] = None,
    ) -> BookingFetchResult:
        """Fetch diary bookings between `date` and `end_date` (inclusive). Never raises."""
        site = credentials.site or self.default_site
        params = {
            "StartTime": f"{date}T00:00:00",
            "EndTime": f"{end_date or date}T23:59:59",
            "Site": str(site),
        }
        logger.info("[DMS] Fetching diary bookings %s..%s site=%s", date, end_date or date, site)

        try:
            payload = self._request(credentials, DIARY_ENDPOINT, params)
            error = payload.get("error") if isinstance(payload, dict) else None
            if isinstance(error, dict) and error.get("code") not in (None, 0):
                raise DmsApiError(error.get("message") or "Unknown API error")

            result = payload.get("result") if isinstance(payload, dict) else None
            raw_bookings = (result or {}).get("Bookings") or []
            bookings = [map_diary_booking(b) for b in raw_bookings if isinstance(b, dict)]
        except DmsApiError as e:
            logger.error("[DMS] Failed to fetch bookings for %s: %s", date, e)
            return BookingFetchResult(success=False, error=str(e))
        except Exception as e:
            logger.exception("[DMS] Unexpected error fetching bookings for %s", date)
            return BookingFetchResult(success=False, error=f"Unexpected DMS error: {e}")

        if service_types:
            wanted = {s.strip().lower() for s in service_types if s and s.strip()}
            if wanted:
                bookings = [b for b in bookings if (b.service_type or "").lower() in wanted]

        logger.info("[DMS] Fetched %d bookings for %s", len(bookings), date)
        return BookingFetchResult(success=True, bookings=bookings)

    def test_connection(self, credentials: DmsCredentials) -> ConnectionTestResult:
        """One authenticated diary request for today; never raises."""
        today = datetime.now(timezone.utc).date().isoformat()
        params = {
            "StartTime": f"{today}T00:00:00",
            "EndTime": f"{today}T23:59:59",
            "Site": str(credentials.site or self.default_site),
        }
        logger.info("[DMS] Testing connection to %s", credentials.api_url)

        try:
            payload = self._request(credentials, DIARY_ENDPOINT, params, max_retries=1)
        except DmsApiError as e:
            logger.warning("[DMS] Connection test to %s failed: %s", credentials.api_url, e)
            return ConnectionTestResult(False, _connection_error_message(e))
        except Exception as e:
            logger.exception("[DMS] Connection test to %s failed", credentials.api_url)
            return ConnectionTestResult(False, f"Connection test failed: {e}")

        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict) and error.get("code") not in (None, 0):
            return ConnectionTestResult(False, error.get("message") or "API returned error")

        result = payload.get("result") if isinstance(payload, dict) else None
        count = len((result or {}).get("Bookings") or [])
        return ConnectionTestResult(True, f"Connection successful - found {count} booking(s) for today")
