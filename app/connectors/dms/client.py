"""Router for the DMS connector (DMS_MODE: official | off)."""
import logging
from typing import Any, Optional, Sequence

from app.connectors.dms.booking import BookingFetchResult, ConnectionTestResult, DmsCredentials

logger = logging.getLogger(__name__)

_client: Any = None


class DisabledBookingAdapter:
    """Adapter used when DMS_MODE=off: every fetch fails with a clear message."""

    def fetch_bookings(
        self,
        credentials: DmsCredentials,
        date: str,
        site_id: Optional[str] = None,
        service_types: Optional[Sequence[str]] = None,
        end_date: Optional[str] = None,
    ) -> BookingFetchResult:
        return BookingFetchResult(success=False, error="DMS connector is disabled (DMS_MODE=off)")

    def test_connection(self, credentials: DmsCredentials) -> ConnectionTestResult:
        return ConnectionTestResult(False, "DMS connector is disabled (DMS_MODE=off)")


def get_booking_adapter():
    """Return the configured booking adapter (cached)."""
    global _client
    if _client is not None:
        return _client

    from app.core.config import settings

    mode = (getattr(settings, "dms_mode", None) or "official").strip().lower()
    if mode == "off":
        logger.info("DMS connector: off")
        _client = DisabledBookingAdapter()
        return _client

    from app.connectors.dms.gemini_client import GeminiOsiClient

    _client = GeminiOsiClient(
        timeout_seconds=settings.dms_timeout_seconds,
        max_retries=settings.dms_max_retries,
        default_site=settings.dms_default_site,
    )
    logger.info("DMS connector: official (Gemini OSI)")
    return _client


def reset_client() -> None:
    """Reset cached client (for tests)."""
    global _client
    _client = None
