"""Import run: one row per DMS booking import execution (audit + lineage)."""
import enum
import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Date, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class ImportType(str, enum.Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    TEST = "test"


class ImportStatus(str, enum.Enum):
    """Run status. RUNNING is the only non-terminal value."""

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ImportStatus.RUNNING


class ImportRun(Base):
    """One DMS import for one organization/date: counters, timing and errors."""

    __tablename__ = "dms_import_runs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    site_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    import_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ImportType.MANUAL.value, server_default="manual",
    )
    import_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    booking_ids: Mapped[Optional[list[str]]] = mapped_column(
        JSON, nullable=True, comment="Selective import: only these booking ids were considered",
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ImportStatus.RUNNING.value, server_default="running",
    )

    bookings_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    bookings_imported: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    bookings_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    bookings_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    customers_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    vehicles_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    health_checks_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    errors: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON, nullable=True, comment="List of {bookingId, error}",
    )
    triggered_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        nullable=False,
        index=True,
        default=func.now(),
        server_default=func.now(),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_dms_import_runs_org_date", "organization_id", "import_date"),
        Index("ix_dms_import_runs_org_status", "organization_id", "status"),
    )
