"""Health check (VHC): one inspection job, here created from a DMS booking."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class HealthCheck(Base):
    __tablename__ = "health_checks"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    site_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    customer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customers.id"), nullable=False, index=True,
    )
    vehicle_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("vehicles.id"), nullable=False, index=True,
    )
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("check_templates.id"), nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="created", server_default="created",
    )
    mileage_in: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    promise_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── DMS lineage ──
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    import_batch_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("dms_import_runs.id"),
        nullable=True,
        index=True,
        comment="ImportRun that created this health check",
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=func.now(), server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "external_source", "external_id",
            name="uq_health_checks_external",
        ),
    )
