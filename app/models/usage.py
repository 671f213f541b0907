"""Monthly billing usage counters per organization."""
import uuid
from datetime import date

from sqlalchemy import Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class OrganizationUsage(Base):
    __tablename__ = "organization_usage"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    period_start: Mapped[date] = mapped_column(
        Date, nullable=False, comment="First day of the billing month",
    )
    dms_imports: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    dms_bookings_imported: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0",
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "period_start", name="uq_organization_usage_period"),
    )
