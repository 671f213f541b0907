"""Customer: a person owning vehicles, scoped to an organization."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── DMS cross-reference (backfilled on secondary-key matches) ──
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    title: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True, comment="Stored lower-case",
    )
    mobile: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True, index=True, comment="Stored without whitespace",
    )
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=func.now(), server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=func.now(), onupdate=func.now(), server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "external_source", "external_id",
            name="uq_customers_external",
        ),
    )
