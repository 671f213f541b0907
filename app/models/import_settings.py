"""Per-organization DMS settings: encrypted credentials, import config, last-run cache."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class OrganizationImportSettings(Base):
    __tablename__ = "organization_import_settings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    organization_id: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, index=True,
    )

    # ── Integration ──
    enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False,
    )
    provider: Mapped[str] = mapped_column(
        String(50), default="gemini_osi", server_default="gemini_osi", nullable=False,
    )
    api_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    username_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    password_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Import configuration ──
    default_template_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("check_templates.id", ondelete="SET NULL"), nullable=True,
    )
    service_type_filter: Mapped[Optional[list[str]]] = mapped_column(
        JSON, nullable=True, comment="Only bookings with these service types are imported",
    )
    auto_import_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False,
    )
    import_schedule_hours: Mapped[Optional[list[int]]] = mapped_column(
        JSON, nullable=True, comment="Hours of day (0-23) for scheduled imports",
    )
    import_schedule_days: Mapped[Optional[list[int]]] = mapped_column(
        JSON, nullable=True, comment="Days of week, 0=Sunday",
    )

    # ── Last-run cache ──
    last_import_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    last_import_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=func.now(), server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=func.now(), onupdate=func.now(), server_default=func.now(),
    )
