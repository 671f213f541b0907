"""DMS import schemas: trigger request, run history, per-organization settings."""
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.import_run import ImportType


def _validate_iso_date(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        date.fromisoformat(v)
    except ValueError:
        raise ValueError("Date must be in YYYY-MM-DD format")
    return v


class ImportTriggerRequest(BaseModel):
    """Body of POST /dms/import."""

    date: Optional[str] = Field(None, description="Diary date (YYYY-MM-DD). Defaults to today (UTC).")
    end_date: Optional[str] = Field(None, description="Inclusive end of a date range (YYYY-MM-DD)")
    site_id: Optional[str] = Field(None, max_length=36)
    booking_ids: Optional[list[str]] = Field(
        None, description="Selective import: only these DMS booking ids are considered",
    )
    import_type: ImportType = ImportType.MANUAL
    triggered_by: Optional[str] = Field(None, max_length=36)

    @field_validator("date", "end_date")
    @classmethod
    def validate_dates(cls, v: Optional[str]) -> Optional[str]:
        return _validate_iso_date(v)

    @model_validator(mode="after")
    def end_not_before_start(self) -> "ImportTriggerRequest":
        if self.date and self.end_date and self.end_date < self.date:
            raise ValueError("end_date must not be before date")
        return self


class ImportRunRead(BaseModel):
    """One row of dms_import_runs."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    site_id: Optional[str] = None
    import_type: str
    import_date: date
    end_date: Optional[date] = None
    booking_ids: Optional[list[str]] = None
    status: str
    bookings_found: int
    bookings_imported: int
    bookings_skipped: int
    bookings_failed: int
    customers_created: int
    vehicles_created: int
    health_checks_created: int
    errors: Optional[list[dict[str, Any]]] = None
    triggered_by: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ImportRunListResponse(BaseModel):
    items: list[ImportRunRead]
    total: int
    limit: int
    offset: int


class ImportedHealthCheckRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    external_id: Optional[str] = None
    customer_id: str
    vehicle_id: str
    status: str
    promise_time: Optional[datetime] = None


class ImportRunDetail(ImportRunRead):
    health_checks: list[ImportedHealthCheckRead] = Field(default_factory=list)


class DmsSettingsUpdate(BaseModel):
    """Partial update of an organization's DMS settings. Omitted fields are left unchanged."""

    enabled: Optional[bool] = None
    provider: Optional[str] = Field(None, max_length=50)
    api_url: Optional[str] = None
    username: Optional[str] = Field(None, description="Plaintext; stored encrypted")
    password: Optional[str] = Field(None, description="Plaintext; stored encrypted")
    default_template_id: Optional[str] = Field(None, max_length=36)
    service_type_filter: Optional[list[str]] = None
    auto_import_enabled: Optional[bool] = None
    import_schedule_hours: Optional[list[int]] = None
    import_schedule_days: Optional[list[int]] = None

    @field_validator("import_schedule_hours")
    @classmethod
    def validate_hours(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is not None and any(h < 0 or h > 23 for h in v):
            raise ValueError("Schedule hours must be between 0 and 23")
        return sorted(set(v)) if v is not None else v

    @field_validator("import_schedule_days")
    @classmethod
    def validate_days(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is not None and any(d < 0 or d > 6 for d in v):
            raise ValueError("Schedule days must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(v)) if v is not None else v


class DmsSettingsRead(BaseModel):
    organization_id: str
    enabled: bool
    provider: str
    configured: bool
    credentials_configured: bool
    username_masked: Optional[str] = None
    api_url: str = ""
    default_template_id: Optional[str] = None
    service_type_filter: list[str] = Field(default_factory=list)
    auto_import_enabled: bool
    import_schedule_hours: list[int]
    import_schedule_days: list[int]
    last_import_at: Optional[datetime] = None
    last_import_status: Optional[str] = None
    last_error: Optional[str] = None


class ConnectionTestRequest(BaseModel):
    """Credentials to try before saving. When incomplete, the saved ones are used."""

    api_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.api_url and self.username and self.password)


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str


class PreviewBookingRead(BaseModel):
    booking_id: str
    vehicle_reg: str
    customer_name: str
    booking_date: str
    scheduled_time: Optional[str] = None
    service_type: Optional[str] = None
    reason: Optional[str] = None


class ImportPreviewResponse(BaseModel):
    date: str
    end_date: Optional[str] = None
    total_bookings: int
    will_import: list[PreviewBookingRead] = Field(default_factory=list)
    will_skip: list[PreviewBookingRead] = Field(default_factory=list)
