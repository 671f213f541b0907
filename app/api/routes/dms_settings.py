"""Per-organization DMS settings: read with masked credentials, upsert with encryption."""
import logging
from datetime import date as date_type, datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.schemas.dms import (
    ConnectionTestRequest,
    ConnectionTestResponse,
    DmsSettingsRead,
    DmsSettingsUpdate,
    ImportPreviewResponse,
    PreviewBookingRead,
)
from app.connectors.dms.booking import DmsCredentials
from app.connectors.dms.client import get_booking_adapter
from app.core.auth import rate_limit_admin, require_admin_key
from app.core.security import decrypt, encrypt, is_encryption_configured, mask_string
from app.db.session import get_db
from app.models.check_template import CheckTemplate
from app.models.import_settings import OrganizationImportSettings
from app.services.dms.credentials import CredentialResolver, get_import_settings
from app.services.dms.errors import AdapterError, ConfigurationError
from app.services.dms.preview import preview_import
from app.services.scheduler import DEFAULT_IMPORT_DAYS, DEFAULT_IMPORT_HOURS

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/dms/settings",
    tags=["dms"],
    dependencies=[Depends(require_admin_key), Depends(rate_limit_admin)],
)

_NOT_NULL_FIELDS = frozenset({"enabled", "provider", "auto_import_enabled"})


def _to_read(organization_id: str, row: Optional[OrganizationImportSettings]) -> DmsSettingsRead:
    """Settings view. Credentials never leave the server; only a masked username does."""
    if row is None:
        return DmsSettingsRead(
            organization_id=organization_id,
            enabled=False,
            provider="gemini_osi",
            configured=False,
            credentials_configured=False,
            auto_import_enabled=False,
            import_schedule_hours=list(DEFAULT_IMPORT_HOURS),
            import_schedule_days=list(DEFAULT_IMPORT_DAYS),
        )

    credentials_configured = False
    username_masked = None
    if row.username_encrypted and row.password_encrypted and is_encryption_configured():
        try:
            username_masked = mask_string(decrypt(row.username_encrypted))
            credentials_configured = True
        except ValueError:
            logger.warning("[DMS Settings] Stored username for org %s cannot be decrypted", organization_id)

    configured = bool(
        row.enabled and row.api_url and row.username_encrypted and row.password_encrypted
    )
    return DmsSettingsRead(
        organization_id=organization_id,
        enabled=row.enabled,
        provider=row.provider,
        configured=configured,
        credentials_configured=credentials_configured,
        username_masked=username_masked,
        api_url=row.api_url or "",
        default_template_id=row.default_template_id,
        service_type_filter=list(row.service_type_filter or []),
        auto_import_enabled=row.auto_import_enabled,
        import_schedule_hours=list(row.import_schedule_hours or DEFAULT_IMPORT_HOURS),
        import_schedule_days=list(row.import_schedule_days or DEFAULT_IMPORT_DAYS),
        last_import_at=row.last_import_at,
        last_import_status=row.last_import_status,
        last_error=row.last_error,
    )


@router.get("/{organization_id}", response_model=DmsSettingsRead)
def get_settings(organization_id: str, db: Session = Depends(get_db)) -> DmsSettingsRead:
    return _to_read(organization_id, get_import_settings(db, organization_id))


@router.put("/{organization_id}", response_model=DmsSettingsRead)
def update_settings(
    organization_id: str,
    body: DmsSettingsUpdate,
    db: Session = Depends(get_db),
) -> DmsSettingsRead:
    """Create or partially update the organization's DMS settings."""
    data = body.model_dump(exclude_unset=True)
    username = data.pop("username", None)
    password = data.pop("password", None)

    if (username or password) and not is_encryption_configured():
        raise HTTPException(status_code=500, detail="Encryption not configured on server")

    template_id = data.get("default_template_id")
    if template_id:
        template = (
            db.query(CheckTemplate)
            .filter(CheckTemplate.id == template_id, CheckTemplate.organization_id == organization_id)
            .first()
        )
        if template is None:
            raise HTTPException(status_code=400, detail="Template not found for this organization")

    row = get_import_settings(db, organization_id)
    if row is None:
        row = OrganizationImportSettings(organization_id=organization_id)
        db.add(row)

    for key, value in data.items():
        if value is None and key in _NOT_NULL_FIELDS:
            continue
        setattr(row, key, value)
    if username:
        row.username_encrypted = encrypt(username)
    if password:
        row.password_encrypted = encrypt(password)

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[DMS Settings] Failed to save settings for org %s", organization_id)
        raise HTTPException(status_code=500, detail="Failed to update DMS settings")
    db.refresh(row)

    logger.info("[DMS Settings] Updated org=%s fields=%s", organization_id, sorted(body.model_fields_set))
    return _to_read(organization_id, row)


@router.delete("/{organization_id}/credentials")
def remove_credentials(organization_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Clear stored credentials and switch the integration and auto-import off. Other settings stay."""
    row = get_import_settings(db, organization_id)
    if row is None:
        raise HTTPException(status_code=404, detail="DMS settings not configured")

    row.username_encrypted = None
    row.password_encrypted = None
    row.enabled = False
    row.auto_import_enabled = False
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[DMS Settings] Failed to remove credentials for org %s", organization_id)
        raise HTTPException(status_code=500, detail="Failed to remove credentials")

    logger.info("[DMS Settings] Removed credentials org=%s", organization_id)
    return {"success": True, "message": "DMS credentials removed"}


@router.post("/{organization_id}/test-connection", response_model=ConnectionTestResponse)
def test_connection(
    organization_id: str,
    body: Optional[ConnectionTestRequest] = None,
    adapter=Depends(get_booking_adapter),
    db: Session = Depends(get_db),
) -> ConnectionTestResponse:
    """Try the DMS with the credentials in the body, or with the saved ones when the body is incomplete."""
    if body is not None and body.is_complete():
        credentials = DmsCredentials(api_url=body.api_url, username=body.username, password=body.password)
    else:
        lookup = CredentialResolver(db).get_credentials(organization_id)
        if not lookup.configured or lookup.credentials is None:
            raise HTTPException(status_code=400, detail=lookup.error or "DMS credentials not configured")
        credentials = lookup.credentials

    result = adapter.test_connection(credentials)
    logger.info(
        "[DMS Settings] Connection test org=%s success=%s: %s",
        organization_id, result.success, result.message,
    )
    return ConnectionTestResponse(success=result.success, message=result.message)


@router.get("/{organization_id}/preview", response_model=ImportPreviewResponse)
def preview(
    organization_id: str,
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today (UTC)"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    adapter=Depends(get_booking_adapter),
    db: Session = Depends(get_db),
) -> ImportPreviewResponse:
    """Which bookings an import would create or skip. Writes nothing."""
    day = date or datetime.now(timezone.utc).date().isoformat()
    try:
        start = date_type.fromisoformat(day)
        if end_date and date_type.fromisoformat(end_date) < start:
            raise HTTPException(status_code=422, detail="end_date must not be before date")
    except ValueError:
        raise HTTPException(status_code=422, detail="Date must be in YYYY-MM-DD format")

    try:
        result = preview_import(db, adapter, organization_id, day, end_date=end_date)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AdapterError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return ImportPreviewResponse(
        date=result.date,
        end_date=result.end_date,
        total_bookings=result.total_bookings,
        will_import=[PreviewBookingRead(**vars(e)) for e in result.will_import],
        will_skip=[PreviewBookingRead(**vars(e)) for e in result.will_skip],
    )
