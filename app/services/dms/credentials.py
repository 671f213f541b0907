"""Credential & configuration resolver for one organization's DMS import."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from app.connectors.dms.booking import DmsCredentials
from app.core.security import decrypt, is_encryption_configured
from app.models.import_settings import OrganizationImportSettings
from app.services.dms.errors import ConfigurationError
from app.services.dms.materializer import resolve_template_id

logger = logging.getLogger(__name__)


@dataclass
class CredentialLookup:
    configured: bool
    credentials: Optional[DmsCredentials] = None
    error: Optional[str] = None


@dataclass
class ImportConfig:
    template_id: str
    service_types: list[str] = field(default_factory=list)


def get_import_settings(db: Session, organization_id: str) -> Optional[OrganizationImportSettings]:
    return (
        db.query(OrganizationImportSettings)
        .filter(OrganizationImportSettings.organization_id == organization_id)
        .first()
    )


class CredentialResolver:
    """Loads decrypted DMS credentials and the effective import config."""

    def __init__(self, db: Session):
        self.db = db

    def get_credentials(self, organization_id: str) -> CredentialLookup:
        """Never raises; reports why credentials are unusable instead."""
        row = get_import_settings(self.db, organization_id)
        if row is None:
            return CredentialLookup(False, error="DMS settings not configured for this organization")
        if not row.enabled:
            return CredentialLookup(False, error="DMS integration is disabled for this organization")
        if not row.api_url or not row.username_encrypted or not row.password_encrypted:
            return CredentialLookup(False, error="DMS credentials are incomplete")
        if not is_encryption_configured():
            return CredentialLookup(False, error="Encryption not configured on server")

        try:
            username = decrypt(row.username_encrypted)
            password = decrypt(row.password_encrypted)
        except ValueError:
            logger.error("[DMS Import] Failed to decrypt credentials for org %s", organization_id)
            return CredentialLookup(False, error="Failed to decrypt DMS credentials")

        return CredentialLookup(
            True,
            credentials=DmsCredentials(api_url=row.api_url, username=username, password=password),
        )

    def resolve_import_config(self, organization_id: str) -> ImportConfig:
        row = get_import_settings(self.db, organization_id)
        template_id = resolve_template_id(
            self.db, organization_id, row.default_template_id if row else None,
        )
        service_types = [s for s in (row.service_type_filter or []) if s] if row else []
        return ImportConfig(template_id=template_id, service_types=service_types)

    def resolve(self, organization_id: str) -> tuple[DmsCredentials, ImportConfig]:
        """Credentials + config, or ConfigurationError (run-fatal)."""
        lookup = self.get_credentials(organization_id)
        if not lookup.configured or lookup.credentials is None:
            raise ConfigurationError(lookup.error or "DMS credentials not configured")
        return lookup.credentials, self.resolve_import_config(organization_id)
