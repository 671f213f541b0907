"""All SQLAlchemy models, single source of truth.

Import models from here:
    from app.models import Customer, Vehicle, HealthCheck, ImportRun, ...
"""
from app.models.base import Base
from app.models.check_template import CheckTemplate
from app.models.customer import Customer
from app.models.health_check import HealthCheck
from app.models.import_run import ImportRun, ImportStatus, ImportType
from app.models.import_settings import OrganizationImportSettings
from app.models.site import Site
from app.models.usage import OrganizationUsage
from app.models.vehicle import Vehicle

__all__ = [
    "Base",
    "CheckTemplate",
    "Customer",
    "HealthCheck",
    "ImportRun",
    "ImportStatus",
    "ImportType",
    "OrganizationImportSettings",
    "OrganizationUsage",
    "Site",
    "Vehicle",
]
