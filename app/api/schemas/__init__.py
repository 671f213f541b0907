"""API schemas."""
from app.api.schemas.dms import (
    DmsSettingsRead,
    DmsSettingsUpdate,
    ImportRunDetail,
    ImportRunListResponse,
    ImportRunRead,
    ImportTriggerRequest,
)

__all__ = [
    "ImportTriggerRequest",
    "ImportRunRead",
    "ImportRunDetail",
    "ImportRunListResponse",
    "DmsSettingsRead",
    "DmsSettingsUpdate",
]
