"""DMS booking import engine."""
from app.services.dms.errors import (
    AdapterError,
    BookingProcessingError,
    ConfigurationError,
    DmsImportError,
    DuplicateBookingError,
    EntityCreationError,
    ErrorKind,
    UsageTrackingWarning,
)
from app.services.dms.orchestrator import (
    ImportOptions,
    ImportOrchestrator,
    ImportResult,
    RunPhase,
    run_dms_import,
)
from app.services.dms.preview import ImportPreview, preview_import
from app.services.dms.watchdog import sweep_stale_runs

__all__ = [
    "AdapterError",
    "BookingProcessingError",
    "ConfigurationError",
    "DmsImportError",
    "DuplicateBookingError",
    "EntityCreationError",
    "ErrorKind",
    "ImportOptions",
    "ImportOrchestrator",
    "ImportPreview",
    "ImportResult",
    "RunPhase",
    "UsageTrackingWarning",
    "preview_import",
    "run_dms_import",
    "sweep_stale_runs",
]
