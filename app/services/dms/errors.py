"""Error taxonomy for DMS imports.

Each error carries an ErrorKind; the orchestrator decides "abort run" vs
"record against the booking and continue" from `run_fatal`, never from the
message text.
"""
import enum


class ErrorKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    ADAPTER = "adapter"
    ENTITY_CREATION = "entity_creation"
    BOOKING_PROCESSING = "booking_processing"
    DUPLICATE = "duplicate"
    USAGE_TRACKING = "usage_tracking"

    @property
    def run_fatal(self) -> bool:
        return self in (ErrorKind.CONFIGURATION, ErrorKind.ADAPTER)


class DmsImportError(Exception):
    """Base class for every error raised inside an import run."""

    kind: ErrorKind = ErrorKind.BOOKING_PROCESSING

    @property
    def run_fatal(self) -> bool:
        return self.kind.run_fatal


class ConfigurationError(DmsImportError):
    """Missing/invalid credentials or no usable inspection template."""

    kind = ErrorKind.CONFIGURATION


class AdapterError(DmsImportError):
    """The DMS fetch reported failure."""

    kind = ErrorKind.ADAPTER


class EntityCreationError(DmsImportError):
    """Insert/update of a Customer, Vehicle or HealthCheck failed."""

    kind = ErrorKind.ENTITY_CREATION

    def __init__(self, entity: str, message: str):
        self.entity = entity
        self.detail = message
        super().__init__(f"Failed to create {entity}: {message}")


class BookingProcessingError(DmsImportError):
    """Any other failure while processing a single booking."""

    kind = ErrorKind.BOOKING_PROCESSING


class DuplicateBookingError(DmsImportError):
    """A concurrent run already created the health check for this booking."""

    kind = ErrorKind.DUPLICATE


class UsageTrackingWarning(UserWarning):
    """Best-effort usage counter increment failed. Logged, never raised."""

    kind = ErrorKind.USAGE_TRACKING
