"""Entity resolution: map a DMS booking onto canonical Customer / Vehicle rows.

Each resolver walks an ordered list of MatchStrategy entries; the first
strategy whose lookup returns a row wins, its backfill patch is applied, and
no later strategy runs. When nothing matches, a new row is created with the
external identity attached. Over successive runs the external ids spread to
rows first matched by email, mobile, registration or VIN, so later runs hit
the cheap external-id strategy.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.connectors.dms.booking import ExternalBooking
from app.models.customer import Customer
from app.models.vehicle import Vehicle
from app.services.dms.errors import EntityCreationError
from app.services.dms.identity import (
    VEHICLE_ENRICHABLE_FIELDS,
    is_blank,
    merge_identity,
    normalize_email,
    normalize_mobile,
    normalize_registration,
    normalize_vin,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", Customer, Vehicle)


@dataclass(frozen=True)
class ResolutionContext:
    organization_id: str
    external_source: str
    booking: ExternalBooking
    customer_id: Optional[str] = None  # set when resolving the vehicle


@dataclass(frozen=True)
class MatchStrategy(Generic[T]):
    """One rung of the fallback chain: how to find a row, and what to patch on it."""

    name: str
    lookup: Callable[[Session, ResolutionContext], Optional[T]]
    backfill: Optional[Callable[[T, ResolutionContext], dict[str, Any]]] = None


@dataclass(frozen=True)
class Resolution:
    entity_id: str
    created: bool
    matched_by: Optional[str] = None  # strategy name, None when created


def _snapshot(row: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    return {f: getattr(row, f) for f in fields}


def _external_identity_patch(row: Any, external_id: Optional[str], external_source: str) -> dict[str, Any]:
    """Attach the DMS identity as one (source, id) pair, only to rows that have no external id yet."""
    if is_blank(external_id) or not is_blank(row.external_id):
        return {}
    return {"external_id": external_id, "external_source": external_source}


class _StrategyResolver(Generic[T]):
    entity_name = "entity"

    def __init__(self, db: Session, strategies: list[MatchStrategy[T]]):
        self.db = db
        self.strategies = strategies

    def _match(self, ctx: ResolutionContext) -> Optional[Resolution]:
        for strategy in self.strategies:
            row = strategy.lookup(self.db, ctx)
            if row is None:
                continue
            row_id = row.id
            patch = strategy.backfill(row, ctx) if strategy.backfill else {}
            if patch:
                self._apply_patch(row, patch, strategy.name)
            logger.debug(
                "[DMS Import] %s %s matched by %s (booking %s)",
                self.entity_name, row_id, strategy.name, ctx.booking.booking_id,
            )
            return Resolution(entity_id=row_id, created=False, matched_by=strategy.name)
        return None

    def _apply_patch(self, row: T, patch: dict[str, Any], strategy_name: str) -> None:
        row_id = row.id
        for key, value in patch.items():
            setattr(row, key, value)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            # The match still stands; enrichment is retried on the next run.
            self.db.rollback()
            logger.warning(
                "[DMS Import] Failed to backfill %s %s after %s match: %s",
                self.entity_name, row_id, strategy_name, e,
            )

    def _insert(self, row: T) -> str:
        self.db.add(row)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            detail = str(getattr(e, "orig", None) or e)
            raise EntityCreationError(self.entity_name, detail) from e
        return row.id


# ── Customers ────────────────────────────────────────────────────────


def _customer_by_external_id(db: Session, ctx: ResolutionContext) -> Optional[Customer]:
    if is_blank(ctx.booking.customer_id):
        return None
    return (
        db.query(Customer)
        .filter(
            Customer.organization_id == ctx.organization_id,
            Customer.external_source == ctx.external_source,
            Customer.external_id == ctx.booking.customer_id,
        )
        .first()
    )


def _customer_by_email(db: Session, ctx: ResolutionContext) -> Optional[Customer]:
    email = normalize_email(ctx.booking.customer_email)
    if not email:
        return None
    return (
        db.query(Customer)
        .filter(
            Customer.organization_id == ctx.organization_id,
            func.lower(Customer.email) == email,
        )
        .order_by(Customer.created_at)
        .first()
    )


def _customer_by_mobile(db: Session, ctx: ResolutionContext) -> Optional[Customer]:
    mobile = normalize_mobile(ctx.booking.customer_mobile)
    if not mobile:
        return None
    return (
        db.query(Customer)
        .filter(
            Customer.organization_id == ctx.organization_id,
            Customer.mobile == mobile,
        )
        .order_by(Customer.created_at)
        .first()
    )


_CUSTOMER_BACKFILL_FIELDS = ("title", "phone")


def _customer_backfill(row: Customer, ctx: ResolutionContext) -> dict[str, Any]:
    b = ctx.booking
    incoming = {"title": b.customer_title, "phone": b.customer_phone}
    patch = merge_identity(_snapshot(row, _CUSTOMER_BACKFILL_FIELDS), incoming)
    patch.update(_external_identity_patch(row, b.customer_id, ctx.external_source))
    return patch


CUSTOMER_STRATEGIES: list[MatchStrategy[Customer]] = [
    MatchStrategy("external_id", _customer_by_external_id),
    MatchStrategy("email", _customer_by_email, _customer_backfill),
    MatchStrategy("mobile", _customer_by_mobile, _customer_backfill),
]


class CustomerResolver(_StrategyResolver[Customer]):
    entity_name = "customer"

    def __init__(self, db: Session, strategies: Optional[list[MatchStrategy[Customer]]] = None):
        super().__init__(db, strategies if strategies is not None else CUSTOMER_STRATEGIES)

    def resolve(self, organization_id: str, external_source: str, booking: ExternalBooking) -> Resolution:
        ctx = ResolutionContext(organization_id, external_source, booking)
        match = self._match(ctx)
        if match:
            return match

        customer = Customer(
            organization_id=organization_id,
            first_name=booking.customer_first_name or "",
            last_name=booking.customer_last_name or "",
            title=booking.customer_title,
            email=normalize_email(booking.customer_email),
            mobile=normalize_mobile(booking.customer_mobile) or booking.customer_phone,
            phone=booking.customer_phone,
            external_id=booking.customer_id or None,
            external_source=external_source,
        )
        customer_id = self._insert(customer)
        logger.info("[DMS Import] Created customer %s (booking %s)", customer_id, booking.booking_id)
        return Resolution(entity_id=customer_id, created=True)


# ── Vehicles ─────────────────────────────────────────────────────────


def _vehicle_by_external_id(db: Session, ctx: ResolutionContext) -> Optional[Vehicle]:
    if is_blank(ctx.booking.vehicle_id):
        return None
    return (
        db.query(Vehicle)
        .filter(
            Vehicle.organization_id == ctx.organization_id,
            Vehicle.external_source == ctx.external_source,
            Vehicle.external_id == ctx.booking.vehicle_id,
        )
        .first()
    )


def _vehicle_by_registration(db: Session, ctx: ResolutionContext) -> Optional[Vehicle]:
    registration = normalize_registration(ctx.booking.vehicle_reg)
    if not registration:
        return None
    return (
        db.query(Vehicle)
        .filter(
            Vehicle.organization_id == ctx.organization_id,
            Vehicle.registration == registration,
        )
        .order_by(Vehicle.created_at)
        .first()
    )


def _vehicle_by_vin(db: Session, ctx: ResolutionContext) -> Optional[Vehicle]:
    vin = normalize_vin(ctx.booking.vehicle_vin)
    if not vin:
        return None
    return (
        db.query(Vehicle)
        .filter(
            Vehicle.organization_id == ctx.organization_id,
            Vehicle.vin == vin,
        )
        .order_by(Vehicle.created_at)
        .first()
    )


def _incoming_vehicle_fields(booking: ExternalBooking) -> dict[str, Any]:
    return {
        "vin": normalize_vin(booking.vehicle_vin),
        "make": booking.vehicle_make,
        "model": booking.vehicle_model,
        "year": booking.vehicle_year,
        "color": booking.vehicle_color,
        "fuel_type": booking.vehicle_fuel_type,
        "mileage": booking.vehicle_mileage,
    }


def _vehicle_backfill(row: Vehicle, ctx: ResolutionContext) -> dict[str, Any]:
    """Fill external identity and empty descriptive fields; re-home to the booking's customer."""
    b = ctx.booking
    patch = merge_identity(
        _snapshot(row, VEHICLE_ENRICHABLE_FIELDS), _incoming_vehicle_fields(b), VEHICLE_ENRICHABLE_FIELDS,
    )
    patch.update(_external_identity_patch(row, b.vehicle_id, ctx.external_source))
    if ctx.customer_id and row.customer_id != ctx.customer_id:
        patch["customer_id"] = ctx.customer_id
    return patch


def _vehicle_backfill_with_registration(row: Vehicle, ctx: ResolutionContext) -> dict[str, Any]:
    patch = _vehicle_backfill(row, ctx)
    registration = normalize_registration(ctx.booking.vehicle_reg)
    if registration and row.registration != registration:
        patch["registration"] = registration
    return patch


VEHICLE_STRATEGIES: list[MatchStrategy[Vehicle]] = [
    MatchStrategy("external_id", _vehicle_by_external_id),
    MatchStrategy("registration", _vehicle_by_registration, _vehicle_backfill),
    MatchStrategy("vin", _vehicle_by_vin, _vehicle_backfill_with_registration),
]


class VehicleResolver(_StrategyResolver[Vehicle]):
    entity_name = "vehicle"

    def __init__(self, db: Session, strategies: Optional[list[MatchStrategy[Vehicle]]] = None):
        super().__init__(db, strategies if strategies is not None else VEHICLE_STRATEGIES)

    def resolve(
        self,
        organization_id: str,
        external_source: str,
        customer_id: str,
        booking: ExternalBooking,
    ) -> Resolution:
        ctx = ResolutionContext(organization_id, external_source, booking, customer_id)
        match = self._match(ctx)
        if match:
            return match

        registration = normalize_registration(booking.vehicle_reg)
        if not registration:
            raise EntityCreationError("vehicle", "Vehicle registration is required")

        vehicle = Vehicle(
            organization_id=organization_id,
            customer_id=customer_id,
            registration=registration,
            external_id=booking.vehicle_id or None,
            external_source=external_source,
            **_incoming_vehicle_fields(booking),
        )
        vehicle_id = self._insert(vehicle)
        logger.info("[DMS Import] Created vehicle %s %s (booking %s)", vehicle_id, registration, booking.booking_id)
        return Resolution(entity_id=vehicle_id, created=True)
