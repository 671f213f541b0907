"""Identity normalization and gap-filling merge used by entity resolution."""
import re
from typing import Any, Iterable, Mapping, Optional

_WHITESPACE = re.compile(r"\s+")

# Vehicle fields a later booking may fill in, never overwrite
VEHICLE_ENRICHABLE_FIELDS = ("vin", "make", "model", "year", "color", "fuel_type", "mileage")


def normalize_registration(value: Optional[str]) -> str:
    """'ab12 cde' -> 'AB12CDE'."""
    if not value:
        return ""
    return _WHITESPACE.sub("", value).upper()


def normalize_vin(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    return value.strip().upper()


def normalize_mobile(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return _WHITESPACE.sub("", value) or None


def normalize_email(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    return value.strip().lower()


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def merge_identity(
    existing: Mapping[str, Any],
    incoming: Mapping[str, Any],
    fields: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """
    Return the patch that fills gaps on `existing` from `incoming`.

    A field is included only when it is blank on the existing side and
    non-blank on the incoming side, so populated data is never replaced.
    """
    keys = fields if fields is not None else incoming.keys()
    patch: dict[str, Any] = {}
    for key in keys:
        new_value = incoming.get(key)
        if is_blank(new_value):
            continue
        if is_blank(existing.get(key)):
            patch[key] = new_value
    return patch
