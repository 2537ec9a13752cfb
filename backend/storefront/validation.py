from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable


# Maximum money value: 9,999,999.99 (999,999,999 cents)
# Prevents overflow and nonsensical totals from client payloads
MAX_AMOUNT_CENTS = 999_999_999


class StorefrontError(Exception):
    """Base for domain errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(StorefrontError):
    """400-level input problem (missing or malformed field)."""

    status_code = 400


class NotFoundError(StorefrontError):
    """Order, product or request id does not resolve where expected."""

    status_code = 404


class ConflictError(StorefrontError):
    """
    Business rule conflict: insufficient stock, order not in a state that
    allows the operation, request already decided.
    """

    status_code = 400


class AccessDeniedError(StorefrontError):
    status_code = 403


class IntegrityError(StorefrontError):
    """
    A transaction could not be committed AND the rollback failed.

    Automatic recovery is not possible at this point; the log line carries
    enough context to reconcile by hand.
    """

    status_code = 500


class UpstreamError(StorefrontError):
    """Notifier/webhook failure. Never allowed to fail a lifecycle transition."""

    status_code = 502


def error_response(err: StorefrontError) -> tuple[dict, int]:
    body: dict[str, Any] = {"success": False, "error": err.message}
    if err.details:
        body["details"] = err.details
    return body, err.status_code


# =============================================================================
# PAYLOAD HELPERS
# =============================================================================

def require_json_object(payload: Any) -> dict:
    if payload is None:
        raise ValidationError("Request body must be a JSON object")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_fields(payload: dict, fields: Iterable[str], *, message: str | None = None) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "", [])]
    if missing:
        raise ValidationError(message or f"Missing required fields: {', '.join(missing)}")


def coerce_id(value: Any, field: str) -> int:
    """
    Integer primary keys arrive as JSON numbers or digit strings.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer id")


def try_coerce_id(value: Any) -> int | None:
    try:
        return coerce_id(value, "id")
    except ValidationError:
        return None


def coerce_quantity(value: Any, *, field: str = "quantity", allow_zero: bool = False) -> int:
    """
    Quantities are whole units. 3 and 3.0 are accepted; 2.5, "3", True are not.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number")
        value = int(value)
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    return value


def parse_stock_items(items: Any, *, field: str = "items") -> list[dict]:
    """
    Normalize a [{id, quantity}] list. Ids are kept raw (a malformed id is a
    lookup miss, not a payload error); quantities are coerced.
    """
    if items is None:
        raise ValidationError(f"{field.capitalize()} field is required")
    if not isinstance(items, list):
        raise ValidationError(f"{field.capitalize()} must be an array")

    noun = field[:-1] if field.endswith("s") else field
    malformed = f"Each {noun} must have id and quantity"

    parsed = []
    for item in items:
        if not isinstance(item, dict) or item.get("id") in (None, "") or "quantity" not in item:
            raise ValidationError(malformed)
        try:
            quantity = coerce_quantity(item["quantity"])
        except ValidationError:
            raise ValidationError(malformed)
        parsed.append({"id": item["id"], "quantity": quantity})
    return parsed


def to_cents(value: Any, *, field: str, default: int = 0) -> int:
    """
    Money arrives as numbers or numeric strings in major units ("1500.50").
    Stored as integer cents, half-up rounding.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be numeric")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be numeric")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS / 100:,.2f}")
    return cents


def cents_to_amount(cents: int | None) -> float | None:
    if cents is None:
        return None
    return float(Decimal(cents) / 100)


def optional_text(value: Any, *, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text or None
