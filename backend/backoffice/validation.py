from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

"""
Back-office error taxonomy (authoritative)

Every domain failure raised by a service derives from BackOfficeError and
carries a stable `kind`, an HTTP status for the route layer, a message and an
optional `details` dict. Services raise; routes translate.
"""

# Maximum price: 99,99,999.99 (999,999,999 paise)
MAX_PRICE_CENTS = 999_999_999

# 100% in basis points
MAX_BPS = 10_000


class BackOfficeError(ValueError):
    """Base class for all domain errors."""
    kind = "Error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BackOfficeError):
    """400-level input problem. Raised before any mutation."""
    kind = "ValidationError"
    http_status = 400


class InvalidDiscount(ValidationError):
    kind = "InvalidDiscount"


class NotFoundError(BackOfficeError):
    kind = "NotFound"
    http_status = 404


class ProductNotFound(NotFoundError):
    kind = "ProductNotFound"


class BillNotFound(NotFoundError):
    kind = "BillNotFound"


class InsufficientStockError(BackOfficeError):
    kind = "InsufficientStock"
    http_status = 422


class InvalidReturnQuantityError(BackOfficeError):
    kind = "InvalidReturnQuantity"
    http_status = 422


class ConflictError(BackOfficeError):
    """409-level conflict. Concurrent stock mutations surface here and are retryable."""
    kind = "Conflict"
    http_status = 409


class PriceLockedError(BackOfficeError):
    kind = "PriceLocked"
    http_status = 403


class StateError(BackOfficeError):
    """Operation attempted on a document in a terminal state."""
    kind = "StateError"
    http_status = 409


class AuditNotInProgress(StateError):
    kind = "AuditNotInProgress"


# =============================================================================
# INPUT COERCION
# =============================================================================

def to_int(value: Any, field: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """
    Strict integer coercion: rejects floats, decimals and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def to_bool(value: Any, field: str) -> bool:
    """
    Strict flag coercion. JSON booleans pass through; the strings
    "true"/"false" (and 1/0) are accepted. Missing means False.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "1", "yes"):
            return True
        if text in ("false", "0", "no", ""):
            return False
    raise ValidationError(f"{field} must be true or false")


def to_decimal(value: Any, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    text = str(value).strip().replace(",", "").replace("₹", "")
    if not text:
        return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number")
    return result


def to_cents(value: Any, field: str) -> int | None:
    """Major units (e.g. 1299.50) -> integer cents, half-up."""
    amount = to_decimal(value, field)
    if amount is None:
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_to_bps(value: Any, field: str) -> int | None:
    """Percentage (e.g. 18 or 2.5) -> basis points (1800, 250)."""
    pct = to_decimal(value, field)
    if pct is None:
        return None
    return int((pct * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def require_text(value: Any, field: str, max_length: int | None = None) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_choice(value: Any, field: str, choices: tuple[str, ...]) -> str:
    text = str(value).strip().lower() if value is not None else ""
    if text not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return text


def validate_price_cents(value: int | None, field: str) -> int | None:
    if value is None:
        return None
    if value < 0:
        raise ValidationError(f"{field} cannot be negative")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed value")
    return value


def validate_bps(value: int | None, field: str) -> int | None:
    if value is None:
        return None
    if value < 0 or value > MAX_BPS:
        raise ValidationError(f"{field} must be between 0 and 100 percent")
    return value
