from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, to_cents, to_decimal, percent_to_bps


def _to_int(value: Any, field: str) -> int | None:
    """Spreadsheet quantities arrive as 10, "10" or 10.0; fractional values are rejected."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number")
    if isinstance(value, int):
        return value
    number = to_decimal(value, field)
    if number is None:
        return None
    if number != number.to_integral_value():
        raise ValidationError(f"{field} must be a whole number")
    return int(number)


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_date(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError("purchase_date must be an ISO-8601 date")


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] not in (None, ""):
            return raw[key]
    return None


@dataclass
class ParsedRow:
    """
    One typed product row, as produced by the spreadsheet row parser.

    Money is in cents and GST in basis points by the time a row gets here.
    """
    row_number: int
    name: str | None
    product_code: str | None = None
    category_name: str | None = None
    stock_unit: str = "PCS"
    cost_price_cents: int = 0
    selling_price_cents: int = 0
    mrp_cents: int | None = None
    gst_rate_bps: int | None = None
    stock_quantity: int = 0
    hsn_code: str | None = None
    purchase_date: datetime | None = None


def parse_row(raw: dict[str, Any], row_number: int) -> ParsedRow:
    """
    Convert an already-keyed row dict into a ParsedRow.

    Prices are major units (1299.50) unless given as *_cents; GST is a
    percentage (18, 2.5) unless given as gst_rate_bps. Raises ValidationError
    on any value that cannot be coerced.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Row must be an object")

    def _cents(field: str) -> int | None:
        if raw.get(f"{field}_cents") not in (None, ""):
            return _to_int(raw.get(f"{field}_cents"), f"{field}_cents")
        return to_cents(raw.get(field), field)

    if raw.get("gst_rate_bps") not in (None, ""):
        gst_bps = _to_int(raw.get("gst_rate_bps"), "gst_rate_bps")
    else:
        gst_bps = percent_to_bps(_first(raw, "gst_percentage", "gst"), "gst_percentage")

    code = _to_text(raw.get("product_code"))
    unit = _to_text(raw.get("stock_unit"))

    return ParsedRow(
        row_number=row_number,
        name=_to_text(_first(raw, "name", "product_name")),
        product_code=code.upper() if code else None,
        category_name=_to_text(_first(raw, "category_name", "category")),
        stock_unit=unit.upper() if unit else "PCS",
        cost_price_cents=_cents("cost_price") or 0,
        selling_price_cents=_cents("selling_price") or 0,
        mrp_cents=_cents("mrp"),
        gst_rate_bps=gst_bps,
        stock_quantity=_to_int(_first(raw, "stock_quantity", "quantity"), "stock_quantity") or 0,
        hsn_code=_to_text(raw.get("hsn_code")),
        purchase_date=_to_date(raw.get("purchase_date")),
    )


def parse_rows(raw_rows: list[dict[str, Any]], *, first_row_number: int = 1) -> tuple[list[ParsedRow], list[dict]]:
    """Parse every row; failures come back as {row, error} instead of raising."""
    parsed: list[ParsedRow] = []
    errors: list[dict] = []
    for offset, raw in enumerate(raw_rows or []):
        row_number = first_row_number + offset
        try:
            parsed.append(parse_row(raw, row_number))
        except ValidationError as exc:
            errors.append({"row": row_number, "error": exc.message})
    return parsed, errors


def validate_row(row: ParsedRow) -> list[str]:
    errors: list[str] = []
    if not row.name:
        errors.append("name is required")
    if row.cost_price_cents < 0:
        errors.append("cost_price cannot be negative")
    if row.selling_price_cents < 0:
        errors.append("selling_price cannot be negative")
    if row.mrp_cents is not None and row.mrp_cents < 0:
        errors.append("mrp cannot be negative")
    if row.gst_rate_bps is not None and not (0 <= row.gst_rate_bps <= 10_000):
        errors.append("gst_percentage must be between 0 and 100")
    if row.stock_quantity < 0:
        errors.append("stock_quantity cannot be negative")
    return errors
