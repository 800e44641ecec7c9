# Overview: Pure bill arithmetic; no database access.

from __future__ import annotations

from dataclasses import dataclass, field

from ..validation import ValidationError, InvalidDiscount, MAX_BPS

"""
Pricing rules (authoritative)

- line_subtotal = unit_price x quantity
- gst = line_subtotal x gst_rate, half-up to the cent
- line_total = line_subtotal + gst (GST-inclusive)
- Discount applies to the pre-GST subtotal only, never to GST or charges.
- Additional charges with an empty name or a non-positive rate are dropped.
- grand_total = subtotal + charges + gst - discount
- Order of lines does not change any total.
"""


def apply_bps(amount_cents: int, bps: int) -> int:
    """amount x bps / 10000, rounded half-up. Both inputs are non-negative."""
    return (amount_cents * bps + 5_000) // 10_000


@dataclass(frozen=True)
class LineInput:
    unit_price_cents: int
    quantity: int
    gst_rate_bps: int = 0


@dataclass(frozen=True)
class ChargeInput:
    service_name: str | None
    rate_cents: int
    quantity: int = 1
    unit: str = "item"


@dataclass(frozen=True)
class PricedLine:
    unit_price_cents: int
    quantity: int
    gst_rate_bps: int
    line_subtotal_cents: int
    gst_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class PricedCharge:
    service_name: str
    quantity: int
    unit: str
    rate_cents: int
    amount_cents: int


@dataclass(frozen=True)
class BillTotals:
    lines: list[PricedLine] = field(default_factory=list)
    charges: list[PricedCharge] = field(default_factory=list)
    subtotal_cents: int = 0
    gst_cents: int = 0
    additional_charges_cents: int = 0
    discount_bps: int = 0
    discount_cents: int = 0
    grand_total_cents: int = 0

    @property
    def effective_gst_bps(self) -> int:
        """Aggregate GST as a rate over the subtotal, for display."""
        if not self.subtotal_cents:
            return 0
        return (self.gst_cents * 10_000 + self.subtotal_cents // 2) // self.subtotal_cents


def price_line(line: LineInput) -> PricedLine:
    if line.unit_price_cents is None or line.unit_price_cents < 0:
        raise ValidationError("Unit price cannot be negative")
    if line.quantity is None or line.quantity <= 0:
        raise ValidationError("Quantity must be greater than 0")
    gst_bps = line.gst_rate_bps or 0
    if gst_bps < 0 or gst_bps > MAX_BPS:
        raise ValidationError("GST rate must be between 0 and 100 percent")

    subtotal = line.unit_price_cents * line.quantity
    gst = apply_bps(subtotal, gst_bps)
    return PricedLine(
        unit_price_cents=line.unit_price_cents,
        quantity=line.quantity,
        gst_rate_bps=gst_bps,
        line_subtotal_cents=subtotal,
        gst_cents=gst,
        line_total_cents=subtotal + gst,
    )


def price_charges(charges: list[ChargeInput]) -> list[PricedCharge]:
    priced = []
    for charge in charges or []:
        name = (charge.service_name or "").strip()
        if charge.rate_cents is not None and charge.rate_cents < 0:
            raise ValidationError("Charge rate cannot be negative")
        if charge.quantity is not None and charge.quantity < 0:
            raise ValidationError("Charge quantity cannot be negative")
        if not name or not charge.rate_cents or charge.rate_cents <= 0:
            continue
        quantity = charge.quantity if charge.quantity else 1
        priced.append(PricedCharge(
            service_name=name,
            quantity=quantity,
            unit=charge.unit or "item",
            rate_cents=charge.rate_cents,
            amount_cents=quantity * charge.rate_cents,
        ))
    return priced


def calculate_bill(
    lines: list[LineInput],
    *,
    discount_bps: int = 0,
    charges: list[ChargeInput] | None = None,
) -> BillTotals:
    discount_bps = discount_bps or 0
    if discount_bps < 0 or discount_bps > MAX_BPS:
        raise InvalidDiscount(
            "Discount must be between 0 and 100 percent",
            details={"discount_bps": discount_bps},
        )

    priced_lines = [price_line(line) for line in lines]
    priced_charges = price_charges(charges or [])

    subtotal = sum(p.line_subtotal_cents for p in priced_lines)
    gst = sum(p.gst_cents for p in priced_lines)
    charges_total = sum(c.amount_cents for c in priced_charges)
    discount = apply_bps(subtotal, discount_bps)

    return BillTotals(
        lines=priced_lines,
        charges=priced_charges,
        subtotal_cents=subtotal,
        gst_cents=gst,
        additional_charges_cents=charges_total,
        discount_bps=discount_bps,
        discount_cents=discount,
        grand_total_cents=subtotal + charges_total + gst - discount,
    )
