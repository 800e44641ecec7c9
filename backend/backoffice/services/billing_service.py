"""
Billing Service - point-of-sale bills

WHY: A bill is the only path by which stock leaves the shop for money. One
call validates the cart, prices it, takes the stock out through the ledger,
locks prices, resolves the customer and persists the bill, all in a single
transaction. Nothing is visible unless everything succeeded.

Bills are immutable once written; returns are separate documents.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Bill, BillItem, BillCharge, Product, User
from ..models.billing import PAYMENT_MODES
from ..models.ledger import MOVEMENT_OUT
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    InvalidDiscount,
    InsufficientStockError,
    ProductNotFound,
    BillNotFound,
    MAX_BPS,
    to_int,
    optional_text,
    require_choice,
)
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .customer_service import resolve_customer, recompute_customer_totals
from .fitting_service import get_fitting
from .identifier_service import next_bill_number
from .ledger_service import apply_stock_movement
from .pricing_service import LineInput, ChargeInput, calculate_bill
from .products_service import lock_price


def _normalize_items(items) -> list[dict]:
    if not items or not isinstance(items, list):
        raise ValidationError("Bill must contain at least one item")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        price = to_int(raw.get("unit_price_cents"), f"items[{index}].unit_price_cents", required=False)
        if price is not None and price < 0:
            raise ValidationError(f"items[{index}].unit_price_cents cannot be negative")
        normalized.append({
            "product_id": to_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1),
            "quantity": to_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
            "unit_price_cents": price,
        })
    return normalized


def _normalize_charges(charges) -> list[ChargeInput]:
    """
    A charge may name a catalogue entry by fitting_id; its name, unit and
    rate are used unless the charge supplies its own.
    """
    result = []
    for index, raw in enumerate(charges or []):
        if not isinstance(raw, dict):
            raise ValidationError(f"additional_charges[{index}] must be an object")
        quantity = to_int(raw.get("quantity"), f"additional_charges[{index}].quantity", required=False)
        rate = to_int(raw.get("rate_cents"), f"additional_charges[{index}].rate_cents", required=False)
        name = optional_text(raw.get("service_name"))
        unit = optional_text(raw.get("unit"))

        fitting_id = to_int(raw.get("fitting_id"), f"additional_charges[{index}].fitting_id", required=False)
        if fitting_id is not None:
            fitting = get_fitting(fitting_id)
            if not fitting.is_active:
                raise ValidationError(
                    f"Fitting service '{fitting.service_name}' is not active",
                    details={"fitting_id": fitting.id},
                )
            name = name or fitting.service_name
            unit = unit or fitting.unit
            rate = fitting.rate_cents if rate is None else rate

        result.append(ChargeInput(
            service_name=name,
            rate_cents=rate or 0,
            quantity=quantity if quantity is not None else 1,
            unit=unit or "item",
        ))
    return result


def _check_stock(items: list[dict], products: dict[int, Product]) -> None:
    """Aggregate requested quantity per product against stock on hand."""
    requested: dict[int, int] = {}
    for item in items:
        requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity"]

    for product_id, qty in requested.items():
        product = products[product_id]
        if product.stock_quantity < qty:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}. Available: {product.stock_quantity}, requested: {qty}",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "available": product.stock_quantity,
                    "requested": qty,
                },
            )


def create_bill(
    *,
    items,
    user_id: int,
    customer: dict | None = None,
    discount_bps: int | None = 0,
    payment_mode: str | None = "cash",
    additional_charges=None,
    now: datetime | None = None,
) -> Bill:
    """
    Create a bill and take its stock out.

    Everything is validated before the first write: products exist, aggregate
    quantity per product fits current stock, discount within 0-100%. The
    transaction then mints the bill number, writes one `out` ledger entry per
    line (in input order), locks each product's price on its first sale,
    resolves the customer by mobile, persists the bill and recomputes the
    customer's totals.
    """
    normalized = _normalize_items(items)
    charges = _normalize_charges(additional_charges)
    discount_bps = to_int(discount_bps, "discount_bps", required=False) or 0
    if discount_bps < 0 or discount_bps > MAX_BPS:
        raise InvalidDiscount("Discount must be between 0 and 100 percent", details={"discount_bps": discount_bps})
    mode = require_choice(payment_mode or "cash", "payment_mode", PAYMENT_MODES)

    def _op() -> Bill:
        begin_immediate()
        ts = now or utcnow()

        product_ids = sorted({item["product_id"] for item in normalized})
        rows = lock_for_update(
            db.session.query(Product).filter(Product.id.in_(product_ids))
        ).all()
        products = {p.id: p for p in rows}
        for product_id in product_ids:
            if product_id not in products:
                raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

        _check_stock(normalized, products)

        lines = []
        for item in normalized:
            product = products[item["product_id"]]
            price = item["unit_price_cents"]
            lines.append(LineInput(
                unit_price_cents=price if price is not None else product.selling_price_cents,
                quantity=item["quantity"],
                gst_rate_bps=product.gst_rate_bps or 0,
            ))
        totals = calculate_bill(lines, discount_bps=discount_bps, charges=charges)

        bill_customer = resolve_customer(customer)
        bill_number = next_bill_number(ts)

        bill = Bill(
            bill_number=bill_number,
            customer_id=bill_customer.id if bill_customer else None,
            customer_name=bill_customer.name if bill_customer else optional_text((customer or {}).get("name")),
            customer_mobile=bill_customer.mobile_number if bill_customer else optional_text((customer or {}).get("mobile_number")),
            customer_pan_card=bill_customer.pan_card if bill_customer else None,
            customer_email=bill_customer.email if bill_customer else None,
            customer_gst_number=bill_customer.gst_number if bill_customer else None,
            customer_firm_name=bill_customer.firm_name if bill_customer else None,
            subtotal_cents=totals.subtotal_cents,
            gst_cents=totals.gst_cents,
            gst_rate_bps=totals.effective_gst_bps,
            additional_charges_cents=totals.additional_charges_cents,
            discount_bps=totals.discount_bps,
            discount_cents=totals.discount_cents,
            grand_total_cents=totals.grand_total_cents,
            payment_mode=mode,
            created_by_user_id=user_id,
            created_at=ts,
        )
        db.session.add(bill)

        for line_number, (item, priced) in enumerate(zip(normalized, totals.lines), start=1):
            product = products[item["product_id"]]
            bill.items.append(BillItem(
                line_number=line_number,
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                category_id=product.category_id,
                category_name=product.category.name if product.category else None,
                quantity=priced.quantity,
                unit_price_cents=priced.unit_price_cents,
                gst_rate_bps=priced.gst_rate_bps,
                gst_cents=priced.gst_cents,
                line_subtotal_cents=priced.line_subtotal_cents,
                line_total_cents=priced.line_total_cents,
            ))
            apply_stock_movement(
                product,
                MOVEMENT_OUT,
                priced.quantity,
                reference_type="bill",
                reference_id=bill_number,
                actor_user_id=user_id,
                note=f"Sale {bill_number}",
                occurred_at=ts,
            )
            lock_price(product, actor_user_id=user_id, now=ts)

        for charge in totals.charges:
            bill.additional_charges.append(BillCharge(
                service_name=charge.service_name,
                quantity=charge.quantity,
                unit=charge.unit,
                rate_cents=charge.rate_cents,
                amount_cents=charge.amount_cents,
            ))

        db.session.flush()
        if bill_customer:
            recompute_customer_totals(bill_customer.id)

        db.session.commit()
        return bill

    bill = run_with_retry(_op)
    current_app.logger.info(
        "Bill created number=%s items=%s grand_total_cents=%s",
        bill.bill_number,
        len(bill.items),
        bill.grand_total_cents,
    )
    return bill


def get_bill(bill_id: int) -> Bill:
    bill = db.session.get(Bill, bill_id)
    if not bill:
        raise BillNotFound(f"Bill {bill_id} not found")
    return bill


def get_bill_by_number(bill_number: str) -> Bill:
    key = (bill_number or "").strip().upper()
    bill = db.session.query(Bill).filter(Bill.bill_number == key).first()
    if not bill:
        raise BillNotFound(f"Bill '{key}' not found", details={"bill_number": key})
    return bill


def list_bills(
    *,
    user: User | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    customer_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Bills newest first. Staff see only the bills they created; admins see all.
    `end` is exclusive.
    """
    query = db.session.query(Bill)
    if user is not None and not user.is_admin:
        query = query.filter(Bill.created_by_user_id == user.id)
    if start:
        query = query.filter(Bill.created_at >= start)
    if end:
        query = query.filter(Bill.created_at < end)
    if customer_id:
        query = query.filter(Bill.customer_id == customer_id)
    query = query.order_by(Bill.created_at.desc(), Bill.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda b: b.to_dict())
