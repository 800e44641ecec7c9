"""
Return Processing Service

WHY: Returns are compensating transactions. The original bill is never
edited; returned units come back into stock through `return` ledger entries
that reference the bill number.

DESIGN PRINCIPLES:
- A return references its bill for traceability
- Cumulative bound: quantity returned across all returns of a bill never
  exceeds the quantity sold on it, per product
- Refund uses the unit price charged on the bill, not today's selling price
- Immutable once created
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Bill, BillItem, Product, Return, ReturnItem
from ..models.ledger import MOVEMENT_RETURN
from ..models.stock_documents import REFUND_MODES
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    InvalidReturnQuantityError,
    BillNotFound,
    NotFoundError,
    ProductNotFound,
    to_int,
    optional_text,
    require_choice,
)
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .ledger_service import apply_stock_movement

DEFAULT_RETURN_REASON = "Not specified"


def _normalize_items(items) -> list[dict]:
    if not items or not isinstance(items, list):
        raise ValidationError("Return must contain at least one item")
    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        normalized.append({
            "product_id": to_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1),
            "quantity": to_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
            "reason": optional_text(raw.get("reason")) or DEFAULT_RETURN_REASON,
        })
    return normalized


def _load_bill(bill_id: int | None, bill_number: str | None) -> Bill:
    query = db.session.query(Bill)
    if bill_id:
        bill_id = to_int(bill_id, "bill_id", minimum=1)
        bill = lock_for_update(query.filter(Bill.id == bill_id)).first()
    elif bill_number:
        bill = lock_for_update(query.filter(Bill.bill_number == bill_number.strip().upper())).first()
    else:
        raise ValidationError("bill_id or bill_number is required")
    if not bill:
        raise BillNotFound("Bill not found", details={"bill_id": bill_id, "bill_number": bill_number})
    return bill


def returned_quantities(bill_id: int) -> dict[int, int]:
    """Units already returned against a bill, per product."""
    rows = (
        db.session.query(ReturnItem.product_id, func.sum(ReturnItem.quantity))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(Return.bill_id == bill_id)
        .group_by(ReturnItem.product_id)
        .all()
    )
    return {product_id: int(qty or 0) for product_id, qty in rows}


def create_return(
    *,
    items,
    user_id: int,
    bill_id: int | None = None,
    bill_number: str | None = None,
    refund_mode: str | None = "cash",
    now: datetime | None = None,
) -> Return:
    """
    Record a return against a bill and put the units back into stock.

    Validation covers every line before any stock moves: each product must be
    on the bill and (this return + earlier returns) must not exceed the
    quantity sold.
    """
    normalized = _normalize_items(items)
    mode = require_choice(refund_mode or "cash", "refund_mode", REFUND_MODES)

    def _op() -> Return:
        begin_immediate()
        ts = now or utcnow()
        bill = _load_bill(bill_id, bill_number)

        sold: dict[int, int] = {}
        unit_price: dict[int, int] = {}
        names: dict[int, str] = {}
        for line in db.session.query(BillItem).filter(BillItem.bill_id == bill.id).order_by(BillItem.line_number).all():
            sold[line.product_id] = sold.get(line.product_id, 0) + line.quantity
            unit_price.setdefault(line.product_id, line.unit_price_cents)
            names.setdefault(line.product_id, line.product_name)

        already = returned_quantities(bill.id)
        requested: dict[int, int] = {}
        for item in normalized:
            pid = item["product_id"]
            if pid not in sold:
                raise InvalidReturnQuantityError(
                    f"Product {pid} is not on bill {bill.bill_number}",
                    details={"product_id": pid, "bill_number": bill.bill_number},
                )
            requested[pid] = requested.get(pid, 0) + item["quantity"]

        for pid, qty in requested.items():
            previously = already.get(pid, 0)
            if previously + qty > sold[pid]:
                raise InvalidReturnQuantityError(
                    f"Cannot return {qty} units of {names[pid]}. Sold: {sold[pid]}, "
                    f"already returned: {previously}, available: {sold[pid] - previously}",
                    details={
                        "product_id": pid,
                        "sold": sold[pid],
                        "already_returned": previously,
                        "requested": qty,
                    },
                )

        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product).filter(Product.id.in_(sorted(requested)))
            ).all()
        }

        return_doc = Return(
            bill_id=bill.id,
            bill_number=bill.bill_number,
            refund_cents=0,
            refund_mode=mode,
            created_by_user_id=user_id,
            created_at=ts,
        )
        db.session.add(return_doc)

        refund = 0
        for item in normalized:
            pid = item["product_id"]
            product = products.get(pid)
            if product is None:
                raise ProductNotFound(f"Product {pid} not found", details={"product_id": pid})
            line_refund = unit_price[pid] * item["quantity"]
            refund += line_refund
            return_doc.items.append(ReturnItem(
                product_id=pid,
                product_name=names[pid],
                quantity=item["quantity"],
                unit_price_cents=unit_price[pid],
                line_refund_cents=line_refund,
                reason=item["reason"],
            ))
            apply_stock_movement(
                product,
                MOVEMENT_RETURN,
                item["quantity"],
                reference_type="bill",
                reference_id=bill.bill_number,
                actor_user_id=user_id,
                note=f"Return: {item['reason']}",
                occurred_at=ts,
            )

        return_doc.refund_cents = refund
        db.session.commit()
        return return_doc

    return_doc = run_with_retry(_op)
    current_app.logger.info(
        "Return processed bill=%s items=%s refund_cents=%s",
        return_doc.bill_number,
        len(return_doc.items),
        return_doc.refund_cents,
    )
    return return_doc


def get_return(return_id: int) -> Return:
    return_doc = db.session.get(Return, return_id)
    if not return_doc:
        raise NotFoundError(f"Return {return_id} not found")
    return return_doc


def list_bill_returns(bill_id: int) -> list[Return]:
    return (
        db.session.query(Return)
        .filter(Return.bill_id == bill_id)
        .order_by(Return.created_at.asc(), Return.id.asc())
        .all()
    )


def list_returns(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    bill_number: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Return)
    if start:
        query = query.filter(Return.created_at >= start)
    if end:
        query = query.filter(Return.created_at < end)
    if bill_number:
        query = query.filter(Return.bill_number == bill_number.strip().upper())
    query = query.order_by(Return.created_at.desc(), Return.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda r: r.to_dict())
