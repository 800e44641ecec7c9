# Overview: Service-layer operations for wastage write-offs (damaged, stained, cut, expired stock).

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, Wastage
from ..models.ledger import MOVEMENT_WASTAGE
from ..models.stock_documents import WASTAGE_REASONS
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import NotFoundError, ProductNotFound, to_int, optional_text, require_choice
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .ledger_service import apply_stock_movement


def create_wastage(
    *,
    product_id,
    quantity,
    reason,
    user_id: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> Wastage:
    """
    Write off stock. cost_impact = cost price x quantity at the time of the write-off.
    """
    product_id = to_int(product_id, "product_id", minimum=1)
    quantity = to_int(quantity, "quantity", minimum=1)
    reason = require_choice(reason, "reason", WASTAGE_REASONS)
    notes = optional_text(notes)

    def _op() -> Wastage:
        begin_immediate()
        ts = now or utcnow()
        product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
        if not product:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

        wastage = Wastage(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            reason=reason,
            notes=notes,
            cost_impact_cents=(product.cost_price_cents or 0) * quantity,
            created_by_user_id=user_id,
            created_at=ts,
        )
        db.session.add(wastage)
        db.session.flush()

        # Raises InsufficientStockError before anything is committed
        apply_stock_movement(
            product,
            MOVEMENT_WASTAGE,
            quantity,
            reference_type="wastage",
            reference_id=wastage.id,
            actor_user_id=user_id,
            note=f"Wastage: {reason}",
            occurred_at=ts,
        )

        db.session.commit()
        return wastage

    wastage = run_with_retry(_op)
    current_app.logger.info(
        "Wastage recorded product=%s qty=%s reason=%s cost_impact_cents=%s",
        wastage.product_id,
        wastage.quantity,
        wastage.reason,
        wastage.cost_impact_cents,
    )
    return wastage


def get_wastage(wastage_id: int) -> Wastage:
    wastage = db.session.get(Wastage, wastage_id)
    if not wastage:
        raise NotFoundError(f"Wastage record {wastage_id} not found")
    return wastage


def list_wastage(
    *,
    product_id: int | None = None,
    reason: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Wastage)
    if product_id:
        query = query.filter(Wastage.product_id == product_id)
    if reason:
        query = query.filter(Wastage.reason == reason.strip().lower())
    if start:
        query = query.filter(Wastage.created_at >= start)
    if end:
        query = query.filter(Wastage.created_at < end)
    query = query.order_by(Wastage.created_at.desc(), Wastage.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda w: w.to_dict())
