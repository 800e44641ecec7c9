# Overview: Service-layer operations for import LOTs (read and close).

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Lot, Product
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import NotFoundError, StateError, ValidationError

LOT_STATUS_ACTIVE = "active"
LOT_STATUS_CLOSED = "closed"
LOT_STATUSES = (LOT_STATUS_ACTIVE, LOT_STATUS_CLOSED)


def get_lot(lot_id: int) -> Lot:
    lot = db.session.get(Lot, lot_id)
    if not lot:
        raise NotFoundError(f"Lot {lot_id} not found")
    return lot


def get_lot_products(lot_id: int) -> list[Product]:
    get_lot(lot_id)
    return (
        db.session.query(Product)
        .filter(Product.lot_id == lot_id)
        .order_by(Product.id.asc())
        .all()
    )


def list_lots(
    *,
    status: str | None = None,
    category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Lot)
    if status:
        status = status.strip().lower()
        if status not in LOT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(LOT_STATUSES)}")
        query = query.filter(Lot.status == status)
    if category_id:
        query = query.filter(Lot.category_id == category_id)
    query = query.order_by(Lot.upload_date.desc(), Lot.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda lot: lot.to_dict())


def close_lot(lot_id: int, *, user_id: int) -> Lot:
    """active -> closed. Bookkeeping only; products and stock are untouched."""
    lot = get_lot(lot_id)
    if lot.status == LOT_STATUS_CLOSED:
        raise StateError(f"Lot {lot.lot_number} is already closed", details={"lot_id": lot.id})
    lot.status = LOT_STATUS_CLOSED
    lot.closed_by_user_id = user_id
    lot.closed_at = utcnow()
    db.session.commit()
    current_app.logger.info("Lot closed number=%s", lot.lot_number)
    return lot
