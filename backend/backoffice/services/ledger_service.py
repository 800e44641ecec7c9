# Overview: Service-layer operations for the stock ledger; the only code path that changes on-hand stock.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Product, StockLedgerEntry
from ..models.ledger import MOVEMENT_TYPES, INBOUND_MOVEMENTS, MOVEMENT_IN, MOVEMENT_OUT
from ..time_utils import utcnow
from ..validation import ValidationError, InsufficientStockError, ProductNotFound
"""
Stock Ledger Invariants (authoritative)

- Append-only: entries are inserted, never updated or deleted.
- Product.stock_quantity changes only here, together with exactly one entry.
- previous_stock/new_stock chain: each entry's previous_stock equals the
  new_stock of the product's prior entry.
- For every product: stock_quantity == sum(in, return) - sum(out, wastage).
- No commit here; callers own the transaction boundary.
"""


def apply_stock_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    *,
    reference_type: str | None = None,
    reference_id: str | int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
    occurred_at: datetime | None = None,
) -> StockLedgerEntry:
    """
    Move `quantity` units in or out of a product and append the ledger entry.

    The caller is expected to have loaded `product` under lock_for_update()
    inside its transaction. Raises InsufficientStockError rather than letting
    stock go negative.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")
    if quantity is None or quantity <= 0:
        raise ValidationError("Movement quantity must be positive")

    previous = product.stock_quantity or 0
    if movement_type in INBOUND_MOVEMENTS:
        new_stock = previous + quantity
    else:
        new_stock = previous - quantity
        if new_stock < 0:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "available": previous,
                    "requested": quantity,
                },
            )

    product.stock_quantity = new_stock

    entry = StockLedgerEntry(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new_stock,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    return entry


def set_stock_level(
    product: Product,
    target: int,
    **kwargs,
) -> StockLedgerEntry | None:
    """
    Bring stock to an absolute level with a single in/out entry of the delta.

    Used by audit adjustments and import updates. Returns None when the level
    already matches (no zero-quantity entries are written).
    """
    if target < 0:
        raise ValidationError("Stock level cannot be negative")
    delta = target - (product.stock_quantity or 0)
    if delta == 0:
        return None
    movement = MOVEMENT_IN if delta > 0 else MOVEMENT_OUT
    return apply_stock_movement(product, movement, abs(delta), **kwargs)


def get_stock_history(product_id: int, *, limit: int = 100, offset: int = 0) -> list[StockLedgerEntry]:
    """Ledger entries for one product, newest first."""
    if not db.session.get(Product, product_id):
        raise ProductNotFound(f"Product {product_id} not found")
    return (
        db.session.query(StockLedgerEntry)
        .filter(StockLedgerEntry.product_id == product_id)
        .order_by(StockLedgerEntry.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_stock_entries(
    *,
    movement_type: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[StockLedgerEntry]:
    query = db.session.query(StockLedgerEntry)
    if movement_type:
        query = query.filter(StockLedgerEntry.movement_type == movement_type)
    if reference_type:
        query = query.filter(StockLedgerEntry.reference_type == reference_type)
    if reference_id:
        query = query.filter(StockLedgerEntry.reference_id == str(reference_id))
    if start:
        query = query.filter(StockLedgerEntry.occurred_at >= start)
    if end:
        query = query.filter(StockLedgerEntry.occurred_at < end)
    return query.order_by(StockLedgerEntry.id.desc()).offset(offset).limit(limit).all()


def verify_product_ledger(product_id: int) -> dict:
    """
    Replay a product's ledger and compare against its stored stock.

    Reports the replayed quantity, whether it matches stock_quantity, and any
    entries whose previous_stock does not chain from the entry before.
    """
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFound(f"Product {product_id} not found")

    entries = (
        db.session.query(StockLedgerEntry)
        .filter(StockLedgerEntry.product_id == product_id)
        .order_by(StockLedgerEntry.id.asc())
        .all()
    )

    replayed = 0
    broken_links = []
    for entry in entries:
        if entry.previous_stock != replayed:
            broken_links.append({
                "entry_id": entry.id,
                "expected_previous": replayed,
                "recorded_previous": entry.previous_stock,
            })
        replayed += entry.signed_quantity

    return {
        "product_id": product.id,
        "sku": product.sku,
        "stock_quantity": product.stock_quantity,
        "ledger_quantity": replayed,
        "entry_count": len(entries),
        "consistent": replayed == product.stock_quantity and not broken_links,
        "broken_links": broken_links,
    }


def verify_all_products() -> list[dict]:
    return [verify_product_ledger(pid) for (pid,) in db.session.query(Product.id).order_by(Product.id).all()]
