# backend/backoffice/services/audit_service.py
"""
Physical stock audit service.

WHY: Shelf counts drift from the system (mis-scans at the till, unrecorded
damage). An audit scans what is physically there, shows the difference per
product and, on completion, can post adjustments so stock matches the shelf.

LIFECYCLE:
1. in_progress: created, items scanned / re-scanned / removed
2. completed: terminal; optionally posts in/out adjustments
3. cancelled: terminal; no stock effect

Item mutations and state changes on a terminal audit raise AuditNotInProgress.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, StockAudit, StockAuditItem
from ..models.stock_documents import (
    AUDIT_STATUS_IN_PROGRESS,
    AUDIT_STATUS_COMPLETED,
    AUDIT_STATUS_CANCELLED,
)
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import (
    AuditNotInProgress,
    NotFoundError,
    ProductNotFound,
    ValidationError,
    to_int,
    optional_text,
    require_text,
)
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .identifier_service import next_audit_number
from .ledger_service import set_stock_level

AUDIT_STATUSES = (AUDIT_STATUS_IN_PROGRESS, AUDIT_STATUS_COMPLETED, AUDIT_STATUS_CANCELLED)


def _load_audit(audit_id: int) -> StockAudit:
    audit = lock_for_update(db.session.query(StockAudit).filter(StockAudit.id == audit_id)).first()
    if not audit:
        raise NotFoundError(f"Stock audit {audit_id} not found")
    return audit


def _require_in_progress(audit: StockAudit) -> None:
    if audit.status != AUDIT_STATUS_IN_PROGRESS:
        raise AuditNotInProgress(
            f"Stock audit {audit.audit_number} is {audit.status}",
            details={"audit_id": audit.id, "status": audit.status},
        )


def _recompute_summary(audit: StockAudit) -> None:
    db.session.flush()
    items = db.session.query(StockAuditItem).filter(StockAuditItem.audit_id == audit.id).all()
    audit.total_products = len(items)
    audit.discrepancies = sum(1 for item in items if item.difference != 0)


def create_audit(*, user_id: int, notes: str | None = None, now: datetime | None = None) -> StockAudit:
    """Open a new audit (in_progress, no items)."""
    notes = optional_text(notes)

    def _op() -> StockAudit:
        begin_immediate()
        ts = now or utcnow()
        audit = StockAudit(
            audit_number=next_audit_number(ts),
            audit_date=ts,
            status=AUDIT_STATUS_IN_PROGRESS,
            total_products=0,
            discrepancies=0,
            notes=notes,
            conducted_by_user_id=user_id,
        )
        db.session.add(audit)
        db.session.commit()
        return audit

    audit = run_with_retry(_op)
    current_app.logger.info("Stock audit opened number=%s", audit.audit_number)
    return audit


def add_audit_item(
    audit_id: int,
    *,
    sku: str,
    physical_stock,
    notes: str | None = None,
    now: datetime | None = None,
) -> StockAudit:
    """
    Scan a product into the audit.

    difference = physical_stock - current system stock. Re-scanning a product
    replaces its earlier scan. Summary counters are recomputed on every call.
    """
    key = require_text(sku, "sku").upper()
    physical = to_int(physical_stock, "physical_stock", minimum=0)
    notes = optional_text(notes)

    def _op() -> StockAudit:
        begin_immediate()
        audit = _load_audit(audit_id)
        _require_in_progress(audit)

        product = db.session.query(Product).filter(Product.sku == key).first()
        if not product:
            raise ProductNotFound(f"Product with SKU '{key}' not found", details={"sku": key})

        item = (
            db.session.query(StockAuditItem)
            .filter(StockAuditItem.audit_id == audit.id, StockAuditItem.product_id == product.id)
            .first()
        )
        if item is None:
            item = StockAuditItem(audit_id=audit.id, product_id=product.id)
            db.session.add(item)

        item.product_name = product.name
        item.sku = product.sku
        item.system_stock = product.stock_quantity
        item.physical_stock = physical
        item.difference = physical - product.stock_quantity
        item.notes = notes
        item.scanned_at = now or utcnow()

        _recompute_summary(audit)
        db.session.commit()
        return audit

    return run_with_retry(_op)


def remove_audit_item(audit_id: int, product_id: int) -> StockAudit:
    def _op() -> StockAudit:
        begin_immediate()
        audit = _load_audit(audit_id)
        _require_in_progress(audit)

        item = (
            db.session.query(StockAuditItem)
            .filter(StockAuditItem.audit_id == audit.id, StockAuditItem.product_id == product_id)
            .first()
        )
        if item is None:
            raise NotFoundError(
                f"Product {product_id} is not part of audit {audit.audit_number}",
                details={"product_id": product_id},
            )
        audit.items.remove(item)

        _recompute_summary(audit)
        db.session.commit()
        return audit

    return run_with_retry(_op)


def complete_audit(
    audit_id: int,
    *,
    user_id: int,
    apply_adjustments: bool = False,
    now: datetime | None = None,
) -> StockAudit:
    """
    Close the audit.

    With apply_adjustments, every item with a non-zero difference sets the
    product's stock to the counted quantity through a single in/out ledger
    entry of |difference|, referencing the audit number. Items with a zero
    difference are untouched.
    """
    def _op() -> tuple[StockAudit, int]:
        begin_immediate()
        ts = now or utcnow()
        audit = _load_audit(audit_id)
        _require_in_progress(audit)

        adjusted = 0
        if apply_adjustments:
            for item in audit.items:
                if item.difference == 0:
                    continue
                product = lock_for_update(
                    db.session.query(Product).filter(Product.id == item.product_id)
                ).first()
                if not product:
                    raise ProductNotFound(f"Product {item.product_id} not found")
                entry = set_stock_level(
                    product,
                    item.physical_stock,
                    reference_type="audit",
                    reference_id=audit.audit_number,
                    actor_user_id=user_id,
                    note=f"Stock audit {audit.audit_number}",
                    occurred_at=ts,
                )
                if entry is not None:
                    adjusted += 1

        audit.status = AUDIT_STATUS_COMPLETED
        audit.adjustments_applied = bool(apply_adjustments)
        audit.completed_by_user_id = user_id
        audit.completed_at = ts
        db.session.commit()
        return audit, adjusted

    audit, adjusted = run_with_retry(_op)
    current_app.logger.info(
        "Stock audit completed number=%s discrepancies=%s adjusted=%s",
        audit.audit_number,
        audit.discrepancies,
        adjusted,
    )
    return audit


def cancel_audit(audit_id: int, *, user_id: int, now: datetime | None = None) -> StockAudit:
    def _op() -> StockAudit:
        begin_immediate()
        audit = _load_audit(audit_id)
        _require_in_progress(audit)
        audit.status = AUDIT_STATUS_CANCELLED
        audit.cancelled_by_user_id = user_id
        audit.cancelled_at = now or utcnow()
        db.session.commit()
        return audit

    audit = run_with_retry(_op)
    current_app.logger.info("Stock audit cancelled number=%s", audit.audit_number)
    return audit


def get_audit(audit_id: int) -> StockAudit:
    audit = db.session.get(StockAudit, audit_id)
    if not audit:
        raise NotFoundError(f"Stock audit {audit_id} not found")
    return audit


def list_audits(
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(StockAudit)
    if status:
        status = status.strip().lower()
        if status not in AUDIT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(AUDIT_STATUSES)}")
        query = query.filter(StockAudit.status == status)
    if start:
        query = query.filter(StockAudit.audit_date >= start)
    if end:
        query = query.filter(StockAudit.audit_date < end)
    query = query.order_by(StockAudit.audit_date.desc(), StockAudit.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda a: a.to_dict(include_items=False))
