from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import utcnow, to_utc_z

REFUND_MODES = ("cash", "upi", "card", "adjustment")

WASTAGE_REASONS = ("damage", "stain", "cutting", "defect", "expired", "other")

AUDIT_STATUS_IN_PROGRESS = "in_progress"
AUDIT_STATUS_COMPLETED = "completed"
AUDIT_STATUS_CANCELLED = "cancelled"


# =============================================================================
# RETURNS
# =============================================================================

class Return(db.Model):
    """
    Customer return against a bill.

    WHY: Returns are compensating transactions. The original bill is never
    edited; stock comes back through `return` ledger entries that point at
    the bill.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.Index("ix_returns_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    bill_number = db.Column(db.String(32), nullable=False, index=True)

    refund_cents = db.Column(db.Integer, nullable=False)
    refund_mode = db.Column(db.String(16), nullable=False, default="cash")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    bill = db.relationship("Bill", backref=db.backref("returns", lazy=True))
    items = db.relationship("ReturnItem", backref="return_doc", lazy=True, order_by="ReturnItem.id", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "bill_number": self.bill_number,
            "items": [item.to_dict() for item in self.items],
            "refund_cents": self.refund_cents,
            "refund_mode": self.refund_mode,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    # Price charged on the original bill, not the current selling price
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_refund_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False, default="Not specified")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_refund_cents": self.line_refund_cents,
            "reason": self.reason,
        }


# =============================================================================
# WASTAGE
# =============================================================================

class Wastage(db.Model):
    __tablename__ = "wastage_records"
    __table_args__ = (
        db.Index("ix_wastage_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # cost_price_cents x quantity at the time of the write-off
    cost_impact_cents = db.Column(db.Integer, nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "reason": self.reason,
            "notes": self.notes,
            "cost_impact_cents": self.cost_impact_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# STOCK AUDITS
# =============================================================================

class StockAudit(db.Model):
    """
    Physical stock reconciliation session.

    LIFECYCLE:
    1. in_progress: items scanned, re-scanned, removed
    2. completed: optionally posts adjustments for non-zero differences
    3. cancelled: discarded, no stock effect

    completed and cancelled are terminal.
    """
    __tablename__ = "stock_audits"
    __table_args__ = (
        db.UniqueConstraint("audit_number", name="uq_stock_audits_number"),
        db.Index("ix_stock_audits_status_date", "status", "audit_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # AUDIT-YYYY-MM-DD or AUDIT-YYYY-MM-DD-001
    audit_number = db.Column(db.String(32), nullable=False)
    audit_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    status = db.Column(db.String(16), nullable=False, default=AUDIT_STATUS_IN_PROGRESS, index=True)

    total_products = db.Column(db.Integer, nullable=False, default=0)
    discrepancies = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    adjustments_applied = db.Column(db.Boolean, nullable=False, default=False)

    conducted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "StockAuditItem",
        backref="audit",
        lazy=True,
        order_by="StockAuditItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "audit_number": self.audit_number,
            "audit_date": to_utc_z(self.audit_date),
            "status": self.status,
            "total_products": self.total_products,
            "discrepancies": self.discrepancies,
            "notes": self.notes,
            "adjustments_applied": self.adjustments_applied,
            "conducted_by_user_id": self.conducted_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class StockAuditItem(db.Model):
    """One scanned product in an audit; re-scans overwrite the row."""
    __tablename__ = "stock_audit_items"
    __table_args__ = (
        db.UniqueConstraint("audit_id", "product_id", name="uq_audit_items_audit_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    audit_id = db.Column(db.Integer, db.ForeignKey("stock_audits.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(96), nullable=False)

    system_stock = db.Column(db.Integer, nullable=False)
    physical_stock = db.Column(db.Integer, nullable=False)
    # physical_stock - system_stock
    difference = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audit_id": self.audit_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "system_stock": self.system_stock,
            "physical_stock": self.physical_stock,
            "difference": self.difference,
            "notes": self.notes,
            "scanned_at": to_utc_z(self.scanned_at),
        }
