from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.time_utils import utcnow, to_utc_z

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_RETURN = "return"
MOVEMENT_WASTAGE = "wastage"

MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_RETURN, MOVEMENT_WASTAGE)

# Movements that add to on-hand stock; everything else subtracts
INBOUND_MOVEMENTS = (MOVEMENT_IN, MOVEMENT_RETURN)


class StockLedgerEntry(db.Model):
    """
    Immutable record of one stock quantity change.

    APPEND-ONLY: rows are inserted by ledger_service and never updated or
    deleted. The mapper listeners below refuse flushes that would do either.

    reference_type/reference_id point at the originating document
    (bill, return, wastage, audit, import, product).
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_ledger_quantity_positive"),
        db.CheckConstraint("previous_stock >= 0", name="ck_ledger_previous_non_negative"),
        db.CheckConstraint("new_stock >= 0", name="ck_ledger_new_non_negative"),
        db.Index("ix_ledger_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_ledger_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    # Business time; created_at is system time (db default)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("ledger_entries", lazy="dynamic"))

    @property
    def signed_quantity(self) -> int:
        if self.movement_type in INBOUND_MOVEMENTS:
            return self.quantity
        return -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockLedgerEntry, "before_update")
def _refuse_ledger_update(mapper, connection, target):
    raise RuntimeError(f"Stock ledger entry {target.id} is append-only and cannot be updated")


@event.listens_for(StockLedgerEntry, "before_delete")
def _refuse_ledger_delete(mapper, connection, target):
    raise RuntimeError(f"Stock ledger entry {target.id} is append-only and cannot be deleted")


class IdentifierSequence(db.Model):
    """
    Atomic per-scope counters behind every human-readable identifier.

    Scope keys look like "BILL:20261019", "SKU:CAT:SAREE", "LOT:2026-10-19".
    """
    __tablename__ = "identifier_sequences"
    __table_args__ = (
        db.UniqueConstraint("scope", name="uq_identifier_sequences_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(160), nullable=False)
    next_value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope,
            "next_value": self.next_value,
            "updated_at": to_utc_z(self.updated_at),
        }
