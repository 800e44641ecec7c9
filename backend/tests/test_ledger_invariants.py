"""
Stock ledger invariants.

For every product: stock_quantity == sum(in, return) - sum(out, wastage), and
each entry's previous_stock chains from the entry before it. Entries are
append-only.
"""

import pytest

from backoffice.extensions import db
from backoffice.models import Product, StockLedgerEntry
from backoffice.services import (
    audit_service,
    billing_service,
    ledger_service,
    return_service,
    wastage_service,
)
from backoffice.validation import InsufficientStockError, ValidationError


def test_ledger_replays_to_stock_after_mixed_operations(staff_user, saree, dupatta):
    bill = billing_service.create_bill(
        items=[{"product_id": saree.id, "quantity": 4}, {"product_id": dupatta.id, "quantity": 2}],
        user_id=staff_user.id,
    )
    return_service.create_return(
        bill_id=bill.id, items=[{"product_id": saree.id, "quantity": 1}], user_id=staff_user.id
    )
    wastage_service.create_wastage(product_id=dupatta.id, quantity=1, reason="stain", user_id=staff_user.id)

    audit = audit_service.create_audit(user_id=staff_user.id)
    audit_service.add_audit_item(audit.id, sku=saree.sku, physical_stock=5)
    audit_service.complete_audit(audit.id, user_id=staff_user.id, apply_adjustments=True)

    assert db.session.get(Product, saree.id).stock_quantity == 5
    assert db.session.get(Product, dupatta.id).stock_quantity == 2

    reports = ledger_service.verify_all_products()
    assert all(r["consistent"] for r in reports)

    history = ledger_service.get_stock_history(saree.id)
    assert [e.movement_type for e in history] == ["out", "return", "out", "in"]
    assert [e.new_stock for e in history] == [5, 7, 6, 10]


def test_verify_detects_drift(saree):
    db.session.query(Product).filter(Product.id == saree.id).update({"stock_quantity": 99})
    db.session.commit()
    report = ledger_service.verify_product_ledger(saree.id)
    assert report["consistent"] is False
    assert report["ledger_quantity"] == 10
    assert report["stock_quantity"] == 99


def test_movement_never_goes_negative(saree):
    with pytest.raises(InsufficientStockError):
        ledger_service.apply_stock_movement(saree, "wastage", 11)
    db.session.rollback()


def test_unknown_movement_type(saree):
    with pytest.raises(ValidationError):
        ledger_service.apply_stock_movement(saree, "transfer", 1)


def test_set_stock_level_noop(saree):
    assert ledger_service.set_stock_level(saree, 10) is None


class TestAppendOnly:
    def test_entries_cannot_be_updated(self, saree):
        entry = db.session.query(StockLedgerEntry).filter_by(product_id=saree.id).one()
        entry.quantity = 50
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()

    def test_entries_cannot_be_deleted(self, saree):
        entry = db.session.query(StockLedgerEntry).filter_by(product_id=saree.id).one()
        db.session.delete(entry)
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()
