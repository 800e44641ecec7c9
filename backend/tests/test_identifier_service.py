"""
Human-readable identifiers: bill numbers, SKUs, lot and audit numbers.
"""

from datetime import datetime

from backoffice.extensions import db
from backoffice.models import Bill, Lot, Product
from backoffice.services import identifier_service

DAY = datetime(2026, 10, 19, 9, 0, 0)
NEXT_DAY = datetime(2026, 10, 20, 9, 0, 0)


class TestBillNumbers:
    def test_sequence_per_day(self):
        first = identifier_service.next_bill_number(DAY)
        second = identifier_service.next_bill_number(DAY)
        db.session.commit()
        assert first == "BILL-20261019-001"
        assert second == "BILL-20261019-002"

    def test_new_day_restarts(self):
        identifier_service.next_bill_number(DAY)
        assert identifier_service.next_bill_number(NEXT_DAY) == "BILL-20261020-001"

    def test_rolled_back_allocation_is_reused(self):
        assert identifier_service.next_bill_number(DAY) == "BILL-20261019-001"
        db.session.rollback()
        assert identifier_service.next_bill_number(DAY) == "BILL-20261019-001"

    def test_seeded_from_existing_bills(self, admin_user):
        db.session.add(Bill(
            bill_number="BILL-20261019-007",
            subtotal_cents=0,
            grand_total_cents=0,
            created_by_user_id=admin_user.id,
            created_at=DAY,
        ))
        db.session.commit()
        assert identifier_service.next_bill_number(DAY) == "BILL-20261019-008"


class TestSkus:
    def test_category_sequence(self, category):
        assert identifier_service.next_category_sku(category) == "LP-SAREE-000001"
        assert identifier_service.next_category_sku(category) == "LP-SAREE-000002"

    def test_categories_are_independent(self, category, other_category):
        identifier_service.next_category_sku(category)
        assert identifier_service.next_category_sku(other_category) == "LP-KURTI-000001"

    def test_seeded_from_hand_entered_skus(self, make_product, category):
        make_product(sku="lp-saree-000041")
        assert identifier_service.next_category_sku(category) == "LP-SAREE-000042"

    def test_skips_taken_sku(self, category):
        assert identifier_service.next_category_sku(category) == "LP-SAREE-000001"
        db.session.add(Product(sku="LP-SAREE-000002", name="Hand entered", category_id=category.id))
        db.session.flush()
        assert identifier_service.next_category_sku(category) == "LP-SAREE-000003"

    def test_prefix_from_config(self, app, category):
        app.config["SKU_PREFIX"] = "GS"
        try:
            assert identifier_service.next_category_sku(category) == "GS-SAREE-000001"
        finally:
            app.config["SKU_PREFIX"] = "LP"

    def test_product_code_sequence(self, category):
        assert identifier_service.next_product_code_sku(" pt-001 ", category) == "PT-001-SAREE-000001"
        assert identifier_service.next_product_code_sku("PT-001", category) == "PT-001-SAREE-000002"


class TestDatedNumbers:
    def test_lot_numbers(self):
        assert identifier_service.next_lot_number(DAY) == "LOT-2026-10-19"
        assert identifier_service.next_lot_number(DAY) == "LOT-2026-10-19-001"
        assert identifier_service.next_lot_number(DAY) == "LOT-2026-10-19-002"

    def test_audit_numbers(self):
        assert identifier_service.next_audit_number(DAY) == "AUDIT-2026-10-19"
        assert identifier_service.next_audit_number(DAY) == "AUDIT-2026-10-19-001"
        assert identifier_service.next_audit_number(NEXT_DAY) == "AUDIT-2026-10-20"

    def test_lot_seeded_from_existing(self):
        db.session.add(Lot(lot_number="LOT-2026-10-19", upload_date=DAY))
        db.session.add(Lot(lot_number="LOT-2026-10-19-003", upload_date=DAY))
        db.session.commit()
        assert identifier_service.next_lot_number(DAY) == "LOT-2026-10-19-004"
