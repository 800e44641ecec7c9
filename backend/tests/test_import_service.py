"""
Bulk import: per-row savepoints, one LOT for everything created.
"""

from datetime import datetime

import pytest

from backoffice.extensions import db
from backoffice.models import Category, Lot, Product, StockLedgerEntry
from backoffice.services import billing_service, import_service, ledger_service
from backoffice.validation import NotFoundError, ValidationError

NOW = datetime(2026, 10, 19, 10, 0, 0)


def _import(user, rows, **kwargs):
    return import_service.bulk_import_products(rows=rows, user_id=user.id, now=NOW, **kwargs)


class TestCreateRows:
    def test_creates_products_and_lot(self, staff_user, category):
        result = _import(staff_user, [
            {"name": "Kanjivaram Silk", "cost_price": 4500, "selling_price": "7999.50", "gst_percentage": 5, "quantity": 4},
            {"name": "Georgette Saree", "cost_price_cents": 120000, "selling_price_cents": 250000, "stock_quantity": "2"},
        ], default_category_id=category.id)

        assert result["created"] == 2
        assert result["updated"] == 0
        assert result["errors"] == []
        assert [p["sku"] for p in result["products"]] == ["LP-SAREE-000001", "LP-SAREE-000002"]

        lot = result["lot"]
        assert lot["lot_number"] == "LOT-2026-10-19"
        assert lot["product_count"] == 2
        assert lot["total_stock_value_cents"] == 4 * 450_000 + 2 * 120_000

        first = db.session.query(Product).filter_by(sku="LP-SAREE-000001").one()
        assert first.selling_price_cents == 799_950
        assert first.gst_rate_bps == 500
        assert first.stock_quantity == 4
        assert first.lot_number == "LOT-2026-10-19"

        entry = db.session.query(StockLedgerEntry).filter_by(product_id=first.id).one()
        assert entry.movement_type == "in"
        assert entry.reference_type == "import"
        assert entry.quantity == 4

    def test_row_category_resolved_or_created(self, staff_user, category):
        result = _import(staff_user, [
            {"name": "Bridal Saree", "category": "sarees", "quantity": 1},
            {"name": "Zari Lehenga", "category": "Lehengas", "quantity": 1},
        ])
        skus = sorted(p["sku"] for p in result["products"])
        assert skus == ["LP-LEHENG-000001", "LP-SAREE-000001"]
        assert db.session.query(Category).filter_by(name="Lehengas").one().code == "LEHENG"

    def test_product_code_skus(self, staff_user, category):
        result = _import(staff_user, [
            {"name": "Printed Saree", "product_code": "pt-101", "quantity": 3},
        ], default_category_id=category.id)
        assert result["products"][0]["sku"] == "PT-101-SAREE-000001"

    def test_bad_rows_reported_rest_imported(self, staff_user, category):
        result = _import(staff_user, [
            {"name": "Good Saree", "quantity": 1},
            {"name": "", "quantity": 1},
            {"name": "Half Saree", "quantity": "2.5"},
            {"name": "Negative Saree", "selling_price": -10},
        ], default_category_id=category.id)

        assert result["created"] == 1
        assert result["total"] == 4
        assert sorted(e["row"] for e in result["errors"]) == [2, 3, 4]
        assert db.session.query(Product).count() == 1

    def test_ten_rows_two_bad(self, staff_user, category):
        rows = [{"name": f"Saree {n}", "cost_price": 100, "quantity": 1} for n in range(1, 11)]
        rows[3]["name"] = ""
        rows[7]["quantity"] = -2

        result = _import(staff_user, rows, default_category_id=category.id)

        assert result["created"] == 8
        assert sorted(e["row"] for e in result["errors"]) == [4, 8]
        assert result["lot"]["product_count"] == 8
        assert result["lot"]["total_stock_value_cents"] == 8 * 10_000
        assert db.session.query(Product).filter(Product.lot_id == result["lot"]["id"]).count() == 8

    def test_row_without_any_category(self, staff_user, category):
        result = _import(staff_user, [
            {"name": "Tagged Saree", "category": "Sarees", "quantity": 1},
            {"name": "Orphan", "quantity": 1},
        ])
        assert result["created"] == 1
        assert result["errors"][0]["row"] == 2
        assert "Category is required" in result["errors"][0]["error"]

    def test_all_rows_failing(self, staff_user, category):
        with pytest.raises(ValidationError) as exc:
            _import(staff_user, [{"name": ""}, {"quantity": 1}], default_category_id=category.id)
        assert len(exc.value.details["errors"]) == 2
        assert db.session.query(Lot).count() == 0

    def test_empty_import(self, staff_user):
        with pytest.raises(ValidationError):
            _import(staff_user, [])

    def test_missing_default_category(self, staff_user):
        with pytest.raises(NotFoundError):
            _import(staff_user, [{"name": "Saree", "quantity": 1}], default_category_id=9999)


class TestUpdateRows:
    def test_update_sets_stock_and_prices(self, staff_user, category, make_product):
        existing = make_product(name="Printed Saree", product_code="PT-101")

        result = _import(staff_user, [
            {"name": "Printed Saree (new print)", "product_code": "pt-101", "selling_price": 1100, "quantity": 4},
        ], default_category_id=category.id, update_stock=True)

        assert result["created"] == 0
        assert result["updated"] == 1
        assert result["lot"] is None
        assert result["updated_products"][0]["previous_stock"] == 10
        assert result["updated_products"][0]["new_stock"] == 4

        product = db.session.get(Product, existing.id)
        assert product.name == "Printed Saree (new print)"
        assert product.selling_price_cents == 110_000
        assert product.cost_price_cents == 60_000
        assert product.stock_quantity == 4
        assert product.lot_id is None
        assert ledger_service.verify_product_ledger(existing.id)["consistent"] is True

    def test_update_mode_creates_unknown_codes(self, staff_user, category, make_product):
        make_product(name="Printed Saree", product_code="PT-101")
        result = _import(staff_user, [
            {"name": "Printed Saree", "product_code": "PT-101", "quantity": 12},
            {"name": "Woven Saree", "product_code": "PT-202", "quantity": 5},
        ], default_category_id=category.id, update_stock=True)

        assert result["updated"] == 1
        assert result["created"] == 1
        assert result["lot"]["product_count"] == 1
        assert result["products"][0]["sku"] == "PT-202-SAREE-000001"

    def test_without_update_mode_same_code_creates_new(self, staff_user, category, make_product):
        make_product(name="Printed Saree", product_code="PT-101")
        result = _import(staff_user, [
            {"name": "Printed Saree", "product_code": "PT-101", "quantity": 2},
        ], default_category_id=category.id)
        assert result["created"] == 1
        assert db.session.query(Product).filter_by(product_code="PT-101").count() == 2

    def test_repeated_code_in_one_batch_is_not_updated(self, staff_user, category):
        result = _import(staff_user, [
            {"name": "Cotton Saree", "product_code": "PT-303", "cost_price_cents": 100, "quantity": 5},
            {"name": "Cotton Saree", "product_code": "PT-303", "cost_price_cents": 100, "quantity": 2},
        ], default_category_id=category.id, update_stock=True)

        assert result["created"] == 2
        assert result["updated"] == 0
        assert result["updated_products"] == []
        assert result["lot"]["product_count"] == 2
        assert result["lot"]["total_stock_value_cents"] == 5 * 100 + 2 * 100
        stocks = sorted(p.stock_quantity for p in db.session.query(Product).filter_by(product_code="PT-303"))
        assert stocks == [2, 5]


class TestPriceLockOnImport:
    @pytest.fixture
    def sold_product(self, staff_user, make_product):
        product = make_product(name="Printed Saree", product_code="PT-101")
        billing_service.create_bill(items=[{"product_id": product.id, "quantity": 1}], user_id=staff_user.id)
        assert db.session.get(Product, product.id).price_locked is True
        return product

    def test_staff_cannot_change_locked_prices(self, staff_user, category, sold_product):
        result = _import(staff_user, [
            {"name": "Printed Saree", "product_code": "PT-101",
             "selling_price_cents": 1, "cost_price_cents": 1, "stock_quantity": 4},
            {"name": "Woven Saree", "quantity": 1},
        ], default_category_id=category.id, update_stock=True)

        assert result["updated"] == 0
        assert result["created"] == 1
        assert [e["row"] for e in result["errors"]] == [1]
        assert "locked" in result["errors"][0]["error"]

        product = db.session.get(Product, sold_product.id)
        assert product.selling_price_cents == 100_000
        assert product.cost_price_cents == 60_000
        assert product.stock_quantity == 9
        assert ledger_service.verify_product_ledger(product.id)["consistent"] is True

    def test_staff_can_still_update_stock_without_prices(self, staff_user, category, sold_product):
        result = _import(staff_user, [
            {"name": "Printed Saree", "product_code": "PT-101", "quantity": 3},
        ], default_category_id=category.id, update_stock=True)

        assert result["updated"] == 1
        product = db.session.get(Product, sold_product.id)
        assert product.stock_quantity == 3
        assert product.selling_price_cents == 100_000

    def test_admin_may_change_locked_prices(self, admin_user, category, sold_product):
        result = _import(admin_user, [
            {"name": "Printed Saree", "product_code": "PT-101", "selling_price": 1100, "quantity": 9},
        ], default_category_id=category.id, update_stock=True)

        assert result["updated"] == 1
        assert result["errors"] == []
        product = db.session.get(Product, sold_product.id)
        assert product.selling_price_cents == 110_000
        assert product.price_locked is True
