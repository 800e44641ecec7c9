"""
Product registry: opening stock through the ledger, SKU rules, price lock.
"""

import pytest

from backoffice.extensions import db
from backoffice.models import Product, StockLedgerEntry
from backoffice.services import billing_service, products_service
from backoffice.validation import ConflictError, NotFoundError, PriceLockedError, ProductNotFound, ValidationError


def _sell_one(user, product):
    billing_service.create_bill(items=[{"product_id": product.id, "quantity": 1}], user_id=user.id)


class TestCreateProduct:
    def test_opening_stock_on_ledger(self, saree):
        assert saree.sku == "LP-SAREE-000001"
        assert saree.stock_quantity == 10
        assert saree.price_locked is False

        entry = db.session.query(StockLedgerEntry).filter_by(product_id=saree.id).one()
        assert entry.movement_type == "in"
        assert entry.quantity == 10
        assert entry.previous_stock == 0
        assert entry.reference_type == "product"
        assert entry.reference_id == str(saree.id)

    def test_zero_stock_writes_no_entry(self, make_product):
        product = make_product(stock_quantity=0)
        assert db.session.query(StockLedgerEntry).filter_by(product_id=product.id).count() == 0

    def test_explicit_sku_uppercased(self, make_product):
        product = make_product(sku="gs-special-01")
        assert product.sku == "GS-SPECIAL-01"

    def test_duplicate_sku(self, make_product):
        make_product(sku="GS-SPECIAL-01")
        with pytest.raises(ConflictError):
            make_product(sku="gs-special-01")

    def test_unknown_category(self, make_product):
        with pytest.raises(NotFoundError):
            make_product(category_id=9999)

    def test_negative_price(self, make_product):
        with pytest.raises(ValidationError):
            make_product(selling_price_cents=-1)


class TestUpdateProduct:
    def test_plain_update(self, staff_user, saree):
        product = products_service.update_product(
            product_id=saree.id, data={"name": "Banarasi Silk (Red)", "selling_price_cents": 110_000}, actor=staff_user
        )
        assert product.name == "Banarasi Silk (Red)"
        assert product.selling_price_cents == 110_000

    @pytest.mark.parametrize("field", ["stock_quantity", "sku"])
    def test_stock_and_sku_not_editable(self, admin_user, saree, field):
        with pytest.raises(ValidationError):
            products_service.update_product(product_id=saree.id, data={field: 99}, actor=admin_user)

    def test_unknown_product(self, admin_user):
        with pytest.raises(ProductNotFound):
            products_service.update_product(product_id=424242, data={"name": "x"}, actor=admin_user)


class TestPriceLock:
    def test_staff_cannot_change_locked_price(self, staff_user, saree):
        _sell_one(staff_user, saree)
        with pytest.raises(PriceLockedError) as exc:
            products_service.update_product(
                product_id=saree.id, data={"selling_price_cents": 90_000}, actor=staff_user
            )
        assert exc.value.http_status == 403
        assert exc.value.details["fields"] == ["selling_price_cents"]
        assert db.session.get(Product, saree.id).selling_price_cents == 100_000

    def test_staff_can_edit_other_fields_when_locked(self, staff_user, saree):
        _sell_one(staff_user, saree)
        product = products_service.update_product(
            product_id=saree.id,
            data={"hsn_code": "5007", "selling_price_cents": 100_000},
            actor=staff_user,
        )
        assert product.hsn_code == "5007"

    def test_admin_changes_and_unlocks(self, staff_user, admin_user, saree):
        _sell_one(staff_user, saree)
        product = products_service.update_product(
            product_id=saree.id,
            data={"selling_price_cents": 95_000, "unlock_price": True},
            actor=admin_user,
        )
        assert product.selling_price_cents == 95_000
        assert product.price_locked is False
        assert product.price_locked_at is None

    def test_staff_cannot_unlock(self, staff_user, saree):
        _sell_one(staff_user, saree)
        with pytest.raises(PriceLockedError):
            products_service.update_product(product_id=saree.id, data={"unlock_price": True}, actor=staff_user)


class TestLookups:
    def test_sku_lookup_case_insensitive(self, saree):
        assert products_service.get_product_by_sku(" lp-saree-000001 ").id == saree.id

    def test_list_filters(self, saree, dupatta, make_product):
        make_product(name="Sold Out Saree", stock_quantity=0)

        assert products_service.list_products()["count"] == 3
        assert products_service.list_products(search="dupatta")["count"] == 1
        assert products_service.list_products(in_stock=False)["items"][0]["name"] == "Sold Out Saree"
        assert products_service.list_products(in_stock=True)["count"] == 2
