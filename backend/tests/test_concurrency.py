"""
Concurrent sales against a file-backed database.

Each worker thread gets its own app context (and so its own session and
connection), the way separate requests would in production.
"""

import threading

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Bill, Category, Product, StockLedgerEntry, User
from backoffice.services import billing_service, ledger_service
from backoffice.validation import InsufficientStockError


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'concurrency.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30, "check_same_thread": False}},
        "BCRYPT_ROUNDS": 4,
    })
    with app.app_context():
        db.create_all()
        user = User(username="counter", password_hash="x", role="staff", name="Counter")
        category = Category(name="Sarees", code="SAREE")
        db.session.add_all([user, category])
        db.session.flush()
        product = Product(
            sku="LP-SAREE-000001",
            name="Cotton Saree",
            category_id=category.id,
            cost_price_cents=30_000,
            selling_price_cents=50_000,
            gst_rate_bps=500,
            stock_quantity=0,
        )
        db.session.add(product)
        db.session.flush()
        ledger_service.apply_stock_movement(product, "in", 8, reference_type="product", reference_id=product.id)
        db.session.commit()
        ids = {"user_id": user.id, "product_id": product.id}

    yield app, ids

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _run_workers(app, count, target):
    results, errors = [], []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                outcome = target()
                with lock:
                    results.append(outcome)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results, errors


def test_parallel_sales_get_distinct_numbers(file_app):
    app, ids = file_app

    def sell():
        bill = billing_service.create_bill(
            items=[{"product_id": ids["product_id"], "quantity": 1}],
            user_id=ids["user_id"],
        )
        return bill.bill_number

    numbers, errors = _run_workers(app, 6, sell)

    assert errors == []
    assert len(numbers) == 6
    assert len(set(numbers)) == 6

    with app.app_context():
        assert db.session.get(Product, ids["product_id"]).stock_quantity == 2
        assert db.session.query(Bill).count() == 6
        assert db.session.query(StockLedgerEntry).filter_by(movement_type="out").count() == 6
        assert ledger_service.verify_product_ledger(ids["product_id"])["consistent"] is True


def test_oversell_race_leaves_stock_at_zero(file_app):
    app, ids = file_app

    def sell_three():
        return billing_service.create_bill(
            items=[{"product_id": ids["product_id"], "quantity": 3}],
            user_id=ids["user_id"],
        ).bill_number

    numbers, errors = _run_workers(app, 4, sell_three)

    # 8 units: two sales of 3 fit, the rest must fail cleanly
    assert len(numbers) == 2
    assert len(errors) == 2
    assert all(isinstance(e, InsufficientStockError) for e in errors)

    with app.app_context():
        assert db.session.get(Product, ids["product_id"]).stock_quantity == 2
        assert ledger_service.verify_product_ledger(ids["product_id"])["consistent"] is True
