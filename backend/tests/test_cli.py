"""
Flask CLI commands.
"""

from backoffice.extensions import db
from backoffice.models import Customer, Product, User
from backoffice.services import billing_service


def test_ledger_verify_passes(app, saree):
    result = app.test_cli_runner().invoke(args=["ledger", "verify"])
    assert result.exit_code == 0
    assert "PASS Ledger consistent" in result.output


def test_ledger_verify_reports_drift(app, saree):
    db.session.query(Product).filter(Product.id == saree.id).update({"stock_quantity": 3})
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["ledger", "verify", "--product-id", str(saree.id)])
    assert result.exit_code == 1
    assert saree.sku in result.output


def test_customers_reconcile(app, staff_user, saree):
    bill = billing_service.create_bill(
        items=[{"product_id": saree.id, "quantity": 1}],
        customer={"name": "Meera Iyer", "mobile_number": "9845012345"},
        user_id=staff_user.id,
    )
    customer = db.session.get(Customer, bill.customer_id)
    customer.purchase_count = 0
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["customers", "reconcile"])
    assert result.exit_code == 0
    assert "1 updated" in result.output


def test_users_create(app):
    result = app.test_cli_runner().invoke(args=[
        "users", "create",
        "--username", "priya",
        "--password", "Password123!",
        "--role", "staff",
    ])
    assert result.exit_code == 0
    assert db.session.query(User).filter_by(username="priya").one().role == "staff"
