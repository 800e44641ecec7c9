# Overview: Service-layer operations for customers and their purchase aggregates.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Bill
from ..pagination import paginate
from ..validation import ValidationError, NotFoundError, require_text, optional_text, to_int

"""
Customer aggregates are derived data: total_purchases_cents, purchase_count and
last_purchase_at are always recomputed from the customer's full bill history.
Incrementing is never used, so an out-of-band edit heals on the next sale or
on `flask customers reconcile`.
"""

# Optional profile fields a bill may carry; filled on an existing customer
# only where the stored value is empty
OPTIONAL_PROFILE_FIELDS = ("pan_card", "email", "gst_number", "firm_name", "address")

CUSTOMER_MUTABLE_FIELDS = {"name", "pan_card", "email", "gst_number", "firm_name", "address"}


def normalize_mobile(value) -> str | None:
    text = optional_text(value)
    if not text:
        return None
    return "".join(ch for ch in text if ch.isdigit() or ch == "+") or None


def find_by_mobile(mobile: str) -> Customer | None:
    key = normalize_mobile(mobile)
    if not key:
        return None
    return db.session.query(Customer).filter(Customer.mobile_number == key).first()


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def get_customer_by_mobile(mobile: str) -> Customer:
    customer = find_by_mobile(mobile)
    if not customer:
        raise NotFoundError(f"Customer with mobile '{mobile}' not found")
    return customer


def resolve_customer(data: dict | None) -> Customer | None:
    """
    Find or create the customer for a bill. Does not commit.

    - customer_id given: that customer (NotFound if missing)
    - mobile matches: existing customer; empty optional fields are filled
      from the bill, populated ones are never overwritten
    - name + mobile, no match: a new customer
    - otherwise: None (walk-in sale)
    """
    if not data:
        return None

    if data.get("customer_id"):
        return get_customer(to_int(data["customer_id"], "customer_id", minimum=1))

    mobile = normalize_mobile(data.get("mobile_number"))
    name = optional_text(data.get("name"))

    if mobile:
        existing = find_by_mobile(mobile)
        if existing:
            for field in OPTIONAL_PROFILE_FIELDS:
                incoming = optional_text(data.get(field))
                if incoming and not getattr(existing, field):
                    setattr(existing, field, incoming)
            return existing

    if not (name and mobile):
        return None

    customer = Customer(name=name, mobile_number=mobile)
    for field in OPTIONAL_PROFILE_FIELDS:
        setattr(customer, field, optional_text(data.get(field)))
    db.session.add(customer)
    db.session.flush()
    return customer


def recompute_customer_totals(customer_id: int) -> Customer:
    """
    Full recompute of a customer's aggregates from every bill on file.

    Runs inside the caller's transaction; flushes so pending bills count.
    """
    customer = get_customer(customer_id)
    db.session.flush()

    total, count, last = (
        db.session.query(
            func.coalesce(func.sum(Bill.grand_total_cents), 0),
            func.count(Bill.id),
            func.max(Bill.created_at),
        )
        .filter(Bill.customer_id == customer_id)
        .one()
    )

    customer.total_purchases_cents = int(total or 0)
    customer.purchase_count = int(count or 0)
    customer.last_purchase_at = last
    return customer


def reconcile_all_customers() -> int:
    """Recompute every customer's aggregates. Returns how many changed."""
    changed = 0
    for customer in db.session.query(Customer).order_by(Customer.id).all():
        before = (customer.total_purchases_cents, customer.purchase_count, customer.last_purchase_at)
        recompute_customer_totals(customer.id)
        after = (customer.total_purchases_cents, customer.purchase_count, customer.last_purchase_at)
        if before != after:
            changed += 1
    db.session.commit()
    current_app.logger.info("Customer aggregates reconciled, %s changed", changed)
    return changed


def update_customer(customer_id: int, data: dict) -> Customer:
    customer = get_customer(customer_id)
    if "mobile_number" in data:
        raise ValidationError("mobile_number cannot be changed")
    for key, value in data.items():
        if key not in CUSTOMER_MUTABLE_FIELDS:
            continue
        if key == "name":
            customer.name = require_text(value, "name", max_length=255)
        else:
            setattr(customer, key, optional_text(value))
    db.session.commit()
    return customer


def list_customers(*, search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.mobile_number.ilike(pattern),
            Customer.firm_name.ilike(pattern),
        ))
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda c: c.to_dict())
