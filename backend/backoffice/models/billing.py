from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import utcnow, to_utc_z

PAYMENT_MODES = ("cash", "upi", "card")


class Customer(db.Model):
    """
    Customer master data, keyed by mobile number.

    DENORMALIZED AGGREGATES: total_purchases_cents / purchase_count /
    last_purchase_at are always recomputed from the full bill history
    (customer_service.recompute_customer_totals), never incremented.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("mobile_number", name="uq_customers_mobile"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    mobile_number = db.Column(db.String(32), nullable=False)

    pan_card = db.Column(db.String(16), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)
    firm_name = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)
    purchase_count = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mobile_number": self.mobile_number,
            "pan_card": self.pan_card,
            "email": self.email,
            "gst_number": self.gst_number,
            "firm_name": self.firm_name,
            "address": self.address,
            "total_purchases_cents": self.total_purchases_cents,
            "purchase_count": self.purchase_count,
            "last_purchase_at": to_utc_z(self.last_purchase_at) if self.last_purchase_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Bill(db.Model):
    """
    Point-of-sale bill.

    IMMUTABLE: there is no update or delete path. Returns are separate
    compensating documents that reference the bill.

    Customer fields are snapshots taken at billing time; customer_id links to
    the live Customer record when one was resolved.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.UniqueConstraint("bill_number", name="uq_bills_bill_number"),
        db.Index("ix_bills_created_at", "created_at"),
        db.Index("ix_bills_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # BILL-YYYYMMDD-001
    bill_number = db.Column(db.String(32), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_mobile = db.Column(db.String(32), nullable=True)
    customer_pan_card = db.Column(db.String(16), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_gst_number = db.Column(db.String(32), nullable=True)
    customer_firm_name = db.Column(db.String(255), nullable=True)

    # Totals (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    gst_cents = db.Column(db.Integer, nullable=False, default=0)
    # Effective GST rate over the subtotal, display only
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    additional_charges_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False)

    payment_mode = db.Column(db.String(16), nullable=False, default="cash")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship("Customer", backref=db.backref("bills", lazy=True))
    items = db.relationship(
        "BillItem",
        backref="bill",
        lazy=True,
        order_by="BillItem.line_number",
        cascade="all, delete-orphan",
    )
    additional_charges = db.relationship(
        "BillCharge",
        backref="bill",
        lazy=True,
        order_by="BillCharge.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Bill id={self.id} bill_number={self.bill_number!r} total={self.grand_total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_number": self.bill_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_mobile": self.customer_mobile,
            "customer_pan_card": self.customer_pan_card,
            "customer_email": self.customer_email,
            "customer_gst_number": self.customer_gst_number,
            "customer_firm_name": self.customer_firm_name,
            "items": [item.to_dict() for item in self.items],
            "additional_charges": [charge.to_dict() for charge in self.additional_charges],
            "subtotal_cents": self.subtotal_cents,
            "gst_cents": self.gst_cents,
            "gst_rate_bps": self.gst_rate_bps,
            "additional_charges_cents": self.additional_charges_cents,
            "discount_bps": self.discount_bps,
            "discount_cents": self.discount_cents,
            "grand_total_cents": self.grand_total_cents,
            "payment_mode": self.payment_mode,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class BillItem(db.Model):
    """One product line on a bill. line_total_cents includes GST."""
    __tablename__ = "bill_items"
    __table_args__ = (
        db.UniqueConstraint("bill_id", "line_number", name="uq_bill_items_bill_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(96), nullable=True)
    category_id = db.Column(db.Integer, nullable=True)
    category_name = db.Column(db.String(128), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    gst_cents = db.Column(db.Integer, nullable=False, default=0)
    line_subtotal_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "gst_rate_bps": self.gst_rate_bps,
            "gst_cents": self.gst_cents,
            "line_subtotal_cents": self.line_subtotal_cents,
            "line_total_cents": self.line_total_cents,
        }


class BillCharge(db.Model):
    """Additional service charge on a bill (stitching, fall and pico, ...)."""
    __tablename__ = "bill_charges"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)

    service_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit = db.Column(db.String(32), nullable=False, default="item")
    rate_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_name": self.service_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "rate_cents": self.rate_cents,
            "amount_cents": self.amount_cents,
        }


class FittingService(db.Model):
    """
    Catalogue of tailoring services offered at the counter (saree stitching,
    fall and pico, blouse stitching). Supplies the default name, unit and
    rate for a bill's additional charges; the bill keeps its own snapshot.
    """
    __tablename__ = "fitting_services"
    __table_args__ = (
        db.UniqueConstraint("service_name", name="uq_fitting_services_name"),
        db.CheckConstraint("rate_cents >= 0", name="ck_fitting_services_rate_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    service_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="item")
    rate_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_name": self.service_name,
            "description": self.description,
            "unit": self.unit,
            "rate_cents": self.rate_cents,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
