from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Category(db.Model):
    """
    Product category.

    `code` is the short uppercase token embedded in generated SKUs
    (LP-<CODE>-000001), so it is unique and 2-6 alphanumerics.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        db.UniqueConstraint("code", name="uq_categories_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data and current stock position.

    STOCK DESIGN DECISION:
    stock_quantity is a mutable current-state field, but it may only be changed
    through ledger_service.apply_stock_movement(), which appends the matching
    StockLedgerEntry in the same transaction. The ledger is the audit trail;
    this column is the fast read.

    PRICE LOCK:
    The first sale of a product sets price_locked. From then on only a
    privileged user may change cost/selling/MRP (see products_service).

    CONCURRENCY:
    version_id_col makes every UPDATE conditional on the version read, so two
    sessions decrementing the same row cannot both win.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_category_created", "category_id", "created_at"),
        db.Index("ix_products_code_category", "product_code", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Immutable once assigned
    sku = db.Column(db.String(96), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # Supplier/product code from import files (e.g. LP-PT-001), uppercase
    product_code = db.Column(db.String(64), nullable=True, index=True)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    mrp_cents = db.Column(db.Integer, nullable=True)

    # Basis points (1800 = 18%)
    gst_rate_bps = db.Column(db.Integer, nullable=True)
    hsn_code = db.Column(db.String(16), nullable=True)

    stock_unit = db.Column(db.String(16), nullable=False, default="PCS")
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    lot_id = db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=True, index=True)
    lot_number = db.Column(db.String(32), nullable=True, index=True)

    price_locked = db.Column(db.Boolean, nullable=False, default=False)
    price_locked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    price_locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    lot = db.relationship("Lot", backref=db.backref("products", lazy=True), foreign_keys=[lot_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "product_code": self.product_code,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "mrp_cents": self.mrp_cents,
            "gst_rate_bps": self.gst_rate_bps,
            "hsn_code": self.hsn_code,
            "stock_unit": self.stock_unit,
            "stock_quantity": self.stock_quantity,
            "purchase_date": to_utc_z(self.purchase_date) if self.purchase_date else None,
            "lot_id": self.lot_id,
            "lot_number": self.lot_number,
            "price_locked": self.price_locked,
            "price_locked_by_user_id": self.price_locked_by_user_id,
            "price_locked_at": to_utc_z(self.price_locked_at) if self.price_locked_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Lot(db.Model):
    """
    A batch of products created together by one bulk import.

    LIFECYCLE: active -> closed. Closing is bookkeeping only; it has no stock effect.
    """
    __tablename__ = "lots"
    __table_args__ = (
        db.UniqueConstraint("lot_number", name="uq_lots_lot_number"),
        db.Index("ix_lots_status_upload", "status", "upload_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # LOT-YYYY-MM-DD, or LOT-YYYY-MM-DD-001 for later lots the same day
    lot_number = db.Column(db.String(32), nullable=False)
    upload_date = db.Column(db.DateTime(timezone=True), nullable=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    product_count = db.Column(db.Integer, nullable=False, default=0)
    total_stock_value_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    notes = db.Column(db.Text, nullable=True)

    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lot_number": self.lot_number,
            "upload_date": to_utc_z(self.upload_date),
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "uploaded_by_user_id": self.uploaded_by_user_id,
            "product_count": self.product_count,
            "total_stock_value_cents": self.total_stock_value_cents,
            "status": self.status,
            "notes": self.notes,
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "created_at": to_utc_z(self.created_at),
        }
