# backend/backoffice/services/products_service.py
"""
Product Registry

Products carry current stock and prices. Two rules matter here:

- stock_quantity is never written directly. Opening stock goes through the
  ledger as an `in` entry; every later change comes from an orchestrator.
- Once a product has been sold its prices are locked. Only an admin may
  change cost/selling/MRP on a locked product, and only an admin may unlock.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product, User
from ..models.ledger import MOVEMENT_IN
from ..pagination import paginate
from ..time_utils import utcnow, parse_iso_datetime
from ..validation import (
    ValidationError,
    ConflictError,
    ProductNotFound,
    PriceLockedError,
    to_bool,
    to_int,
    require_text,
    optional_text,
    validate_price_cents,
    validate_bps,
)
from .category_service import get_category
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .identifier_service import next_category_sku
from .ledger_service import apply_stock_movement

PRICE_FIELDS = ("cost_price_cents", "selling_price_cents", "mrp_cents")

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category_id",
    "product_code",
    "cost_price_cents",
    "selling_price_cents",
    "mrp_cents",
    "gst_rate_bps",
    "hsn_code",
    "stock_unit",
    "purchase_date",
}


def _parse_date(value, field: str) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def validate_product_patch(data: dict, *, creating: bool = False) -> dict:
    """
    Coerce a JSON body into a patch of model fields.

    Unknown keys are ignored. Stock and SKU are rejected on update; stock
    changes only through the ledger and the SKU is immutable.
    """
    if not creating:
        if "stock_quantity" in data:
            raise ValidationError("stock_quantity cannot be edited directly; use a stock operation")
        if "sku" in data:
            raise ValidationError("sku cannot be changed once assigned")

    patch: dict = {}

    if creating or "name" in data:
        patch["name"] = require_text(data.get("name"), "name", max_length=255)
    if creating or "category_id" in data:
        patch["category_id"] = to_int(data.get("category_id"), "category_id", minimum=1)
    if "product_code" in data:
        code = optional_text(data.get("product_code"))
        patch["product_code"] = code.upper() if code else None

    for field in ("cost_price_cents", "selling_price_cents"):
        if creating or field in data:
            value = to_int(data.get(field), field, required=creating)
            patch[field] = validate_price_cents(value if value is not None else 0, field)
    if "mrp_cents" in data:
        patch["mrp_cents"] = validate_price_cents(to_int(data.get("mrp_cents"), "mrp_cents", required=False), "mrp_cents")
    if "gst_rate_bps" in data:
        patch["gst_rate_bps"] = validate_bps(to_int(data.get("gst_rate_bps"), "gst_rate_bps", required=False), "gst_rate_bps")

    if "hsn_code" in data:
        patch["hsn_code"] = optional_text(data.get("hsn_code"))
    if creating or "stock_unit" in data:
        unit = optional_text(data.get("stock_unit"))
        patch["stock_unit"] = unit.upper() if unit else "PCS"
    if "purchase_date" in data:
        patch["purchase_date"] = _parse_date(data.get("purchase_date"), "purchase_date")

    return patch


def check_price_lock(product: Product, patch: dict, actor: User | None) -> None:
    """Raise PriceLockedError if a non-admin tries to change a locked price."""
    if not product.price_locked:
        return
    if actor is not None and actor.is_admin:
        return
    changed = [f for f in PRICE_FIELDS if f in patch and patch[f] != getattr(product, f)]
    if changed:
        raise PriceLockedError(
            "Product prices are locked after the first sale. Only an admin can change them.",
            details={"product_id": product.id, "fields": changed},
        )


def lock_price(product: Product, *, actor_user_id: int | None, now: datetime | None = None) -> bool:
    """
    Lock a product's prices. Idempotent: a locked product is left untouched,
    including its original price_locked_at.
    """
    if product.price_locked:
        return False
    product.price_locked = True
    product.price_locked_by_user_id = actor_user_id
    product.price_locked_at = now or utcnow()
    return True


def create_product(*, data: dict, actor: User | None = None) -> Product:
    """
    Create a product and record its opening stock.

    The SKU is minted from the category unless one is supplied. Opening stock
    (if any) is written as an `in` ledger entry referencing the product.
    """
    patch = validate_product_patch(data, creating=True)
    opening_stock = to_int(data.get("stock_quantity"), "stock_quantity", required=False, minimum=0) or 0
    requested_sku = optional_text(data.get("sku"))
    actor_user_id = actor.id if actor else None

    def _op() -> Product:
        begin_immediate()
        category = get_category(patch["category_id"])

        if requested_sku:
            sku = requested_sku.upper()
            if db.session.query(Product.id).filter(Product.sku == sku).first():
                raise ConflictError(f"SKU '{sku}' already exists")
        else:
            sku = next_category_sku(category)

        product = Product(sku=sku, stock_quantity=0, **patch)
        db.session.add(product)
        db.session.flush()

        if opening_stock:
            apply_stock_movement(
                product,
                MOVEMENT_IN,
                opening_stock,
                reference_type="product",
                reference_id=product.id,
                actor_user_id=actor_user_id,
                note="Opening stock",
            )

        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Product created sku=%s stock=%s", product.sku, product.stock_quantity)
    return product


def update_product(*, product_id: int, data: dict, actor: User | None = None) -> Product:
    """
    Update mutable product fields.

    Price lock: a non-admin changing cost/selling/MRP on a locked product gets
    PriceLockedError. An admin may change them, and may pass unlock_price to
    clear the lock.
    """
    unlock = to_bool(data.get("unlock_price"), "unlock_price")
    body = {k: v for k, v in data.items() if k != "unlock_price"}
    patch = validate_product_patch(body)

    if unlock and not (actor is not None and actor.is_admin):
        raise PriceLockedError("Only an admin can unlock product prices")

    def _op() -> Product:
        begin_immediate()
        product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
        if not product:
            raise ProductNotFound(f"Product {product_id} not found")

        check_price_lock(product, patch, actor)

        if "category_id" in patch and patch["category_id"] != product.category_id:
            get_category(patch["category_id"])

        for key, value in patch.items():
            if key in PRODUCT_MUTABLE_FIELDS:
                setattr(product, key, value)

        if unlock and product.price_locked:
            product.price_locked = False
            product.price_locked_by_user_id = None
            product.price_locked_at = None

        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info(
        "Product updated id=%s fields=%s unlocked=%s",
        product.id,
        ",".join(sorted(patch.keys())),
        unlock,
    )
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFound(f"Product {product_id} not found")
    return product


def get_product_by_sku(sku: str) -> Product:
    """SKU lookup is case-insensitive; SKUs are stored uppercase."""
    key = (sku or "").strip().upper()
    product = db.session.query(Product).filter(Product.sku == key).first()
    if not product:
        raise ProductNotFound(f"Product with SKU '{key}' not found", details={"sku": key})
    return product


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    lot_id: int | None = None,
    in_stock: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.product_code.ilike(pattern),
        ))
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if lot_id:
        query = query.filter(Product.lot_id == lot_id)
    if in_stock is True:
        query = query.filter(Product.stock_quantity > 0)
    elif in_stock is False:
        query = query.filter(Product.stock_quantity == 0)

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda p: p.to_dict())
