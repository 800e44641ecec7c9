"""
Bulk product import

WHY: New stock arrives as a supplier spreadsheet. One upload creates (or, in
update mode, refreshes) many products at once and groups everything newly
created into a LOT for labelling and later tracking.

DESIGN:
- Each row runs inside its own savepoint. A bad row is rolled back and
  reported as {row, error}; the rest of the batch carries on.
- The batch as a whole is one transaction: rows, ledger entries, the LOT and
  the LOT stamps on products commit together or not at all.
- Updated rows are excluded from SKU minting and from the LOT. Only products
  that existed before the batch are candidates for update.
- Update mode honours the price lock: a non-admin row that would change a
  locked price fails as a row error and leaves the product untouched.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Lot, Product, User
from ..models.ledger import MOVEMENT_IN
from ..time_utils import utcnow
from ..validation import BackOfficeError, ValidationError, NotFoundError, to_int
from .category_service import resolve_or_create_category
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .identifier_service import next_category_sku, next_lot_number, next_product_code_sku
from .import_schemas import ParsedRow, parse_rows, validate_row
from .ledger_service import apply_stock_movement, set_stock_level
from .products_service import check_price_lock

IMPORT_REFERENCE = "import"


def _find_existing(product_code: str, category: Category, *, exclude_ids: set[int]) -> Product | None:
    """
    Same product code in the same category first, then the code alone.
    Products created earlier in the same batch are never matched.
    """
    base = db.session.query(Product).filter(Product.product_code == product_code)
    if exclude_ids:
        base = base.filter(Product.id.notin_(exclude_ids))
    base = base.order_by(Product.id.asc())
    product = lock_for_update(base.filter(Product.category_id == category.id)).first()
    if product is None:
        product = lock_for_update(base).first()
    return product


def _update_existing(
    product: Product,
    row: ParsedRow,
    *,
    actor: User | None,
    user_id: int,
    ts: datetime,
) -> dict:
    previous_stock = product.stock_quantity

    price_patch = {}
    if row.cost_price_cents > 0:
        price_patch["cost_price_cents"] = row.cost_price_cents
    if row.selling_price_cents > 0:
        price_patch["selling_price_cents"] = row.selling_price_cents
    if row.mrp_cents:
        price_patch["mrp_cents"] = row.mrp_cents
    check_price_lock(product, price_patch, actor)

    product.name = row.name
    for field, value in price_patch.items():
        setattr(product, field, value)
    if row.gst_rate_bps is not None:
        product.gst_rate_bps = row.gst_rate_bps

    set_stock_level(
        product,
        row.stock_quantity,
        reference_type=IMPORT_REFERENCE,
        reference_id=f"row-{row.row_number}",
        actor_user_id=user_id,
        note="Bulk import stock update",
        occurred_at=ts,
    )
    return {
        "id": product.id,
        "name": product.name,
        "sku": product.sku,
        "previous_stock": previous_stock,
        "new_stock": product.stock_quantity,
    }


def _create_new(row: ParsedRow, category: Category, *, user_id: int, ts: datetime) -> Product:
    if row.product_code:
        sku = next_product_code_sku(row.product_code, category)
    else:
        sku = next_category_sku(category)

    product = Product(
        sku=sku,
        name=row.name,
        category_id=category.id,
        product_code=row.product_code,
        cost_price_cents=row.cost_price_cents,
        selling_price_cents=row.selling_price_cents,
        mrp_cents=row.mrp_cents,
        gst_rate_bps=row.gst_rate_bps,
        hsn_code=row.hsn_code,
        stock_unit=row.stock_unit or "PCS",
        stock_quantity=0,
        purchase_date=row.purchase_date or ts,
    )
    db.session.add(product)
    db.session.flush()

    if row.stock_quantity > 0:
        apply_stock_movement(
            product,
            MOVEMENT_IN,
            row.stock_quantity,
            reference_type=IMPORT_REFERENCE,
            reference_id=f"row-{row.row_number}",
            actor_user_id=user_id,
            note="Bulk import opening stock",
            occurred_at=ts,
        )
    return product


def bulk_import_products(
    *,
    rows: list,
    user_id: int,
    default_category_id: int | None = None,
    update_stock: bool = False,
    now: datetime | None = None,
) -> dict:
    """
    Import product rows.

    `rows` may be ParsedRow objects or raw keyed dicts (parsed here; parse
    failures become row errors). Returns counts, the created and updated
    products, the row errors and the LOT (or None when nothing was created).
    Raises ValidationError when there are no rows or no row succeeded.
    """
    if not rows:
        raise ValidationError("Import contains no rows")
    default_category_id = to_int(default_category_id, "category_id", required=False)

    parse_errors: list[dict] = []
    if all(isinstance(r, ParsedRow) for r in rows):
        parsed = list(rows)
    else:
        parsed, parse_errors = parse_rows(rows)

    def _op() -> dict:
        begin_immediate()
        ts = now or utcnow()
        errors = list(parse_errors)

        default_category = None
        if default_category_id:
            default_category = db.session.get(Category, default_category_id)
            if not default_category:
                raise NotFoundError("Selected category not found", details={"category_id": default_category_id})

        actor = db.session.get(User, user_id)
        created: list[Product] = []
        updated: list[dict] = []
        created_ids: set[int] = set()

        for row in parsed:
            problems = validate_row(row)
            if problems:
                errors.append({"row": row.row_number, "error": "; ".join(problems)})
                continue

            nested = db.session.begin_nested()
            try:
                if row.category_name:
                    category, _ = resolve_or_create_category(row.category_name)
                elif default_category is not None:
                    category = default_category
                else:
                    raise ValidationError("Category is required (row has none and no default was selected)")

                existing = None
                if update_stock and row.product_code:
                    existing = _find_existing(row.product_code, category, exclude_ids=created_ids)

                if existing is not None:
                    summary = _update_existing(existing, row, actor=actor, user_id=user_id, ts=ts)
                    db.session.flush()
                    nested.commit()
                    updated.append(summary)
                else:
                    product = _create_new(row, category, user_id=user_id, ts=ts)
                    db.session.flush()
                    nested.commit()
                    created.append(product)
                    created_ids.add(product.id)
            except (BackOfficeError, IntegrityError) as exc:
                nested.rollback()
                message = exc.message if isinstance(exc, BackOfficeError) else "Duplicate or invalid product data"
                errors.append({"row": row.row_number, "error": message})

        if not created and not updated:
            raise ValidationError("No valid products found in import", details={"errors": errors})

        lot = None
        if created:
            lot = Lot(
                lot_number=next_lot_number(ts),
                upload_date=ts,
                category_id=created[0].category_id,
                uploaded_by_user_id=user_id,
                product_count=len(created),
                total_stock_value_cents=sum(p.cost_price_cents * p.stock_quantity for p in created),
                status="active",
            )
            db.session.add(lot)
            db.session.flush()
            for product in created:
                product.lot_id = lot.id
                product.lot_number = lot.lot_number

        db.session.commit()
        return {
            "created": len(created),
            "updated": len(updated),
            "total": len(rows),
            "errors": errors,
            "products": [{"id": p.id, "name": p.name, "sku": p.sku} for p in created],
            "updated_products": updated,
            "lot": lot.to_dict() if lot else None,
        }

    result = run_with_retry(_op)
    current_app.logger.info(
        "Bulk import finished created=%s updated=%s errors=%s lot=%s",
        result["created"],
        result["updated"],
        len(result["errors"]),
        result["lot"]["lot_number"] if result["lot"] else None,
    )
    return result
