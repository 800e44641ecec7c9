# backend/backoffice/routes/products.py
"""
Product registry API routes, including bulk import and stock history.
"""
from flask import Blueprint, jsonify, g, request, current_app

from ..extensions import db
from ..decorators import require_auth
from ..request_utils import json_body, query_int, query_bool, page_args
from ..services import products_service, import_service, ledger_service
from ..validation import BackOfficeError, ValidationError, to_bool

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.route("", methods=["GET"])
@require_auth
def list_products():
    """
    List products.

    Query params: search, category_id, lot_id, in_stock, page, per_page
    """
    try:
        result = products_service.list_products(
            search=request.args.get("search"),
            category_id=query_int("category_id"),
            lot_id=query_int("lot_id"),
            in_stock=query_bool("in_stock"),
            **page_args(),
        )
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.route("", methods=["POST"])
@require_auth
def create_product():
    """
    Create a product.

    Request body:
    {
        "name": str,
        "category_id": int,
        "cost_price_cents": int,
        "selling_price_cents": int,
        "mrp_cents": int (optional),
        "gst_rate_bps": int (optional),
        "stock_quantity": int (optional opening stock),
        "sku": str (optional, minted from the category when absent),
        "product_code", "hsn_code", "stock_unit", "purchase_date" (optional)
    }
    """
    try:
        product = products_service.create_product(data=json_body(), actor=g.current_user)
        return jsonify(product.to_dict()), 201
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "InternalError", "message": "Failed to create product"}), 500


@products_bp.route("/import", methods=["POST"])
@require_auth
def import_products():
    """
    Bulk import products from parsed spreadsheet rows.

    Request body:
    {
        "rows": [{"product_code", "name", "category", "stock_unit", "cost_price",
                  "selling_price", "mrp", "gst_percentage", "stock_quantity",
                  "purchase_date"}],
        "category_id": int (optional default category),
        "update_stock": bool (optional)
    }

    Returns:
        201: {created, updated, total, errors, products, updated_products, lot}
        400: No rows, or no row could be imported
        404: Default category not found
    """
    try:
        data = json_body()
        rows = data.get("rows")
        if not isinstance(rows, list):
            raise ValidationError("rows must be a list")
        result = import_service.bulk_import_products(
            rows=rows,
            default_category_id=data.get("category_id"),
            update_stock=to_bool(data.get("update_stock"), "update_stock"),
            user_id=g.current_user.id,
        )
        return jsonify(result), 201
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Bulk import failed")
        return jsonify({"error": "InternalError", "message": "Failed to import products"}), 500


@products_bp.route("/sku/<string:sku>", methods=["GET"])
@require_auth
def get_product_by_sku(sku: str):
    try:
        return jsonify(products_service.get_product_by_sku(sku).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.route("/<int:product_id>", methods=["GET"])
@require_auth
def get_product(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.route("/<int:product_id>", methods=["PATCH"])
@require_auth
def update_product(product_id: int):
    """
    Update product fields. Stock and SKU are not editable here.

    Returns:
        200: Updated product
        403: Prices are locked (non-admin)
        404: Product not found
    """
    try:
        product = products_service.update_product(
            product_id=product_id,
            data=json_body(),
            actor=g.current_user,
        )
        return jsonify(product.to_dict()), 200
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "InternalError", "message": "Failed to update product"}), 500


@products_bp.route("/<int:product_id>/stock-history", methods=["GET"])
@require_auth
def stock_history(product_id: int):
    try:
        limit = min(query_int("limit") or 100, 500)
        entries = ledger_service.get_stock_history(product_id, limit=limit, offset=query_int("offset") or 0)
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status
