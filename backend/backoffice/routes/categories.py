# backend/backoffice/routes/categories.py
"""
Product category API routes.
"""
from flask import Blueprint, jsonify, current_app

from ..extensions import db
from ..decorators import require_auth
from ..request_utils import json_body
from ..services import category_service
from ..validation import BackOfficeError

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.route("", methods=["GET"])
@require_auth
def list_categories():
    categories = category_service.list_categories()
    return jsonify({"items": [c.to_dict() for c in categories], "count": len(categories)}), 200


@categories_bp.route("", methods=["POST"])
@require_auth
def create_category():
    """
    Create a category.

    Request body:
    {
        "name": str,
        "code": str (optional, derived from the name when absent),
        "description": str (optional)
    }

    Returns:
        201: Category created
        409: Name or code already in use
    """
    try:
        data = json_body()
        category = category_service.create_category(
            name=data.get("name"),
            code=data.get("code"),
            description=data.get("description"),
        )
        db.session.commit()
        current_app.logger.info("Category created code=%s", category.code)
        return jsonify(category.to_dict()), 201
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "InternalError", "message": "Failed to create category"}), 500
