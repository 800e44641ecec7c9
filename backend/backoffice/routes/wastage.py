# backend/backoffice/routes/wastage.py
"""
Wastage write-off API routes.
"""
from flask import Blueprint, jsonify, g, request, current_app

from ..extensions import db
from ..decorators import require_auth
from ..request_utils import json_body, query_int, query_datetime, page_args
from ..services import wastage_service
from ..validation import BackOfficeError

wastage_bp = Blueprint("wastage", __name__, url_prefix="/api/wastage")


@wastage_bp.route("", methods=["POST"])
@require_auth
def create_wastage():
    """
    Write off damaged stock.

    Request body:
    {
        "product_id": int,
        "quantity": int,
        "reason": "damage" | "stain" | "cutting" | "defect" | "expired" | "other",
        "notes": str (optional)
    }

    Returns:
        201: Wastage recorded
        400: Invalid request
        404: Product not found
        422: Insufficient stock
    """
    try:
        data = json_body()
        wastage = wastage_service.create_wastage(
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
        return jsonify(wastage.to_dict()), 201

    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record wastage")
        return jsonify({"error": "InternalError", "message": "Failed to record wastage"}), 500


@wastage_bp.route("", methods=["GET"])
@require_auth
def list_wastage():
    try:
        result = wastage_service.list_wastage(
            product_id=query_int("product_id"),
            reason=request.args.get("reason"),
            start=query_datetime("start"),
            end=query_datetime("end", end_of_day=True),
            **page_args(),
        )
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@wastage_bp.route("/<int:wastage_id>", methods=["GET"])
@require_auth
def get_wastage(wastage_id: int):
    try:
        return jsonify(wastage_service.get_wastage(wastage_id).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status
