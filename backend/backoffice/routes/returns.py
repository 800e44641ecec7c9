# backend/backoffice/routes/returns.py
"""
Customer return API routes.
"""
from flask import Blueprint, jsonify, g, request, current_app

from ..extensions import db
from ..decorators import require_auth
from ..request_utils import json_body, query_datetime, page_args
from ..services import return_service
from ..validation import BackOfficeError

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.route("", methods=["POST"])
@require_auth
def create_return():
    """
    Record a return against a bill.

    Request body:
    {
        "bill_id": int or "bill_number": str,
        "items": [{"product_id": int, "quantity": int, "reason": str (optional)}],
        "refund_mode": "cash" | "upi" | "card" | "adjustment"
    }

    Returns:
        201: Return created
        400: Invalid request
        404: Bill not found
        422: Quantity exceeds what is left to return
    """
    try:
        data = json_body()
        return_doc = return_service.create_return(
            bill_id=data.get("bill_id"),
            bill_number=data.get("bill_number"),
            items=data.get("items"),
            refund_mode=data.get("refund_mode"),
            user_id=g.current_user.id,
        )
        return jsonify(return_doc.to_dict()), 201

    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "InternalError", "message": "Failed to create return"}), 500


@returns_bp.route("", methods=["GET"])
@require_auth
def list_returns():
    try:
        result = return_service.list_returns(
            start=query_datetime("start"),
            end=query_datetime("end", end_of_day=True),
            bill_number=request.args.get("bill_number"),
            **page_args(),
        )
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@returns_bp.route("/<int:return_id>", methods=["GET"])
@require_auth
def get_return(return_id: int):
    try:
        return jsonify(return_service.get_return(return_id).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status
