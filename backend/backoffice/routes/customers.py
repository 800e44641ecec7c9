# backend/backoffice/routes/customers.py
"""
Customer API routes. Purchase aggregates are read-only here.
"""
from flask import Blueprint, jsonify, request, current_app

from ..extensions import db
from ..decorators import require_auth
from ..request_utils import json_body, page_args
from ..services import customer_service
from ..validation import BackOfficeError

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.route("", methods=["GET"])
@require_auth
def list_customers():
    try:
        result = customer_service.list_customers(search=request.args.get("search"), **page_args())
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@customers_bp.route("/<int:customer_id>", methods=["GET"])
@require_auth
def get_customer(customer_id: int):
    try:
        return jsonify(customer_service.get_customer(customer_id).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@customers_bp.route("/mobile/<string:mobile>", methods=["GET"])
@require_auth
def get_customer_by_mobile(mobile: str):
    try:
        return jsonify(customer_service.get_customer_by_mobile(mobile).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@customers_bp.route("/<int:customer_id>", methods=["PATCH"])
@require_auth
def update_customer(customer_id: int):
    """Edit profile fields. mobile_number and aggregates are not editable."""
    try:
        customer = customer_service.update_customer(customer_id, json_body())
        return jsonify(customer.to_dict()), 200
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "InternalError", "message": "Failed to update customer"}), 500
