# backend/backoffice/routes/billing.py
"""
Point-of-sale bill API routes.
"""
from flask import Blueprint, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth
from ..request_utils import json_body, query_int, query_datetime, page_args
from ..services import billing_service
from ..validation import BackOfficeError

billing_bp = Blueprint("billing", __name__, url_prefix="/api/bills")


@billing_bp.route("", methods=["POST"])
@require_auth
def create_bill():
    """
    Create a bill.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "customer": {"customer_id": int} or {"name", "mobile_number", "pan_card",
                     "email", "gst_number", "firm_name"} (optional),
        "discount_bps": int (optional, 0-10000),
        "payment_mode": "cash" | "upi" | "card",
        "additional_charges": [{"service_name", "quantity", "unit", "rate_cents", "fitting_id"}] (optional;
            fitting_id fills name, unit and rate from the fitting service catalogue)
    }

    Returns:
        201: Bill created
        400: Invalid request or discount
        404: Product not found
        409: Concurrent update, retry
        422: Insufficient stock
    """
    try:
        data = json_body()
        bill = billing_service.create_bill(
            items=data.get("items"),
            customer=data.get("customer"),
            discount_bps=data.get("discount_bps") or 0,
            payment_mode=data.get("payment_mode"),
            additional_charges=data.get("additional_charges"),
            user_id=g.current_user.id,
        )
        return jsonify(bill.to_dict()), 201

    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create bill")
        return jsonify({"error": "InternalError", "message": "Failed to create bill"}), 500


@billing_bp.route("", methods=["GET"])
@require_auth
def list_bills():
    """
    List bills, newest first. Staff see only their own bills.

    Query params: start, end (ISO dates, end inclusive of the day),
    customer_id, page, per_page
    """
    try:
        result = billing_service.list_bills(
            user=g.current_user,
            start=query_datetime("start"),
            end=query_datetime("end", end_of_day=True),
            customer_id=query_int("customer_id"),
            **page_args(),
        )
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@billing_bp.route("/<int:bill_id>", methods=["GET"])
@require_auth
def get_bill(bill_id: int):
    try:
        bill = billing_service.get_bill(bill_id)
        return jsonify(bill.to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@billing_bp.route("/number/<string:bill_number>", methods=["GET"])
@require_auth
def get_bill_by_number(bill_number: str):
    try:
        bill = billing_service.get_bill_by_number(bill_number)
        return jsonify(bill.to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status
