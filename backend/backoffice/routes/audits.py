# backend/backoffice/routes/audits.py
"""
Physical stock audit API routes.
"""
from flask import Blueprint, jsonify, g, request, current_app

from ..extensions import db
from ..decorators import require_auth
from ..request_utils import json_body, query_datetime, page_args
from ..services import audit_service
from ..validation import BackOfficeError, to_bool

audits_bp = Blueprint("stock_audits", __name__, url_prefix="/api/stock-audits")


def _error(e: Exception, action: str):
    db.session.rollback()
    if isinstance(e, BackOfficeError):
        return jsonify(e.to_dict()), e.http_status
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "InternalError", "message": f"Failed to {action}"}), 500


@audits_bp.route("", methods=["POST"])
@require_auth
def create_audit():
    """
    Open a stock audit.

    Request body:
    {
        "notes": str (optional)
    }

    Returns:
        201: Audit created (status in_progress)
    """
    try:
        data = json_body()
        audit = audit_service.create_audit(user_id=g.current_user.id, notes=data.get("notes"))
        return jsonify(audit.to_dict()), 201
    except Exception as e:
        return _error(e, "create stock audit")


@audits_bp.route("", methods=["GET"])
@require_auth
def list_audits():
    try:
        result = audit_service.list_audits(
            status=request.args.get("status"),
            start=query_datetime("start"),
            end=query_datetime("end", end_of_day=True),
            **page_args(),
        )
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@audits_bp.route("/<int:audit_id>", methods=["GET"])
@require_auth
def get_audit(audit_id: int):
    try:
        return jsonify(audit_service.get_audit(audit_id).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@audits_bp.route("/<int:audit_id>/items", methods=["POST"])
@require_auth
def add_audit_item(audit_id: int):
    """
    Scan a product into the audit. Re-scanning replaces the earlier count.

    Request body:
    {
        "sku": str,
        "physical_stock": int,
        "notes": str (optional)
    }

    Returns:
        200: Updated audit
        404: Audit or product not found
        409: Audit is not in progress
    """
    try:
        data = json_body()
        audit = audit_service.add_audit_item(
            audit_id,
            sku=data.get("sku"),
            physical_stock=data.get("physical_stock"),
            notes=data.get("notes"),
        )
        return jsonify(audit.to_dict()), 200
    except Exception as e:
        return _error(e, "add audit item")


@audits_bp.route("/<int:audit_id>/items/<int:product_id>", methods=["DELETE"])
@require_auth
def remove_audit_item(audit_id: int, product_id: int):
    try:
        audit = audit_service.remove_audit_item(audit_id, product_id)
        return jsonify(audit.to_dict()), 200
    except Exception as e:
        return _error(e, "remove audit item")


@audits_bp.route("/<int:audit_id>/complete", methods=["POST"])
@require_auth
def complete_audit(audit_id: int):
    """
    Complete the audit.

    Request body:
    {
        "apply_adjustments": bool (optional, default false)
    }
    """
    try:
        data = json_body()
        audit = audit_service.complete_audit(
            audit_id,
            user_id=g.current_user.id,
            apply_adjustments=to_bool(data.get("apply_adjustments"), "apply_adjustments"),
        )
        return jsonify(audit.to_dict()), 200
    except Exception as e:
        return _error(e, "complete stock audit")


@audits_bp.route("/<int:audit_id>/cancel", methods=["POST"])
@require_auth
def cancel_audit(audit_id: int):
    try:
        audit = audit_service.cancel_audit(audit_id, user_id=g.current_user.id)
        return jsonify(audit.to_dict()), 200
    except Exception as e:
        return _error(e, "cancel stock audit")
