# backend/backoffice/routes/fittings.py
"""
Fitting service catalogue API routes. Anyone signed in may read; only an
admin may change rates.
"""
from flask import Blueprint, jsonify, g

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN
from ..request_utils import json_body, query_bool
from ..services import fitting_service
from ..validation import BackOfficeError

fittings_bp = Blueprint("fittings", __name__, url_prefix="/api/fittings")


@fittings_bp.route("", methods=["GET"])
@require_auth
def list_fittings():
    """Query params: active_only"""
    fittings = fitting_service.list_fittings(active_only=bool(query_bool("active_only")))
    return jsonify({"items": [f.to_dict() for f in fittings], "count": len(fittings)}), 200


@fittings_bp.route("/<int:fitting_id>", methods=["GET"])
@require_auth
def get_fitting(fitting_id: int):
    try:
        return jsonify(fitting_service.get_fitting(fitting_id).to_dict()), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@fittings_bp.route("", methods=["POST"])
@require_auth
@require_role(ROLE_ADMIN)
def create_fitting():
    """
    Request body:
    {
        "service_name": str,
        "rate_cents": int (or "rate" in rupees),
        "unit": str (optional, default "item"),
        "description": str (optional),
        "is_active": bool (optional, default true)
    }
    """
    try:
        fitting = fitting_service.create_fitting(data=json_body(), user_id=g.current_user.id)
        return jsonify(fitting.to_dict()), 201
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status


@fittings_bp.route("/<int:fitting_id>", methods=["PATCH"])
@require_auth
@require_role(ROLE_ADMIN)
def update_fitting(fitting_id: int):
    try:
        fitting = fitting_service.update_fitting(fitting_id, json_body())
        return jsonify(fitting.to_dict()), 200
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status


@fittings_bp.route("/<int:fitting_id>", methods=["DELETE"])
@require_auth
@require_role(ROLE_ADMIN)
def delete_fitting(fitting_id: int):
    try:
        fitting_service.delete_fitting(fitting_id)
        return jsonify({"message": "Fitting service deleted"}), 200
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
