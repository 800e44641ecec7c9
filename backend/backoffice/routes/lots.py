# backend/backoffice/routes/lots.py
"""
Import lot API routes.
"""
from flask import Blueprint, jsonify, g, request

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN
from ..request_utils import query_int, page_args
from ..services import lot_service
from ..validation import BackOfficeError

lots_bp = Blueprint("lots", __name__, url_prefix="/api/lots")


@lots_bp.route("", methods=["GET"])
@require_auth
def list_lots():
    try:
        result = lot_service.list_lots(
            status=request.args.get("status"),
            category_id=query_int("category_id"),
            **page_args(),
        )
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@lots_bp.route("/<int:lot_id>", methods=["GET"])
@require_auth
def get_lot(lot_id: int):
    """Lot header plus the products it brought in."""
    try:
        lot = lot_service.get_lot(lot_id)
        payload = lot.to_dict()
        payload["products"] = [p.to_dict() for p in lot_service.get_lot_products(lot_id)]
        return jsonify(payload), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@lots_bp.route("/<int:lot_id>/close", methods=["POST"])
@require_auth
@require_role(ROLE_ADMIN)
def close_lot(lot_id: int):
    try:
        lot = lot_service.close_lot(lot_id, user_id=g.current_user.id)
        return jsonify(lot.to_dict()), 200
    except BackOfficeError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
