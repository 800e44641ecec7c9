# backend/backoffice/routes/reports.py
"""
Reporting API routes. All figures are integer cents.

Date filters take ISO dates; a bare `end` date covers that whole day.
"""
from flask import Blueprint, jsonify, g, request

from ..decorators import require_auth
from ..request_utils import query_int, query_datetime
from ..services import reporting_service
from ..validation import BackOfficeError

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range() -> dict:
    return {
        "start": query_datetime("start"),
        "end": query_datetime("end", end_of_day=True),
    }


@reports_bp.route("/sales", methods=["GET"])
@require_auth
def sales_report():
    """
    Bill totals grouped by period.

    Query params: start, end, group_by (day | month | year, default day)
    """
    try:
        result = reporting_service.sales_report(group_by=request.args.get("group_by", "day"), **_range())
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@reports_bp.route("/product-wise", methods=["GET"])
@require_auth
def product_wise_sales():
    try:
        result = reporting_service.product_wise_sales(limit=query_int("limit"), **_range())
        return jsonify(result), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@reports_bp.route("/staff-wise", methods=["GET"])
@require_auth
def staff_wise_sales():
    try:
        return jsonify(reporting_service.staff_wise_sales(**_range())), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@reports_bp.route("/highest", methods=["GET"])
@require_auth
def highest_sales():
    return jsonify(reporting_service.highest_sales()), 200


@reports_bp.route("/dead-stock", methods=["GET"])
@require_auth
def dead_stock():
    """
    Products in stock that have not sold recently.

    Query params: days (default 90)
    """
    try:
        return jsonify(reporting_service.dead_stock(days=query_int("days"))), 200
    except BackOfficeError as e:
        return jsonify(e.to_dict()), e.http_status


@reports_bp.route("/dashboard", methods=["GET"])
@require_auth
def dashboard():
    return jsonify(reporting_service.dashboard_stats(actor=g.current_user)), 200
