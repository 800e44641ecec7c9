# Overview: Read-only sales and stock reports over bills and products.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Bill, BillItem, Category, Product, User
from ..time_utils import utcnow, to_utc_z, dashed_date
from ..validation import ValidationError

PERIOD_FORMATS = {
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
    "year": "%Y",
}
DEFAULT_DEAD_STOCK_DAYS = 90
LOW_STOCK_THRESHOLD = 10
TOP_PRODUCT_LIMIT = 10


def _average(total: int, count: int) -> int:
    """Integer mean, half-up."""
    if count <= 0:
        return 0
    return (total * 2 + count) // (count * 2)


def _bounded(query, start: datetime | None, end: datetime | None):
    """start inclusive, end exclusive."""
    if start:
        query = query.filter(Bill.created_at >= start)
    if end:
        query = query.filter(Bill.created_at < end)
    return query


def _month_start(dt: datetime) -> datetime:
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _next_month(dt: datetime) -> datetime:
    if dt.month == 12:
        return dt.replace(year=dt.year + 1, month=1)
    return dt.replace(month=dt.month + 1)


def _range_dict(start: datetime | None, end: datetime | None) -> dict:
    return {
        "start": to_utc_z(start) if start else None,
        "end": to_utc_z(end) if end else None,
    }


def _product_totals(start: datetime | None, end: datetime | None, *, created_by_user_id: int | None = None):
    revenue = func.coalesce(func.sum(BillItem.line_total_cents), 0)
    query = db.session.query(
        BillItem.product_id.label("product_id"),
        func.max(BillItem.product_name).label("product_name"),
        func.max(BillItem.product_sku).label("sku"),
        func.coalesce(func.sum(BillItem.quantity), 0).label("quantity"),
        revenue.label("revenue_cents"),
        func.count(func.distinct(BillItem.bill_id)).label("bill_count"),
    ).join(Bill, BillItem.bill_id == Bill.id)
    query = _bounded(query, start, end)
    if created_by_user_id is not None:
        query = query.filter(Bill.created_by_user_id == created_by_user_id)
    return query.group_by(BillItem.product_id).order_by(revenue.desc(), BillItem.product_id.asc())


def _product_row(row) -> dict:
    return {
        "product_id": row.product_id,
        "product_name": row.product_name,
        "sku": row.sku,
        "quantity": int(row.quantity or 0),
        "revenue_cents": int(row.revenue_cents or 0),
        "bill_count": int(row.bill_count or 0),
    }


def sales_report(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    group_by: str = "day",
) -> dict:
    """
    Bill totals per period plus the overall figures and top products.

    Revenue is the sum of bill grand totals. Returns are separate documents
    and are not netted off here.
    """
    period_format = PERIOD_FORMATS.get((group_by or "").strip().lower())
    if period_format is None:
        raise ValidationError(f"group_by must be one of: {', '.join(PERIOD_FORMATS)}")
    if start and end and end <= start:
        raise ValidationError("end must be after start")

    period_expr = func.strftime(period_format, Bill.created_at)
    query = db.session.query(
        period_expr.label("period"),
        func.count(Bill.id).label("bill_count"),
        func.coalesce(func.sum(Bill.subtotal_cents), 0).label("subtotal_cents"),
        func.coalesce(func.sum(Bill.gst_cents), 0).label("gst_cents"),
        func.coalesce(func.sum(Bill.discount_cents), 0).label("discount_cents"),
        func.coalesce(func.sum(Bill.additional_charges_cents), 0).label("additional_charges_cents"),
        func.coalesce(func.sum(Bill.grand_total_cents), 0).label("revenue_cents"),
    )
    rows = _bounded(query, start, end).group_by("period").order_by("period").all()

    periods = [
        {
            "period": row.period,
            "bill_count": int(row.bill_count or 0),
            "subtotal_cents": int(row.subtotal_cents or 0),
            "gst_cents": int(row.gst_cents or 0),
            "discount_cents": int(row.discount_cents or 0),
            "additional_charges_cents": int(row.additional_charges_cents or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]
    total_revenue = sum(p["revenue_cents"] for p in periods)
    bill_count = sum(p["bill_count"] for p in periods)
    top = _product_totals(start, end).limit(TOP_PRODUCT_LIMIT).all()

    return {
        **_range_dict(start, end),
        "group_by": group_by.strip().lower(),
        "total_revenue_cents": total_revenue,
        "bill_count": bill_count,
        "average_bill_cents": _average(total_revenue, bill_count),
        "periods": periods,
        "top_products": [_product_row(r) for r in top],
    }


def product_wise_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> dict:
    """Units, revenue (GST-inclusive line totals) and bill count per product."""
    query = _product_totals(start, end)
    if limit:
        query = query.limit(limit)
    products = [_product_row(r) for r in query.all()]
    return {
        **_range_dict(start, end),
        "products": products,
        "count": len(products),
    }


def staff_wise_sales(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Bill count and revenue per user who rang the bills up."""
    revenue = func.coalesce(func.sum(Bill.grand_total_cents), 0)
    query = db.session.query(
        User.id.label("user_id"),
        User.username.label("username"),
        User.name.label("name"),
        User.role.label("role"),
        func.count(Bill.id).label("bill_count"),
        revenue.label("revenue_cents"),
    ).join(Bill, Bill.created_by_user_id == User.id)
    rows = (
        _bounded(query, start, end)
        .group_by(User.id, User.username, User.name, User.role)
        .order_by(revenue.desc(), User.id.asc())
        .all()
    )

    staff = []
    for row in rows:
        revenue_cents = int(row.revenue_cents or 0)
        bill_count = int(row.bill_count or 0)
        staff.append({
            "user_id": row.user_id,
            "username": row.username,
            "name": row.name,
            "role": row.role,
            "bill_count": bill_count,
            "revenue_cents": revenue_cents,
            "average_bill_cents": _average(revenue_cents, bill_count),
        })

    total_revenue = sum(s["revenue_cents"] for s in staff)
    total_bills = sum(s["bill_count"] for s in staff)
    return {
        **_range_dict(start, end),
        "staff": staff,
        "total_revenue_cents": total_revenue,
        "total_bills": total_bills,
        "average_bill_cents": _average(total_revenue, total_bills),
    }


def highest_sales() -> dict:
    """Best month, best day and best-selling product across all bills."""
    def _best(fmt: str):
        period = func.strftime(fmt, Bill.created_at)
        revenue = func.sum(Bill.grand_total_cents)
        return (
            db.session.query(
                period.label("period"),
                revenue.label("revenue_cents"),
                func.count(Bill.id).label("bill_count"),
            )
            .group_by("period")
            .order_by(revenue.desc(), period.asc())
            .first()
        )

    def _period(row) -> dict | None:
        if row is None:
            return None
        return {
            "period": row.period,
            "revenue_cents": int(row.revenue_cents or 0),
            "bill_count": int(row.bill_count or 0),
        }

    top = _product_totals(None, None).first()
    return {
        "highest_month": _period(_best(PERIOD_FORMATS["month"])),
        "highest_day": _period(_best(PERIOD_FORMATS["day"])),
        "top_product": _product_row(top) if top else None,
    }


def dead_stock(*, days: int | None = None, now: datetime | None = None) -> dict:
    """
    Products with stock on hand that have not sold in `days` days.

    Never-sold products come first, then the longest-idle. Stock value is
    cost price x quantity on hand.
    """
    days = DEFAULT_DEAD_STOCK_DAYS if days is None else days
    if days < 1:
        raise ValidationError("days must be >= 1")
    now = now or utcnow()
    cutoff = now - timedelta(days=days)

    last_sale = (
        db.session.query(
            BillItem.product_id.label("product_id"),
            func.max(Bill.created_at).label("last_sale_at"),
        )
        .join(Bill, BillItem.bill_id == Bill.id)
        .group_by(BillItem.product_id)
        .subquery()
    )
    rows = (
        db.session.query(Product, Category.name, last_sale.c.last_sale_at)
        .outerjoin(Category, Product.category_id == Category.id)
        .outerjoin(last_sale, last_sale.c.product_id == Product.id)
        .filter(Product.stock_quantity > 0)
        .filter((last_sale.c.last_sale_at.is_(None)) | (last_sale.c.last_sale_at < cutoff))
        .all()
    )

    items = []
    for product, category_name, last_sale_at in rows:
        items.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "category_name": category_name,
            "stock_quantity": product.stock_quantity,
            "cost_price_cents": product.cost_price_cents,
            "selling_price_cents": product.selling_price_cents,
            "stock_value_cents": product.cost_price_cents * product.stock_quantity,
            "last_sale_at": to_utc_z(last_sale_at) if last_sale_at else None,
            "days_since_last_sale": (now - last_sale_at).days if last_sale_at else None,
            "never_sold": last_sale_at is None,
        })
    items.sort(key=lambda i: (not i["never_sold"], -(i["days_since_last_sale"] or 0), i["product_id"]))

    return {
        "days": days,
        "cutoff": to_utc_z(cutoff),
        "items": items,
        "count": len(items),
        "total_stock_value_cents": sum(i["stock_value_cents"] for i in items),
        "total_stock_quantity": sum(i["stock_quantity"] for i in items),
    }


def dashboard_stats(*, actor: User, now: datetime | None = None) -> dict:
    """
    Headline figures for the landing screen.

    Staff see only the bills they created and no catalogue counts; admins
    see everything.
    """
    now = now or utcnow()
    own_only = not actor.is_admin

    def _bills():
        query = db.session.query(Bill)
        if own_only:
            query = query.filter(Bill.created_by_user_id == actor.id)
        return query

    def _revenue(start: datetime, end: datetime) -> tuple[int, int]:
        query = db.session.query(
            func.coalesce(func.sum(Bill.grand_total_cents), 0),
            func.count(Bill.id),
        )
        if own_only:
            query = query.filter(Bill.created_by_user_id == actor.id)
        total, count = _bounded(query, start, end).one()
        return int(total or 0), int(count or 0)

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    month_start = _month_start(now)
    last_month_start = _month_start(month_start - timedelta(days=1))

    today_sales, today_bills = _revenue(today, tomorrow)
    month_revenue, _ = _revenue(month_start, _next_month(month_start))
    last_month_revenue, _ = _revenue(last_month_start, month_start)
    change_pct = None
    if last_month_revenue:
        change_pct = round((month_revenue - last_month_revenue) / last_month_revenue * 100.0, 1)

    chart = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        revenue, _ = _revenue(day, day + timedelta(days=1))
        chart.append({"date": dashed_date(day), "revenue_cents": revenue})

    top = _product_totals(
        today - timedelta(days=30),
        tomorrow,
        created_by_user_id=actor.id if own_only else None,
    ).limit(5).all()

    if own_only:
        total_products = low_stock = out_of_stock = 0
    else:
        products = db.session.query(Product)
        total_products = products.count()
        low_stock = products.filter(Product.stock_quantity > 0, Product.stock_quantity < LOW_STOCK_THRESHOLD).count()
        out_of_stock = products.filter(Product.stock_quantity == 0).count()

    return {
        "total_products": total_products,
        "low_stock_count": low_stock,
        "out_of_stock_count": out_of_stock,
        "today_sales_cents": today_sales,
        "today_bill_count": today_bills,
        "monthly_revenue_cents": month_revenue,
        "last_month_revenue_cents": last_month_revenue,
        "monthly_revenue_change_pct": change_pct,
        "bill_count": _bills().count(),
        "top_products": [_product_row(r) for r in top],
        "sales_chart": chart,
    }
