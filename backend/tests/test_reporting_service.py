"""
Sales and stock reports over bills and products.
"""

from datetime import datetime

import pytest

from backoffice.services import billing_service, reporting_service
from backoffice.validation import ValidationError


@pytest.fixture
def sales(staff_user, other_staff_user, saree, dupatta):
    """
    Three bills over two months:
      2026-09-30 staff   saree x2    210_000
      2026-10-18 staff   dupatta x1   56_000
      2026-10-19 staff2  saree x1    105_000
    """
    def _sell(product, qty, user, when):
        return billing_service.create_bill(
            items=[{"product_id": product.id, "quantity": qty}],
            user_id=user.id,
            now=when,
        )

    return [
        _sell(saree, 2, staff_user, datetime(2026, 9, 30, 10, 0)),
        _sell(dupatta, 1, staff_user, datetime(2026, 10, 18, 12, 0)),
        _sell(saree, 1, other_staff_user, datetime(2026, 10, 19, 9, 0)),
    ]


class TestSalesReport:
    def test_daily_periods(self, sales):
        report = reporting_service.sales_report(group_by="day")

        assert [p["period"] for p in report["periods"]] == ["2026-09-30", "2026-10-18", "2026-10-19"]
        assert [p["revenue_cents"] for p in report["periods"]] == [210_000, 56_000, 105_000]
        assert report["periods"][0]["gst_cents"] == 10_000
        assert report["total_revenue_cents"] == 371_000
        assert report["bill_count"] == 3
        assert report["average_bill_cents"] == 123_667

    def test_monthly_periods(self, sales):
        report = reporting_service.sales_report(group_by="month")
        assert [(p["period"], p["revenue_cents"], p["bill_count"]) for p in report["periods"]] == [
            ("2026-09", 210_000, 1),
            ("2026-10", 161_000, 2),
        ]

    def test_date_range_end_is_exclusive(self, sales):
        report = reporting_service.sales_report(
            start=datetime(2026, 10, 1),
            end=datetime(2026, 10, 19),
        )
        assert report["bill_count"] == 1
        assert report["total_revenue_cents"] == 56_000

    def test_top_products(self, sales, saree):
        top = reporting_service.sales_report()["top_products"]
        assert top[0]["product_id"] == saree.id
        assert top[0]["quantity"] == 3
        assert top[0]["revenue_cents"] == 315_000
        assert top[0]["bill_count"] == 2

    def test_bad_grouping(self, sales):
        with pytest.raises(ValidationError):
            reporting_service.sales_report(group_by="week")

    def test_no_bills(self, db_session):
        report = reporting_service.sales_report()
        assert report["periods"] == []
        assert report["average_bill_cents"] == 0


class TestBreakdowns:
    def test_product_wise(self, sales, saree, dupatta):
        report = reporting_service.product_wise_sales()
        assert [p["product_id"] for p in report["products"]] == [saree.id, dupatta.id]
        assert report["products"][1]["revenue_cents"] == 56_000
        assert report["products"][1]["sku"] == dupatta.sku

        assert reporting_service.product_wise_sales(limit=1)["count"] == 1

    def test_staff_wise(self, sales, staff_user, other_staff_user):
        report = reporting_service.staff_wise_sales()

        assert [s["user_id"] for s in report["staff"]] == [staff_user.id, other_staff_user.id]
        first = report["staff"][0]
        assert first["bill_count"] == 2
        assert first["revenue_cents"] == 266_000
        assert first["average_bill_cents"] == 133_000
        assert report["total_revenue_cents"] == 371_000
        assert report["total_bills"] == 3

    def test_staff_wise_in_range(self, sales, other_staff_user):
        report = reporting_service.staff_wise_sales(start=datetime(2026, 10, 19))
        assert [s["user_id"] for s in report["staff"]] == [other_staff_user.id]

    def test_highest(self, sales, saree):
        report = reporting_service.highest_sales()
        assert report["highest_month"] == {"period": "2026-09", "revenue_cents": 210_000, "bill_count": 1}
        assert report["highest_day"]["period"] == "2026-09-30"
        assert report["top_product"]["product_id"] == saree.id

    def test_highest_without_bills(self, db_session):
        report = reporting_service.highest_sales()
        assert report["highest_month"] is None
        assert report["top_product"] is None


class TestDeadStock:
    NOW = datetime(2026, 10, 19, 12, 0)

    @pytest.fixture
    def shelf(self, staff_user, saree, make_product):
        billing_service.create_bill(
            items=[{"product_id": saree.id, "quantity": 1}],
            user_id=staff_user.id,
            now=datetime(2026, 10, 10, 10, 0),
        )
        linen = make_product(name="Linen Saree", stock_quantity=10)
        billing_service.create_bill(
            items=[{"product_id": linen.id, "quantity": 1}],
            user_id=staff_user.id,
            now=datetime(2026, 8, 1, 10, 0),
        )
        kota = make_product(name="Kota Doria", cost_price_cents=40_000, stock_quantity=3)
        make_product(name="Sold Out Saree", stock_quantity=0)
        return {"linen": linen, "kota": kota}

    def test_never_sold_first_then_longest_idle(self, shelf):
        report = reporting_service.dead_stock(days=30, now=self.NOW)

        assert [i["product_id"] for i in report["items"]] == [shelf["kota"].id, shelf["linen"].id]
        kota, linen = report["items"]
        assert kota["never_sold"] is True
        assert kota["days_since_last_sale"] is None
        assert linen["days_since_last_sale"] == 79
        assert linen["stock_quantity"] == 9
        assert report["total_stock_value_cents"] == 3 * 40_000 + 9 * 60_000
        assert report["total_stock_quantity"] == 12

    def test_default_window(self, shelf):
        report = reporting_service.dead_stock(now=self.NOW)
        assert report["days"] == 90
        assert [i["product_id"] for i in report["items"]] == [shelf["kota"].id]

    def test_days_must_be_positive(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.dead_stock(days=0)


class TestDashboard:
    NOW = datetime(2026, 10, 19, 15, 0)

    def test_admin_sees_everything(self, sales, admin_user, saree):
        stats = reporting_service.dashboard_stats(actor=admin_user, now=self.NOW)

        assert stats["today_sales_cents"] == 105_000
        assert stats["today_bill_count"] == 1
        assert stats["monthly_revenue_cents"] == 161_000
        assert stats["last_month_revenue_cents"] == 210_000
        assert stats["monthly_revenue_change_pct"] == -23.3
        assert stats["total_products"] == 2
        assert stats["low_stock_count"] == 2
        assert stats["out_of_stock_count"] == 0
        assert stats["bill_count"] == 3
        assert stats["top_products"][0]["product_id"] == saree.id
        assert len(stats["sales_chart"]) == 7
        assert stats["sales_chart"][-1] == {"date": "2026-10-19", "revenue_cents": 105_000}
        assert stats["sales_chart"][-2]["revenue_cents"] == 56_000

    def test_staff_sees_own_bills_only(self, sales, staff_user, dupatta):
        stats = reporting_service.dashboard_stats(actor=staff_user, now=self.NOW)

        assert stats["today_bill_count"] == 0
        assert stats["monthly_revenue_cents"] == 56_000
        assert stats["bill_count"] == 2
        assert stats["total_products"] == 0
        assert [p["product_id"] for p in stats["top_products"]][-1] == dupatta.id
