from datetime import datetime

import pytest


@pytest.fixture()
def sold(db, services, make_product, place):
    """One kept order with a profitable and a loss-making line, one cancelled order."""
    keyboard = make_product(name="Keyboard", price=10.0, cost=6.0, stock=20)
    cable = make_product(name="Cable", price=5.0, cost=7.0, stock=20)
    unsold = make_product(name="Stand", price=30.0, cost=12.0, stock=20)

    place([(keyboard.id, 2), (cable.id, 1)])
    cancelled = place([(keyboard.id, 1)])
    services.orders.cancel_order(db, cancelled.id, "user_123")

    return {"keyboard": keyboard.id, "cable": cable.id, "unsold": unsold.id}


class TestProfitLoss:
    def test_empty_when_nothing_sold(self, db, services, make_product):
        make_product()

        summary = services.reports.profit_loss(db)

        assert summary["total_revenue"] == 0.0
        assert summary["total_products_sold"] == 0
        assert summary["products"] == []

    def test_excludes_cancelled_orders(self, db, services, sold):
        summary = services.reports.profit_loss(db)

        assert summary["total_revenue"] == 25.0
        assert summary["total_cost"] == 19.0
        assert summary["total_profit"] == 6.0
        assert summary["total_profit_margin"] == 24.0
        assert summary["total_products_sold"] == 3

    def test_rows_sorted_by_profit(self, db, services, sold):
        rows = services.reports.profit_loss(db)["products"]

        assert [row["product_id"] for row in rows] == [sold["keyboard"], sold["unsold"], sold["cable"]]
        keyboard, unsold, cable = rows
        assert keyboard["total_quantity_sold"] == 2
        assert keyboard["profit"] == 8.0
        assert keyboard["profit_margin"] == 40.0
        assert keyboard["profit_per_unit"] == 4.0
        assert unsold["total_quantity_sold"] == 0
        assert unsold["profit_margin"] == 0.0
        assert cable["profit"] == -2.0
        assert cable["profit_margin"] == -40.0

    def test_status_filter(self, db, services, sold):
        summary = services.reports.profit_loss(db, statuses=["cancelled"])

        assert summary["total_revenue"] == 10.0
        assert summary["total_products_sold"] == 1

    def test_date_range(self, db, services, sold):
        assert services.reports.profit_loss(db, start=datetime(2100, 1, 1))["products"] == []

    def test_single_product(self, db, services, sold):
        row = services.reports.product_profit_loss(db, sold["cable"])

        assert row["total_revenue"] == 5.0
        assert row["total_cost"] == 7.0


class TestSalesReport:
    def test_profit_and_loss_are_split(self, db, services, sold):
        report = services.sales.sales_report(db)

        assert report["sale_count"] == 2
        assert report["total_sales"] == 25.0
        assert report["total_cost"] == 19.0
        assert report["total_profit"] == 8.0
        assert report["total_loss"] == 2.0
        assert report["net_profit"] == 6.0
        assert [row["product_name"] for row in report["products"]] == ["Keyboard", "Cable"]

    def test_list_sales_for_product(self, db, services, sold):
        sales = services.sales.list_sales(db, product_id=sold["keyboard"])

        assert [sale.quantity for sale in sales] == [2]
