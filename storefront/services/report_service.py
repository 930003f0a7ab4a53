"""Profit/loss reporting over committed orders."""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.models import Order, OrderItem, Product
from storefront.order_status import REVENUE_STATUSES

logger = logging.getLogger(__name__)


def _empty_summary() -> Dict[str, Any]:
    return {
        "total_revenue": 0.0,
        "total_cost": 0.0,
        "total_profit": 0.0,
        "total_profit_margin": 0.0,
        "total_products_sold": 0,
        "products": []
    }


class ReportService:
    """
    Read-only aggregation of order items by product.

    Revenue uses the snapshot price stored on each order item. Cost uses the
    product's current cost, so editing a cost changes historical reports.
    """

    def profit_loss(
        self,
        db: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        statuses: Optional[Iterable[str]] = None
    ) -> Dict[str, Any]:
        """
        Profit/loss per product for orders in a date range and status set.

        Args:
            db: Database session
            start: Include orders created at or after this time
            end: Include orders created at or before this time
            statuses: Order statuses to include; defaults to every
                revenue-recognized status

        Returns:
            Business summary with one row per product, sorted by profit
        """
        statuses = list(statuses or [])
        if not statuses:
            statuses = [status.value for status in REVENUE_STATUSES]

        query = (
            db.query(
                OrderItem.product_id,
                func.sum(OrderItem.quantity),
                func.sum(OrderItem.total_price)
            )
            .join(Order, OrderItem.order_id == Order.id)
            .filter(Order.status.in_(statuses))
        )
        if start is not None:
            query = query.filter(Order.created_at >= start)
        if end is not None:
            query = query.filter(Order.created_at <= end)

        stats = {
            product_id: (int(quantity or 0), float(revenue or 0.0))
            for product_id, quantity, revenue in query.group_by(OrderItem.product_id).all()
        }

        logger.debug("Computed profit/loss aggregates", extra={
            "statuses": statuses,
            "product_count": len(stats)
        })

        if not stats:
            return _empty_summary()

        rows: List[Dict[str, Any]] = []
        for product in db.query(Product).all():
            quantity, revenue = stats.get(product.id, (0, 0.0))
            cost_price = product.cost or 0.0
            total_cost = quantity * cost_price
            profit = revenue - total_cost
            rows.append({
                "product_id": product.id,
                "product_name": product.name,
                "product_slug": product.slug,
                "cost_price": cost_price,
                "selling_price": product.price,
                "total_quantity_sold": quantity,
                "total_revenue": round(revenue, 2),
                "total_cost": round(total_cost, 2),
                "profit": round(profit, 2),
                "profit_margin": round(profit / revenue * 100, 2) if revenue > 0 else 0.0,
                "profit_per_unit": round(product.price - cost_price, 2)
            })

        rows.sort(key=lambda row: row["profit"], reverse=True)

        total_revenue = sum(row["total_revenue"] for row in rows)
        total_cost = sum(row["total_cost"] for row in rows)
        total_profit = total_revenue - total_cost
        return {
            "total_revenue": round(total_revenue, 2),
            "total_cost": round(total_cost, 2),
            "total_profit": round(total_profit, 2),
            "total_profit_margin": round(total_profit / total_revenue * 100, 2) if total_revenue > 0 else 0.0,
            "total_products_sold": sum(row["total_quantity_sold"] for row in rows),
            "products": rows
        }

    def product_profit_loss(
        self,
        db: Session,
        product_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        statuses: Optional[Iterable[str]] = None
    ) -> Optional[Dict[str, Any]]:
        summary = self.profit_loss(db, start, end, statuses)
        for row in summary["products"]:
            if row["product_id"] == product_id:
                return row
        return None
