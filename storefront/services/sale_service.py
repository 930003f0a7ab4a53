"""Sale records kept for profit/loss reporting."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from storefront.models import Order, OrderItem, Product, Sale
from storefront.monitoring import sale_record_failures_counter
from storefront.order_status import OrderStatus

logger = logging.getLogger(__name__)


class SaleService:
    """Writes and reads the denormalized ``sales`` table."""

    def build_sale(self, order: Order, item: OrderItem, cost_price: float) -> Sale:
        sale_price = item.unit_price
        return Sale(
            order_id=order.id,
            product_id=item.product_id,
            user_id=order.user_id,
            quantity=item.quantity,
            sale_price=sale_price,
            cost_price=cost_price,
            total_amount=round(sale_price * item.quantity, 2),
            profit=round((sale_price - cost_price) * item.quantity, 2)
        )

    def record_sales(self, db: Session, order: Order, costs: Mapping[int, float]) -> bool:
        """
        Record one sale per order line, best effort.

        Runs inside a SAVEPOINT so a failure only discards the sale rows and
        leaves the surrounding order transaction usable.

        Args:
            db: Database session with the order already flushed
            order: Order whose lines are recorded
            costs: Cost price per product id at purchase time

        Returns:
            True if every sale was written, False if they were skipped
        """
        try:
            with db.begin_nested():
                for item in order.items:
                    db.add(self.build_sale(order, item, costs.get(item.product_id, 0.0)))
            return True
        except Exception as e:
            sale_record_failures_counter.add(1, {"line_count": str(len(order.items))})
            logger.error("Failed to record sales for order", extra={
                "order_id": order.id,
                "line_count": len(order.items),
                "error": str(e)
            }, exc_info=True)
            return False

    def _filtered(
        self,
        db: Session,
        product_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ):
        query = (
            db.query(Sale)
            .outerjoin(Order, Sale.order_id == Order.id)
            .filter(or_(Order.id.is_(None), Order.status != OrderStatus.CANCELLED.value))
        )
        if product_id is not None:
            query = query.filter(Sale.product_id == product_id)
        if start is not None:
            query = query.filter(Sale.created_at >= start)
        if end is not None:
            query = query.filter(Sale.created_at <= end)
        return query

    def list_sales(
        self,
        db: Session,
        product_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Sale]:
        return self._filtered(db, product_id, start, end).order_by(Sale.created_at.desc(), Sale.id.desc()).all()

    def sales_report(
        self,
        db: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Profit/loss computed from recorded sales.

        Unlike the order-based report this uses the cost price captured when
        each sale was made. Sales of cancelled orders are excluded.
        """
        sales = self._filtered(db, start=start, end=end).all()
        names = dict(db.query(Product.id, Product.name).all())

        breakdown: Dict[int, Dict[str, Any]] = {}
        for sale in sales:
            row = breakdown.setdefault(sale.product_id, {
                "product_id": sale.product_id,
                "product_name": names.get(sale.product_id, "Unknown product"),
                "total_sold": 0,
                "total_revenue": 0.0,
                "total_cost": 0.0,
                "profit": 0.0,
                "loss": 0.0,
            })
            row["total_sold"] += sale.quantity
            row["total_revenue"] += sale.total_amount
            row["total_cost"] += sale.cost_price * sale.quantity
            if sale.profit >= 0:
                row["profit"] += sale.profit
            else:
                row["loss"] += -sale.profit

        products = []
        for row in breakdown.values():
            for key in ("total_revenue", "total_cost", "profit", "loss"):
                row[key] = round(row[key], 2)
            row["net_profit"] = round(row["profit"] - row["loss"], 2)
            products.append(row)
        products.sort(key=lambda row: row["net_profit"], reverse=True)

        total_profit = round(sum(row["profit"] for row in products), 2)
        total_loss = round(sum(row["loss"] for row in products), 2)
        return {
            "total_sales": round(sum(row["total_revenue"] for row in products), 2),
            "total_cost": round(sum(row["total_cost"] for row in products), 2),
            "total_profit": total_profit,
            "total_loss": total_loss,
            "net_profit": round(total_profit - total_loss, 2),
            "sale_count": len(sales),
            "products": products
        }
