"""Order management service."""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import redis
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from opentelemetry import trace

from storefront.errors import (
    EmptyCartError,
    InsufficientStockError,
    OrderNotFoundError,
    PersistenceError,
    ProductNotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.models import Order, OrderItem, Product, utcnow
from storefront.monitoring import (
    checkout_amount_histogram,
    checkout_counter,
    order_status_transitions_counter,
    stock_conflicts_counter,
)
from storefront.order_status import INITIAL_STATUS, OrderStatus, ensure_transition, parse_status
from storefront.services.cart_service import CartLine, CartService
from storefront.services.catalog_service import CatalogService
from storefront.services.notification_service import NotificationService
from storefront.services.sale_service import SaleService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class CustomerInfo:
    """Contact and delivery details captured at checkout."""
    name: str
    email: str
    address: str
    phone: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    payment_method: Optional[str] = None

    def validate(self) -> None:
        missing = [
            label for label, value in (
                ("name", self.name),
                ("email", self.email),
                ("address", self.address),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError(f"Missing required customer fields: {', '.join(missing)}")
        if not EMAIL_PATTERN.match(self.email.strip()):
            raise ValidationError("Customer email is not valid")

    def full_address(self) -> str:
        parts = [self.address, self.city, self.postal_code, self.country]
        return ", ".join(part.strip() for part in parts if part and part.strip())


@dataclass
class PricedLine:
    product: Product
    quantity: int
    unit_price: float
    total_price: float


class OrderService:
    """Service for placing and managing orders."""

    def __init__(
        self,
        cart_service: CartService,
        catalog: CatalogService,
        sale_service: SaleService,
        notifications: Optional[NotificationService],
        shipping_fees: Mapping[str, float]
    ):
        """
        Initialize order service.

        Args:
            cart_service: Cart service instance
            catalog: Catalog service, the only writer of product stock
            sale_service: Sale recorder for profit/loss reporting
            notifications: Low stock notifier; None disables alerts
            shipping_fees: Shipping cost per shipping method
        """
        self.cart_service = cart_service
        self.catalog = catalog
        self.sale_service = sale_service
        self.notifications = notifications
        self.shipping_fees = dict(shipping_fees)
        self.tracer = trace.get_tracer(__name__)

    def shipping_cost_for(self, shipping_method: str) -> float:
        try:
            return float(self.shipping_fees[shipping_method])
        except KeyError:
            allowed = ", ".join(sorted(self.shipping_fees))
            raise ValidationError(f"Unknown shipping method '{shipping_method}'. Expected one of: {allowed}")

    async def place_order(
        self,
        db: Session,
        owner_id: str,
        customer: CustomerInfo,
        shipping_method: str,
        user_id: Optional[str] = None
    ) -> Order:
        """
        Check out the owner's current cart.

        Args:
            db: Database session
            owner_id: Cart owner (user id or guest session)
            customer: Customer contact and address
            shipping_method: Key into the shipping fee table
            user_id: Authenticated user placing the order, if any

        Returns:
            The committed order with its items
        """
        cart_snapshot = self.cart_service.get_items(db, owner_id)
        if not cart_snapshot:
            checkout_counter.add(1, {"shipping_method": shipping_method, "status": "rejected"})
            raise EmptyCartError()
        shipping_cost = self.shipping_cost_for(shipping_method)
        return await self.place_order_from_snapshot(
            db,
            cart_snapshot,
            customer,
            shipping_cost,
            shipping_method=shipping_method,
            owner_id=owner_id,
            user_id=user_id
        )

    def _validate_lines(self, db: Session, cart_snapshot: Sequence[CartLine]) -> List[PricedLine]:
        requested: Dict[int, int] = {}
        for line in cart_snapshot:
            if line.quantity < 1:
                raise ValidationError(f"Quantity for product {line.product_id} must be greater than 0")
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

        products: Dict[int, Product] = {}
        for product_id, quantity in requested.items():
            product = self.catalog.get_by_id(db, product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if product.stock < quantity:
                raise InsufficientStockError(product_id, quantity, product.stock, product.name)
            products[product_id] = product

        priced = []
        for product_id, quantity in requested.items():
            product = products[product_id]
            priced.append(PricedLine(
                product=product,
                quantity=quantity,
                unit_price=product.price,
                total_price=round(product.price * quantity, 2)
            ))
        return priced

    async def place_order_from_snapshot(
        self,
        db: Session,
        cart_snapshot: Sequence[CartLine],
        customer: CustomerInfo,
        shipping_cost: float,
        shipping_method: Optional[str] = None,
        owner_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Order:
        """
        Turn a cart snapshot into a committed order.

        The order header, its items, the stock decrements and the cart
        clearing commit together or not at all. Sale records are best effort:
        a failure there is logged and the order still commits.

        Args:
            db: Database session
            cart_snapshot: Lines read from the cart at checkout time
            customer: Customer contact and address
            shipping_cost: Shipping fee added to the subtotal
            shipping_method: Shipping method recorded on the order
            owner_id: Cart owner, cleared on success
            user_id: Authenticated user placing the order, if any

        Returns:
            The committed order with its items

        Raises:
            EmptyCartError: If the snapshot has no lines
            ValidationError: If customer fields or quantities are invalid
            ProductNotFoundError: If a product no longer exists
            InsufficientStockError: If stock does not cover a line
            PersistenceError: If the database write fails
        """
        span = trace.get_current_span()
        span.set_attribute("order.line_count", len(cart_snapshot))
        labels = {"shipping_method": shipping_method or "none"}

        # Validation performs no writes
        try:
            if not cart_snapshot:
                raise EmptyCartError()
            customer.validate()
            if shipping_cost < 0:
                raise ValidationError("Shipping cost must not be negative")
            lines = self._validate_lines(db, cart_snapshot)
        except StorefrontError:
            checkout_counter.add(1, {**labels, "status": "rejected"})
            raise

        subtotal = round(sum(line.total_price for line in lines), 2)
        total_amount = round(subtotal + shipping_cost, 2)
        costs = {line.product.id: line.product.cost or 0.0 for line in lines}
        touched: List[Tuple[int, str, int]] = []

        try:
            with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
                db_span.set_attribute("db.operation", "INSERT")
                db_span.set_attribute("db.table", "orders")
                db_span.set_attribute("order.total_amount", total_amount)

                order = Order(
                    user_id=user_id,
                    customer_name=customer.name.strip(),
                    customer_email=customer.email.strip(),
                    customer_address=customer.full_address(),
                    customer_phone=customer.phone,
                    customer_city=customer.city,
                    customer_postal_code=customer.postal_code,
                    customer_country=customer.country,
                    shipping_method=shipping_method,
                    payment_method=customer.payment_method,
                    shipping_cost=shipping_cost,
                    subtotal=subtotal,
                    total_amount=total_amount,
                    status=INITIAL_STATUS.value
                )
                for line in lines:
                    order.items.append(OrderItem(
                        product_id=line.product.id,
                        product_name=line.product.name,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        total_price=line.total_price
                    ))
                db.add(order)
                db.flush()

                for line in lines:
                    remaining = self.catalog.decrement_stock(db, line.product.id, line.quantity)
                    if remaining is None:
                        # Another checkout took the stock after validation
                        stock_conflicts_counter.add(1, {"product_id": str(line.product.id)})
                        available = self.catalog.current_stock(db, line.product.id)
                        raise InsufficientStockError(line.product.id, line.quantity, available, line.product.name)
                    touched.append((line.product.id, line.product.name, remaining))

                self.sale_service.record_sales(db, order, costs)

                if owner_id and self.cart_service.store.transactional:
                    self.cart_service.store.clear(db, owner_id)

                db.commit()
                order_id = order.id
                db_span.set_attribute("order.id", order_id)
        except InsufficientStockError:
            db.rollback()
            checkout_counter.add(1, {**labels, "status": "rejected"})
            raise
        except SQLAlchemyError as e:
            db.rollback()
            checkout_counter.add(1, {**labels, "status": "failed"})
            logger.error("Failed to create order", extra={
                "user_id": user_id,
                "amount": total_amount,
                "shipping_method": shipping_method,
                "error": str(e)
            })
            raise PersistenceError() from e

        if owner_id and not self.cart_service.store.transactional:
            try:
                self.cart_service.store.clear(db, owner_id)
            except redis.RedisError as e:
                logger.error("Failed to clear cart after checkout", extra={
                    "order_id": order_id,
                    "owner_id": owner_id,
                    "error": str(e)
                })

        if self.notifications is not None:
            # The order is committed; alert failures must not reach the caller
            try:
                for product_id, product_name, remaining in touched:
                    await self.notifications.notify_low_stock(db, product_id, product_name, remaining)
            except Exception as e:
                db.rollback()
                logger.error("Failed to send low stock alerts", extra={
                    "order_id": order_id,
                    "error": str(e)
                })

        checkout_counter.add(1, {**labels, "status": "completed"})
        checkout_amount_histogram.record(total_amount, labels)

        logger.info("Checkout completed", extra={
            "user_id": user_id,
            "order_id": order_id,
            "amount": total_amount,
            "shipping_cost": shipping_cost,
            "shipping_method": shipping_method,
            "item_count": len(lines)
        })

        return self.get_order(db, order_id)

    def get_order(
        self,
        db: Session,
        order_id: int,
        user_id: Optional[str] = None,
        is_admin: bool = True
    ) -> Order:
        """
        Fetch an order with its items.

        Non-admin callers only see their own orders; anything else reads as
        not found.
        """
        order = db.query(Order).filter(Order.id == order_id).first()
        if order is None or (not is_admin and order.user_id != user_id):
            raise OrderNotFoundError(order_id)
        return order

    def list_user_orders(self, db: Session, user_id: str) -> List[Order]:
        with self.tracer.start_as_current_span("db.query.get_user_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            orders = db.query(Order).filter(
                Order.user_id == user_id
            ).order_by(Order.created_at.desc(), Order.id.desc()).all()

            db_span.set_attribute("db.rows_returned", len(orders))
            return orders

    def list_orders(
        self,
        db: Session,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Order]:
        query = db.query(Order)
        if status:
            query = query.filter(Order.status == status)
        if start is not None:
            query = query.filter(Order.created_at >= start)
        if end is not None:
            query = query.filter(Order.created_at <= end)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def update_status(self, db: Session, order_id: int, status: str) -> Order:
        """Move an order to ``status`` on behalf of an admin."""
        target = parse_status(status)
        order = self.get_order(db, order_id)
        return self._transition(db, order, target, actor_role="admin")

    def cancel_order(self, db: Session, order_id: int, user_id: str) -> Order:
        """Cancel the caller's own order; only pending orders qualify."""
        order = self.get_order(db, order_id, user_id=user_id, is_admin=False)
        return self._transition(db, order, OrderStatus.CANCELLED, actor_role="user")

    def _transition(self, db: Session, order: Order, target: OrderStatus, actor_role: str) -> Order:
        current = order.status
        ensure_transition(current, target.value, actor_role)

        try:
            # Conditional on the status we validated against, so two
            # concurrent cancellations cannot both restock
            changed = db.execute(
                update(Order)
                .where(Order.id == order.id, Order.status == current)
                .values(status=target.value, updated_at=utcnow())
                .returning(Order.id)
                .execution_options(synchronize_session=False)
            ).scalar_one_or_none()
            if changed is None:
                db.rollback()
                db.refresh(order)
                ensure_transition(order.status, target.value, actor_role)
                raise PersistenceError("Order changed concurrently, please try again")

            if target is OrderStatus.CANCELLED:
                for item in order.items:
                    self.catalog.restock(db, item.product_id, item.quantity)

            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to update order status", extra={
                "order_id": order.id,
                "from_status": current,
                "to_status": target.value,
                "error": str(e)
            })
            raise PersistenceError("Failed to update order, please try again") from e

        db.refresh(order)
        order_status_transitions_counter.add(1, {"to_status": target.value, "actor": actor_role})
        logger.info("Order status updated", extra={
            "order_id": order.id,
            "from_status": current,
            "to_status": target.value,
            "actor": actor_role
        })
        return order
