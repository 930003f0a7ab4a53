"""Cart management service."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import redis
from sqlalchemy.orm import Session
from opentelemetry import trace

from storefront.config import CART_TTL_SECONDS, TAX_RATE
from storefront.errors import InsufficientStockError, ValidationError
from storefront.models import CartItem, Product
from storefront.monitoring import cart_additions_counter
from storefront.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLine:
    """A (product, quantity) pair held in a cart."""
    product_id: int
    quantity: int


class CartStore(ABC):
    """
    Storage for per-owner cart lines.

    Owners are either an authenticated user id or ``session:<id>`` for
    guests. Stores never commit; callers own the database transaction.
    """

    # Whether clear() takes part in the caller's database transaction
    transactional = False

    @abstractmethod
    def get_items(self, db: Session, owner_id: str) -> List[CartLine]:
        ...

    @abstractmethod
    def get_quantity(self, db: Session, owner_id: str, product_id: int) -> int:
        ...

    @abstractmethod
    def set_quantity(self, db: Session, owner_id: str, product_id: int, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line."""

    @abstractmethod
    def clear(self, db: Session, owner_id: str) -> None:
        ...

    def add_item(self, db: Session, owner_id: str, product_id: int, quantity: int) -> int:
        new_quantity = self.get_quantity(db, owner_id, product_id) + quantity
        self.set_quantity(db, owner_id, product_id, new_quantity)
        return new_quantity

    def remove_item(self, db: Session, owner_id: str, product_id: int) -> None:
        self.set_quantity(db, owner_id, product_id, 0)


class SqlCartStore(CartStore):
    """Cart lines kept in the ``cart_items`` table."""

    transactional = True

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def _line(self, db: Session, owner_id: str, product_id: int) -> Optional[CartItem]:
        return db.query(CartItem).filter(
            CartItem.owner_id == owner_id,
            CartItem.product_id == product_id
        ).first()

    def get_items(self, db: Session, owner_id: str) -> List[CartLine]:
        with self.tracer.start_as_current_span("db.query.get_cart_items") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("cart.owner", owner_id)

            rows = db.query(CartItem).filter(
                CartItem.owner_id == owner_id
            ).order_by(CartItem.id).all()

            db_span.set_attribute("db.rows_returned", len(rows))
            return [CartLine(row.product_id, row.quantity) for row in rows]

    def get_quantity(self, db: Session, owner_id: str, product_id: int) -> int:
        line = self._line(db, owner_id, product_id)
        return line.quantity if line else 0

    def set_quantity(self, db: Session, owner_id: str, product_id: int, quantity: int) -> None:
        line = self._line(db, owner_id, product_id)
        if quantity <= 0:
            if line is not None:
                db.delete(line)
        elif line is None:
            db.add(CartItem(owner_id=owner_id, product_id=product_id, quantity=quantity))
        else:
            line.quantity = quantity
        db.flush()

    def clear(self, db: Session, owner_id: str) -> None:
        with self.tracer.start_as_current_span("db.query.delete_cart_items") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("cart.owner", owner_id)

            deleted_count = db.query(CartItem).filter(
                CartItem.owner_id == owner_id
            ).delete(synchronize_session=False)

            db_span.set_attribute("db.rows_affected", deleted_count)


class RedisCartStore(CartStore):
    """Cart lines kept in one Redis hash per owner, expiring after inactivity."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = CART_TTL_SECONDS):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.tracer = trace.get_tracer(__name__)

    @staticmethod
    def _key(owner_id: str) -> str:
        return f"cart:{owner_id}"

    def get_items(self, db: Session, owner_id: str) -> List[CartLine]:
        cache_key = self._key(owner_id)
        with self.tracer.start_as_current_span("cache.hgetall") as cache_span:
            cache_span.set_attribute("cache.system", "redis")
            cache_span.set_attribute("cache.key", cache_key)

            raw = self.redis_client.hgetall(cache_key)

        lines = [CartLine(int(product_id), int(quantity)) for product_id, quantity in raw.items()]
        return sorted(lines, key=lambda line: line.product_id)

    def get_quantity(self, db: Session, owner_id: str, product_id: int) -> int:
        value = self.redis_client.hget(self._key(owner_id), str(product_id))
        return int(value) if value is not None else 0

    def set_quantity(self, db: Session, owner_id: str, product_id: int, quantity: int) -> None:
        cache_key = self._key(owner_id)
        if quantity <= 0:
            self.redis_client.hdel(cache_key, str(product_id))
            return
        self.redis_client.hset(cache_key, str(product_id), quantity)
        self.redis_client.expire(cache_key, self.ttl_seconds)

    def clear(self, db: Session, owner_id: str) -> None:
        cache_key = self._key(owner_id)
        with self.tracer.start_as_current_span("cache.delete") as cache_span:
            cache_span.set_attribute("cache.system", "redis")
            cache_span.set_attribute("cache.operation", "DELETE")
            cache_span.set_attribute("cache.key", cache_key)

            self.redis_client.delete(cache_key)


def create_cart_store(backend: str, redis_client: Optional[redis.Redis] = None) -> CartStore:
    """Build the cart store selected by configuration."""
    if backend == "database":
        return SqlCartStore()
    if backend == "redis":
        if redis_client is None:
            raise ValueError("CART_BACKEND=redis requires a Redis client")
        return RedisCartStore(redis_client)
    raise ValueError(f"Unknown cart backend: {backend}")


class CartService:
    """Service for managing shopping carts."""

    def __init__(self, store: CartStore, catalog: CatalogService):
        """
        Initialize cart service.

        Args:
            store: Cart storage backend
            catalog: Catalog service used for product and stock lookups
        """
        self.store = store
        self.catalog = catalog

    def add_to_cart(
        self,
        db: Session,
        owner_id: str,
        product_id: int,
        quantity: int
    ) -> Dict[str, Any]:
        """
        Add item to a cart, merging with an existing line for the product.

        Args:
            db: Database session
            owner_id: Cart owner
            product_id: Product identifier
            quantity: Quantity to add

        Returns:
            Result with the line's new quantity

        Raises:
            ValidationError: If quantity is not positive
            ProductNotFoundError: If the product does not exist
            InsufficientStockError: If the merged quantity exceeds stock
        """
        if quantity < 1:
            raise ValidationError("Quantity must be greater than 0")

        product = self.catalog.get_or_raise(db, product_id)
        new_quantity = self.store.get_quantity(db, owner_id, product_id) + quantity
        if new_quantity > product.stock:
            raise InsufficientStockError(product.id, new_quantity, product.stock, product.name)

        new_quantity = self.store.add_item(db, owner_id, product_id, quantity)
        db.commit()

        cart_additions_counter.add(1, {"product_id": str(product_id)})
        logger.info("Added product to cart", extra={
            "owner_id": owner_id,
            "product_id": product_id,
            "product_name": product.name,
            "quantity": quantity,
            "line_quantity": new_quantity
        })

        return {
            "product_id": product.id,
            "product_name": product.name,
            "quantity": new_quantity
        }

    def update_item(self, db: Session, owner_id: str, product_id: int, quantity: int) -> None:
        """Set a line's quantity; zero removes it."""
        if quantity > 0:
            product = self.catalog.get_or_raise(db, product_id)
            if quantity > product.stock:
                raise InsufficientStockError(product.id, quantity, product.stock, product.name)
        self.store.set_quantity(db, owner_id, product_id, quantity)
        db.commit()

    def remove_item(self, db: Session, owner_id: str, product_id: int) -> None:
        self.store.remove_item(db, owner_id, product_id)
        db.commit()

    def clear(self, db: Session, owner_id: str) -> None:
        self.store.clear(db, owner_id)
        db.commit()

    def get_items(self, db: Session, owner_id: str) -> List[CartLine]:
        return self.store.get_items(db, owner_id)

    def get_cart(self, db: Session, owner_id: str) -> Dict[str, Any]:
        """
        Get cart contents with product details and totals.

        Tax is informational only; shipping is added at checkout.
        """
        items = []
        subtotal = 0.0
        item_count = 0

        for line in self.store.get_items(db, owner_id):
            product: Optional[Product] = self.catalog.get_by_id(db, line.product_id)
            if product is None:
                continue
            line_total = round(product.price * line.quantity, 2)
            subtotal += line_total
            item_count += line.quantity
            items.append({
                "product_id": product.id,
                "product_name": product.name,
                "price": product.price,
                "quantity": line.quantity,
                "stock": product.stock,
                "subtotal": line_total
            })

        return {
            "owner_id": owner_id,
            "items": items,
            "item_count": item_count,
            "subtotal": round(subtotal, 2),
            "tax": round(subtotal * TAX_RATE, 2),
            "total": round(subtotal, 2)
        }
