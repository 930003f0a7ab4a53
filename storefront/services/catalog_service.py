"""Product catalog and stock guard."""
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session
from opentelemetry import trace

from storefront.errors import ProductInUseError, ProductNotFoundError, ValidationError
from storefront.models import OrderItem, Product, Review, Sale, utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "slug", "description", "price", "cost", "stock", "category", "image_url")


def sanitize_slug(text: str) -> str:
    """Turn arbitrary text into a lowercase, hyphen separated slug."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


class CatalogService:
    """Read/write access to products, and the only writer of Product.stock."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def get_by_id(self, db: Session, product_id: int) -> Optional[Product]:
        with self.tracer.start_as_current_span("db.query.get_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            product = db.query(Product).filter(Product.id == product_id).first()
            db_span.set_attribute("db.rows_returned", 1 if product else 0)
            return product

    def get_or_raise(self, db: Session, product_id: int) -> Product:
        product = self.get_by_id(db, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def get_by_slug(self, db: Session, slug: str) -> Optional[Product]:
        return db.query(Product).filter(Product.slug == slug).first()

    def list_products(
        self,
        db: Session,
        category: Optional[str] = None,
        search: Optional[str] = None
    ) -> List[Product]:
        query = db.query(Product)
        if category:
            query = query.filter(Product.category == category)
        if search and search.strip():
            term = f"%{search.strip()}%"
            query = query.filter(or_(Product.name.ilike(term), Product.description.ilike(term)))
        return query.order_by(Product.created_at.desc(), Product.id.desc()).all()

    def list_low_stock(self, db: Session, threshold: int) -> List[Product]:
        return (
            db.query(Product)
            .filter(Product.stock <= threshold, Product.stock >= 0)
            .order_by(Product.stock.asc())
            .all()
        )

    def create_product(self, db: Session, data: Dict[str, Any]) -> Product:
        """
        Create a product.

        Args:
            db: Database session
            data: Product fields; ``slug`` is derived from ``name`` when missing

        Returns:
            The committed product

        Raises:
            ValidationError: On negative amounts or a duplicate slug
        """
        fields = {key: data[key] for key in EDITABLE_FIELDS if data.get(key) is not None}
        if not fields.get("name"):
            raise ValidationError("Product name is required")
        fields.setdefault("slug", sanitize_slug(fields["name"]))
        fields.setdefault("cost", 0.0)
        fields.setdefault("stock", 0)
        self._validate_fields(db, fields)

        product = Product(**fields)
        db.add(product)
        db.commit()
        db.refresh(product)

        logger.info("Created product", extra={
            "product_id": product.id,
            "slug": product.slug,
            "stock": product.stock
        })
        return product

    def update_product(self, db: Session, product_id: int, data: Dict[str, Any]) -> Product:
        product = self.get_or_raise(db, product_id)
        fields = {key: data[key] for key in EDITABLE_FIELDS if data.get(key) is not None}
        self._validate_fields(db, fields, product_id=product_id)

        for key, value in fields.items():
            setattr(product, key, value)
        product.updated_at = utcnow()
        db.commit()
        db.refresh(product)

        logger.info("Updated product", extra={
            "product_id": product_id,
            "fields": sorted(fields)
        })
        return product

    def delete_product(self, db: Session, product_id: int) -> None:
        """Delete a product unless an order item, sale or review references it."""
        product = self.get_or_raise(db, product_id)

        for model in (OrderItem, Sale, Review):
            if db.query(model.id).filter(model.product_id == product_id).first():
                raise ProductInUseError(product_id)

        db.delete(product)
        db.commit()
        logger.info("Deleted product", extra={"product_id": product_id})

    def check_stock(self, db: Session, product_id: int, quantity: int) -> bool:
        product = self.get_by_id(db, product_id)
        if product is None:
            return False
        return product.stock >= quantity

    def current_stock(self, db: Session, product_id: int) -> int:
        stock = db.query(Product.stock).filter(Product.id == product_id).scalar()
        return stock or 0

    def decrement_stock(self, db: Session, product_id: int, quantity: int) -> Optional[int]:
        """
        Atomically take ``quantity`` units out of stock.

        A single conditional UPDATE guards against concurrent checkouts: the
        row only changes when enough stock remains at write time. The caller
        owns the transaction.

        Args:
            db: Database session
            product_id: Product identifier
            quantity: Units to remove

        Returns:
            The stock left after the decrement, or None when the product is
            missing or has fewer than ``quantity`` units
        """
        with self.tracer.start_as_current_span("db.query.decrement_stock") as db_span:
            db_span.set_attribute("db.operation", "UPDATE")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)
            db_span.set_attribute("quantity", quantity)

            stmt = (
                update(Product)
                .where(Product.id == product_id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity, updated_at=utcnow())
                .returning(Product.stock)
                .execution_options(synchronize_session=False)
            )
            remaining = db.execute(stmt).scalar_one_or_none()

            db_span.set_attribute("db.rows_affected", 0 if remaining is None else 1)
            if remaining is not None:
                db_span.set_attribute("product.stock.after", remaining)
            return remaining

    def restock(self, db: Session, product_id: int, quantity: int) -> Optional[int]:
        """Atomically return ``quantity`` units to stock. The caller owns the transaction."""
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity, updated_at=utcnow())
            .returning(Product.stock)
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).scalar_one_or_none()

    def _validate_fields(self, db: Session, fields: Dict[str, Any], product_id: Optional[int] = None) -> None:
        for key in ("price", "cost"):
            if key in fields and fields[key] < 0:
                raise ValidationError(f"Product {key} must not be negative")
        if "stock" in fields and fields["stock"] < 0:
            raise ValidationError("Product stock must not be negative")

        if "slug" in fields:
            slug = sanitize_slug(fields["slug"])
            if not slug:
                raise ValidationError("Product slug must contain letters or digits")
            fields["slug"] = slug
            query = db.query(Product.id).filter(Product.slug == slug)
            if product_id is not None:
                query = query.filter(Product.id != product_id)
            if query.first():
                raise ValidationError(f"A product with slug '{slug}' already exists")
