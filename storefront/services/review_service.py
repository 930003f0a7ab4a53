"""Product reviews."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.errors import (
    DuplicateReviewError,
    ReviewNotAllowedError,
    ReviewNotFoundError,
    ValidationError,
)
from storefront.models import Order, OrderItem, Review
from storefront.order_status import PURCHASE_STATUSES
from storefront.services.catalog_service import CatalogService
from storefront.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _validate_rating(rating: int) -> None:
    if rating < 1 or rating > 5:
        raise ValidationError("Rating must be between 1 and 5")


class ReviewService:
    """Reviews are limited to buyers, one per user and product."""

    def __init__(self, catalog: CatalogService, notifications: Optional[NotificationService] = None):
        self.catalog = catalog
        self.notifications = notifications

    def has_purchased(self, db: Session, user_id: str, product_id: int) -> bool:
        statuses = [status.value for status in PURCHASE_STATUSES]
        return db.query(OrderItem.id).join(Order, OrderItem.order_id == Order.id).filter(
            Order.user_id == user_id,
            Order.status.in_(statuses),
            OrderItem.product_id == product_id
        ).first() is not None

    def get_user_review(self, db: Session, product_id: int, user_id: str) -> Optional[Review]:
        return db.query(Review).filter(
            Review.product_id == product_id,
            Review.user_id == user_id
        ).first()

    def create_review(
        self,
        db: Session,
        product_id: int,
        user_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> Review:
        """
        Create a review for a product the user has bought.

        Raises:
            ValidationError: If rating is outside 1..5
            ProductNotFoundError: If the product does not exist
            ReviewNotAllowedError: If the user has no qualifying purchase
            DuplicateReviewError: If the user already reviewed the product
        """
        _validate_rating(rating)
        product = self.catalog.get_or_raise(db, product_id)

        if not self.has_purchased(db, user_id, product_id):
            raise ReviewNotAllowedError()
        if self.get_user_review(db, product_id, user_id) is not None:
            raise DuplicateReviewError()

        review = Review(product_id=product_id, user_id=user_id, rating=rating, comment=comment or None)
        db.add(review)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race against the same user's concurrent submission
            db.rollback()
            raise DuplicateReviewError()
        db.refresh(review)

        logger.info("Review created", extra={
            "review_id": review.id,
            "product_id": product_id,
            "user_id": user_id,
            "rating": rating
        })

        if self.notifications is not None:
            self.notifications.notify_new_review(db, product.id, product.name, rating)
        return review

    def _get_owned(self, db: Session, review_id: int, user_id: str) -> Review:
        review = db.query(Review).filter(
            Review.id == review_id,
            Review.user_id == user_id
        ).first()
        if review is None:
            raise ReviewNotFoundError()
        return review

    def update_review(
        self,
        db: Session,
        review_id: int,
        user_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> Review:
        _validate_rating(rating)
        review = self._get_owned(db, review_id, user_id)
        review.rating = rating
        review.comment = comment or None
        db.commit()
        db.refresh(review)
        return review

    def delete_review(self, db: Session, review_id: int, user_id: str) -> None:
        db.delete(self._get_owned(db, review_id, user_id))
        db.commit()
        logger.info("Review deleted", extra={"review_id": review_id, "user_id": user_id})

    def list_product_reviews(self, db: Session, product_id: int) -> List[Review]:
        return db.query(Review).filter(
            Review.product_id == product_id
        ).order_by(Review.created_at.desc(), Review.id.desc()).all()

    def review_stats(self, db: Session, product_id: int) -> Dict[str, Any]:
        ratings = [rating for (rating,) in db.query(Review.rating).filter(Review.product_id == product_id).all()]
        distribution = [
            {"rating": rating, "count": ratings.count(rating)}
            for rating in range(1, 6)
        ]
        if not ratings:
            return {"average_rating": 0.0, "total_reviews": 0, "rating_distribution": distribution}

        return {
            "average_rating": round(sum(ratings) / len(ratings), 1),
            "total_reviews": len(ratings),
            "rating_distribution": distribution
        }
