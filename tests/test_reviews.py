import pytest

from storefront.errors import (
    DuplicateReviewError,
    ProductNotFoundError,
    ReviewNotAllowedError,
    ReviewNotFoundError,
    ValidationError,
)
from storefront.models import Notification


@pytest.fixture()
def purchased(db, services, make_product, place):
    """A product user_123 has bought and that is being processed."""
    product = make_product(name="PBT Keycap Set", stock=20)
    order = place([(product.id, 1)], user_id="user_123")
    services.orders.update_status(db, order.id, "processing")
    return product


class TestCreateReview:
    def test_buyer_can_review(self, db, services, purchased):
        review = services.reviews.create_review(db, purchased.id, "user_123", 5, "Great feel")

        assert review.rating == 5
        assert review.comment == "Great feel"
        alert = db.query(Notification).filter(Notification.type == "new_review").one()
        assert alert.user_id == "admin_456"
        assert alert.product_id == purchased.id

    def test_requires_purchase(self, db, services, make_product):
        product = make_product()

        with pytest.raises(ReviewNotAllowedError):
            services.reviews.create_review(db, product.id, "user_123", 4)

    def test_pending_order_does_not_qualify(self, db, services, make_product, place):
        product = make_product(stock=5)
        place([(product.id, 1)], user_id="user_123")

        assert not services.reviews.has_purchased(db, "user_123", product.id)

    def test_one_review_per_user(self, db, services, purchased):
        services.reviews.create_review(db, purchased.id, "user_123", 4)

        with pytest.raises(DuplicateReviewError):
            services.reviews.create_review(db, purchased.id, "user_123", 3)

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_range(self, db, services, purchased, rating):
        with pytest.raises(ValidationError):
            services.reviews.create_review(db, purchased.id, "user_123", rating)

    def test_unknown_product(self, db, services):
        with pytest.raises(ProductNotFoundError):
            services.reviews.create_review(db, 999, "user_123", 4)


class TestManageReview:
    def test_author_can_update_and_delete(self, db, services, purchased):
        review = services.reviews.create_review(db, purchased.id, "user_123", 2)

        updated = services.reviews.update_review(db, review.id, "user_123", 4, "Grew on me")
        assert updated.rating == 4
        assert updated.comment == "Grew on me"

        services.reviews.delete_review(db, review.id, "user_123")
        assert services.reviews.list_product_reviews(db, purchased.id) == []

    def test_other_users_cannot_edit(self, db, services, purchased):
        review = services.reviews.create_review(db, purchased.id, "user_123", 2)

        with pytest.raises(ReviewNotFoundError):
            services.reviews.update_review(db, review.id, "user_789", 5)
        with pytest.raises(ReviewNotFoundError):
            services.reviews.delete_review(db, review.id, "user_789")


class TestReviewStats:
    def test_average_and_distribution(self, db, services, place, purchased):
        order = place([(purchased.id, 1)], user_id="user_789")
        services.orders.update_status(db, order.id, "processing")
        services.reviews.create_review(db, purchased.id, "user_123", 5)
        services.reviews.create_review(db, purchased.id, "user_789", 4)

        stats = services.reviews.review_stats(db, purchased.id)

        assert stats["average_rating"] == 4.5
        assert stats["total_reviews"] == 2
        assert {row["rating"]: row["count"] for row in stats["rating_distribution"]} == {
            1: 0, 2: 0, 3: 0, 4: 1, 5: 1
        }

    def test_no_reviews(self, db, services, make_product):
        product = make_product()

        stats = services.reviews.review_stats(db, product.id)

        assert stats["average_rating"] == 0.0
        assert stats["total_reviews"] == 0
