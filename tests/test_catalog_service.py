import pytest

from storefront.database import seed_catalog
from storefront.errors import ProductInUseError, ProductNotFoundError, ValidationError
from storefront.models import Product
from storefront.services.catalog_service import sanitize_slug


class TestSanitizeSlug:
    @pytest.mark.parametrize("text,expected", [
        ("Mechanical Keyboard", "mechanical-keyboard"),
        ("  PBT Keycaps (Cherry) ", "pbt-keycaps-cherry"),
        ("under_score--dash", "under-score-dash"),
    ])
    def test_slug(self, text, expected):
        assert sanitize_slug(text) == expected


class TestProductAdmin:
    def test_create_derives_slug(self, db, services):
        product = services.catalog.create_product(db, {"name": "Wireless Mouse", "price": 39.99, "stock": 7})

        assert product.id is not None
        assert product.slug == "wireless-mouse"
        assert product.cost == 0.0
        assert services.catalog.get_by_slug(db, "wireless-mouse").id == product.id

    def test_duplicate_slug(self, db, services):
        services.catalog.create_product(db, {"name": "Wireless Mouse", "price": 39.99})

        with pytest.raises(ValidationError):
            services.catalog.create_product(db, {"name": "Wireless  Mouse!", "price": 10.0})

    def test_negative_values(self, db, services):
        with pytest.raises(ValidationError):
            services.catalog.create_product(db, {"name": "Cable", "price": -1.0})
        with pytest.raises(ValidationError):
            services.catalog.create_product(db, {"name": "Cable", "price": 1.0, "stock": -3})

    def test_update_only_given_fields(self, db, services, make_product):
        product = make_product(name="Cable", price=5.0, stock=3)

        updated = services.catalog.update_product(db, product.id, {"price": 6.5})

        assert updated.price == 6.5
        assert updated.stock == 3
        assert updated.name == "Cable"

    def test_update_missing_product(self, db, services):
        with pytest.raises(ProductNotFoundError):
            services.catalog.update_product(db, 12345, {"price": 1.0})

    def test_delete_unreferenced_product(self, db, services, make_product):
        product = make_product()
        product_id = product.id

        services.catalog.delete_product(db, product_id)

        assert services.catalog.get_by_id(db, product_id) is None

    def test_delete_ordered_product_is_blocked(self, db, services, make_product, place):
        product = make_product(stock=5)
        place([(product.id, 1)])

        with pytest.raises(ProductInUseError):
            services.catalog.delete_product(db, product.id)

        assert services.catalog.get_by_id(db, product.id) is not None


class TestQueries:
    def test_filter_by_category_and_search(self, db, services, make_product):
        make_product(name="Red Switches", category="switch", description="tactile")
        make_product(name="Blue Switches", category="switch")
        make_product(name="Keycap Set", category="keycaps", description="red legends")

        assert {p.name for p in services.catalog.list_products(db, category="switch")} == {
            "Red Switches", "Blue Switches"
        }
        assert {p.name for p in services.catalog.list_products(db, search="red")} == {
            "Red Switches", "Keycap Set"
        }

    def test_low_stock_listing(self, db, services, make_product):
        make_product(name="Plenty", stock=50)
        scarce = make_product(name="Scarce", stock=2)
        empty = make_product(name="Empty", stock=0)

        assert [p.id for p in services.catalog.list_low_stock(db, 3)] == [empty.id, scarce.id]

    def test_seed_catalog_once(self, db):
        seed_catalog(db)
        seed_catalog(db)

        assert db.query(Product).count() == 5


class TestStockGuard:
    def test_decrement_within_stock(self, db, services, make_product):
        product = make_product(stock=5)

        remaining = services.catalog.decrement_stock(db, product.id, 5)
        db.commit()

        assert remaining == 0
        assert services.catalog.current_stock(db, product.id) == 0

    def test_decrement_beyond_stock_changes_nothing(self, db, services, make_product):
        product = make_product(stock=2)

        assert services.catalog.decrement_stock(db, product.id, 3) is None
        db.commit()

        assert services.catalog.current_stock(db, product.id) == 2

    def test_decrement_missing_product(self, db, services):
        assert services.catalog.decrement_stock(db, 999, 1) is None

    def test_restock(self, db, services, make_product):
        product = make_product(stock=2)

        assert services.catalog.restock(db, product.id, 3) == 5

    def test_check_stock(self, db, services, make_product):
        product = make_product(stock=2)

        assert services.catalog.check_stock(db, product.id, 2)
        assert not services.catalog.check_stock(db, product.id, 3)
        assert not services.catalog.check_stock(db, 999, 1)
