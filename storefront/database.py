"""Database connection and session management."""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator
import logging

from storefront.config import DATABASE_URL, SEED_CATALOG
from storefront.models import Base, Product

logger = logging.getLogger(__name__)


def _enable_sqlite_transactions(engine: Engine) -> None:
    """
    Give pysqlite real BEGIN/SAVEPOINT semantics and enforce foreign keys.

    The driver otherwise defers BEGIN and breaks nested transactions,
    which the checkout relies on for best-effort sale records.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str) -> Engine:
    """Create an engine with settings suited to the backend."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # Single shared connection so every session sees the same database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        _enable_sqlite_transactions(engine)
        return engine

    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_timeout=30,  # Wait max 30 seconds for a connection
    )


engine = create_db_engine(DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def seed_catalog(db: Session) -> None:
    """Insert a small sample catalog into an empty products table."""
    if db.query(Product).count() > 0:
        return

    products = [
        Product(name="Mechanical Keyboard", slug="mechanical-keyboard", price=89.99, cost=55.0, stock=40, category="keyboard"),
        Product(name="Linear Switch Pack", slug="linear-switch-pack", price=24.99, cost=12.5, stock=120, category="switch"),
        Product(name="PBT Keycap Set", slug="pbt-keycap-set", price=49.99, cost=22.0, stock=60, category="keycaps"),
        Product(name="Wireless Mouse", slug="wireless-mouse", price=39.99, cost=21.0, stock=75, category="mouse"),
        Product(name="Desk Mousepad XL", slug="desk-mousepad-xl", price=19.99, cost=7.5, stock=5, category="mousepad"),
    ]
    db.add_all(products)
    db.commit()
    logger.info("Seeded database with sample products", extra={"count": len(products)})


def init_db(bind: Engine = None, seed: bool = SEED_CATALOG) -> None:
    """Initialize database tables and seed data."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    if not seed:
        return

    db = Session(bind=bind)
    try:
        seed_catalog(db)
    finally:
        db.close()
