"""
catalog/store.py -- SQLAlchemy engine, schema and row mappers for the catalog.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in catalog/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. The repositories are CategoryDirectory
(catalog/categories.py) and ProductLedger (catalog/products.py); both share
the Engine built here. The _row_to_* functions are the mappers.

Integrity is enforced by the database as well as in code:
  - categories.name_key / products.name_key are UNIQUE (trimmed, lower-cased
    name), so case-variant duplicates cannot both be inserted.
  - products.category_id is a FOREIGN KEY. SQLite only enforces it with
    PRAGMA foreign_keys=ON, set per connection below.
  - CHECK (stock >= 0) and CHECK (price >= 0) make a negative value
    unrepresentable even if a caller bypasses the ledger.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    engine = create_catalog_engine()                               # SQLite default
    engine = create_catalog_engine("postgresql://user:pw@host/db") # PostgreSQL
    categories = CategoryDirectory(engine)
    products = ProductLedger(engine, categories)
"""

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from catalog.models import Category, Product

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'storefront_catalog.db'}"

# Seconds a SQLite writer waits for a competing writer's lock before failing.
_SQLITE_BUSY_TIMEOUT = 30

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 50

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

categories_table = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(NAME_MAX_LENGTH), nullable=False),
    Column("name_key", String(NAME_MAX_LENGTH), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

products_table = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("name_key", String(255), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("price", Numeric(18, 2), nullable=False, server_default="0"),
    Column("stock", Integer, nullable=False, server_default="0"),
    Column("sku", String(100), nullable=False, server_default=""),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("img_url", Text),
    Column("img_url_local", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journaling and foreign key enforcement.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Both PRAGMAs are per-connection settings in SQLite and are
    not inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_catalog_engine(db_url: str = _DEFAULT_DB_URL) -> Engine:
    """Build the catalog Engine and create any missing tables."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a thread pool, so the same pooled
        # connection may be used from more than one thread. The timeout lets
        # concurrent purchases queue on SQLite's write lock instead of failing.
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = _SQLITE_BUSY_TIMEOUT
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def name_key(name: str) -> str:
    """Return the uniqueness key for a category or product name."""
    return name.strip().lower()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def row_to_category(row) -> Category:
    return Category(id=row.id, name=row.name, created_at=row.created_at)


def row_to_product(row) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        description=row.description or "",
        price=row.price,
        stock=row.stock,
        sku=row.sku or "",
        category_id=row.category_id,
        img_url=row.img_url,
        img_url_local=row.img_url_local,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
