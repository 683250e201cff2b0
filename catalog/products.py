"""
catalog/products.py -- Catalog & Inventory Ledger: products, search, paging, stock.

Create and Update run their category-existence check, name-uniqueness check
and write inside one transaction. The category check goes through
CategoryDirectory.exists_by_id() on that same connection; the ledger never
reads or writes the categories table itself.

Stock:
  purchase() is a single conditional UPDATE:

      UPDATE products SET stock = stock - :q
       WHERE name_key = :name AND stock >= :q

  The database evaluates the guard and the decrement as one atomic step, so
  concurrent purchases of the same product serialize on the row and none of
  them can observe a stale stock level. rowcount tells us whether the guard
  held. There is no read-then-write path anywhere in this module.

Write methods return False (after logging) when the store fails; validation,
conflict and not-found failures are raised as core.errors exceptions.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from catalog.categories import CategoryDirectory
from catalog.models import Product
from catalog.store import name_key, now_iso, products_table, row_to_product
from core.errors import ConflictError, NotFoundError, StoreError, ValidationError

logger = logging.getLogger("storefront.catalog")

_products = products_table


def _validate_product(product: Product) -> Decimal:
    """Check the caller-supplied fields and return the price as a Decimal."""
    if not product.name or not product.name.strip():
        raise ValidationError("name", "The product name is required")
    try:
        price = Decimal(str(product.price))
    except InvalidOperation as exc:
        raise ValidationError("price", "The price must be a number") from exc
    if not price.is_finite() or price < 0:
        raise ValidationError("price", "The price cannot be negative")
    if product.stock is None or product.stock < 0:
        raise ValidationError("stock", "The stock cannot be negative")
    if product.category_id is None:
        raise ValidationError("category_id", "The category is required")
    return price


class ProductLedger:
    def __init__(self, engine: Engine, categories: CategoryDirectory) -> None:
        self.engine = engine
        self._categories = categories

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_products(self) -> list[Product]:
        """Return all products ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(_products.select().order_by(_products.c.id)).fetchall()
        return [row_to_product(r) for r in rows]

    def list_page(self, page_number: int, page_size: int) -> list[Product]:
        """Return one page of products in id order.

        Pages are 1-based. A page past the end is simply empty; rejecting it
        is the caller's policy.
        """
        if page_number < 1:
            raise ValidationError("page_number", "Page number must be greater than 0")
        if page_size < 1:
            raise ValidationError("page_size", "Page size must be greater than 0")
        stmt = (
            _products.select()
            .order_by(_products.c.id)
            .offset((page_number - 1) * page_size)
            .limit(page_size)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [row_to_product(r) for r in rows]

    def total_count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_products)).scalar()
        return result or 0

    def get_by_id(self, product_id: int) -> Optional[Product]:
        """Fetch a single product by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_products.select().where(_products.c.id == product_id)).fetchone()
        return row_to_product(row) if row is not None else None

    def list_by_category(self, category_id: int) -> list[Product]:
        """Return the category's products (empty list when there are none)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _products.select().where(_products.c.category_id == category_id).order_by(_products.c.id)
            ).fetchall()
        return [row_to_product(r) for r in rows]

    def search(self, term: str) -> list[Product]:
        """Return products whose name or description contains term, ignoring case.

        LIKE wildcards in term are escaped, so "50%" matches the literal text.
        """
        if not term or not term.strip():
            raise ValidationError("term", "The search term is required")
        needle = term.strip()
        stmt = (
            _products.select()
            .where(
                or_(
                    _products.c.name.icontains(needle, autoescape=True),
                    _products.c.description.icontains(needle, autoescape=True),
                )
            )
            .order_by(_products.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [row_to_product(r) for r in rows]

    def exists_by_id(self, product_id: int) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(select(_products.c.id).where(_products.c.id == product_id)).first()
        return found is not None

    def exists_by_name(self, name: str, conn: Optional[Connection] = None, exclude_id: Optional[int] = None) -> bool:
        """Return True if a product with this name exists (case-insensitive)."""
        stmt = select(_products.c.id).where(_products.c.name_key == name_key(name))
        if exclude_id is not None:
            stmt = stmt.where(_products.c.id != exclude_id)
        if conn is not None:
            return conn.execute(stmt.limit(1)).first() is not None
        with self.engine.connect() as c:
            return c.execute(stmt.limit(1)).first() is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _check_references(self, conn: Connection, product: Product, exclude_id: Optional[int] = None) -> None:
        if not self._categories.exists_by_id(product.category_id, conn=conn):
            raise ValidationError("category_id", f"The category with ID {product.category_id} does not exist")
        if self.exists_by_name(product.name, conn=conn, exclude_id=exclude_id):
            raise ConflictError("The product already exists")

    def create(self, product: Product) -> bool:
        """Insert a product and set product.id, created_at and updated_at.

        Raises ValidationError for bad fields or an unknown category and
        ConflictError if the name is taken. Returns False if the store fails.
        """
        price = _validate_product(product)
        name = product.name.strip()
        now = now_iso()
        try:
            with self.engine.begin() as conn:
                self._check_references(conn, product)
                result = conn.execute(
                    _products.insert().values(
                        name=name,
                        name_key=name_key(name),
                        description=product.description or "",
                        price=price,
                        stock=product.stock,
                        sku=product.sku or "",
                        category_id=product.category_id,
                        img_url=product.img_url,
                        img_url_local=product.img_url_local,
                        created_at=now,
                        updated_at=now,
                    )
                )
                product.id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            # Lost a race with a concurrent writer after our checks passed.
            raise ConflictError("The product already exists") from exc
        except SQLAlchemyError:
            logger.exception("Failed to save product %r", name)
            return False
        product.name = name
        product.price = price
        product.created_at = now
        product.updated_at = now
        return True

    def update(self, product: Product) -> bool:
        """Replace every mutable field of an existing product.

        Raises NotFoundError if product.id is unknown, ValidationError for bad
        fields or an unknown category, ConflictError if another product has the
        name. Returns False if the store fails.
        """
        price = _validate_product(product)
        name = product.name.strip()
        now = now_iso()
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(select(_products.c.id).where(_products.c.id == product.id)).first()
                if product.id is None or exists is None:
                    raise NotFoundError(f"The product with ID {product.id} does not exist")
                self._check_references(conn, product, exclude_id=product.id)
                conn.execute(
                    _products.update()
                    .where(_products.c.id == product.id)
                    .values(
                        name=name,
                        name_key=name_key(name),
                        description=product.description or "",
                        price=price,
                        stock=product.stock,
                        sku=product.sku or "",
                        category_id=product.category_id,
                        img_url=product.img_url,
                        img_url_local=product.img_url_local,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise ConflictError("The product already exists") from exc
        except SQLAlchemyError:
            logger.exception("Failed to update product %s", product.id)
            return False
        product.name = name
        product.price = price
        product.updated_at = now
        return True

    def set_image(self, product_id: int, img_url: str, img_url_local: Optional[str]) -> bool:
        """Store the image locator returned by the upload collaborator, verbatim.

        Raises NotFoundError if the product does not exist. Returns False if
        the store fails.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _products.update()
                    .where(_products.c.id == product_id)
                    .values(img_url=img_url, img_url_local=img_url_local, updated_at=now_iso())
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"The product with ID {product_id} does not exist")
        except SQLAlchemyError:
            logger.exception("Failed to store image for product %s", product_id)
            return False
        return True

    def delete(self, product: Product) -> bool:
        """Delete a product. Raises NotFoundError if it does not exist."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_products.delete().where(_products.c.id == product.id))
                if result.rowcount == 0:
                    raise NotFoundError(f"The product with ID {product.id} does not exist")
        except SQLAlchemyError:
            logger.exception("Failed to delete product %s", product.id)
            return False
        return True

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def purchase(self, name: str, quantity: int) -> bool:
        """Atomically take quantity units of the named product out of stock.

        Returns True when the full quantity was deducted. Returns False, with
        stock untouched, when the product does not exist or has fewer than
        quantity units left. Those are normal outcomes.

        Raises ValidationError for a blank name or quantity < 1, and StoreError
        if the database fails (logged; never retried here).
        """
        if not name or not name.strip():
            raise ValidationError("name", "The product name is required")
        if quantity < 1:
            raise ValidationError("quantity", "The quantity must be greater than 0")
        stmt = (
            update(_products)
            .where((_products.c.name_key == name_key(name)) & (_products.c.stock >= quantity))
            .values(stock=_products.c.stock - quantity, updated_at=now_iso())
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as exc:
            logger.exception("Purchase of %d x %r failed in the store", quantity, name)
            raise StoreError("The purchase could not be recorded") from exc
        if result.rowcount == 0:
            logger.debug("Purchase of %d x %r rejected: unknown product or insufficient stock", quantity, name)
            return False
        return True
