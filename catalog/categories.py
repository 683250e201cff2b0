"""
catalog/categories.py -- Category Directory: category CRUD with name uniqueness.

Each write validates the name, checks uniqueness and writes inside a single
transaction, so there is no window between "name is free" and "row inserted".
The UNIQUE index on name_key is the backstop for writers on other
connections: a lost race surfaces as IntegrityError and is reported as a
conflict, never as a silent overwrite.

Write methods return False (after logging) when the store itself fails, so the
caller can answer with a server-side error. Validation, conflict and not-found
failures are raised as core.errors exceptions.
"""

import logging
from contextlib import nullcontext
from typing import Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from catalog.models import Category
from catalog.store import NAME_MAX_LENGTH, NAME_MIN_LENGTH, categories_table, name_key, now_iso, row_to_category
from core.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("storefront.catalog")

_categories = categories_table


def validate_category_name(name: Optional[str]) -> str:
    """Return the trimmed name or raise ValidationError."""
    if name is None or not name.strip():
        raise ValidationError("name", "The name is required")
    trimmed = name.strip()
    if len(trimmed) < NAME_MIN_LENGTH:
        raise ValidationError("name", f"The name must be at least {NAME_MIN_LENGTH} characters long")
    if len(trimmed) > NAME_MAX_LENGTH:
        raise ValidationError("name", f"The name must not exceed {NAME_MAX_LENGTH} characters")
    return trimmed


class CategoryDirectory:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _connect(self, conn: Optional[Connection]):
        # Reuse the caller's connection (and its transaction) when given one.
        return nullcontext(conn) if conn is not None else self.engine.connect()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_categories(self) -> list[Category]:
        """Return all categories ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(_categories.select().order_by(_categories.c.name, _categories.c.id)).fetchall()
        return [row_to_category(r) for r in rows]

    def get_by_id(self, category_id: int) -> Optional[Category]:
        """Fetch a single category by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_categories.select().where(_categories.c.id == category_id)).fetchone()
        return row_to_category(row) if row is not None else None

    def exists_by_id(self, category_id: int, conn: Optional[Connection] = None) -> bool:
        """Return True if the category exists.

        ProductLedger passes its open transaction's connection so the check and
        its product write see the same snapshot.
        """
        with self._connect(conn) as c:
            found = c.execute(select(_categories.c.id).where(_categories.c.id == category_id)).first()
        return found is not None

    def exists_by_name(self, name: str, conn: Optional[Connection] = None, exclude_id: Optional[int] = None) -> bool:
        """Return True if a category with this name exists (case-insensitive)."""
        stmt = select(_categories.c.id).where(_categories.c.name_key == name_key(name))
        if exclude_id is not None:
            stmt = stmt.where(_categories.c.id != exclude_id)
        with self._connect(conn) as c:
            found = c.execute(stmt.limit(1)).first()
        return found is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, category: Category) -> bool:
        """Insert a category and set category.id.

        Raises ValidationError for a bad name, ConflictError if the name is
        taken. Returns False if the store fails.
        """
        name = validate_category_name(category.name)
        try:
            with self.engine.begin() as conn:
                if self.exists_by_name(name, conn=conn):
                    raise ConflictError("The category already exists")
                created_at = now_iso()
                result = conn.execute(
                    _categories.insert().values(name=name, name_key=name_key(name), created_at=created_at)
                )
                category.id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise ConflictError("The category already exists") from exc
        except SQLAlchemyError:
            logger.exception("Failed to save category %r", name)
            return False
        category.name = name
        category.created_at = created_at
        return True

    def update(self, category: Category) -> bool:
        """Rename an existing category.

        Raises NotFoundError if category.id is unknown and ConflictError if
        another category already has the name. Returns False if the store fails.
        """
        name = validate_category_name(category.name)
        try:
            with self.engine.begin() as conn:
                if category.id is None or not self.exists_by_id(category.id, conn=conn):
                    raise NotFoundError(f"The category with ID {category.id} does not exist")
                if self.exists_by_name(name, conn=conn, exclude_id=category.id):
                    raise ConflictError("The category already exists")
                conn.execute(
                    _categories.update()
                    .where(_categories.c.id == category.id)
                    .values(name=name, name_key=name_key(name))
                )
        except IntegrityError as exc:
            raise ConflictError("The category already exists") from exc
        except SQLAlchemyError:
            logger.exception("Failed to update category %s", category.id)
            return False
        category.name = name
        return True

    def delete(self, category: Category) -> bool:
        """Delete a category.

        Raises NotFoundError if it does not exist and ConflictError while
        products still reference it. Returns False if the store fails.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_categories.delete().where(_categories.c.id == category.id))
                if result.rowcount == 0:
                    raise NotFoundError(f"The category with ID {category.id} does not exist")
        except IntegrityError as exc:
            raise ConflictError(f"The category {category.name} still has products") from exc
        except SQLAlchemyError:
            logger.exception("Failed to delete category %s", category.id)
            return False
        return True
