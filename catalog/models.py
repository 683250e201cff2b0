"""
catalog/models.py -- Domain dataclasses for the Storefront catalog.

These are pure data containers with zero logic. Validation, uniqueness and
stock accounting live in catalog/categories.py and catalog/products.py.

id is None before the record is written to the database.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class Category:
    """A product grouping. name is unique ignoring case and surrounding whitespace."""

    name: str
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Product:
    """A sellable item with its stock level.

    img_url / img_url_local are written verbatim from whatever the image
    upload collaborator returns (public URL and on-disk path).
    """

    name: str
    category_id: int
    description: str = ""
    price: Decimal = Decimal("0")
    stock: int = 0
    sku: str = ""
    id: Optional[int] = None
    img_url: Optional[str] = None
    img_url_local: Optional[str] = None
    created_at: str = ""  # ISO 8601
    updated_at: Optional[str] = None  # ISO 8601
