"""
API request and response models for Storefront REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire format is camelCase (pageNumber, categoryId, createdAt ...). Every model
also accepts the snake_case field name on input.
"""

from decimal import Decimal
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Principal
from catalog.models import Category, Product

T = TypeVar("T")


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class LoginRequest(_WireModel):
    """Request body for POST /api/v1/users/login.

    Both fields are optional and may be empty: the authority reports a missing
    or empty value as "Username or password is required" in the standard login
    envelope.
    """

    username: Optional[str] = Field(default=None, max_length=256)
    password: Optional[str] = Field(default=None, max_length=255)


class RegisterRequest(_WireModel):
    """Request body for POST /api/v1/users/register. role is optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=256)
    name: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=256)
    role: Optional[str] = Field(default=None, max_length=256)


class UserDataResponse(_WireModel):
    """Sanitized user projection. Never carries credential material."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_principal(cls, principal: Principal) -> "UserDataResponse":
        return cls(
            id=principal.id,
            username=principal.username,
            name=principal.name,
            email=principal.email,
            role=principal.role,
            created_at=principal.created_at,
            updated_at=principal.updated_at,
        )


class LoginResponse(_WireModel):
    """Login envelope. On failure token is "" and user is null; message says why."""

    token: str = ""
    user: Optional[UserDataResponse] = None
    message: str


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class CategoryWrite(_WireModel):
    """Request body for POST /categories and PATCH /categories/{id}.

    Length rules (3-50 after trimming) are enforced by CategoryDirectory so the
    same message comes back whichever entry point is used.
    """

    name: str = Field(max_length=255)


class CategoryResponse(_WireModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    created_at: str = ""

    @classmethod
    def from_category(cls, category: Category) -> "CategoryResponse":
        return cls(id=category.id, name=category.name, created_at=category.created_at)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class ProductWrite(_WireModel):
    """Request body for POST /products and PUT /products/{id}.

    Images are uploaded separately via PUT /products/{id}/image.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=4000)
    price: Decimal = Field(ge=0)
    category_id: int
    sku: str = Field(default="", max_length=100)
    stock: int = Field(default=0, ge=0)

    def to_product(self) -> Product:
        return Product(
            name=self.name,
            description=self.description,
            price=self.price,
            category_id=self.category_id,
            sku=self.sku,
            stock=self.stock,
        )


class ProductResponse(_WireModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    price: float
    stock: int
    sku: str
    category_id: int
    img_url: Optional[str] = None
    created_at: str = ""
    updated_at: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        """Factory Method -- the domain -> wire mapping lives beside the wire model."""
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            price=float(product.price),
            stock=product.stock,
            sku=product.sku,
            category_id=product.category_id,
            img_url=product.img_url,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


class PaginationResponse(_WireModel, Generic[T]):
    """Envelope for GET /products/paged."""

    page_number: int
    page_size: int
    total_pages: int
    items: list[T]
