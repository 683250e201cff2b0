"""
api/routes/v1/products.py -- Product catalog and inventory endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /products                          -- list all
  GET    /products/paged                    -- paginated list (?pageNumber=&pageSize=)
  GET    /products/category/{category_id}   -- products in a category
  GET    /products/search/{term}            -- name/description substring search
  PATCH  /products/buy/{name}/{quantity}    -- purchase (atomic stock decrement)
  POST   /products                          -- create
  GET    /products/{product_id}             -- detail
  PUT    /products/{product_id}             -- replace
  PUT    /products/{product_id}/image       -- upload image (multipart)
  DELETE /products/{product_id}             -- delete

Every route requires the admin role (router-level dependency).

Pagination policy: a page number beyond ceil(total / pageSize) is rejected
here with 400. The ledger itself would just return an empty page.
"""

import io
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, UploadFile

from api.images import ImagePayload, save_product_image
from api.models import ErrorDetail, PaginationResponse, ProductResponse, ProductWrite
from auth.dependencies import require_admin
from catalog.products import ProductLedger

router = APIRouter(dependencies=[Depends(require_admin)])


def _bad_request(message: str, code: str = "invalid_param") -> HTTPException:
    return HTTPException(status_code=400, detail=ErrorDetail(code=code, message=message).model_dump())


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail=ErrorDetail(code="not_found", message=message).model_dump())


def _store_failure(message: str) -> HTTPException:
    return HTTPException(status_code=500, detail=ErrorDetail(code="store_error", message=message).model_dump())


def _ledger(request: Request) -> ProductLedger:
    return request.app.state.products


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/products", response_model=list[ProductResponse])
def list_products(request: Request) -> list[ProductResponse]:
    return [ProductResponse.from_product(p) for p in _ledger(request).list_products()]


@router.get("/products/paged", response_model=PaginationResponse[ProductResponse])
def list_products_paged(
    request: Request,
    page_number: int = Query(default=1, alias="pageNumber"),
    page_size: Optional[int] = Query(default=None, alias="pageSize"),
) -> PaginationResponse[ProductResponse]:
    """Return one page of products plus the total page count."""
    if page_size is None:
        page_size = request.app.state.settings.default_page_size
    if page_number <= 0 or page_size <= 0:
        raise _bad_request("Page number and page size must be greater than 0")

    ledger = _ledger(request)
    total_pages = math.ceil(ledger.total_count() / page_size)
    if page_number > total_pages:
        raise _bad_request(f"Page number {page_number} exceeds total pages {total_pages}")

    items = ledger.list_page(page_number, page_size)
    return PaginationResponse[ProductResponse](
        page_number=page_number,
        page_size=page_size,
        total_pages=total_pages,
        items=[ProductResponse.from_product(p) for p in items],
    )


@router.get("/products/category/{category_id}", response_model=list[ProductResponse])
def list_products_for_category(request: Request, category_id: int) -> list[ProductResponse]:
    products = _ledger(request).list_by_category(category_id)
    if not products:
        raise _not_found(f"There are no products in the category with ID {category_id}.")
    return [ProductResponse.from_product(p) for p in products]


@router.get("/products/search/{term}", response_model=list[ProductResponse])
def search_products(request: Request, term: str) -> list[ProductResponse]:
    if not term.strip():
        raise _bad_request("The search term is required")
    products = _ledger(request).search(term)
    if not products:
        raise _not_found(f"There are no products containing the name or description {term}")
    return [ProductResponse.from_product(p) for p in products]


# ---------------------------------------------------------------------------
# Purchase
# ---------------------------------------------------------------------------


@router.patch("/products/buy/{name}/{quantity}", response_model=str)
def buy_product(request: Request, name: str, quantity: int) -> str:
    """Take quantity units of the named product out of stock.

    The stock check and decrement happen in one conditional UPDATE inside the
    ledger. The existence lookup here only picks the error message.
    """
    if not name.strip() or quantity <= 0:
        raise _bad_request("The product name or quantity provided is invalid")
    ledger = _ledger(request)
    if not ledger.exists_by_name(name):
        raise _not_found(f"The product with name '{name}' does not exist")
    if not ledger.purchase(name, quantity):
        raise _bad_request(
            f"The product {name} could not be purchased or there is not enough stock to complete the purchase",
            code="insufficient_stock",
        )
    units = "unit" if quantity == 1 else "units"
    return f"The purchase of {quantity} {units} of product {name} was successful"


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(request: Request, body: ProductWrite) -> ProductResponse:
    """Create a product. It starts with the placeholder image until one is uploaded."""
    ledger = _ledger(request)
    product = body.to_product()
    product.img_url = request.app.state.settings.placeholder_image_url
    if not ledger.create(product):
        raise _store_failure(f"Something went wrong while saving the record {product.name}")
    return ProductResponse.from_product(ledger.get_by_id(product.id) or product)


@router.get("/products/{product_id}", response_model=ProductResponse)
def get_product(request: Request, product_id: int) -> ProductResponse:
    product = _ledger(request).get_by_id(product_id)
    if product is None:
        raise _not_found(f"The product with ID {product_id} does not exist")
    return ProductResponse.from_product(product)


@router.put("/products/{product_id}", status_code=204)
def update_product(request: Request, product_id: int, body: ProductWrite) -> Response:
    """Replace a product's fields. An uploaded image is kept; otherwise the placeholder is used."""
    ledger = _ledger(request)
    existing = ledger.get_by_id(product_id)
    if existing is None:
        raise _not_found(f"The product with ID {product_id} does not exist")
    product = body.to_product()
    product.id = product_id
    product.img_url = existing.img_url or request.app.state.settings.placeholder_image_url
    product.img_url_local = existing.img_url_local
    if not ledger.update(product):
        raise _store_failure(f"Something went wrong while updating the record {product.name}")
    return Response(status_code=204)


@router.put("/products/{product_id}/image", response_model=ProductResponse)
async def upload_product_image(request: Request, product_id: int, file: UploadFile) -> ProductResponse:
    """Store an uploaded image for the product and record its public URL."""
    settings = request.app.state.settings
    ledger = _ledger(request)
    if not ledger.exists_by_id(product_id):
        raise _not_found(f"The product with ID {product_id} does not exist")

    # Size guard -- read up to the cap + 1 byte; reject if over limit
    raw = await file.read(settings.max_image_bytes + 1)
    if len(raw) > settings.max_image_bytes:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(code="file_too_large", message="The image is too large.").model_dump(),
        )

    payload = ImagePayload(filename=file.filename or "", stream=io.BytesIO(raw))
    try:
        img_url, img_path = save_product_image(
            payload, product_id, settings.product_images_dir, str(request.base_url)
        )
    except ValueError as exc:
        raise _bad_request(str(exc), code="unsupported_image") from exc

    if not ledger.set_image(product_id, img_url, img_path):
        raise _store_failure(f"Something went wrong while saving the image for product {product_id}")
    return ProductResponse.from_product(ledger.get_by_id(product_id))


@router.delete("/products/{product_id}", status_code=204)
def delete_product(request: Request, product_id: int) -> Response:
    ledger = _ledger(request)
    product = ledger.get_by_id(product_id)
    if product is None:
        raise _not_found(f"The product with ID {product_id} does not exist")
    if not ledger.delete(product):
        raise _store_failure(f"Something went wrong while deleting the record {product.name}")
    return Response(status_code=204)
