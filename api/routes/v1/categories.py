"""
api/routes/v1/categories.py -- Category endpoints.

Routes:
  GET    /api/v1/categories        -- list, ordered by name (public, cacheable)
  GET    /api/v1/categories/{id}   -- detail (public)
  POST   /api/v1/categories        -- create (admin)
  PATCH  /api/v1/categories/{id}   -- rename (admin)
  DELETE /api/v1/categories/{id}   -- delete (admin)

Validation, conflict and not-found failures are raised by CategoryDirectory
and mapped to responses by the exception handlers in api/main.py. A False
return from a write means the store failed and becomes a 500 here.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import CategoryResponse, CategoryWrite, ErrorDetail
from auth.dependencies import require_admin
from catalog.categories import CategoryDirectory
from catalog.models import Category

router = APIRouter()


def _not_found(category_id: int) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="not_found", message=f"The category with ID {category_id} does not exist").model_dump(),
    )


def _store_failure(action: str, name: str) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail=ErrorDetail(
            code="store_error",
            message=f"Something went wrong while {action} the category {name}",
        ).model_dump(),
    )


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(request: Request, response: Response) -> list[CategoryResponse]:
    directory: CategoryDirectory = request.app.state.categories
    response.headers["Cache-Control"] = f"public, max-age={request.app.state.settings.category_cache_seconds}"
    return [CategoryResponse.from_category(c) for c in directory.list_categories()]


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(request: Request, response: Response, category_id: int) -> CategoryResponse:
    directory: CategoryDirectory = request.app.state.categories
    category = directory.get_by_id(category_id)
    if category is None:
        raise _not_found(category_id)
    response.headers["Cache-Control"] = f"public, max-age={request.app.state.settings.category_cache_seconds}"
    return CategoryResponse.from_category(category)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(request: Request, body: CategoryWrite, _admin=Depends(require_admin)) -> CategoryResponse:
    directory: CategoryDirectory = request.app.state.categories
    category = Category(name=body.name)
    if not directory.create(category):
        raise _store_failure("saving", body.name)
    return CategoryResponse.from_category(category)


@router.patch("/categories/{category_id}", status_code=204)
def update_category(
    request: Request,
    category_id: int,
    body: CategoryWrite,
    _admin=Depends(require_admin),
) -> Response:
    directory: CategoryDirectory = request.app.state.categories
    if not directory.update(Category(id=category_id, name=body.name)):
        raise _store_failure("updating", body.name)
    return Response(status_code=204)


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(request: Request, category_id: int, _admin=Depends(require_admin)) -> Response:
    directory: CategoryDirectory = request.app.state.categories
    category = directory.get_by_id(category_id)
    if category is None:
        raise _not_found(category_id)
    if not directory.delete(category):
        raise _store_failure("deleting", category.name)
    return Response(status_code=204)
