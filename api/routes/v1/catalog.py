"""
api/routes/v1/catalog.py -- Category and item CRUD routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /categories                 -- list categories (public)
  POST   /categories                 -- create category (auth)
  GET    /categories/{id}            -- category detail (public)
  GET    /categories/{id}/items      -- items in one category (public)
  DELETE /categories/{id}            -- delete category and its items (auth)
  GET    /items                      -- list items (public)
  POST   /items                      -- create item (auth)
  GET    /items/{id}                 -- item detail (public)
  PATCH  /items/{id}                 -- partial update (auth)
  DELETE /items/{id}                 -- delete item (auth)

Reads are public; writes take Depends(get_current_user) per route rather than
at router level. Store errors (NotFoundError, DuplicateError, ValidationError)
propagate to the AppError handler in api/main.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.models import CategoryCreate, CategoryResponse, ItemCreate, ItemPatch, ItemResponse
from auth.dependencies import get_current_user
from auth.models import User
from catalog.models import Category, Item
from catalog.store import CatalogStore
from core.errors import NotFoundError, ValidationError
from core.limiter import limiter

router = APIRouter()


def _store(request: Request) -> CatalogStore:
    return request.app.state.catalog


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(request: Request, visible_only: bool = False) -> list[CategoryResponse]:
    return [CategoryResponse.from_category(c) for c in _store(request).list_categories(visible_only)]


@router.post("/categories", response_model=CategoryResponse, status_code=201)
@limiter.limit("30/minute")
def create_category(
    request: Request,
    body: CategoryCreate,
    current_user: User = Depends(get_current_user),
) -> CategoryResponse:
    """Create a category. Returns 409 conflict if category_name is taken."""
    category = _store(request).create_category(
        Category(
            category_name=body.category_name,
            display_name=body.display_name,
            is_visible=body.is_visible,
            display_order=body.display_order,
        )
    )
    return CategoryResponse.from_category(category)


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(request: Request, category_id: int) -> CategoryResponse:
    category = _store(request).get_category(category_id)
    if category is None:
        raise NotFoundError("Category not found.")
    return CategoryResponse.from_category(category)


@router.get("/categories/{category_id}/items", response_model=list[ItemResponse])
def list_category_items(request: Request, category_id: int, active_only: bool = False) -> list[ItemResponse]:
    store = _store(request)
    if store.get_category(category_id) is None:
        raise NotFoundError("Category not found.")
    return [ItemResponse.from_item(i) for i in store.list_items(category_id, active_only)]


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    request: Request,
    category_id: int,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete a category. Every item in it is deleted in the same transaction."""
    _store(request).delete_category(category_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@router.get("/items", response_model=list[ItemResponse])
def list_items(
    request: Request,
    category_id: Optional[int] = None,
    active_only: bool = False,
) -> list[ItemResponse]:
    return [ItemResponse.from_item(i) for i in _store(request).list_items(category_id, active_only)]


@router.post("/items", response_model=ItemResponse, status_code=201)
@limiter.limit("60/minute")
def create_item(
    request: Request,
    body: ItemCreate,
    current_user: User = Depends(get_current_user),
) -> ItemResponse:
    """Create an item. Returns 404 if category_id does not exist."""
    item = _store(request).create_item(
        Item(
            title=body.title,
            description=body.description,
            data=body.data,
            is_active=body.is_active,
            category_id=body.category_id,
        )
    )
    return ItemResponse.from_item(item)


@router.get("/items/{item_id}", response_model=ItemResponse)
def get_item(request: Request, item_id: int) -> ItemResponse:
    item = _store(request).get_item(item_id)
    if item is None:
        raise NotFoundError("Item not found.")
    return ItemResponse.from_item(item)


@router.patch("/items/{item_id}", response_model=ItemResponse)
def update_item(
    request: Request,
    item_id: int,
    body: ItemPatch,
    current_user: User = Depends(get_current_user),
) -> ItemResponse:
    """Apply only the fields present in the request body."""
    fields = body.model_dump(exclude_unset=True)
    nulled = [k for k in ("title", "is_active", "category_id") if k in fields and fields[k] is None]
    if nulled:
        raise ValidationError(f"Field(s) cannot be null: {', '.join(nulled)}.")
    if not fields:
        item = _store(request).get_item(item_id)
        if item is None:
            raise NotFoundError("Item not found.")
        return ItemResponse.from_item(item)
    return ItemResponse.from_item(_store(request).update_item(item_id, **fields))


@router.delete("/items/{item_id}", status_code=204)
def delete_item(
    request: Request,
    item_id: int,
    current_user: User = Depends(get_current_user),
) -> Response:
    _store(request).delete_item(item_id)
    return Response(status_code=204)
