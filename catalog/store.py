"""
catalog/store.py -- SQLAlchemy Core persistence layer for categories and items.

Pattern: Repository + Data Mapper. CatalogStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Cascade:
  items.category_id is declared ON DELETE CASCADE, and SQLite enforces it
  because core.db turns on PRAGMA foreign_keys. delete_category() still
  deletes the items explicitly inside the same transaction so the behavior
  does not depend on the backend honouring the FK action.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = CatalogStore(db)
    store.seed_default_categories()
    item = store.create_item(Item(title="Hello", category_id=1))
    store.delete_category(1)   # removes the item too
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    select,
)
from sqlalchemy.exc import IntegrityError

from catalog.models import Category, Item
from core.db import Database
from core.errors import DuplicateError, NotFoundError, ValidationError

logger = logging.getLogger("webbase.catalog")

# Seeded on first startup. (category_name, display_name, display_order)
DEFAULT_CATEGORIES: list[tuple[str, str, int]] = [
    ("general", "General", 0),
    ("projects", "Projects", 1),
    ("resources", "Resources", 2),
    ("examples", "Examples", 3),
]

# Columns an update_item() caller may change.
_ITEM_MUTABLE = {"title", "description", "data", "is_active", "category_id"}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_categories = Table(
    "category",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("category_name", String(50), nullable=False, unique=True),
    Column("display_name", String(100), nullable=False),
    Column("is_visible", Boolean, nullable=False, default=True),
    Column("display_order", Integer, nullable=False, default=0),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_items = Table(
    "items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("data", Text),  # JSON object serialized as text
    Column("is_active", Boolean, nullable=False, default=True),
    Column("category_id", Integer, ForeignKey("category.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_category(row) -> Category:
    return Category(
        id=row.id,
        category_name=row.category_name,
        display_name=row.display_name,
        is_visible=bool(row.is_visible),
        display_order=row.display_order,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_item(row) -> Item:
    return Item(
        id=row.id,
        title=row.title,
        description=row.description,
        data=json.loads(row.data) if row.data else None,
        is_active=bool(row.is_active),
        category_id=row.category_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        category_display_name=row.category_display_name,
    )


def _item_query():
    """SELECT items joined with their category's display name."""
    return select(
        _items,
        _categories.c.display_name.label("category_display_name"),
    ).join(_categories, _items.c.category_id == _categories.c.id)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CatalogStore:
    def __init__(self, db: Database) -> None:
        self.db = db
        db.create_all(metadata)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def seed_default_categories(self) -> int:
        """Insert any missing DEFAULT_CATEGORIES. Returns how many were created."""
        created = 0
        for name, display, order in DEFAULT_CATEGORIES:
            if self.get_category_by_name(name) is None:
                try:
                    self.create_category(Category(category_name=name, display_name=display, display_order=order))
                    created += 1
                except DuplicateError:
                    pass  # concurrent startup seeded it first
        if created:
            logger.info("Seeded %d default categories", created)
        return created

    def list_categories(self, visible_only: bool = False) -> list[Category]:
        query = _categories.select().order_by(_categories.c.display_order, _categories.c.id)
        if visible_only:
            query = query.where(_categories.c.is_visible.is_(True))
        with self.db.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_category(r) for r in rows]

    def get_category(self, category_id: int) -> Optional[Category]:
        with self.db.connect() as conn:
            row = conn.execute(_categories.select().where(_categories.c.id == category_id)).fetchone()
        return _row_to_category(row) if row is not None else None

    def get_category_by_name(self, category_name: str) -> Optional[Category]:
        with self.db.connect() as conn:
            row = conn.execute(
                _categories.select().where(_categories.c.category_name == category_name.strip().lower())
            ).fetchone()
        return _row_to_category(row) if row is not None else None

    def create_category(self, category: Category) -> Category:
        """Insert a category. Raises DuplicateError if category_name is taken."""
        name = category.category_name.strip().lower()
        display = category.display_name.strip()
        if not name or not display:
            raise ValidationError("Category name and display name are required.")
        now = _now_iso()
        try:
            with self.db.begin() as conn:
                result = conn.execute(
                    _categories.insert().values(
                        category_name=name,
                        display_name=display,
                        is_visible=category.is_visible,
                        display_order=category.display_order,
                        created_at=now,
                        updated_at=now,
                    )
                )
                category_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateError("A category with that name already exists.") from exc
        return self.get_category(category_id)

    def delete_category(self, category_id: int) -> int:
        """Delete a category and all of its items. Returns the number of items removed.

        Raises NotFoundError if the category does not exist.
        """
        with self.db.begin() as conn:
            removed = conn.execute(_items.delete().where(_items.c.category_id == category_id)).rowcount
            result = conn.execute(_categories.delete().where(_categories.c.id == category_id))
            if result.rowcount == 0:
                raise NotFoundError("Category not found.")
        logger.info("Deleted category id=%d with %d items", category_id, removed)
        return removed

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def list_items(self, category_id: Optional[int] = None, active_only: bool = False) -> list[Item]:
        query = _item_query().order_by(_categories.c.display_order, _items.c.id)
        if category_id is not None:
            query = query.where(_items.c.category_id == category_id)
        if active_only:
            query = query.where(_items.c.is_active.is_(True))
        with self.db.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_item(r) for r in rows]

    def get_item(self, item_id: int) -> Optional[Item]:
        with self.db.connect() as conn:
            row = conn.execute(_item_query().where(_items.c.id == item_id)).fetchone()
        return _row_to_item(row) if row is not None else None

    def create_item(self, item: Item) -> Item:
        """Insert an item. Raises NotFoundError if its category does not exist."""
        title = (item.title or "").strip()
        if not title:
            raise ValidationError("Title is required.")
        if self.get_category(item.category_id) is None:
            raise NotFoundError("Category not found.")
        now = _now_iso()
        with self.db.begin() as conn:
            result = conn.execute(
                _items.insert().values(
                    title=title,
                    description=item.description,
                    data=json.dumps(item.data) if item.data is not None else None,
                    is_active=item.is_active,
                    category_id=item.category_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            item_id = result.inserted_primary_key[0]
        return self.get_item(item_id)

    def update_item(self, item_id: int, **fields) -> Item:
        """Update mutable fields on an item.

        Accepted fields: title, description, data, is_active, category_id.
        Raises NotFoundError for an unknown item or target category.
        """
        unknown = set(fields) - _ITEM_MUTABLE
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}.")
        if "title" in fields:
            fields["title"] = (fields["title"] or "").strip()
            if not fields["title"]:
                raise ValidationError("Title is required.")
        if "category_id" in fields and self.get_category(fields["category_id"]) is None:
            raise NotFoundError("Category not found.")
        if "data" in fields:
            fields["data"] = json.dumps(fields["data"]) if fields["data"] is not None else None
        fields["updated_at"] = _now_iso()
        with self.db.begin() as conn:
            result = conn.execute(_items.update().where(_items.c.id == item_id).values(**fields))
            if result.rowcount == 0:
                raise NotFoundError("Item not found.")
        return self.get_item(item_id)

    def delete_item(self, item_id: int) -> None:
        with self.db.begin() as conn:
            result = conn.execute(_items.delete().where(_items.c.id == item_id))
            if result.rowcount == 0:
                raise NotFoundError("Item not found.")
