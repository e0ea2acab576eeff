"""
catalog/models.py -- Domain dataclasses for categories and items.

Pure data containers. All persistence logic (cascade on delete, JSON
serialization of Item.data, default seeding) lives in catalog/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Category:
    """A grouping for items.

    category_name is the unique machine name ("general"); display_name is what
    templates show. id is None before the record is written to the database.
    """

    category_name: str
    display_name: str
    id: Optional[int] = None
    is_visible: bool = True
    display_order: int = 0
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Item:
    """A generic record that belongs to exactly one category.

    data is a free-form JSON object for project-specific fields.
    category_display_name is filled in by list/get queries (join) and ignored
    on insert.
    """

    title: str
    category_id: int
    id: Optional[int] = None
    description: Optional[str] = None
    data: Optional[dict] = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""
    category_display_name: Optional[str] = None
