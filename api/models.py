"""Data models for the Stock Manager.

This module defines the SQLModel tables (Category, Item, Activity and
Setting) and the plain records passed between the storage layer, the import
reconciler and the exporters.

Copyright (c) Bryn Gwalad 2025
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List

from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel


DEFAULT_MIN_STOCK = 5
DEFAULT_ICON = "cube-outline"


def local_now() -> datetime:
    return datetime.now()


class ActivityType(str, Enum):
    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"
    IMPORT = "import"
    EXPORT = "export"
    DELETE = "delete"


class Category(SQLModel, table=True):
    """A category for grouping items.

    Attributes:
        id: primary key
        name: category name, compared case-insensitively on import
        icon: symbol id shown next to the category
        sort_order: position in the user-ordered category list
        items: reverse relationship to Item
    """

    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    icon: str = DEFAULT_ICON
    sort_order: int = 0
    created_at: datetime = Field(default_factory=local_now, sa_type=DateTime)
    items: List["Item"] = Relationship(back_populates="category")


class Item(SQLModel, table=True):
    """A stocked product.

    Attributes:
        id: primary key
        name: item name, not unique
        sku: optional barcode / stock keeping unit
        custom_id: optional shop-chosen identifier
        category_id: foreign key to Category, nulled when the category goes
        buy_price, sell_price: unit prices, never negative
        quantity: units in stock, never negative
        min_stock: low-stock threshold
    """

    __tablename__ = "items"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    sku: Optional[str] = None
    custom_id: Optional[str] = None
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id")
    buy_price: float = 0
    sell_price: float = 0
    quantity: int = 0
    min_stock: int = DEFAULT_MIN_STOCK
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=local_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=local_now, sa_type=DateTime)
    category: Optional[Category] = Relationship(back_populates="items")


class Activity(SQLModel, table=True):
    """Append-only audit log of stock and data-movement events.

    ``item_id`` is not a foreign key. Rows outlive the item they
    describe, and import/export entries have no item at all.
    """

    __tablename__ = "activities"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    item_id: Optional[int] = None
    type: str
    quantity_change: int = 0
    note: str = ""
    file_name: Optional[str] = None
    status: str = "success"
    created_at: datetime = Field(default_factory=local_now, sa_type=DateTime)


class Setting(SQLModel, table=True):
    """Key-value store for UI preferences. Values are JSON text."""

    __tablename__ = "settings"

    key: str = Field(primary_key=True)
    value: str


# --- records (not tables) -------------------------------------------------


class ItemRead(SQLModel):
    """An Item joined with its category name."""

    id: int
    name: str
    sku: Optional[str] = None
    custom_id: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    buy_price: float = 0
    sell_price: float = 0
    quantity: int = 0
    min_stock: int = DEFAULT_MIN_STOCK
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: Item, category_name: Optional[str] = None) -> "ItemRead":
        data = item.model_dump()
        return cls(category_name=category_name, **data)


class ActivityRead(SQLModel):
    """An Activity joined with the name of its item, if it still exists."""

    id: int
    item_id: Optional[int] = None
    item_name: Optional[str] = None
    type: str
    quantity_change: int = 0
    note: str = ""
    file_name: Optional[str] = None
    status: str = "success"
    created_at: datetime


class ItemCreate(SQLModel):
    """Fields accepted when creating or editing an item by hand."""

    name: str
    sku: Optional[str] = None
    custom_id: Optional[str] = None
    category_id: Optional[int] = None
    buy_price: float = 0
    sell_price: float = 0
    quantity: int = 0
    min_stock: int = DEFAULT_MIN_STOCK
    description: Optional[str] = None


class CategoryCreate(SQLModel):
    name: str
    icon: str = DEFAULT_ICON


class CategoryUpdate(SQLModel):
    """Rename a category; the stored icon is kept when ``icon`` is omitted."""

    name: str
    icon: Optional[str] = None


class StockStats(SQLModel):
    total_items: int = 0
    total_value: float = 0
    low_stock: int = 0
    out_of_stock: int = 0
    in_stock: int = 0


class ImportRow(SQLModel):
    """One spreadsheet row reduced to canonical fields.

    Numeric fields are already coerced; ``name`` is None for rows the
    reconciler must skip.
    """

    name: Optional[str] = None
    sku: Optional[str] = None
    custom_id: Optional[str] = None
    category: Optional[str] = None
    buy_price: float = 0
    sell_price: float = 0
    quantity: int = 0
    min_stock: int = DEFAULT_MIN_STOCK
    description: Optional[str] = None


class ImportSummary(SQLModel):
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    total: int = 0


class OperationResult(SQLModel):
    """Outcome of an import or export, shaped for display to the user."""

    success: bool
    message: str
    count: Optional[int] = None
    file_name: Optional[str] = None
    path: Optional[str] = None
