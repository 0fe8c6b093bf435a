"""Storage access layer for the Stock Manager.

``StockStore`` owns the SQLAlchemy engine and exposes typed operations over
the ``categories``, ``items``, ``activities`` and ``settings`` tables:

- open/close lifecycle, schema creation and additive migrations
- seeding of the default categories on first run
- category and item CRUD, search/filter and statistics
- the append-only activity log
- a small JSON key-value store for preferences

The default local SQLite file is ``database/stockmanager.db`` (configurable
via ``SQLITE_FILE``, or replace the whole URL with ``DATABASE_URL``). The
parent directory is created on ``open()`` so the database can be created on
first use.

Copyright (c) Bryn Gwalad 2025
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from sqlalchemy import event, func, or_, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError
from sqlmodel import Session, SQLModel, create_engine, select

from api.models import (
    DEFAULT_ICON,
    DEFAULT_MIN_STOCK,
    Activity,
    ActivityRead,
    ActivityType,
    Category,
    ImportRow,
    Item,
    ItemCreate,
    ItemRead,
    Setting,
    StockStats,
    local_now,
)

# Load environment variables from .env if present
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_FILE = "database/stockmanager.db"

ITEM_NAME_REQUIRED = "Nama item wajib diisi"
CATEGORY_NAME_REQUIRED = "Nama kategori wajib diisi"
INVALID_QUANTITY = "Masukkan jumlah yang valid"

STATUS_FILTERS = ("all", "low", "out", "in")

DEFAULT_CATEGORIES = [
    ("Tombol Luar", "phone-portrait-outline"),
    ("Flex On", "git-merge-outline"),
    ("Konektor Cas", "flash-outline"),
    ("LCD", "tablet-landscape-outline"),
    ("Baterai", "battery-half-outline"),
    ("Casing", "shield-outline"),
    ("IC", "hardware-chip-outline"),
    ("Mesin", "cog-outline"),
    ("Kamera", "camera-outline"),
    ("Aksesoris", "pricetag-outline"),
]

# Additive migrations for databases created by older releases. Each one fails
# with a driver error when already applied, which is ignored.
MIGRATIONS = (
    "ALTER TABLE items ADD COLUMN custom_id TEXT",
    "ALTER TABLE items ADD COLUMN buy_price REAL DEFAULT 0",
    "ALTER TABLE items ADD COLUMN sell_price REAL DEFAULT 0",
    "ALTER TABLE categories ADD COLUMN sort_order INTEGER DEFAULT 0",
    # one-time copy of the legacy single price column
    "UPDATE items SET sell_price = price WHERE sell_price = 0 AND price > 0",
)


def database_url_from_env() -> str:
    """Return ``DATABASE_URL`` or a sqlite URL built from ``SQLITE_FILE``."""
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url
    sqlite_file = os.getenv("SQLITE_FILE", DEFAULT_SQLITE_FILE)
    return f"sqlite:///{sqlite_file}"


def _enable_wal(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class StockStore:
    """Explicitly opened handle on the inventory database.

    Usage::

        with StockStore("sqlite:///stock.db") as store:
            store.add_item(ItemCreate(name="LCD A10", quantity=3))
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or database_url_from_env()
        self.echo = echo
        self.engine: Optional[Engine] = None

    # --- lifecycle -------------------------------------------------------

    def open(self) -> "StockStore":
        if self.engine is not None:
            return self

        url = make_url(self.database_url)
        connect_args = {}
        is_sqlite = url.get_backend_name() == "sqlite"
        if is_sqlite:
            connect_args["check_same_thread"] = False
            if url.database and url.database != ":memory:":
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(self.database_url, echo=self.echo, connect_args=connect_args)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_wal)

        SQLModel.metadata.create_all(self.engine)
        self._migrate()
        self._seed_categories()
        logger.info("Opened stock database %s", url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    def __enter__(self) -> "StockStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def session(self) -> Session:
        if self.engine is None:
            raise RuntimeError("StockStore is not open")
        return Session(self.engine, expire_on_commit=False)

    def _migrate(self) -> None:
        for statement in MIGRATIONS:
            try:
                with self.engine.begin() as conn:
                    conn.execute(text(statement))
            except DBAPIError:
                logger.debug("Migration not applied: %s", statement)

    def _seed_categories(self) -> None:
        with self.session() as session:
            count = session.exec(select(func.count()).select_from(Category)).one()
            if count:
                return
            for order, (name, icon) in enumerate(DEFAULT_CATEGORIES):
                session.add(Category(name=name, icon=icon, sort_order=order))
            session.commit()
        logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))

    # --- categories ------------------------------------------------------

    def get_categories(self) -> List[Category]:
        with self.session() as session:
            statement = select(Category).order_by(Category.sort_order, Category.name)
            return list(session.exec(statement).all())

    def get_category(self, category_id: int) -> Optional[Category]:
        with self.session() as session:
            return session.get(Category, category_id)

    def find_category_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive exact match on the category name."""
        with self.session() as session:
            statement = (
                select(Category)
                .where(func.lower(Category.name) == func.lower(name))
                .order_by(Category.id)
            )
            return session.exec(statement).first()

    def add_category(self, name: str, icon: str = DEFAULT_ICON) -> Category:
        name = _clean_text(name)
        if not name:
            raise ValueError(CATEGORY_NAME_REQUIRED)
        with self.session() as session:
            last = session.exec(select(func.max(Category.sort_order))).one()
            category = Category(
                name=name,
                icon=icon or DEFAULT_ICON,
                sort_order=0 if last is None else last + 1,
            )
            session.add(category)
            session.commit()
            session.refresh(category)
            return category

    def update_category(self, category_id: int, name: str, icon: Optional[str] = None) -> Optional[Category]:
        name = _clean_text(name)
        if not name:
            raise ValueError(CATEGORY_NAME_REQUIRED)
        with self.session() as session:
            category = session.get(Category, category_id)
            if category is None:
                return None
            category.name = name
            if icon:
                category.icon = icon
            session.add(category)
            session.commit()
            session.refresh(category)
            return category

    def delete_category(self, category_id: int) -> bool:
        """Delete a category. Items pointing to it keep existing, uncategorised."""
        with self.session() as session:
            category = session.get(Category, category_id)
            if category is None:
                return False
            now = local_now()
            linked = session.exec(select(Item).where(Item.category_id == category_id)).all()
            for item in linked:
                item.category_id = None
                item.updated_at = now
                session.add(item)
            session.delete(category)
            session.commit()
            logger.info("Deleted category %s, %d item(s) uncategorised", category_id, len(linked))
            return True

    def reorder_category(self, category_id: int, new_index: int) -> Optional[List[Category]]:
        """Move a category to ``new_index`` and renumber the whole list."""
        with self.session() as session:
            statement = select(Category).order_by(Category.sort_order, Category.name)
            categories = list(session.exec(statement).all())
            index = next((i for i, c in enumerate(categories) if c.id == category_id), None)
            if index is None:
                return None
            new_index = max(0, min(new_index, len(categories) - 1))
            categories.insert(new_index, categories.pop(index))
            for order, category in enumerate(categories):
                category.sort_order = order
                session.add(category)
            session.commit()
            return categories

    def get_category_item_counts(self) -> Dict[int, int]:
        with self.session() as session:
            statement = (
                select(Item.category_id, func.count(Item.id))
                .where(Item.category_id != None)  # noqa: E711
                .group_by(Item.category_id)
            )
            return {category_id: count for category_id, count in session.exec(statement).all()}

    # --- items -----------------------------------------------------------

    def _item_select(self):
        return select(Item, Category.name).join(
            Category, Item.category_id == Category.id, isouter=True
        )

    def get_items(
        self,
        search: str = "",
        status_filter: str = "all",
        category_id: Optional[int] = None,
    ) -> List[ItemRead]:
        """Search and filter items.

        ``search`` is a case-insensitive substring match over name, sku,
        custom id and category name. ``status_filter`` is one of
        ``all``, ``low`` (0 < qty <= min stock), ``out`` (qty = 0) or
        ``in`` (qty > min stock).
        """
        if status_filter not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter: {status_filter}")

        statement = self._item_select()
        if search:
            pattern = f"%{search.lower()}%"
            statement = statement.where(
                or_(
                    func.lower(Item.name).like(pattern),
                    func.lower(Item.sku).like(pattern),
                    func.lower(Item.custom_id).like(pattern),
                    func.lower(Category.name).like(pattern),
                )
            )
        if status_filter == "low":
            statement = statement.where(Item.quantity > 0, Item.quantity <= Item.min_stock)
        elif status_filter == "out":
            statement = statement.where(Item.quantity == 0)
        elif status_filter == "in":
            statement = statement.where(Item.quantity > Item.min_stock)
        if category_id is not None:
            statement = statement.where(Item.category_id == category_id)
        statement = statement.order_by(Item.updated_at.desc(), Item.id.desc())

        with self.session() as session:
            return [ItemRead.from_item(item, name) for item, name in session.exec(statement).all()]

    def get_item(self, item_id: int) -> Optional[ItemRead]:
        with self.session() as session:
            row = session.exec(self._item_select().where(Item.id == item_id)).first()
            if row is None:
                return None
            item, category_name = row
            return ItemRead.from_item(item, category_name)

    def find_item_by_name(
        self,
        name: str,
        category_id: Optional[int] = None,
        exclude_id: Optional[int] = None,
    ) -> Optional[Item]:
        """Case-insensitive exact name lookup, optionally scoped to a category."""
        statement = select(Item).where(func.lower(Item.name) == func.lower(name))
        if category_id is not None:
            statement = statement.where(Item.category_id == category_id)
        if exclude_id is not None:
            statement = statement.where(Item.id != exclude_id)
        with self.session() as session:
            return session.exec(statement.order_by(Item.id)).first()

    @staticmethod
    def _item_fields(data: ItemCreate) -> Dict[str, Any]:
        name = _clean_text(data.name)
        if not name:
            raise ValueError(ITEM_NAME_REQUIRED)
        min_stock = data.min_stock if data.min_stock is not None and data.min_stock >= 0 else DEFAULT_MIN_STOCK
        return {
            "name": name,
            "sku": _clean_text(data.sku),
            "custom_id": _clean_text(data.custom_id),
            "category_id": data.category_id or None,
            "buy_price": max(data.buy_price or 0, 0),
            "sell_price": max(data.sell_price or 0, 0),
            "quantity": max(data.quantity or 0, 0),
            "min_stock": min_stock,
            "description": _clean_text(data.description),
        }

    def add_item(self, data: ItemCreate) -> Item:
        item = Item(**self._item_fields(data))
        with self.session() as session:
            session.add(item)
            session.commit()
            session.refresh(item)
            self.log_activity(item.id, ActivityType.STOCK_IN, item.quantity, "Item baru ditambahkan", session=session)
            return item

    def update_item(self, item_id: int, data: ItemCreate) -> Optional[Item]:
        """Overwrite an item; a quantity change is logged as stock in/out."""
        fields = self._item_fields(data)
        with self.session() as session:
            item = session.get(Item, item_id)
            if item is None:
                return None
            old_quantity = item.quantity
            for key, value in fields.items():
                setattr(item, key, value)
            item.updated_at = local_now()
            session.add(item)
            session.commit()
            session.refresh(item)
            diff = item.quantity - old_quantity
            if diff:
                kind = ActivityType.STOCK_IN if diff > 0 else ActivityType.STOCK_OUT
                self.log_activity(item.id, kind, abs(diff), "Stok diperbarui", session=session)
            return item

    def delete_item(self, item_id: int) -> bool:
        with self.session() as session:
            item = session.get(Item, item_id)
            if item is None:
                return False
            session.delete(item)
            session.commit()
            self.log_activity(item_id, ActivityType.DELETE, 0, "Item dihapus", session=session)
            return True

    def add_stock_to_item(self, item_id: int, quantity: int, note: Optional[str] = None) -> Optional[Item]:
        if quantity <= 0:
            raise ValueError(INVALID_QUANTITY)
        with self.session() as session:
            item = session.get(Item, item_id)
            if item is None:
                return None
            item.quantity += quantity
            item.updated_at = local_now()
            session.add(item)
            session.commit()
            session.refresh(item)
            self.log_activity(
                item.id, ActivityType.STOCK_IN, quantity, note or f"Barang Masuk: {quantity}", session=session
            )
            return item

    def remove_stock_from_item(self, item_id: int, quantity: int, note: Optional[str] = None) -> Optional[Item]:
        if quantity <= 0:
            raise ValueError(INVALID_QUANTITY)
        with self.session() as session:
            item = session.get(Item, item_id)
            if item is None:
                return None
            if item.quantity < quantity:
                raise ValueError(f"Stok tidak cukup, stok saat ini hanya {item.quantity}")
            item.quantity -= quantity
            item.updated_at = local_now()
            session.add(item)
            session.commit()
            session.refresh(item)
            self.log_activity(
                item.id, ActivityType.STOCK_OUT, quantity, note or f"Barang Keluar: {quantity}", session=session
            )
            return item

    def get_low_stock_items(self, limit: int = 20) -> List[ItemRead]:
        statement = (
            self._item_select()
            .where(Item.quantity <= Item.min_stock)
            .order_by(Item.quantity, Item.id)
            .limit(limit)
        )
        with self.session() as session:
            return [ItemRead.from_item(item, name) for item, name in session.exec(statement).all()]

    def get_all_items_for_export(self) -> List[ItemRead]:
        statement = self._item_select().order_by(Item.name, Item.id)
        with self.session() as session:
            return [ItemRead.from_item(item, name) for item, name in session.exec(statement).all()]

    # --- import primitives -----------------------------------------------

    def insert_import_row(self, row: ImportRow, category_id: Optional[int]) -> Item:
        item = Item(
            name=row.name,
            sku=row.sku,
            custom_id=row.custom_id,
            category_id=category_id,
            buy_price=row.buy_price,
            sell_price=row.sell_price,
            quantity=row.quantity,
            min_stock=row.min_stock,
            description=row.description,
        )
        with self.session() as session:
            session.add(item)
            session.commit()
            session.refresh(item)
            return item

    def merge_import_row(self, item_id: int, row: ImportRow) -> Item:
        """Add the row's quantity to an existing item.

        Prices are only overwritten by positive incoming values.
        """
        with self.session() as session:
            item = session.get(Item, item_id)
            if item is None:
                raise LookupError(f"Item {item_id} not found")
            old_quantity = item.quantity
            item.quantity = old_quantity + row.quantity
            if row.buy_price > 0:
                item.buy_price = row.buy_price
            if row.sell_price > 0:
                item.sell_price = row.sell_price
            item.updated_at = local_now()
            session.add(item)
            session.commit()
            session.refresh(item)
            if row.quantity > 0:
                self.log_activity(
                    item.id,
                    ActivityType.STOCK_IN,
                    row.quantity,
                    f"Import: tambah stok {row.quantity} (total: {old_quantity + row.quantity})",
                    session=session,
                )
            return item

    # --- statistics ------------------------------------------------------

    def get_stats(self) -> StockStats:
        with self.session() as session:
            total = session.exec(select(func.count(Item.id))).one()
            value = session.exec(select(func.coalesce(func.sum(Item.buy_price * Item.quantity), 0))).one()
            low = session.exec(
                select(func.count(Item.id)).where(Item.quantity > 0, Item.quantity <= Item.min_stock)
            ).one()
            out = session.exec(select(func.count(Item.id)).where(Item.quantity == 0)).one()
            in_stock = session.exec(select(func.count(Item.id)).where(Item.quantity > Item.min_stock)).one()
        return StockStats(
            total_items=total,
            total_value=value,
            low_stock=low,
            out_of_stock=out,
            in_stock=in_stock,
        )

    # --- activities ------------------------------------------------------

    def log_activity(
        self,
        item_id: Optional[int],
        activity_type: ActivityType,
        quantity_change: int,
        note: str,
        file_name: Optional[str] = None,
        status: str = "success",
        session: Optional[Session] = None,
    ) -> Activity:
        """Append an Activity. If a Session is provided it will be used,
        otherwise a short-lived one will be created.
        """
        entry = Activity(
            item_id=item_id,
            type=ActivityType(activity_type).value,
            quantity_change=quantity_change,
            note=note,
            file_name=file_name,
            status=status,
        )
        own_session = False
        if session is None:
            session = self.session()
            own_session = True
        try:
            session.add(entry)
            session.commit()
            session.refresh(entry)
        finally:
            if own_session:
                session.close()
        return entry

    def get_activities(self, limit: int = 20) -> List[ActivityRead]:
        statement = (
            select(Activity, Item.name)
            .join(Item, Activity.item_id == Item.id, isouter=True)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
            .limit(limit)
        )
        with self.session() as session:
            return [
                ActivityRead(item_name=item_name, **activity.model_dump())
                for activity, item_name in session.exec(statement).all()
            ]

    # --- settings --------------------------------------------------------

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self.session() as session:
            setting = session.get(Setting, key)
        if setting is None:
            return default
        return json.loads(setting.value)

    def set_setting(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, ensure_ascii=False)
        with self.session() as session:
            setting = session.get(Setting, key)
            if setting is None:
                setting = Setting(key=key, value=encoded)
            else:
                setting.value = encoded
            session.add(setting)
            session.commit()
