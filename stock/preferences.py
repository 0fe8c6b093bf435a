"""UI preferences kept in the settings table.

Theme flag, shop identity and the locally saved shopping-list draft, plus the
plain-text order request built from that draft.

Copyright (c) Bryn Gwalad 2025
"""

from datetime import date
from typing import List, Optional, Sequence

from sqlmodel import SQLModel

from stock.database import StockStore

DARK_MODE_KEY = "dark_mode"
SHOP_IDENTITY_KEY = "shop_identity"
SHOPPING_LIST_KEY = "shopping_list"

DEFAULT_SHOP_NAME = "SAYA"

MONTHS_ID = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]


class ShopIdentity(SQLModel):
    name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None


class ShoppingListEntry(SQLModel):
    item_id: Optional[int] = None
    name: str
    qty: int


def is_dark_mode(store: StockStore) -> bool:
    return bool(store.get_setting(DARK_MODE_KEY, False))


def set_dark_mode(store: StockStore, enabled: bool) -> None:
    store.set_setting(DARK_MODE_KEY, bool(enabled))


def get_shop_identity(store: StockStore) -> ShopIdentity:
    data = store.get_setting(SHOP_IDENTITY_KEY)
    return ShopIdentity(**data) if data else ShopIdentity()


def save_shop_identity(store: StockStore, identity: ShopIdentity) -> None:
    store.set_setting(SHOP_IDENTITY_KEY, identity.model_dump())


def load_shopping_list(store: StockStore) -> List[ShoppingListEntry]:
    return [ShoppingListEntry(**entry) for entry in store.get_setting(SHOPPING_LIST_KEY, [])]


def save_shopping_list(store: StockStore, entries: Sequence[ShoppingListEntry]) -> None:
    store.set_setting(SHOPPING_LIST_KEY, [entry.model_dump() for entry in entries])


def format_date_id(day: date) -> str:
    """``date(2025, 3, 7)`` -> ``"7 Maret 2025"``."""
    return f"{day.day} {MONTHS_ID[day.month - 1]} {day.year}"


def format_order_message(
    shop_name: Optional[str],
    entries: Sequence[ShoppingListEntry],
    today: Optional[date] = None,
) -> str:
    """Render the shopping list as an order request to send to a supplier."""
    shop_name = (shop_name or DEFAULT_SHOP_NAME).upper()
    lines = [
        f"\U0001F4E6 DAFTAR PESANAN - {shop_name}",
        f"Tanggal: {format_date_id(today or date.today())}",
        "",
    ]
    for index, entry in enumerate(entries, start=1):
        lines.append(f"{index}. {entry.name} - ({entry.qty} Pcs)")
    lines.append("")
    lines.append("Mohon info ketersediaan stok dan total harganya. Terima kasih!")
    return "\n".join(lines)
