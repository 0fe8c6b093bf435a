"""Spreadsheet header mapping.

Maps human-authored column headers (Indonesian and English) onto the fixed
set of canonical import fields and turns raw rows into ``ImportRow``
records.

Copyright (c) Bryn Gwalad 2025
"""

import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from api.models import DEFAULT_MIN_STOCK, ImportRow

# Declaration order matters: the first field listing a header wins.
COLUMN_MAP: Dict[str, List[str]] = {
    "name": ["name", "nama", "item", "produk", "product", "barang", "nama barang", "nama item"],
    "sku": ["sku", "kode", "code", "barcode"],
    "custom_id": ["custom_id", "id_barang", "id barang", "kode toko", "manual_id"],
    "category": ["category", "kategori", "jenis", "tipe", "type"],
    "buy_price": ["buy_price", "harga beli", "buy price", "modal", "cost", "biaya"],
    "sell_price": ["sell_price", "harga jual", "sell price", "harga", "price"],
    "quantity": ["quantity", "qty", "jumlah", "stok", "stock", "jumlah (stok)"],
    "min_stock": ["min_stock", "min stock", "min stok", "minimum", "min", "reorder"],
    "description": ["description", "desc", "keterangan", "deskripsi", "catatan", "note"],
}

CANONICAL_FIELDS = tuple(COLUMN_MAP)

_INT_PREFIX = re.compile(r"^[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def normalize_header(header: Any) -> str:
    return str(header).strip().lower()


def match_field(header: Any) -> Optional[str]:
    """Return the canonical field for a header, or None if nothing matches."""
    normalized = normalize_header(header)
    for field, aliases in COLUMN_MAP.items():
        if normalized in aliases:
            return field
    return None


def map_columns(headers: Iterable[Any]) -> Dict[Any, str]:
    """Map each recognised raw header to its canonical field.

    Unrecognised headers are left out. Two headers may map to the same
    field; see ``project_row`` for which value survives.
    """
    mapping = {}
    for header in headers:
        if header is None:
            continue
        field = match_field(header)
        if field is not None:
            mapping[header] = field
    return mapping


def project_row(headers: Sequence[Any], values: Sequence[Any], mapping: Dict[Any, str]) -> Dict[str, Any]:
    """Pick the mapped cells of one row, keyed by canonical field.

    Columns are visited left to right, so when two columns map to the same
    field the rightmost cell wins, even when that cell is empty.
    """
    record: Dict[str, Any] = {}
    for header, value in zip(headers, values):
        field = mapping.get(header) if header is not None else None
        if field is None:
            continue
        record[field] = value
    return record


def parse_int(value: Any, default: int = 0) -> int:
    """Leading-integer parse: ``"12 pcs"`` -> 12, ``"abc"`` -> default."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return default if not math.isfinite(value) else int(value)
    match = _INT_PREFIX.match(str(value).strip())
    return int(match.group(0)) if match else default


def parse_float(value: Any, default: float = 0.0) -> float:
    """Leading-decimal parse: ``"50000.5 rb"`` -> 50000.5, ``""`` -> default."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return default if not math.isfinite(value) else float(value)
    match = _FLOAT_PREFIX.match(str(value).strip())
    return float(match.group(0)) if match else default


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        # codes typed into a spreadsheet come back as floats
        value = int(value)
    value = str(value).strip()
    return value or None


def to_import_row(record: Dict[str, Any]) -> ImportRow:
    """Coerce a projected record into an ``ImportRow``.

    Quantities and prices never go negative. ``min_stock`` falls back to the
    default when absent, unparseable or negative.
    """
    min_stock = parse_int(record.get("min_stock"), default=-1)
    return ImportRow(
        name=_text(record.get("name")),
        sku=_text(record.get("sku")),
        custom_id=_text(record.get("custom_id")),
        category=_text(record.get("category")),
        buy_price=max(parse_float(record.get("buy_price")), 0.0),
        sell_price=max(parse_float(record.get("sell_price")), 0.0),
        quantity=max(parse_int(record.get("quantity")), 0),
        min_stock=min_stock if min_stock >= 0 else DEFAULT_MIN_STOCK,
        description=_text(record.get("description")),
    )


def rows_to_records(headers: Sequence[Any], rows: Iterable[Sequence[Any]]) -> List[ImportRow]:
    """Map headers once and convert every row into an ``ImportRow``."""
    mapping = map_columns(headers)
    return [to_import_row(project_row(headers, values, mapping)) for values in rows]
