"""Bulk import reconciliation.

Decides, row by row, whether an imported record creates a new item or is
merged into an existing one with the same name (case-insensitive).

Each row does its own category lookup, its own item lookup and one committed
write. Because lookups are fresh, a row can merge into an item inserted by an
earlier row of the same batch, and a failure part-way leaves the rows before
it committed.

Copyright (c) Bryn Gwalad 2025
"""

import logging
from typing import Iterable, Optional

from api.models import ImportRow, ImportSummary
from stock.database import StockStore

logger = logging.getLogger(__name__)


def resolve_category_id(store: StockStore, category_name: Optional[str]) -> Optional[int]:
    """Return the id of an existing category, never creating one."""
    if not category_name:
        return None
    category = store.find_category_by_name(category_name)
    return category.id if category else None


def reconcile_rows(store: StockStore, rows: Iterable[ImportRow]) -> ImportSummary:
    """Insert or merge every row and count the outcome.

    - blank name: skipped, nothing is read or written
    - existing name: quantity added, positive prices overwrite
    - otherwise: inserted as a new item
    """
    summary = ImportSummary()
    for row in rows:
        name = (row.name or "").strip()
        if not name:
            summary.skipped += 1
            continue
        if name != row.name:
            row = row.model_copy(update={"name": name})

        category_id = resolve_category_id(store, row.category)
        existing = store.find_item_by_name(name)
        if existing is not None:
            store.merge_import_row(existing.id, row)
            summary.updated += 1
        else:
            store.insert_import_row(row, category_id)
            summary.inserted += 1

    summary.total = summary.inserted + summary.updated
    logger.info(
        "Reconciled import: %d inserted, %d updated, %d skipped",
        summary.inserted,
        summary.updated,
        summary.skipped,
    )
    return summary
