"""CSV / Excel export of the current stock and the activity history.

Every successful export writes one file into the export directory
(``EXPORT_DIR``, default ``exports``) and appends an ``export`` activity.

Copyright (c) Bryn Gwalad 2025
"""

import csv
import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from api.models import ActivityRead, ActivityType, ItemRead, OperationResult
from stock.database import StockStore

logger = logging.getLogger(__name__)

ITEM_HEADERS = [
    "Nama Barang",
    "ID Barang",
    "SKU",
    "Kategori",
    "Harga Beli",
    "Harga Jual",
    "Jumlah (Stok)",
    "Min Stok",
    "Keterangan",
]
HISTORY_HEADERS = ["Tanggal", "Nama Barang", "Tipe", "Jumlah", "Catatan", "File", "Status"]

SHEET_STOCK = "Stok Saat Ini"
SHEET_HISTORY = "Riwayat Transaksi"
SHEET_STOCK_ONLY = "Stock"

HISTORY_LIMIT = 10000
MAX_COLUMN_WIDTH = 40

ACTIVITY_LABELS = {
    ActivityType.STOCK_IN.value: "Masuk",
    ActivityType.STOCK_OUT.value: "Keluar",
    ActivityType.IMPORT.value: "Import",
    ActivityType.EXPORT.value: "Export",
    ActivityType.DELETE.value: "Hapus",
}

HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)

NO_DATA = "Tidak ada data untuk diekspor"


def export_dir_from_env() -> Path:
    return Path(os.getenv("EXPORT_DIR", "exports"))


def _number(value: Optional[float]) -> Union[int, float]:
    if value is None:
        return 0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def item_row(item: ItemRead) -> List[Any]:
    return [
        item.name,
        item.custom_id or "",
        item.sku or "",
        item.category_name or "",
        _number(item.buy_price),
        _number(item.sell_price),
        item.quantity,
        item.min_stock,
        item.description or "",
    ]


def activity_row(activity: ActivityRead) -> List[Any]:
    return [
        activity.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        activity.item_name or "",
        ACTIVITY_LABELS.get(activity.type, activity.type),
        activity.quantity_change,
        activity.note or "",
        activity.file_name or "",
        activity.status or "",
    ]


def export_file_name(prefix: str, suffix: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{prefix}_{today.isoformat()}{suffix}"


def write_csv(path: Path, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    """Write a UTF-8 CSV with a byte-order mark so spreadsheet tools detect it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "w", newline="", encoding="utf-8-sig") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            writer.writerows(rows)
    except Exception:
        path.unlink(missing_ok=True)
        raise


def fill_sheet(worksheet, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    """Write a header row plus data and auto-fit each column."""
    worksheet.append(list(headers))
    for row in rows:
        worksheet.append(list(row))

    for col_idx, header in enumerate(headers, start=1):
        cell = worksheet.cell(row=1, column=col_idx)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")

        longest = max([len(str(header))] + [len(str(row[col_idx - 1])) for row in rows])
        worksheet.column_dimensions[get_column_letter(col_idx)].width = min(longest + 2, MAX_COLUMN_WIDTH)


def export_csv(
    store: StockStore,
    output_dir: Optional[Path] = None,
    today: Optional[date] = None,
) -> OperationResult:
    """Export every item to ``stock_export_<date>.csv``."""
    try:
        items = store.get_all_items_for_export()
        if not items:
            return OperationResult(success=False, message=NO_DATA)

        file_name = export_file_name("stock_export", ".csv", today)
        path = Path(output_dir or export_dir_from_env()) / file_name
        write_csv(path, ITEM_HEADERS, [item_row(item) for item in items])

        store.log_activity(None, ActivityType.EXPORT, len(items), f"Export {len(items)} item ke CSV", file_name=file_name)
        logger.info("Exported %d items to %s", len(items), path)
        return OperationResult(
            success=True,
            message=f"{len(items)} item diekspor ke CSV",
            count=len(items),
            file_name=file_name,
            path=str(path),
        )
    except Exception as e:
        logger.exception("CSV export failed")
        return OperationResult(success=False, message=f"Error: {e}")


def export_history_csv(
    store: StockStore,
    output_dir: Optional[Path] = None,
    today: Optional[date] = None,
    limit: int = HISTORY_LIMIT,
) -> OperationResult:
    """Export the latest activities to ``riwayat_transaksi_<date>.csv``."""
    try:
        activities = store.get_activities(limit)
        if not activities:
            return OperationResult(success=False, message=NO_DATA)

        file_name = export_file_name("riwayat_transaksi", ".csv", today)
        path = Path(output_dir or export_dir_from_env()) / file_name
        write_csv(path, HISTORY_HEADERS, [activity_row(a) for a in activities])

        store.log_activity(
            None,
            ActivityType.EXPORT,
            len(activities),
            f"Export {len(activities)} riwayat transaksi ke CSV",
            file_name=file_name,
        )
        logger.info("Exported %d activities to %s", len(activities), path)
        return OperationResult(
            success=True,
            message=f"{len(activities)} riwayat transaksi diekspor ke CSV",
            count=len(activities),
            file_name=file_name,
            path=str(path),
        )
    except Exception as e:
        logger.exception("History CSV export failed")
        return OperationResult(success=False, message=f"Error: {e}")


def export_excel(
    store: StockStore,
    output_dir: Optional[Path] = None,
    include_history: bool = True,
    today: Optional[date] = None,
) -> OperationResult:
    """Export items (and optionally history) to ``stock_export_<date>.xlsx``.

    With history the workbook has the sheets ``Stok Saat Ini`` and
    ``Riwayat Transaksi``; without it a single ``Stock`` sheet.
    """
    try:
        items = store.get_all_items_for_export()
        if not items:
            return OperationResult(success=False, message=NO_DATA)

        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = SHEET_STOCK if include_history else SHEET_STOCK_ONLY
        fill_sheet(worksheet, ITEM_HEADERS, [item_row(item) for item in items])
        if include_history:
            activities = store.get_activities(HISTORY_LIMIT)
            fill_sheet(workbook.create_sheet(SHEET_HISTORY), HISTORY_HEADERS, [activity_row(a) for a in activities])

        file_name = export_file_name("stock_export", ".xlsx", today)
        path = Path(output_dir or export_dir_from_env()) / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            workbook.save(path)
        except Exception:
            path.unlink(missing_ok=True)
            raise

        store.log_activity(None, ActivityType.EXPORT, len(items), f"Export {len(items)} item ke Excel", file_name=file_name)
        logger.info("Exported %d items to %s", len(items), path)
        return OperationResult(
            success=True,
            message=f"{len(items)} item diekspor ke Excel",
            count=len(items),
            file_name=file_name,
            path=str(path),
        )
    except Exception as e:
        logger.exception("Excel export failed")
        return OperationResult(success=False, message=f"Error: {e}")
