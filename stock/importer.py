"""CSV / Excel import.

Reads a file into a header row plus data rows, maps the headers onto the
canonical fields, hands the records to the reconciler and records an
``import`` activity. Failures come back as an unsuccessful
``OperationResult``; nothing is raised to the caller.

Copyright (c) Bryn Gwalad 2025
"""

import csv
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import pandas as pd
from openpyxl import load_workbook

from api.models import ActivityType, ImportSummary, OperationResult
from stock.column_mapper import rows_to_records
from stock.database import StockStore
from stock.reconciler import reconcile_rows

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xls")

# Legacy BIFF (.xls) workbooks are OLE2 compound documents.
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

Rows = List[Sequence[Any]]


class CsvFormatError(ValueError):
    """A CSV row does not line up with the header row."""


def is_excel(file_name: str, content_type: Optional[str] = None) -> bool:
    if file_name and file_name.lower().endswith(EXCEL_SUFFIXES):
        return True
    content_type = content_type or ""
    return "spreadsheetml" in content_type or "ms-excel" in content_type


def _is_blank(values: Sequence[Any]) -> bool:
    return all(value is None or str(value).strip() == "" for value in values)


def read_csv_rows(path: Union[str, Path]) -> Tuple[List[str], Rows]:
    """Read a comma-delimited UTF-8 file (BOM optional) with a header row.

    Blank lines are skipped. A row whose length differs from the header
    raises ``CsvFormatError``.
    """
    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.reader(f, strict=True)
        headers = next(reader, None)
        if not headers:
            return [], []
        rows: Rows = []
        for values in reader:
            if _is_blank(values):
                continue
            if len(values) != len(headers):
                raise CsvFormatError(
                    f"baris {reader.line_num}: {len(values)} kolom, seharusnya {len(headers)}"
                )
            rows.append(values)
    return headers, rows


def is_legacy_workbook(path: Union[str, Path]) -> bool:
    with open(path, "rb") as f:
        return f.read(len(OLE2_MAGIC)) == OLE2_MAGIC


def read_xls_rows(path: Union[str, Path]) -> Tuple[List[Any], Rows]:
    """Read the first sheet of a legacy .xls workbook through pandas/xlrd."""
    frame = pd.read_excel(path, sheet_name=0, header=None, dtype=object, engine="xlrd")
    table = [
        [None if pd.isna(value) else value for value in values]
        for values in frame.itertuples(index=False, name=None)
    ]
    if not table:
        return [], []
    headers = [None if cell is None else str(cell) for cell in table[0]]
    rows = [values for values in table[1:] if not _is_blank(values)]
    return headers, rows


def read_excel_rows(path: Union[str, Path]) -> Tuple[List[Any], Rows]:
    """Read the first worksheet; the first row is the header."""
    if is_legacy_workbook(path):
        return read_xls_rows(path)
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        worksheet = workbook.worksheets[0]
        iterator = worksheet.iter_rows(values_only=True)
        first = next(iterator, None)
        if first is None:
            return [], []
        headers = [None if cell is None else str(cell) for cell in first]
        rows = [values for values in iterator if not _is_blank(values)]
    finally:
        workbook.close()
    return headers, rows


def summary_parts(summary: ImportSummary) -> List[str]:
    parts = []
    if summary.inserted > 0:
        parts.append(f"{summary.inserted} item baru")
    if summary.updated > 0:
        parts.append(f"{summary.updated} item diperbarui (stok ditambah)")
    if summary.skipped > 0:
        parts.append(f"{summary.skipped} baris dilewati")
    return parts


def import_file(
    store: StockStore,
    path: Union[str, Path],
    file_name: Optional[str] = None,
    content_type: Optional[str] = None,
) -> OperationResult:
    """Import items from a CSV or Excel file.

    Rows commit one at a time, so a failure part-way through keeps the rows
    already processed.
    """
    path = Path(path)
    file_name = file_name or path.name
    try:
        if is_excel(file_name, content_type):
            try:
                headers, rows = read_excel_rows(path)
            except Exception as e:
                logger.warning("Could not read Excel file %s: %s", file_name, e)
                return OperationResult(success=False, message=f"Error membaca file Excel: {e}")
            if not rows:
                return OperationResult(success=False, message="File Excel kosong")
        else:
            try:
                headers, rows = read_csv_rows(path)
            except (csv.Error, CsvFormatError, UnicodeDecodeError) as e:
                logger.warning("Could not parse CSV file %s: %s", file_name, e)
                return OperationResult(success=False, message=f"Error parsing CSV: {e}")

        records = rows_to_records(headers, rows)
        if not records:
            return OperationResult(success=False, message="File kosong atau format tidak sesuai")

        summary = reconcile_rows(store, records)
        parts = ", ".join(summary_parts(summary))
        store.log_activity(
            None,
            ActivityType.IMPORT,
            summary.total,
            f"Import dari {file_name}: {parts}",
            file_name=file_name,
        )
        logger.info("Imported %s: %s", file_name, parts)
        return OperationResult(
            success=True,
            message=f"Berhasil import: {parts}",
            count=summary.total,
            file_name=file_name,
        )
    except Exception as e:
        logger.exception("Import of %s failed", file_name)
        return OperationResult(success=False, message=f"Error: {e}")
