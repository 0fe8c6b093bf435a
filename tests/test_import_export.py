"""Tests for CSV/Excel import and export."""

import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import csv
import tempfile
import unittest
from datetime import date
from unittest.mock import patch
from pathlib import Path

import pandas as pd
from openpyxl import Workbook, load_workbook

from api.models import ActivityType, ItemCreate
from stock.database import StockStore
from stock.exporter import (
    HISTORY_HEADERS,
    ITEM_HEADERS,
    NO_DATA,
    SHEET_HISTORY,
    SHEET_STOCK,
    SHEET_STOCK_ONLY,
    export_csv,
    export_excel,
    export_history_csv,
)
from stock.importer import OLE2_MAGIC, import_file, is_excel, read_csv_rows

TODAY = date(2025, 3, 7)


class ImportExportTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.out = self.root / "exports"
        self.store = StockStore(f"sqlite:///{self.root / 'stock.db'}").open()

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def write_csv(self, name, text, encoding="utf-8-sig"):
        path = self.root / name
        path.write_text(text, encoding=encoding)
        return path

    def write_xlsx(self, name, rows, extra_sheet=None):
        workbook = Workbook()
        worksheet = workbook.active
        for row in rows:
            worksheet.append(row)
        if extra_sheet:
            other = workbook.create_sheet("Lainnya")
            for row in extra_sheet:
                other.append(row)
        path = self.root / name
        workbook.save(path)
        return path


class ImportFileTest(ImportExportTestCase):

    def test_csv_import_with_bom(self):
        path = self.write_csv(
            "stok.csv",
            "Nama Barang,Kategori,Harga Beli,Harga Jual,Stok,Catatan\n"
            "LCD Samsung A10,lcd,150000,200000,3,original\n"
            "\n"
            ",LCD,1,1,1,\n",
        )

        result = import_file(self.store, path)

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.count, 1)
        self.assertEqual(result.message, "Berhasil import: 1 item baru, 1 baris dilewati")
        item = self.store.find_item_by_name("lcd samsung a10")
        self.assertEqual(item.quantity, 3)
        self.assertEqual(item.buy_price, 150000)
        self.assertEqual(item.description, "original")
        self.assertEqual(item.category_id, self.store.find_category_by_name("LCD").id)

        activity = self.store.get_activities(1)[0]
        self.assertEqual(activity.type, ActivityType.IMPORT.value)
        self.assertIsNone(activity.item_id)
        self.assertEqual(activity.quantity_change, 1)
        self.assertEqual(activity.file_name, "stok.csv")

    def test_csv_without_bom_and_quoted_commas(self):
        path = self.write_csv("plain.csv", 'name,qty,note\n"Kabel, USB-C",5,"a, b"\n', encoding="utf-8")
        result = import_file(self.store, path)
        self.assertTrue(result.success, result.message)
        item = self.store.find_item_by_name("Kabel, USB-C")
        self.assertEqual(item.quantity, 5)
        self.assertEqual(item.description, "a, b")

    def test_excel_import_reads_first_sheet_only(self):
        path = self.write_xlsx(
            "stok.xlsx",
            [["Produk", "Qty", "Harga", None], ["Tombol Volume", 8, 5000, "abaikan"], [None, None, None, None]],
            extra_sheet=[["Produk", "Qty"], ["Tidak Diimpor", 1]],
        )

        result = import_file(self.store, path)

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.count, 1)
        item = self.store.find_item_by_name("tombol volume")
        self.assertEqual(item.quantity, 8)
        self.assertEqual(item.sell_price, 5000)
        self.assertIsNone(self.store.find_item_by_name("tidak diimpor"))

    def test_import_is_additive(self):
        path = self.write_csv("stok.csv", "Nama,Jumlah\nBaterai A,4\n")
        import_file(self.store, path)
        result = import_file(self.store, path)
        self.assertEqual(result.message, "Berhasil import: 1 item diperbarui (stok ditambah)")
        self.assertEqual(self.store.find_item_by_name("baterai a").quantity, 8)

    def test_header_only_csv_fails(self):
        path = self.write_csv("kosong.csv", "Nama,Jumlah\n")
        result = import_file(self.store, path)
        self.assertFalse(result.success)
        self.assertEqual(result.message, "File kosong atau format tidak sesuai")

    def test_ragged_csv_fails_without_writing(self):
        path = self.write_csv("rusak.csv", "Nama,Jumlah,Harga\nA,1,100\nB,2\n")
        result = import_file(self.store, path)
        self.assertFalse(result.success)
        self.assertTrue(result.message.startswith("Error parsing CSV"), result.message)
        self.assertEqual(self.store.get_items(), [])

    def test_empty_excel_fails(self):
        path = self.write_xlsx("kosong.xlsx", [["Nama", "Jumlah"]])
        result = import_file(self.store, path)
        self.assertFalse(result.success)
        self.assertEqual(result.message, "File Excel kosong")

    def test_unreadable_excel_fails(self):
        path = self.write_csv("palsu.xlsx", "bukan excel", encoding="utf-8")
        result = import_file(self.store, path)
        self.assertFalse(result.success)
        self.assertTrue(result.message.startswith("Error membaca file Excel"), result.message)

    def write_xls_stub(self, name):
        path = self.root / name
        path.write_bytes(OLE2_MAGIC + b"\x00" * 504)
        return path

    def test_legacy_xls_import(self):
        path = self.write_xls_stub("lama.xls")
        frame = pd.DataFrame(
            [
                ["Nama Barang", "Stok", "Harga Jual", "Kategori"],
                ["Baterai Nokia BL-4C", 3.0, 25000.0, "Baterai"],
                [float("nan"), float("nan"), float("nan"), float("nan")],
                ["Speaker Buzzer", 2.0, float("nan"), float("nan")],
            ],
            dtype=object,
        )

        with patch("stock.importer.pd.read_excel", return_value=frame) as read_excel:
            result = import_file(self.store, path)

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.count, 2)
        self.assertEqual(read_excel.call_args.kwargs["engine"], "xlrd")
        baterai = self.store.find_item_by_name("baterai nokia bl-4c")
        self.assertEqual(baterai.quantity, 3)
        self.assertEqual(baterai.sell_price, 25000)
        self.assertEqual(baterai.category_id, self.store.find_category_by_name("Baterai").id)
        self.assertEqual(self.store.find_item_by_name("speaker buzzer").sell_price, 0)

    def test_legacy_xls_with_only_headers_is_empty(self):
        path = self.write_xls_stub("kosong.xls")
        frame = pd.DataFrame([["Nama", "Jumlah"]], dtype=object)
        with patch("stock.importer.pd.read_excel", return_value=frame):
            result = import_file(self.store, path)
        self.assertFalse(result.success)
        self.assertEqual(result.message, "File Excel kosong")

    def test_missing_file_returns_failure(self):
        result = import_file(self.store, self.root / "tidak-ada.csv")
        self.assertFalse(result.success)
        self.assertTrue(result.message.startswith("Error"))

    def test_is_excel(self):
        self.assertTrue(is_excel("Stok.XLSX"))
        self.assertTrue(is_excel("upload", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"))
        self.assertFalse(is_excel("stok.csv", "text/csv"))


class ExportTest(ImportExportTestCase):

    def setUp(self):
        super().setUp()
        lcd = self.store.find_category_by_name("LCD")
        self.store.add_item(ItemCreate(
            name="LCD Oppo A5s", category_id=lcd.id, buy_price=90000, sell_price=135000,
            quantity=2, custom_id="L-01",
        ))
        self.store.add_item(ItemCreate(name="Aksesoris Tanpa Kategori", quantity=0))

    def test_export_csv(self):
        result = export_csv(self.store, self.out, today=TODAY)

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.file_name, "stock_export_2025-03-07.csv")
        path = Path(result.path)
        self.assertTrue(path.read_bytes().startswith(b"\xef\xbb\xbf"))

        headers, rows = read_csv_rows(path)
        self.assertEqual(headers, ITEM_HEADERS)
        self.assertEqual(
            rows[1],
            ["LCD Oppo A5s", "L-01", "", "LCD", "90000", "135000", "2", "5", ""],
        )
        self.assertEqual(rows[0][3], "")

        activity = self.store.get_activities(1)[0]
        self.assertEqual(activity.type, ActivityType.EXPORT.value)
        self.assertEqual(activity.quantity_change, 2)
        self.assertEqual(activity.file_name, result.file_name)

    def test_export_then_import_doubles_quantities(self):
        result = export_csv(self.store, self.out, today=TODAY)
        before = {i.name: i.quantity for i in self.store.get_items()}

        imported = import_file(self.store, result.path)

        self.assertTrue(imported.success, imported.message)
        after = {i.name: i.quantity for i in self.store.get_items()}
        self.assertEqual(set(after), set(before))
        for name, quantity in before.items():
            self.assertEqual(after[name], quantity * 2)

    def test_export_excel_with_history(self):
        result = export_excel(self.store, self.out, today=TODAY)

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.file_name, "stock_export_2025-03-07.xlsx")
        workbook = load_workbook(result.path)
        self.assertEqual(workbook.sheetnames, [SHEET_STOCK, SHEET_HISTORY])

        stock = workbook[SHEET_STOCK]
        self.assertEqual([c.value for c in stock[1]], ITEM_HEADERS)
        self.assertEqual(stock.max_row, 3)
        for col in "ABCDEFGHI":
            self.assertLessEqual(stock.column_dimensions[col].width, 40)
        self.assertEqual(stock.column_dimensions["A"].width, len("Aksesoris Tanpa Kategori") + 2)

        history = workbook[SHEET_HISTORY]
        self.assertEqual([c.value for c in history[1]], HISTORY_HEADERS)
        self.assertEqual(history.max_row, 3)
        self.assertEqual(history["C2"].value, "Masuk")

    def test_export_excel_stock_only(self):
        result = export_excel(self.store, self.out, include_history=False, today=TODAY)
        self.assertTrue(result.success, result.message)
        self.assertEqual(load_workbook(result.path).sheetnames, [SHEET_STOCK_ONLY])

    def test_export_history_csv(self):
        result = export_history_csv(self.store, self.out, today=TODAY)

        self.assertTrue(result.success, result.message)
        self.assertEqual(result.file_name, "riwayat_transaksi_2025-03-07.csv")
        with open(result.path, newline="", encoding="utf-8-sig") as f:
            rows = list(csv.reader(f))
        self.assertEqual(rows[0], HISTORY_HEADERS)
        self.assertEqual(len(rows), 3)

    def test_export_without_items_fails(self):
        for item in self.store.get_items():
            self.store.delete_item(item.id)
        before = len(self.store.get_activities(100))

        for result in (export_csv(self.store, self.out), export_excel(self.store, self.out)):
            self.assertFalse(result.success)
            self.assertEqual(result.message, NO_DATA)
        self.assertEqual(len(self.store.get_activities(100)), before)


if __name__ == "__main__":
    unittest.main()
