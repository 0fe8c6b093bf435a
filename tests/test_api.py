"""Tests for the Stock Manager API.

These tests exercise category and item CRUD, stock movements, import/export
and preference endpoints against a temporary SQLite database.

Copyright (c) Bryn Gwalad 2025
"""

# Ensure the project root is on sys.path so tests can be executed directly from
# the `tests/` directory (e.g. `python test_api.py`) and still import the
# `api` package.
import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

import api.main as main
from api.main import app
from stock.database import StockStore


class StockAPITest(unittest.TestCase):
    """Unittests for the Stock Manager API. Using unittest lets you run all
    tests together (python -m unittest) or still run them via pytest.
    """

    @classmethod
    def setUpClass(cls):
        cls.tmp = tempfile.TemporaryDirectory()
        root = Path(cls.tmp.name)
        cls._old_export_dir = os.environ.get("EXPORT_DIR")
        os.environ["EXPORT_DIR"] = str(root / "exports")
        cls._old_upload_dir = main.UPLOAD_DIR
        main.UPLOAD_DIR = root / "uploads"

        app.state.store = StockStore(f"sqlite:///{root / 'api.db'}")
        # entering the client runs the startup handler, which opens the store
        cls._client_cm = TestClient(app)
        cls.client = cls._client_cm.__enter__()

    @classmethod
    def tearDownClass(cls):
        cls._client_cm.__exit__(None, None, None)
        app.state.store = None
        main.UPLOAD_DIR = cls._old_upload_dir
        if cls._old_export_dir is None:
            os.environ.pop("EXPORT_DIR", None)
        else:
            os.environ["EXPORT_DIR"] = cls._old_export_dir
        cls.tmp.cleanup()

    def _create_item(self, **fields):
        resp = self.client.post("/items/", json=fields)
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def test_seeded_categories_and_crud(self):
        resp = self.client.get("/categories/")
        self.assertEqual(resp.status_code, 200)
        names = [c["name"] for c in resp.json()]
        self.assertIn("LCD", names)
        self.assertIn("Aksesoris", names)

        resp = self.client.post("/categories/", json={"name": "Speaker", "icon": "volume-high-outline"})
        self.assertEqual(resp.status_code, 200)
        cat_id = resp.json()["id"]

        resp = self.client.put(f"/categories/{cat_id}", json={"name": "Speaker & Buzzer"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["name"], "Speaker & Buzzer")
        self.assertEqual(resp.json()["icon"], "volume-high-outline")

        resp = self.client.put(f"/categories/{cat_id}", json={"name": "Speaker", "icon": "musical-notes-outline"})
        self.assertEqual(resp.json()["icon"], "musical-notes-outline")

        resp = self.client.post(f"/categories/{cat_id}/reorder?position=0")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()[0]["id"], cat_id)

        resp = self.client.post("/categories/", json={"name": "   "})
        self.assertEqual(resp.status_code, 400)

        resp = self.client.get("/categories/999999")
        self.assertEqual(resp.status_code, 404)

    def test_delete_category_keeps_items(self):
        cat_id = self.client.post("/categories/", json={"name": "Sementara"}).json()["id"]
        item = self._create_item(name="Obeng Kecil", category_id=cat_id, quantity=2)

        resp = self.client.get("/categories/counts")
        self.assertEqual(resp.json().get(str(cat_id)), 1)

        resp = self.client.delete(f"/categories/{cat_id}")
        self.assertEqual(resp.status_code, 200)

        resp = self.client.get(f"/items/{item['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.json()["category_id"])

    def test_item_duplicate_and_merge(self):
        item = self._create_item(name="Kabel Data", quantity=4, sell_price=15000)

        resp = self.client.post("/items/", json={"name": "kabel data", "quantity": 3})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["detail"]["existing_id"], item["id"])

        resp = self.client.post("/items/?merge=true", json={"name": "kabel data", "quantity": 3})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["id"], item["id"])
        self.assertEqual(resp.json()["quantity"], 7)

        resp = self.client.post("/items/", json={"name": "  "})
        self.assertEqual(resp.status_code, 400)

    def test_force_saves_same_name_as_new_item(self):
        cat_id = self.client.get("/categories/").json()[0]["id"]
        first = self._create_item(name="Layar Oppo F1", category_id=cat_id, quantity=2)

        resp = self.client.post("/items/?force=true", json={"name": "Layar Oppo F1", "category_id": cat_id, "quantity": 5})
        self.assertEqual(resp.status_code, 200, resp.text)
        second = resp.json()
        self.assertNotEqual(second["id"], first["id"])
        self.assertEqual(second["quantity"], 5)

        items = self.client.get("/items/?search=layar oppo f1").json()
        self.assertEqual(sorted(i["id"] for i in items), sorted([first["id"], second["id"]]))
        self.assertEqual(self.client.get(f"/items/{first['id']}").json()["quantity"], 2)

    def test_stock_movements_and_stats(self):
        item = self._create_item(name="Baterai BL-5C", quantity=3, min_stock=2, buy_price=20000)

        resp = self.client.post(f"/items/{item['id']}/stock-in?quantity=5")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["quantity"], 8)

        resp = self.client.post(f"/items/{item['id']}/stock-out?quantity=100")
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(f"/items/{item['id']}/stock-out?quantity=8")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["quantity"], 0)

        resp = self.client.get("/items/?status=out&search=bl-5c")
        self.assertEqual([i["id"] for i in resp.json()], [item["id"]])

        resp = self.client.get("/stats/")
        self.assertEqual(resp.status_code, 200)
        self.assertGreaterEqual(resp.json()["out_of_stock"], 1)

        resp = self.client.get("/activities/?limit=1")
        latest = resp.json()[0]
        self.assertEqual(latest["type"], "stock_out")
        self.assertEqual(latest["quantity_change"], 8)

        resp = self.client.delete(f"/items/{item['id']}")
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get(f"/items/{item['id']}")
        self.assertEqual(resp.status_code, 404)

    def test_import_upload_and_export_download(self):
        content = "Nama Barang,Jumlah,Harga Jual,Kolom Acak\nLCD Redmi 9,6,250000,x\n,3,100,y\n"
        files = {"file": ("barang.csv", content.encode("utf-8-sig"), "text/csv")}
        resp = self.client.post("/import/", files=files)
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"], body)
        self.assertEqual(body["count"], 1)
        self.assertIn("1 baris dilewati", body["message"])
        self.assertEqual(list(main.UPLOAD_DIR.iterdir()), [])

        resp = self.client.get("/items/?search=redmi 9")
        self.assertEqual(resp.json()[0]["quantity"], 6)

        resp = self.client.post("/export/csv")
        body = resp.json()
        self.assertTrue(body["success"], body)

        resp = self.client.get(f"/exports/{body['file_name']}")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.content.startswith(b"\xef\xbb\xbf"))
        self.assertIn("LCD Redmi 9".encode("utf-8"), resp.content)

        resp = self.client.get("/exports/not-there.csv")
        self.assertEqual(resp.status_code, 404)

    def test_preferences(self):
        resp = self.client.put("/settings/theme?dark_mode=true")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(self.client.get("/settings/theme").json()["dark_mode"])

        self.client.put("/settings/shop", json={"name": "Cell Jaya"})
        self.client.put("/shopping-list/", json=[{"item_id": None, "name": "LCD A10", "qty": 2}])

        resp = self.client.get("/shopping-list/message")
        self.assertEqual(resp.status_code, 200)
        message = resp.json()["message"]
        self.assertIn("CELL JAYA", message)
        self.assertIn("1. LCD A10 - (2 Pcs)", message)


if __name__ == "__main__":
    # Allow running this test file directly
    unittest.main()
