"""HTTP API for the Stock Manager.

Provides endpoints for Category and Item CRUD, stock in/out, statistics,
the activity log, CSV/Excel import and export, and UI preferences. The
``StockStore`` is opened on startup and kept on ``app.state.store``.

Copyright (c) Bryn Gwalad 2025
"""

from typing import List, Literal, Optional
import os
import shutil
from pathlib import Path
from datetime import datetime

from fastapi import FastAPI, HTTPException, Query, Request, UploadFile, File
from fastapi.responses import FileResponse
from dotenv import load_dotenv
import logging

# Load environment variables from a .env file at project root if present.
load_dotenv()

from stock.database import StockStore
from stock.exporter import export_csv, export_dir_from_env, export_excel, export_history_csv
from stock.importer import import_file
from stock import preferences
from .models import (
    ActivityRead,
    Category,
    CategoryCreate,
    CategoryUpdate,
    Item,
    ItemCreate,
    ItemRead,
    OperationResult,
    StockStats,
)

# Uploaded import files are kept here while they are processed.
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))

app = FastAPI(title="Stock Manager API")

# Module logger
logger = logging.getLogger("stock_api")


def _store(request: Request) -> StockStore:
    return request.app.state.store


def _serialize_category(cat: Category) -> dict:
    return {
        "id": cat.id,
        "name": cat.name,
        "icon": cat.icon,
        "sort_order": cat.sort_order,
    }


@app.on_event("startup")
async def on_startup():
    """Application startup handler.

    Opens the database unless a store was already attached (tests do this).
    """
    # Configure logger (do not override global config if already set by app)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO)

    store = getattr(app.state, "store", None)
    if store is None:
        store = StockStore()
        app.state.store = store
    store.open()
    logger.info("Stock Manager API started; database=%s", store.database_url)


@app.on_event("shutdown")
async def on_shutdown():
    store = getattr(app.state, "store", None)
    if store is not None:
        store.close()


# --- categories -----------------------------------------------------------


@app.post("/categories/")
def create_category(category: CategoryCreate, request: Request):
    try:
        created = _store(request).add_category(category.name, category.icon)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _serialize_category(created)


@app.get("/categories/")
def list_categories(request: Request):
    """Return all categories in display order."""
    return [_serialize_category(c) for c in _store(request).get_categories()]


@app.get("/categories/counts")
def category_item_counts(request: Request):
    """Return ``{category_id: item_count}`` for categories that have items."""
    return _store(request).get_category_item_counts()


@app.get("/categories/{category_id}")
def get_category(category_id: int, request: Request):
    category = _store(request).get_category(category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return _serialize_category(category)


@app.put("/categories/{category_id}")
def update_category(category_id: int, category: CategoryUpdate, request: Request):
    try:
        updated = _store(request).update_category(category_id, category.name, category.icon)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="Category not found")
    return _serialize_category(updated)


@app.post("/categories/{category_id}/reorder")
def reorder_category(category_id: int, request: Request, position: int = Query(..., ge=0)):
    """Move a category to ``position`` (0-based) in the list."""
    categories = _store(request).reorder_category(category_id, position)
    if categories is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return [_serialize_category(c) for c in categories]


@app.delete("/categories/{category_id}")
def delete_category(category_id: int, request: Request):
    """Delete a category; its items stay, without a category."""
    if not _store(request).delete_category(category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"ok": True}


# --- items ----------------------------------------------------------------


@app.post("/items/", response_model=ItemRead)
def create_item(item: ItemCreate, request: Request, merge: bool = False, force: bool = False):
    """Create a new Item.

    An item with the same name in the same category is reported with 409.
    With ``merge=true`` its stock is increased instead; with ``force=true``
    a second item with that name is saved anyway.
    """
    store = _store(request)
    if item.category_id is not None and not store.get_category(item.category_id):
        raise HTTPException(status_code=400, detail="Category does not exist")
    if not (item.name or "").strip():
        raise HTTPException(status_code=400, detail="Nama item wajib diisi")

    existing = None if force else store.find_item_by_name(item.name.strip(), item.category_id)
    if existing is not None:
        if not merge:
            raise HTTPException(
                status_code=409,
                detail={"message": f'"{existing.name}" sudah ada', "existing_id": existing.id},
            )
        if item.quantity > 0:
            store.add_stock_to_item(existing.id, item.quantity, f"Tambah stok {item.quantity} (item duplikat)")
        return store.get_item(existing.id)

    created = store.add_item(item)
    return store.get_item(created.id)


@app.get("/items/", response_model=List[ItemRead])
def list_items(
    request: Request,
    search: str = "",
    status: Literal["all", "low", "out", "in"] = "all",
    category_id: Optional[int] = Query(default=None),
):
    """Search items by name/sku/custom id/category and filter by stock status."""
    return _store(request).get_items(search, status, category_id)


@app.get("/items/low-stock", response_model=List[ItemRead])
def low_stock_items(request: Request, limit: int = Query(20, ge=1, le=1000)):
    return _store(request).get_low_stock_items(limit)


@app.get("/items/{item_id}", response_model=ItemRead)
def get_item(item_id: int, request: Request):
    """Return an item by id or raise 404 if not found."""
    item = _store(request).get_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@app.put("/items/{item_id}", response_model=ItemRead)
def update_item(item_id: int, item: ItemCreate, request: Request):
    store = _store(request)
    if item.category_id is not None and not store.get_category(item.category_id):
        raise HTTPException(status_code=400, detail="Category does not exist")
    try:
        updated = store.update_item(item_id, item)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="Item not found")
    return store.get_item(item_id)


@app.delete("/items/{item_id}")
def delete_item(item_id: int, request: Request):
    if not _store(request).delete_item(item_id):
        raise HTTPException(status_code=404, detail="Item not found")
    return {"ok": True}


def _move_stock(request: Request, item_id: int, quantity: int, incoming: bool) -> ItemRead:
    store = _store(request)
    try:
        if incoming:
            moved: Optional[Item] = store.add_stock_to_item(item_id, quantity)
        else:
            moved = store.remove_stock_from_item(item_id, quantity)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not moved:
        raise HTTPException(status_code=404, detail="Item not found")
    return store.get_item(item_id)


@app.post("/items/{item_id}/stock-in", response_model=ItemRead)
def stock_in(item_id: int, request: Request, quantity: int = Query(...)):
    return _move_stock(request, item_id, quantity, incoming=True)


@app.post("/items/{item_id}/stock-out", response_model=ItemRead)
def stock_out(item_id: int, request: Request, quantity: int = Query(...)):
    return _move_stock(request, item_id, quantity, incoming=False)


# --- reports --------------------------------------------------------------


@app.get("/stats/", response_model=StockStats)
def stats(request: Request):
    return _store(request).get_stats()


@app.get("/activities/", response_model=List[ActivityRead])
def list_activities(request: Request, limit: int = Query(20, ge=1, le=10000)):
    """Return the most recent activities, newest first."""
    return _store(request).get_activities(limit)


# --- import / export ------------------------------------------------------


@app.post("/import/", response_model=OperationResult)
def import_upload(request: Request, file: UploadFile = File(...)):
    """Save the upload locally, import it and remove the local copy."""
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    original = Path(file.filename or "upload.csv").name
    ts = datetime.now().strftime("%Y%m%dT%H%M%S%f")
    dest_path = UPLOAD_DIR / f"{ts}-{original}"
    try:
        with open(dest_path, "wb") as dest:
            shutil.copyfileobj(file.file, dest)
    finally:
        file.file.close()

    try:
        return import_file(_store(request), dest_path, file_name=original, content_type=file.content_type)
    finally:
        try:
            os.remove(dest_path)
        except OSError:
            logger.warning("Failed to remove uploaded file %s", dest_path)


@app.post("/export/csv", response_model=OperationResult)
def export_items_csv(request: Request):
    return export_csv(_store(request))


@app.post("/export/history-csv", response_model=OperationResult)
def export_activities_csv(request: Request):
    return export_history_csv(_store(request))


@app.post("/export/excel", response_model=OperationResult)
def export_items_excel(request: Request, history: bool = True):
    return export_excel(_store(request), include_history=history)


@app.get("/exports/{file_name}")
def download_export(file_name: str):
    """Return a previously exported file."""
    export_dir = export_dir_from_env().resolve()
    path = (export_dir / file_name).resolve()
    if path.parent != export_dir or not path.is_file():
        raise HTTPException(status_code=404, detail="Export not found")
    return FileResponse(path, filename=path.name)


# --- preferences ----------------------------------------------------------


@app.get("/settings/theme")
def get_theme(request: Request):
    return {"dark_mode": preferences.is_dark_mode(_store(request))}


@app.put("/settings/theme")
def set_theme(request: Request, dark_mode: bool):
    preferences.set_dark_mode(_store(request), dark_mode)
    return {"dark_mode": dark_mode}


@app.get("/settings/shop", response_model=preferences.ShopIdentity)
def get_shop(request: Request):
    return preferences.get_shop_identity(_store(request))


@app.put("/settings/shop", response_model=preferences.ShopIdentity)
def save_shop(identity: preferences.ShopIdentity, request: Request):
    preferences.save_shop_identity(_store(request), identity)
    return identity


@app.get("/shopping-list/", response_model=List[preferences.ShoppingListEntry])
def get_shopping_list(request: Request):
    return preferences.load_shopping_list(_store(request))


@app.put("/shopping-list/", response_model=List[preferences.ShoppingListEntry])
def save_shopping_list(entries: List[preferences.ShoppingListEntry], request: Request):
    preferences.save_shopping_list(_store(request), entries)
    return entries


@app.get("/shopping-list/message")
def shopping_list_message(request: Request):
    """Return the order request text for the saved shopping list."""
    store = _store(request)
    entries = preferences.load_shopping_list(store)
    if not entries:
        raise HTTPException(status_code=400, detail="Daftar belanja masih kosong")
    shop = preferences.get_shop_identity(store)
    return {"message": preferences.format_order_message(shop.name, entries)}
