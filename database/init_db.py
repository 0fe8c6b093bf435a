"""Database initialization helper.

Creates the configured SQLite database (when not using DATABASE_URL),
applies migrations, seeds the default categories and emits SQL DDL into
``database/schema.sql``.

Copyright (c) Bryn Gwalad 2025
"""

from __future__ import annotations
import sys
from pathlib import Path

# Ensure project root is on sys.path so `from stock import ...` works when
# running this script directly (python database/init_db.py).
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from sqlmodel import SQLModel
from sqlalchemy.schema import CreateTable
from dotenv import load_dotenv

# Load environment variables from .env (so this script honors .env settings)
load_dotenv()

from stock.database import StockStore


def main() -> None:
    """Create the database and emit SQL DDL.

    The store reads ``DATABASE_URL`` or falls back to ``SQLITE_FILE``.
    """

    store = StockStore(echo=True)
    print(f"Using database URL: {store.database_url}")

    print("Creating tables...")
    store.open()
    print(f"Tables created; {len(store.get_categories())} categories present.")

    # emit SQL DDL to file
    schema_path = Path("database") / "schema.sql"
    schema_path.parent.mkdir(parents=True, exist_ok=True)
    print(f"Writing SQL DDL to {schema_path}")
    with open(schema_path, "w", encoding="utf-8") as f:
        for table in SQLModel.metadata.sorted_tables:
            ddl = str(CreateTable(table).compile(store.engine))
            f.write(ddl)
            f.write(";\n\n")

    store.close()
    print("Done.\n")


if __name__ == "__main__":
    main()
