"""Command line helper to import and export stock files.

Usage:
  python scripts/stock_cli.py import barang.xlsx
  python scripts/stock_cli.py export --format excel --output exports
  python scripts/stock_cli.py stats

Honors DATABASE_URL / SQLITE_FILE from the environment or .env.
"""
import argparse
import os
import sys
from pathlib import Path

# Ensure project root is on sys.path when run as a script
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv

load_dotenv()

from stock.database import StockStore
from stock.exporter import export_csv, export_excel, export_history_csv
from stock.importer import import_file


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Stock Manager import/export")
    p.add_argument("--database", default=None, help="SQLAlchemy URL (defaults to DATABASE_URL / SQLITE_FILE)")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import items from a CSV or Excel file")
    imp.add_argument("file", help="Path to the .csv or .xlsx file")

    exp = sub.add_parser("export", help="Export items or history")
    exp.add_argument("--format", choices=["csv", "excel", "history"], default="csv")
    exp.add_argument("--output", default=None, help="Output directory (defaults to EXPORT_DIR)")
    exp.add_argument("--no-history", action="store_true", help="Excel: only the stock sheet")

    sub.add_parser("stats", help="Print stock statistics")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    with StockStore(args.database) as store:
        if args.command == "import":
            if not os.path.exists(args.file):
                raise SystemExit(f"File not found: {args.file}")
            result = import_file(store, args.file)
        elif args.command == "export":
            output = Path(args.output) if args.output else None
            if args.format == "excel":
                result = export_excel(store, output, include_history=not args.no_history)
            elif args.format == "history":
                result = export_history_csv(store, output)
            else:
                result = export_csv(store, output)
        else:
            stats = store.get_stats()
            for key, value in stats.model_dump().items():
                print(f"{key}: {value}")
            return 0

    print(result.message)
    if result.path:
        print(f"Wrote {result.path}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
