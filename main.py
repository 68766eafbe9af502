# main.py
import os
import sys
import logging
import argparse
import json
from pathlib import Path

import reports
from database import Database
from logger import LOG_DEFAULTS, setup_logger
from models import PharmacyError, PharmacySystem
from utils import (export_inventory_csv, export_inventory_excel, generate_pdf_receipt,
                   generate_txt_receipt, import_inventory_csv, import_inventory_excel)

logger = logging.getLogger("pharmacy_pos.main")

# Default configuration
DEFAULT_CONFIG = {
    "database": {"name": "pharmacy.db"},
    "receipt_dir": "receipts",
    "export_dir": "exports",
    "currency": "$",
    "low_stock_threshold": 10,
    "expiry_horizon_months": 3,
    "logging": dict(LOG_DEFAULTS)
}


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            merged = {**DEFAULT_CONFIG, **config}
            merged["logging"] = {**DEFAULT_CONFIG["logging"], **config.get("logging", {})}
            return merged
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config: {e}")
            return dict(DEFAULT_CONFIG)

    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4)
    logger.info(f"Created default configuration at {config_path}")

    return dict(DEFAULT_CONFIG)


def setup_directories(config):
    """Create required directories if they don't exist."""
    dir_mappings = {
        'receipt_dir': config.get('receipt_dir', 'receipts'),
        'export_dir': config.get('export_dir', 'exports'),
        'log_dir': os.path.dirname(config.get('logging', {}).get('file') or ''),
    }

    for dir_key, dir_path in dir_mappings.items():
        if not dir_path:
            continue
        path = Path(dir_path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {path}")


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Pharmacy inventory and point of sale")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    inv = sub.add_parser("inventory", help="List medicines")
    inv.add_argument("--search", default="", help="Filter by name")
    group = inv.add_mutually_exclusive_group()
    group.add_argument("--low-stock", action="store_true", help="Only low stock items")
    group.add_argument("--expiring", action="store_true", help="Only items expiring soon")
    group.add_argument("--expired", action="store_true", help="Only items past their expiry date")

    add = sub.add_parser("add", help="Add a medicine")
    add.add_argument("--name", required=True)
    add.add_argument("--price", required=True)
    add.add_argument("--quantity", required=True)
    add.add_argument("--expiry", required=True, help="YYYY-MM-DD")
    add.add_argument("--category")

    upd = sub.add_parser("update", help="Edit a medicine")
    upd.add_argument("medicine_id")
    upd.add_argument("--name")
    upd.add_argument("--price")
    upd.add_argument("--quantity")
    upd.add_argument("--expiry", help="YYYY-MM-DD")
    upd.add_argument("--category")

    rem = sub.add_parser("remove", help="Delete a medicine")
    rem.add_argument("medicine_id")

    sell = sub.add_parser("sell", help="Sell medicines; repeat an id to sell more units")
    sell.add_argument("medicine_ids", nargs="+")
    sell.add_argument("--customer", default="")
    sell.add_argument("--receipt", choices=["txt", "pdf"])

    sub.add_parser("dashboard", help="Show today's figures")

    hist = sub.add_parser("history", help="List sales, most recent first")
    hist.add_argument("--limit", type=int)

    exp = sub.add_parser("export", help="Export inventory or sales")
    exp.add_argument("what", choices=["inventory", "sales"])
    exp.add_argument("--format", choices=["csv", "excel"], default="csv")
    exp.add_argument("--output")

    imp = sub.add_parser("import", help="Import inventory from CSV or Excel")
    imp.add_argument("path")

    rec = sub.add_parser("receipt", help="Write the invoice for a sale")
    rec.add_argument("sale_id")
    rec.add_argument("--format", choices=["txt", "pdf"], default="txt")
    rec.add_argument("--output")

    return parser.parse_args(argv)


def _print_medicines(medicines, currency):
    if not medicines:
        print("No medicines found.")
        return
    for m in medicines:
        print(f"{m.id:32}  {m.name[:24]:24} {currency}{m.price:8.2f} {m.quantity:6}  {m.expiry_date}")


def _write_receipt(system, sale, fmt, output=None):
    config = system.config
    path = output or os.path.join(config.get("receipt_dir", "receipts"), f"invoice_{sale.id}.{fmt}")
    currency = config.get("currency", "$")
    if fmt == "pdf":
        return generate_pdf_receipt(sale, path, currency)
    return generate_txt_receipt(sale, path, currency)


def _warn_on_persistence_failure(event, payload):
    if event == "persistence_failed":
        print(f"Warning: changes could not be saved ({payload['error']})", file=sys.stderr)


def run_command(system: PharmacySystem, args):
    currency = system.config.get("currency", "$")
    ledger = system.ledger

    if args.command == "inventory":
        meds = ledger.search(args.search)
        if args.low_stock:
            meds = reports.low_stock(meds, system.low_stock_threshold)
        elif args.expiring:
            meds = reports.expiring_soon(meds, system.expiry_horizon_months)
        elif args.expired:
            meds = reports.expired(meds)
        _print_medicines(meds, currency)

    elif args.command == "add":
        med = ledger.add(args.name, args.price, args.quantity, args.expiry, args.category)
        print(f"Added {med.name} with id {med.id}")

    elif args.command == "update":
        med = ledger.get(args.medicine_id)
        if med is None:
            print(f"Medicine {args.medicine_id} not found.")
            return 1
        for attr, value in (("name", args.name), ("price", args.price),
                            ("quantity", args.quantity), ("expiry_date", args.expiry),
                            ("category", args.category)):
            if value is not None:
                setattr(med, attr, value)
        ledger.update(med)
        print(f"Updated {args.medicine_id}")

    elif args.command == "remove":
        if not ledger.remove(args.medicine_id):
            print(f"Medicine {args.medicine_id} not found.")
            return 1
        print(f"Removed {args.medicine_id}")

    elif args.command == "sell":
        for medicine_id in args.medicine_ids:
            if system.add_to_cart(medicine_id) is None:
                print(f"Skipped {medicine_id}: no more stock available")
        system.cart.set_customer_name(args.customer)
        sale = system.checkout()
        if sale is None:
            print("Nothing to sell.")
            return 1
        print(f"Sale {sale.id} for {sale.customer_name}: {currency}{sale.total_amount:.2f}")
        if args.receipt:
            print(f"Invoice written to {_write_receipt(system, sale, args.receipt)}")

    elif args.command == "dashboard":
        summary = system.dashboard()
        for key, value in summary.items():
            label = key.replace('_', ' ').title()
            if 'revenue' in key:
                print(f"{label}: {currency}{value:.2f}")
            else:
                print(f"{label}: {value}")

    elif args.command == "history":
        sales = reports.sales_history(system.store.sales)
        if args.limit is not None:
            sales = sales[:args.limit]
        if not sales:
            print("No sales recorded.")
        for s in sales:
            print(f"{s.date}  {s.id}  {s.customer_name[:20]:20} {currency}{s.total_amount:9.2f}")

    elif args.command == "export":
        ext = "xlsx" if args.format == "excel" else "csv"
        path = args.output or os.path.join(system.config.get("export_dir", "exports"),
                                           f"{args.what}.{ext}")
        if args.what == "inventory":
            if args.format == "excel":
                export_inventory_excel(system.store.medicines, path)
            else:
                export_inventory_csv(system.store.medicines, path)
        else:
            df, summary = reports.generate_sales_report(system.store.sales, path, args.format)
            if df is None:
                print(summary)
                return 1
        print(f"Exported {args.what} to {path}")

    elif args.command == "import":
        if args.path.lower().endswith((".xlsx", ".xls")):
            count = import_inventory_excel(ledger, args.path)
        else:
            count = import_inventory_csv(ledger, args.path)
        print(f"Imported {count} rows")

    elif args.command == "receipt":
        sale = system.find_sale(args.sale_id)
        print(f"Invoice written to {_write_receipt(system, sale, args.format, args.output)}")

    return 0


def main(argv=None):
    args = parse_arguments(argv)
    db = None
    try:
        # Console only until the config says where the log file lives
        setup_logger({"logging": {"file": None}})
        config = load_config(args.config)
        if args.debug:
            config["logging"] = {**config.get("logging", {}), "level": "DEBUG"}
        setup_logger(config)
        logger.debug("Debug mode enabled")

        setup_directories(config)

        db_path = config.get("database", {}).get("name", "pharmacy.db")
        db = Database(db_path)
        logger.info(f"Database initialized: {db_path}")

        system = PharmacySystem(db, config)
        system.store.subscribe(_warn_on_persistence_failure)
        return run_command(system, args)
    except PharmacyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    sys.exit(main())
