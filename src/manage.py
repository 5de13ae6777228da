"""MotorHub management CLI.

Usage:
    python src/manage.py setup-db            # Create all tables
    python src/manage.py drop-db             # Drop all tables
    python src/manage.py sweep-carts         # Delete carts whose expiry passed
    python src/manage.py seed-demo           # Load a small demo catalogue
"""

import argparse
import sys

import structlog

from shared.database import configure_database, drop_db, setup_db, unit_of_work
from shared.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


def setup_database():
    """Create every table."""
    print("Creating database schema...")
    setup_db()
    print("Done.")


def drop_database():
    """Drop every table."""
    print("Dropping database schema...")
    drop_db()
    print("Done.")


def sweep_carts():
    from ordering.cart.expiry import SweepExpiredCarts, SweepExpiredCartsHandler

    deleted = SweepExpiredCartsHandler().sweep_expired_carts(SweepExpiredCarts())
    print(f"Deleted {deleted} expired cart(s).")


def seed_demo():
    """Insert a couple of products and a service for manual API testing."""
    from catalogue.models import Product, ProductCategory, Service

    with unit_of_work() as session:
        products = [
            Product.create(sku="OIL-5W30", name="Synthetic Oil 5W-30", price="39.99", stock_quantity=50),
            Product.create(
                sku="TOOL-TORQUE",
                name="Torque Wrench",
                price="129.00",
                stock_quantity=10,
                category=ProductCategory.TOOLS,
            ),
            Product.create(
                sku="CAR-SEDAN-01",
                name="Certified Pre-Owned Sedan",
                price="18500.00",
                stock_quantity=1,
                category=ProductCategory.CARS,
            ),
        ]
        service = Service.create(name="Full Service", base_price="199.00", duration_hours=2)
        service.add_add_on("Cabin Filter", "25.00")
        session.add_all([*products, service])

    print(f"Seeded {len(products)} products and service {service.id}.")


def main():
    parser = argparse.ArgumentParser(description="MotorHub management")
    parser.add_argument("--database-uri", help="Override the configured database URI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep-carts", help="Delete expired carts and their items")
    subparsers.add_parser("seed-demo", help="Load a small demo catalogue")

    args = parser.parse_args()

    configure_logging()
    configure_database(args.database_uri)

    commands = {
        "setup-db": setup_database,
        "drop-db": drop_database,
        "sweep-carts": sweep_carts,
        "seed-demo": seed_demo,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
    command()


if __name__ == "__main__":
    main()
