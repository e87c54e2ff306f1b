"""Billing database management CLI.

Usage:
    python src/manage.py setup-db     # Create all tables
    python src/manage.py drop-db      # Drop all tables
    python src/manage.py seed-plans   # Install the default plan catalog
"""

import argparse
import sys


def setup_database():
    from billing.domain import billing
    from billing.utils.db import setup_db

    print("Initializing billing domain...")
    billing.init()
    print("Creating billing database schema...")
    setup_db(billing)
    print("Done.")


def drop_database():
    from billing.domain import billing
    from billing.utils.db import drop_db

    print("Initializing billing domain...")
    billing.init()
    print("Dropping billing database schema...")
    drop_db(billing)
    print("Done.")


def seed_plans():
    from billing.domain import billing
    from billing.plan.catalog import seed_default_plans

    billing.init()
    with billing.domain_context():
        created = seed_default_plans()
    print(f"Seeded {len(created)} plan(s).")


def main():
    parser = argparse.ArgumentParser(description="Billing database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("seed-plans", help="Install the default plan catalog")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "seed-plans":
        seed_plans()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
