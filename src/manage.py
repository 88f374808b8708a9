"""RefillHub database management CLI.

Creates and drops relational schemas for the ordering domain when it is
configured with an SQL provider. The default memory provider needs neither.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys

import structlog

logger = structlog.get_logger(__name__)


def _domain():
    from ordering.domain import ordering

    ordering.init()
    return ordering


def setup_databases():
    """Create database schemas for the ordering domain."""
    from ordering.utils.db import setup_db

    touched = setup_db(_domain())
    if not touched:
        logger.info("No SQL provider configured; nothing to create")
    for name in touched:
        logger.info("Schema ready", provider=name)


def drop_databases():
    """Drop database schemas for the ordering domain."""
    from ordering.utils.db import drop_db

    touched = drop_db(_domain())
    if not touched:
        logger.info("No SQL provider configured; nothing to drop")
    for name in touched:
        logger.info("Schema dropped", provider=name)


def main(argv=None):
    from ordering.utils.logging import configure_logging

    configure_logging()

    parser = argparse.ArgumentParser(description="RefillHub database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
