"""Upgrade the progress schema with Alembic.

SQLite installs can skip this: ``DatabaseStateBackend`` creates missing tables
on first use. Server databases should be migrated before the API starts::

    python -m scripts.run_migrations --revision head
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from habla.config import Settings, get_settings
from habla.logging_config import configure_logging

logger = logging.getLogger("habla.migrations")

BACKEND_ROOT = Path(__file__).resolve().parent.parent


def build_config(database_url: str, *, ini_path: Optional[Path] = None) -> Config:
    config = Config(str(ini_path or BACKEND_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))
    # Percent signs in passwords would otherwise be read as ini interpolation.
    config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return config


def check_connection(database_url: str) -> None:
    """Fail fast when a server database refuses connections."""
    engine = create_engine(database_url, future=True)
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    finally:
        engine.dispose()


def upgrade(revision: str = "head", *, settings: Optional[Settings] = None, sql: bool = False) -> None:
    settings = settings or get_settings()
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("HABLA_DATABASE_URL must be set before running migrations.")

    config = build_config(database_url)
    if not sql and not database_url.startswith("sqlite"):
        check_connection(database_url)
    logger.info("Upgrading progress schema to %s", revision)
    command.upgrade(config, revision, sql=sql)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Upgrade the progress schema.")
    parser.add_argument("--revision", default="head", help="Target revision (default: head).")
    parser.add_argument("--sql", action="store_true", help="Print the SQL instead of running it.")
    args = parser.parse_args(argv)

    configure_logging()
    try:
        upgrade(args.revision, sql=args.sql)
    except (RuntimeError, SQLAlchemyError) as exc:
        logger.error("Migration failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
