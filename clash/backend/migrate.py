"""Create the clash tables in PostgreSQL."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from clash.backend.config import load_settings, require_setting

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply the clash database schema")
    parser.add_argument("--database-url", default=None, help="overrides CLASH_DATABASE_URL")
    return parser.parse_args(argv)


def apply_schema(database_url: str, schema_path: Path = SCHEMA_PATH) -> None:
    import psycopg

    schema_sql = schema_path.read_text(encoding="utf-8")
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(schema_sql)
        conn.commit()
    logger.info("applied %s", schema_path.name)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    database_url = require_setting(args.database_url or settings.database_url, "CLASH_DATABASE_URL")
    apply_schema(database_url)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
