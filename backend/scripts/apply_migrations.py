"""Apply ``infra/migrations/*.sql`` in filename order, once each.

Usage: ``python backend/scripts/apply_migrations.py`` with POSTGRES_URL set.
"""

from __future__ import annotations

import pathlib
import time

import psycopg2

from filmclub.obs.logging import configure_logging
from filmclub.settings import settings

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parent.parent / "infra" / "migrations"

logger = configure_logging()


def connect(retries: int = 30, delay: float = 2.0):
    sslmode = "require" if settings.postgres_ssl else "prefer"
    for attempt in range(1, retries + 1):
        try:
            return psycopg2.connect(settings.postgres_url, sslmode=sslmode)
        except psycopg2.OperationalError as exc:
            if attempt == retries:
                raise
            logger.info("database_unavailable", extra={"attempt": attempt, "error": str(exc).strip()})
            time.sleep(delay)


def main() -> None:
    conn = connect()
    try:
        with conn, conn.cursor() as cur:
            cur.execute(
                "CREATE TABLE IF NOT EXISTS schema_migrations ("
                "version TEXT PRIMARY KEY, applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW())"
            )
            cur.execute("SELECT version FROM schema_migrations")
            applied = {version for (version,) in cur.fetchall()}

        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            version = path.stem
            if version in applied:
                continue
            # psycopg2's connection context commits the file and its version row together.
            with conn, conn.cursor() as cur:
                cur.execute(path.read_text())
                cur.execute("INSERT INTO schema_migrations (version) VALUES (%s)", (version,))
            logger.info("migration_applied", extra={"version": version})
    finally:
        conn.close()


if __name__ == "__main__":
    main()
