import os
import logging
import psycopg2
from psycopg2.extras import RealDictCursor
from flask import g
from utils.redaction import redact_database_url
from config import IS_PRODUCTION

logger = logging.getLogger(__name__)


def _normalized_url():
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL is required for Postgres connection.")

    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    if not db_url.startswith("postgresql://"):
        raise ValueError(
            "Only Postgres is supported. DATABASE_URL must start with postgresql:// "
            f"(got {redact_database_url(db_url)})."
        )
    return db_url


def get_db():
    """Connection for the current app context, opened lazily."""
    if 'db' not in g:
        db_url = _normalized_url()
        try:
            conn = psycopg2.connect(db_url, cursor_factory=RealDictCursor)
            g.db = PostgresDB(conn)
        except psycopg2.Error as e:
            logger.error(
                "[DB] Connection Failed (%s) while connecting to %s",
                type(e).__name__,
                redact_database_url(db_url),
            )
            raise
    return g.db


def close_connection(exception=None):
    db = g.pop('db', None)
    if db is not None:
        db.close()


class PostgresDB:
    """
    Strict Postgres wrapper.
    Passes SQL through to psycopg2 without modification.
    Expects %s placeholders.
    """
    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql, params=None):
        cur = self._conn.cursor()
        try:
            cur.execute(sql, params)
            return cur
        except psycopg2.Error as e:
            # In PROD, do NOT log raw SQL (PII Risk)
            logger.error(f"[DB] Query Failed: {e}")
            if not IS_PRODUCTION:
                logger.error(f"[DB] SQL: {sql}")
            # Postgres refuses every later statement until the aborted transaction is rolled back.
            self._reset()
            raise

    def commit(self):
        try:
            self._conn.commit()
        except psycopg2.Error as e:
            logger.error(f"[DB] Commit Failed: {e}")
            self._reset()
            raise

    def _reset(self):
        try:
            self._conn.rollback()
        except psycopg2.Error as e:
            logger.error(f"[DB] Rollback Failed: {e}")

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def cursor(self):
        return self._conn.cursor()
