# db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PGConn
from psycopg2.pool import SimpleConnectionPool

from settings import settings

_pool: Optional[SimpleConnectionPool] = None


def init_pool(dsn: Optional[str] = None) -> SimpleConnectionPool:
    """
    Create the process-wide pool on first use.
    Workers and the API each hold their own.
    """
    global _pool
    if _pool is None:
        psycopg2.extras.register_uuid()
        psycopg2.extras.register_default_jsonb()
        url = (dsn or settings.DATABASE_URL or "").strip()
        if not url:
            raise RuntimeError("DATABASE_URL is not set")
        _pool = SimpleConnectionPool(
            minconn=1,
            maxconn=settings.DB_POOL_MAX,
            dsn=url,
            connect_timeout=5,
        )
    return _pool


def close_pool() -> None:
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None


def _prepare_session(conn: PGConn) -> None:
    # Settlement transactions are short; anything slower is stuck
    timeout = f"{int(settings.DB_STATEMENT_TIMEOUT_MS)}ms"
    with conn.cursor() as cur:
        cur.execute("SET statement_timeout = %s;", (timeout,))
        cur.execute("SET idle_in_transaction_session_timeout = %s;", (timeout,))
        cur.execute("SET application_name = 'nexus_market_api';")


@contextmanager
def get_conn() -> Iterator[PGConn]:
    """
    One transaction per block: commit on success, rollback on any error.
    """
    pool = init_pool()
    conn = pool.getconn()
    try:
        _prepare_session(conn)
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def ping() -> tuple[bool, Optional[str]]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def current_migration() -> Optional[str]:
    """Alembic head recorded in public.alembic_version, or None if unmigrated/unreachable."""
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT to_regclass('public.alembic_version');")
                if cur.fetchone()[0] is None:
                    return None
                cur.execute("SELECT version_num FROM public.alembic_version LIMIT 1;")
                row = cur.fetchone()
                return row[0] if row else None
    except psycopg2.Error:
        return None
