# routes/health.py
from __future__ import annotations

import os

from fastapi import APIRouter

from db import current_migration, ping
from settings import settings

router = APIRouter(tags=["health"])

EXPECTED_MIGRATION = "0003_order_purge_pending"


def _uses_postgres() -> bool:
    return settings.STORE_BACKEND == "postgres"


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


@router.get("/healthz")
def healthz():
    db_ok, db_error = ping() if _uses_postgres() else (None, None)
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "store": settings.STORE_BACKEND,
        "db_ok": db_ok,
        "db_error": db_error,
    }


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": settings.ENV,
        "gateway_mode": settings.GATEWAY_MODE,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/readyz")
def readyz():
    # In-memory store has nothing to migrate
    if not _uses_postgres():
        return {"ready": True, "store": settings.STORE_BACKEND}

    db_ok, db_error = ping()
    revision = current_migration() if db_ok else None
    return {
        "ready": bool(db_ok and revision == EXPECTED_MIGRATION),
        "store": settings.STORE_BACKEND,
        "db_ok": db_ok,
        "db_error": db_error,
        "migration_revision": revision,
        "expected_revision": EXPECTED_MIGRATION,
    }
