

# app/store/factory.py
from __future__ import annotations

from typing import Any, Dict

from settings import settings

_STORE_CACHE: Dict[str, Any] = {}


def get_store(backend: str | None = None):
    key = (backend or settings.STORE_BACKEND or "postgres").strip().lower()

    if key in _STORE_CACHE:
        return _STORE_CACHE[key]

    if key == "postgres":
        from app.store.postgres import PostgresStore
        store = PostgresStore()

    elif key == "memory":
        from app.store.memory import InMemoryStore
        store = InMemoryStore()

    else:
        raise ValueError(f"Unsupported STORE_BACKEND: {key!r}")

    _STORE_CACHE[key] = store
    return store
