# deps/market.py
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from app.gateway.factory import get_gateway
from app.messaging.client import DatabaseMessagingClient, RecordingMessagingClient
from app.store.factory import get_store
from app.workers.charge_worker import ChargeReconciler
from settings import settings

# Tests override these with app.dependency_overrides


def store_dep():
    return get_store()


def gateway_dep():
    return get_gateway()


@lru_cache(maxsize=1)
def _messaging():
    if settings.STORE_BACKEND == "memory":
        return RecordingMessagingClient()
    return DatabaseMessagingClient()


def messaging_dep():
    return _messaging()


def reconciler_dep(store=Depends(store_dep), gateway=Depends(gateway_dep)) -> ChargeReconciler:
    return ChargeReconciler(store, gateway, fee_rate=settings.PLATFORM_FEE_RATE)
