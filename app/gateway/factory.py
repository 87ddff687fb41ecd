

# app/gateway/factory.py
from __future__ import annotations

from typing import Any, Dict

from settings import settings

_GATEWAY_CACHE: Dict[str, Any] = {}


def get_gateway(mode: str | None = None):
    key = (mode or settings.GATEWAY_MODE or "sandbox").strip().lower()

    if key in _GATEWAY_CACHE:
        return _GATEWAY_CACHE[key]

    if key == "sandbox":
        from app.gateway.mock import MockGateway
        # Sandbox charges settle on the second poll
        gateway = MockGateway(auto_complete_after_polls=2)

    elif key == "real":
        from app.gateway.client import PixGatewayClient
        gateway = PixGatewayClient()

    else:
        raise ValueError(f"Unsupported GATEWAY_MODE: {key!r}")

    _GATEWAY_CACHE[key] = gateway
    return gateway
