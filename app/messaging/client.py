

# app/messaging/client.py
from __future__ import annotations

import logging
from typing import Protocol

from db import get_conn

logger = logging.getLogger("nexus.messaging")


class MessagingClient(Protocol):
    def purge_order_messages(self, order_id: str) -> int: ...


class DatabaseMessagingClient:
    """
    Chat history lives in app.messages next to the orders; purging is a single DELETE.
    """

    def purge_order_messages(self, order_id: str) -> int:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM app.messages WHERE order_id = %s::uuid", (order_id,))
                deleted = cur.rowcount
        logger.info("messages purged order=%s deleted=%s", order_id, deleted)
        return deleted


class RecordingMessagingClient:
    """In-process collaborator for sandbox mode and tests."""

    def __init__(self) -> None:
        self.messages: dict[str, list[str]] = {}
        self.purged: list[str] = []

    def add_message(self, order_id: str, content: str) -> None:
        self.messages.setdefault(order_id, []).append(content)

    def purge_order_messages(self, order_id: str) -> int:
        self.purged.append(order_id)
        return len(self.messages.pop(order_id, []))
