

# app/workers/payout_worker.py
from __future__ import annotations

import logging
import time
from typing import Optional

from app.gateway.base import PaymentGateway
from app.gateway.factory import get_gateway
from app.payouts.model import PayoutStatus
from app.payouts.service import submit_payout
from app.store.base import MarketStore
from app.store.factory import get_store
from settings import settings

logger = logging.getLogger("nexus.worker.payouts")

DEFAULT_LEASE_SECONDS = 60


def process_once(
    *,
    batch_size: int = 50,
    store: Optional[MarketStore] = None,
    gateway: Optional[PaymentGateway] = None,
    max_attempts: Optional[int] = None,
) -> int:
    """
    Re-submit PENDING payouts that never got a provider_ref (transient failures).
    Payouts the provider accepted are left alone; only a confirmation moves them.
    """
    store = store or get_store()
    gateway = gateway or get_gateway()
    limit = int(max_attempts if max_attempts is not None else settings.PAYOUT_MAX_ATTEMPTS)

    with store.unit_of_work() as uow:
        claimed = uow.claim_retryable_payouts(batch_size=batch_size, lease_seconds=DEFAULT_LEASE_SECONDS)

    logger.info("found_retryable=%s", len(claimed))

    processed = 0
    for p in claimed:
        processed += 1

        if p.attempt_count >= limit:
            with store.unit_of_work() as uow:
                uow.update_payout(
                    p.id,
                    new_status=PayoutStatus.FAILED,
                    from_status=PayoutStatus.PENDING,
                    last_error=f"Max attempts exceeded ({p.last_error or 'no provider answer'})",
                    next_retry_at=None,
                )
            logger.error("payout=%s FAILED after %s attempts", p.id, p.attempt_count)
            continue

        updated = submit_payout(store, gateway, p, max_attempts=limit)
        logger.info("payout=%s attempt=%s -> %s", p.id, updated.attempt_count, updated.status.value)

    return processed


def run_forever(*, poll_seconds: int = 5, batch_size: int = 50) -> None:
    logger.info("payout worker started")
    while True:
        n = process_once(batch_size=batch_size)
        if n == 0:
            time.sleep(poll_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    run_forever()
