

# app/payouts/service.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.errors import GatewayError, InvalidTransition, NotFound
from app.gateway.base import PaymentGateway
from app.payouts.model import Payout, PayoutStatus
from app.payouts.state_machine import assert_terminal_invariant, assert_transition
from app.store.base import MarketStore
from settings import settings

logger = logging.getLogger("nexus.payouts")

BASE_BACKOFF_SECONDS = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _next_retry_at(attempt_count: int) -> datetime:
    # 30, 60, 120, 240, 480...
    delay = BASE_BACKOFF_SECONDS * (2 ** max(0, attempt_count - 1))
    return _now() + timedelta(seconds=delay)


def _reload(store: MarketStore, payout_id: str) -> Payout:
    with store.unit_of_work() as uow:
        p = uow.get_payout(payout_id)
    if p is None:
        raise NotFound(f"Payout not found: {payout_id}")
    return p


def submit_payout(
    store: MarketStore,
    gateway: PaymentGateway,
    payout: Payout,
    *,
    description: Optional[str] = None,
    max_attempts: Optional[int] = None,
) -> Payout:
    """
    Send a PENDING payout to the provider. Called after the settling unit of
    work commits and again by the payout worker; never with a store lock held.

    UNREACHABLE keeps the payout PENDING with a scheduled retry. Any other
    gateway error is terminal (FAILED): resubmitting something the provider
    may have half-processed risks paying the seller twice.
    """
    if payout.status is not PayoutStatus.PENDING or payout.submitted:
        return payout

    limit = int(max_attempts if max_attempts is not None else settings.PAYOUT_MAX_ATTEMPTS)
    attempt = payout.attempt_count + 1

    try:
        res = gateway.create_payout(
            payout.net_amount,
            payout.beneficiary_key,
            payout.beneficiary_key_kind,
            description or settings.PAYOUT_DESCRIPTION,
        )
    except GatewayError as exc:
        err = f"could not process payout: {exc}"
        if exc.retryable and attempt < limit:
            new_status = PayoutStatus.PENDING
            retry_at = _next_retry_at(attempt)
            logger.warning("payout=%s attempt=%s transient failure, retry at %s: %s", payout.id, attempt, retry_at, exc)
        else:
            new_status = PayoutStatus.FAILED
            retry_at = None
            logger.error("payout=%s attempt=%s FAILED kind=%s: %s", payout.id, attempt, exc.kind.value, exc)

        assert_transition(payout.status, new_status)
        with store.unit_of_work() as uow:
            uow.update_payout(
                payout.id,
                new_status=new_status,
                from_status=PayoutStatus.PENDING,
                provider_response=exc.response,
                last_error=err,
                attempt_count=attempt,
                next_retry_at=retry_at,
            )
        return _reload(store, payout.id)

    assert_transition(payout.status, res.status)
    assert_terminal_invariant(res.status, res.provider_ref)

    with store.unit_of_work() as uow:
        changed = uow.update_payout(
            payout.id,
            new_status=res.status,
            from_status=PayoutStatus.PENDING,
            provider_ref=res.provider_ref,
            provider_response=res.response,
            last_error=None if res.status is not PayoutStatus.FAILED else "provider reported FAILED",
            attempt_count=attempt,
            next_retry_at=None,
        )
    if not changed:
        logger.warning("payout=%s changed concurrently; provider_ref=%s not recorded", payout.id, res.provider_ref)

    logger.info("payout submitted payout=%s provider_ref=%s status=%s net=%s", payout.id, res.provider_ref, res.status.value, payout.net_amount)
    return _reload(store, payout.id)


def confirm_payout(
    store: MarketStore,
    payout_id: str,
    status: PayoutStatus | str,
    *,
    provider_ref: Optional[str] = None,
) -> Payout:
    """
    Explicit terminal confirmation (admin / provider callback).
    Repeating the same confirmation is a no-op.
    """
    new_status = PayoutStatus(str(getattr(status, "value", status)).strip().upper())
    if new_status is PayoutStatus.PENDING:
        raise InvalidTransition("Confirmation must be COMPLETED or FAILED")

    with store.unit_of_work() as uow:
        p = uow.get_payout(payout_id)
        if p is None:
            raise NotFound(f"Payout not found: {payout_id}")
        if p.status is new_status:
            return p

        assert_transition(p.status, new_status)
        ref = (provider_ref or "").strip() or p.provider_ref
        assert_terminal_invariant(new_status, ref)

        changed = uow.update_payout(
            payout_id,
            new_status=new_status,
            from_status=PayoutStatus.PENDING,
            provider_ref=ref,
            last_error=None if new_status is PayoutStatus.COMPLETED else (p.last_error or "marked FAILED by confirmation"),
            next_retry_at=None,
        )
        if not changed:
            raise InvalidTransition(f"Payout {payout_id} changed concurrently")
        confirmed = uow.get_payout(payout_id)

    logger.info("payout confirmed payout=%s status=%s provider_ref=%s", payout_id, new_status.value, ref)
    return confirmed
