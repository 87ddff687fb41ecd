

# app/workers/charge_worker.py
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from app.charges.model import Charge, ChargeStatus
from app.charges.state_machine import can_transition, is_regression
from app.errors import DuplicateReconciliation, GatewayError, NotFound
from app.gateway.base import PaymentGateway
from app.orders.service import settle_charge
from app.payouts.service import submit_payout
from app.store.base import MarketStore
from settings import settings

logger = logging.getLogger("nexus.worker.charges")

DEFAULT_LEASE_SECONDS = 60


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconcileSummary:
    claimed: int = 0
    advanced: int = 0
    settled: int = 0
    failed: int = 0
    refunds_flagged: int = 0
    poll_errors: int = 0
    ignored_regressions: int = 0
    duplicates: int = 0
    payouts_submitted: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class ChargeReconciler:
    """
    Polls the provider for outstanding charges and applies what it reports.

    Safe to run in several processes at once: claims use SKIP LOCKED leases and
    every status change is a compare-and-set, so a charge settles once.
    """

    def __init__(
        self,
        store: MarketStore,
        gateway: PaymentGateway,
        *,
        fee_rate: Optional[Decimal] = None,
        base_backoff_seconds: Optional[int] = None,
        max_backoff_seconds: Optional[int] = None,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ):
        self.store = store
        self.gateway = gateway
        self.fee_rate = fee_rate
        self.base_backoff_seconds = int(base_backoff_seconds or settings.POLL_BASE_BACKOFF_SECONDS)
        self.max_backoff_seconds = int(max_backoff_seconds or settings.POLL_MAX_BACKOFF_SECONDS)
        self.lease_seconds = lease_seconds

    def backoff_delay(self, attempt: int) -> int:
        # 30, 60, 120, ... capped
        delay = self.base_backoff_seconds * (2 ** max(0, attempt - 1))
        return min(delay, self.max_backoff_seconds)

    def process_once(self, *, batch_size: Optional[int] = None) -> ReconcileSummary:
        summary = ReconcileSummary()
        with self.store.unit_of_work() as uow:
            claimed = uow.claim_outstanding_charges(
                batch_size=int(batch_size or settings.RECONCILE_BATCH_SIZE),
                lease_seconds=self.lease_seconds,
            )
        summary.claimed = len(claimed)

        for charge in claimed:
            self._poll(charge, summary)

        if summary.claimed:
            logger.info("reconcile pass %s", summary.as_dict())
        return summary

    def reconcile_charge(self, charge_id: str) -> Charge:
        """
        Same logic as the batch pass for a single charge. Respects a scheduled
        backoff so buyer refreshes can't hammer the provider.
        """
        with self.store.unit_of_work() as uow:
            charge = uow.get_charge(charge_id)
        if charge is None:
            raise NotFound(f"Charge not found: {charge_id}")

        if not charge.is_terminal and (charge.next_poll_at is None or charge.next_poll_at <= _now()):
            self._poll(charge, ReconcileSummary())
            with self.store.unit_of_work() as uow:
                charge = uow.get_charge(charge_id)
        return charge

    def run_forever(self, *, poll_seconds: Optional[int] = None, batch_size: Optional[int] = None) -> None:
        interval = int(poll_seconds or settings.RECONCILE_POLL_SECONDS)
        logger.info("charge reconciler started interval=%ss", interval)
        while True:
            summary = self.process_once(batch_size=batch_size)
            if summary.claimed == 0:
                time.sleep(interval)

    # -----------------------
    # internals
    # -----------------------

    def _schedule_retry(self, charge: Charge, error: str) -> None:
        attempt = charge.poll_attempts + 1
        delay = self.backoff_delay(attempt)
        with self.store.unit_of_work() as uow:
            uow.schedule_next_poll(
                charge.id,
                next_poll_at=_now() + timedelta(seconds=delay),
                last_error=error,
                count_attempt=True,
            )
        logger.warning("charge=%s poll attempt=%s failed, next in %ss: %s", charge.id, attempt, delay, error)

    def _schedule_recheck(self, charge: Charge) -> None:
        with self.store.unit_of_work() as uow:
            uow.schedule_next_poll(
                charge.id,
                next_poll_at=_now() + timedelta(seconds=int(settings.RECONCILE_POLL_SECONDS)),
                last_error=None,
                count_attempt=False,
            )

    def _cas(self, charge_id: str, from_status: ChargeStatus, to_status: ChargeStatus) -> bool:
        with self.store.unit_of_work() as uow:
            return uow.transition_charge(charge_id, from_status, to_status)

    def _poll(self, charge: Charge, summary: ReconcileSummary) -> None:
        if charge.is_terminal:
            return
        if not charge.external_id:
            self._schedule_retry(charge, "charge has no provider payment id")
            summary.poll_errors += 1
            return

        try:
            remote = self.gateway.get_charge_status(charge.external_id)
        except GatewayError as exc:
            self._schedule_retry(charge, str(exc))
            summary.poll_errors += 1
            return

        if remote.amount != charge.gross_amount:
            logger.error(
                "charge=%s provider amount %s does not match local %s; not applying status %s",
                charge.id,
                remote.amount,
                charge.gross_amount,
                remote.status.value,
            )
            self._schedule_retry(charge, f"INVALID_RESPONSE: amount mismatch {remote.amount} != {charge.gross_amount}")
            summary.poll_errors += 1
            return

        local, target = charge.status, remote.status

        if target is local:
            self._schedule_recheck(charge)
            return

        if is_regression(local, target):
            logger.info("charge=%s ignoring provider status %s behind local %s", charge.id, target.value, local.value)
            summary.ignored_regressions += 1
            self._schedule_recheck(charge)
            return

        if target is ChargeStatus.ACTIVE:
            if self._cas(charge.id, ChargeStatus.PENDING, ChargeStatus.ACTIVE):
                summary.advanced += 1
            return

        if target is ChargeStatus.FAILED:
            if can_transition(local, ChargeStatus.FAILED) and self._cas(charge.id, local, ChargeStatus.FAILED):
                summary.failed += 1
                logger.info("charge=%s FAILED at provider", charge.id)
            return

        # COMPLETED: a PENDING charge goes through ACTIVE first
        if local is ChargeStatus.PENDING and self._cas(charge.id, ChargeStatus.PENDING, ChargeStatus.ACTIVE):
            summary.advanced += 1
        self._settle(charge, summary)

    def _settle(self, charge: Charge, summary: ReconcileSummary) -> None:
        try:
            result = settle_charge(self.store, charge.id, fee_rate=self.fee_rate)
        except DuplicateReconciliation as exc:
            summary.duplicates += 1
            logger.error("DEFECT duplicate settlement for charge=%s rolled back: %s", exc.charge_id, exc)
            return

        if result is None:
            # Another poller won the CAS
            return

        summary.settled += 1
        if result.refund_flagged:
            summary.refunds_flagged += 1
            return

        submit_payout(self.store, self.gateway, result.payout)
        summary.payouts_submitted += 1
