

# services/reconcile.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from app.payouts.model import PayoutStatus
from app.store.base import MarketStore
from app.store.factory import get_store

logger = logging.getLogger("nexus.reconcile")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


def _item(category: str, **fields: Any) -> dict[str, Any]:
    return {"category": category, **{k: _jsonable(v) for k, v in fields.items()}}


def run_reconcile(*, stale_minutes: int = 30, limit: int = 200, store: Optional[MarketStore] = None) -> dict[str, Any]:
    """
    Audit pass over settlement state. Read-only apart from the stored report.

    Categories:
      - manual_refund_required: paid charge that could not become an order
      - payout_failed: seller payout the provider refused or that ran out of retries
      - payout_stale: PENDING payout untouched for `stale_minutes`
      - completed_without_order: COMPLETED charge with neither order nor refund flag
    """
    store = store or get_store()
    run_at = _utcnow()
    stale_after = run_at - timedelta(minutes=stale_minutes)

    items: list[dict[str, Any]] = []
    summary = {
        "manual_refund_required": 0,
        "payout_failed": 0,
        "payout_stale": 0,
        "completed_without_order": 0,
    }

    with store.unit_of_work() as uow:
        for r in uow.list_manual_refunds(limit=limit):
            summary["manual_refund_required"] += 1
            items.append(
                _item(
                    "manual_refund_required",
                    charge_id=r["charge_id"],
                    buyer_id=r["buyer_id"],
                    product_id=r["product_id"],
                    gross_amount=r["gross_amount"],
                    quantity=r["quantity"],
                    reason=r.get("reason"),
                )
            )

        for p in uow.list_payouts_by_status(PayoutStatus.FAILED, limit=limit):
            summary["payout_failed"] += 1
            items.append(
                _item(
                    "payout_failed",
                    payout_id=p.id,
                    charge_id=p.source_charge_id,
                    order_id=p.order_id,
                    net_amount=p.net_amount,
                    attempt_count=p.attempt_count,
                    last_error=p.last_error,
                )
            )

        for p in uow.list_payouts_by_status(PayoutStatus.PENDING, limit=limit):
            touched = p.updated_at or p.created_at
            if touched > stale_after:
                continue
            summary["payout_stale"] += 1
            items.append(
                _item(
                    "payout_stale",
                    payout_id=p.id,
                    charge_id=p.source_charge_id,
                    provider_ref=p.provider_ref,
                    attempt_count=p.attempt_count,
                    updated_at=touched,
                )
            )

        for row in uow.list_completed_without_order(limit=limit):
            summary["completed_without_order"] += 1
            items.append(
                _item(
                    "completed_without_order",
                    charge_id=row["charge_id"],
                    gross_amount=row["gross_amount"],
                    updated_at=row.get("updated_at"),
                )
            )

        report_id = uow.save_reconcile_report(summary=summary, items=items)

    if summary["manual_refund_required"] or summary["completed_without_order"]:
        logger.error("reconcile report %s needs operator action: %s", report_id, summary)
    else:
        logger.info("reconcile report %s: %s", report_id, summary)

    return {"id": report_id, "run_at": run_at.isoformat(), "summary": summary, "items": items}
