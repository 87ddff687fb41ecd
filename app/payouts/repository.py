



# app/payouts/repository.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from psycopg2.extensions import connection as PGConn
from psycopg2.extras import Json, RealDictCursor

from app.errors import DuplicateReconciliation
from app.payouts.model import Payout, PayoutStatus

PAYOUT_COLUMNS = """
  id, source_charge_id, order_id, seller_id, gross_amount, net_amount, fee_amount,
  beneficiary_key, beneficiary_key_kind, status, provider_ref, attempt_count,
  next_retry_at, last_error, provider_response, created_at, updated_at
"""


def insert_payout(conn: PGConn, payout: Payout) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.payouts (
              id, source_charge_id, order_id, seller_id,
              gross_amount, net_amount, fee_amount,
              beneficiary_key, beneficiary_key_kind, status,
              attempt_count, created_at, updated_at
            )
            VALUES (%s::uuid, %s::uuid, %s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s, 0, %s, now())
            ON CONFLICT (source_charge_id) DO NOTHING
            """,
            (
                payout.id,
                payout.source_charge_id,
                payout.order_id,
                payout.seller_id,
                payout.gross_amount,
                payout.net_amount,
                payout.fee_amount,
                payout.beneficiary_key,
                payout.beneficiary_key_kind.value,
                payout.status.value,
                payout.created_at,
            ),
        )
        if cur.rowcount != 1:
            raise DuplicateReconciliation(payout.source_charge_id)


# ==========================================================
# Claiming payouts for the retry worker
# ==========================================================

def claim_retryable_payouts(conn: PGConn, *, batch_size: int, lease_seconds: int) -> list[Payout]:
    """
    PENDING payouts never accepted by the provider (no provider_ref) and due for retry.
    """
    returning = ", ".join("p." + col.strip() for col in PAYOUT_COLUMNS.split(","))
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            WITH picked AS (
              SELECT p.id
              FROM app.payouts p
              WHERE p.status = 'PENDING'
                AND p.provider_ref IS NULL
                AND (p.next_retry_at IS NULL OR p.next_retry_at <= now())
              ORDER BY p.next_retry_at NULLS FIRST, p.created_at
              LIMIT %s
              FOR UPDATE SKIP LOCKED
            )
            UPDATE app.payouts p
            SET next_retry_at = now() + (%s || ' seconds')::interval
            FROM picked
            WHERE p.id = picked.id
            RETURNING {returning}
            """,
            (batch_size, lease_seconds),
        )
        return [Payout.from_row(dict(r)) for r in cur.fetchall()]


# ==========================================================
# Updates
# ==========================================================

def update_status(
    conn: PGConn,
    *,
    payout_id: str,
    new_status: PayoutStatus,
    from_status: PayoutStatus = PayoutStatus.PENDING,
    provider_ref: Optional[str] = None,
    provider_response: Optional[dict[str, Any]] = None,
    last_error: Optional[str] = None,
    attempt_count: Optional[int] = None,
    next_retry_at: Optional[datetime] = None,
) -> bool:
    resp = Json(provider_response) if provider_response is not None else None

    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.payouts
            SET
              status = %s,
              provider_ref = COALESCE(%s, provider_ref),
              provider_response = COALESCE(%s::jsonb, provider_response),
              last_error = %s,
              attempt_count = COALESCE(%s, attempt_count),
              next_retry_at = %s,
              updated_at = now()
            WHERE id = %s::uuid
              AND status = %s
            """,
            (
                new_status.value,
                provider_ref,
                resp,
                last_error,
                attempt_count,
                next_retry_at,
                payout_id,
                from_status.value,
            ),
        )
        return cur.rowcount == 1


# ==========================================================
# Reads
# ==========================================================

def get_payout(conn: PGConn, payout_id: str) -> Optional[Payout]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {PAYOUT_COLUMNS} FROM app.payouts WHERE id = %s::uuid", (payout_id,))
        row = cur.fetchone()
        return Payout.from_row(dict(row)) if row else None


def get_payout_by_order(conn: PGConn, order_id: str) -> Optional[Payout]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {PAYOUT_COLUMNS} FROM app.payouts WHERE order_id = %s::uuid", (order_id,))
        row = cur.fetchone()
        return Payout.from_row(dict(row)) if row else None


def get_payout_by_charge(conn: PGConn, charge_id: str) -> Optional[Payout]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {PAYOUT_COLUMNS} FROM app.payouts WHERE source_charge_id = %s::uuid", (charge_id,))
        row = cur.fetchone()
        return Payout.from_row(dict(row)) if row else None


def list_payouts_by_status(conn: PGConn, status: PayoutStatus, *, limit: int = 200) -> list[Payout]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {PAYOUT_COLUMNS}
            FROM app.payouts
            WHERE status = %s
            ORDER BY updated_at DESC
            LIMIT %s
            """,
            (status.value, limit),
        )
        return [Payout.from_row(dict(r)) for r in cur.fetchall()]
