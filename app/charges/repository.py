

# app/charges/repository.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from psycopg2.extensions import connection as PGConn
from psycopg2.extras import Json, RealDictCursor

from app.charges.model import Charge, ChargeStatus

CHARGE_COLUMNS = """
  id, buyer_id, seller_id, product_id, product_title, quantity,
  gross_amount, status, description, shipping_address,
  external_id, provider_transaction_id, qrcode_url, copy_paste,
  poll_attempts, next_poll_at, last_error, created_at, updated_at
"""


def insert_charge(conn: PGConn, charge: Charge) -> None:
    """
    NOTE: caller commits.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.charges (
              id, buyer_id, seller_id, product_id, product_title, quantity,
              gross_amount, status, description, shipping_address,
              external_id, provider_transaction_id, qrcode_url, copy_paste,
              poll_attempts, next_poll_at, created_at, updated_at
            )
            VALUES (
              %(id)s, %(buyer_id)s, %(seller_id)s, %(product_id)s, %(product_title)s, %(quantity)s,
              %(gross_amount)s, %(status)s, %(description)s, %(shipping_address)s,
              %(external_id)s, %(provider_transaction_id)s, %(qrcode_url)s, %(copy_paste)s,
              0, NULL, %(created_at)s, now()
            )
            """,
            {
                "id": charge.id,
                "buyer_id": charge.buyer_id,
                "seller_id": charge.seller_id,
                "product_id": charge.product_id,
                "product_title": charge.product_title,
                "quantity": charge.quantity,
                "gross_amount": charge.gross_amount,
                "status": charge.status.value,
                "description": charge.description,
                "shipping_address": Json(charge.shipping_address) if charge.shipping_address is not None else None,
                "external_id": charge.external_id,
                "provider_transaction_id": charge.provider_transaction_id,
                "qrcode_url": charge.qrcode_url,
                "copy_paste": charge.copy_paste,
                "created_at": charge.created_at,
            },
        )


def get_charge(conn: PGConn, charge_id: str) -> Optional[Charge]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"SELECT {CHARGE_COLUMNS} FROM app.charges WHERE id = %s::uuid",
            (charge_id,),
        )
        row = cur.fetchone()
        return Charge.from_row(dict(row)) if row else None


# ==========================================================
# Claiming outstanding charges for the reconciliation loop
# ==========================================================

def claim_outstanding_charges(conn: PGConn, *, batch_size: int, lease_seconds: int) -> list[Charge]:
    """
    Lease due PENDING/ACTIVE charges in one statement.

    The lease only pushes next_poll_at forward so parallel workers mostly
    poll different rows; correctness never depends on it (the status CAS does).
    """
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            WITH picked AS (
              SELECT c.id
              FROM app.charges c
              WHERE c.status IN ('PENDING', 'ACTIVE')
                AND (c.next_poll_at IS NULL OR c.next_poll_at <= now())
              ORDER BY c.next_poll_at NULLS FIRST, c.created_at
              LIMIT %s
              FOR UPDATE SKIP LOCKED
            )
            UPDATE app.charges c
            SET next_poll_at = now() + (%s || ' seconds')::interval
            FROM picked
            WHERE c.id = picked.id
            RETURNING {", ".join("c." + col.strip() for col in CHARGE_COLUMNS.split(","))}
            """,
            (batch_size, lease_seconds),
        )
        return [Charge.from_row(dict(r)) for r in cur.fetchall()]


# ==========================================================
# Updates
# ==========================================================

def transition_status(
    conn: PGConn,
    *,
    charge_id: str,
    from_status: ChargeStatus,
    to_status: ChargeStatus,
    last_error: Optional[str] = None,
) -> bool:
    """
    Compare-and-set on status. True only for the caller whose UPDATE hit the row.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.charges
            SET
              status = %s,
              last_error = COALESCE(%s, last_error),
              next_poll_at = NULL,
              updated_at = now()
            WHERE id = %s::uuid
              AND status = %s
            """,
            (to_status.value, last_error, charge_id, from_status.value),
        )
        return cur.rowcount == 1


def schedule_next_poll(
    conn: PGConn,
    *,
    charge_id: str,
    next_poll_at: datetime,
    last_error: Optional[str],
    count_attempt: bool,
) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.charges
            SET
              next_poll_at = %s,
              last_error = %s,
              poll_attempts = poll_attempts + CASE WHEN %s THEN 1 ELSE 0 END,
              updated_at = now()
            WHERE id = %s::uuid
              AND status IN ('PENDING', 'ACTIVE')
            """,
            (next_poll_at, last_error, count_attempt, charge_id),
        )
        return cur.rowcount == 1


# ==========================================================
# Manual refund flags
# ==========================================================

def insert_manual_refund(
    conn: PGConn,
    *,
    charge_id: str,
    buyer_id: str,
    product_id: str,
    gross_amount: Decimal,
    quantity: int,
    reason: str,
) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.manual_refunds (charge_id, buyer_id, product_id, gross_amount, quantity, reason)
            VALUES (%s::uuid, %s::uuid, %s::uuid, %s, %s, %s)
            ON CONFLICT (charge_id) DO NOTHING
            """,
            (charge_id, buyer_id, product_id, gross_amount, quantity, reason),
        )
        return cur.rowcount == 1


def list_manual_refunds(conn: PGConn, *, limit: int = 200) -> list[dict[str, Any]]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT charge_id::text, buyer_id::text, product_id::text,
                   gross_amount, quantity, reason, created_at
            FROM app.manual_refunds
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (limit,),
        )
        return [dict(r) for r in cur.fetchall()]


def list_completed_without_order(conn: PGConn, *, limit: int = 200) -> list[dict[str, Any]]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT c.id::text AS charge_id, c.gross_amount, c.updated_at
            FROM app.charges c
            WHERE c.status = 'COMPLETED'
              AND NOT EXISTS (SELECT 1 FROM app.orders o WHERE o.charge_id = c.id)
              AND NOT EXISTS (SELECT 1 FROM app.manual_refunds r WHERE r.charge_id = c.id)
            ORDER BY c.updated_at
            LIMIT %s
            """,
            (limit,),
        )
        return [dict(r) for r in cur.fetchall()]
