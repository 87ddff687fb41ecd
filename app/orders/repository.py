

# app/orders/repository.py
from __future__ import annotations

from typing import Optional

from psycopg2.extensions import connection as PGConn
from psycopg2.extras import Json, RealDictCursor

from app.errors import DuplicateReconciliation
from app.orders.model import Order

ORDER_COLUMNS = """
  id, buyer_id, seller_id, product_id, product_title, price, quantity,
  charge_id, status, shipping_address, created_at, delivered_at, purge_pending
"""


def insert_order(conn: PGConn, order: Order) -> None:
    """
    One order per charge. A conflict on charge_id means a second settlement
    got past the charge CAS, which must never happen.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.orders (
              id, buyer_id, seller_id, product_id, product_title, price, quantity,
              charge_id, status, shipping_address, created_at
            )
            VALUES (%s::uuid, %s::uuid, %s::uuid, %s::uuid, %s, %s, %s, %s::uuid, %s, %s, %s)
            ON CONFLICT (charge_id) DO NOTHING
            """,
            (
                order.id,
                order.buyer_id,
                order.seller_id,
                order.product_id,
                order.product_title,
                order.price,
                order.quantity,
                order.charge_id,
                order.status.value,
                Json(order.shipping_address) if order.shipping_address is not None else None,
                order.created_at,
            ),
        )
        if cur.rowcount != 1:
            raise DuplicateReconciliation(order.charge_id)


def get_order(conn: PGConn, order_id: str) -> Optional[Order]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {ORDER_COLUMNS} FROM app.orders WHERE id = %s::uuid", (order_id,))
        row = cur.fetchone()
        return Order.from_row(dict(row)) if row else None


def get_order_by_charge(conn: PGConn, charge_id: str) -> Optional[Order]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {ORDER_COLUMNS} FROM app.orders WHERE charge_id = %s::uuid", (charge_id,))
        row = cur.fetchone()
        return Order.from_row(dict(row)) if row else None


def list_orders(
    conn: PGConn,
    *,
    buyer_id: Optional[str] = None,
    seller_id: Optional[str] = None,
    limit: int = 50,
) -> list[Order]:
    if (buyer_id is None) == (seller_id is None):
        raise ValueError("exactly one of buyer_id / seller_id is required")

    column = "buyer_id" if buyer_id is not None else "seller_id"
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM app.orders
            WHERE {column} = %s::uuid
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (buyer_id or seller_id, limit),
        )
        return [Order.from_row(dict(r)) for r in cur.fetchall()]


def mark_delivered(conn: PGConn, order_id: str) -> bool:
    """
    PAID -> DELIVERED, leaving the chat purge owed. False when the order is not PAID.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.orders
            SET status = 'DELIVERED', delivered_at = now(), purge_pending = true
            WHERE id = %s::uuid
              AND status = 'PAID'
            """,
            (order_id,),
        )
        return cur.rowcount == 1


def clear_purge_pending(conn: PGConn, order_id: str) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE app.orders SET purge_pending = false WHERE id = %s::uuid AND purge_pending",
            (order_id,),
        )
        return cur.rowcount == 1
