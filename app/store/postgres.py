

# app/store/postgres.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from psycopg2.extensions import connection as PGConn
from psycopg2.extras import Json

from app.charges import repository as charges
from app.inventory import repository as inventory
from app.orders import repository as orders
from app.payouts import repository as payouts
from db import get_conn


class PostgresUnitOfWork:
    def __init__(self, conn: PGConn):
        self.conn = conn

    # products
    def insert_product(self, product):
        inventory.insert_product(self.conn, product)

    def get_product(self, product_id):
        return inventory.get_product(self.conn, product_id)

    def decrement_stock(self, product_id, quantity):
        return inventory.decrement_stock(self.conn, product_id=product_id, quantity=quantity)

    # charges
    def insert_charge(self, charge):
        charges.insert_charge(self.conn, charge)

    def get_charge(self, charge_id):
        return charges.get_charge(self.conn, charge_id)

    def claim_outstanding_charges(self, *, batch_size, lease_seconds):
        return charges.claim_outstanding_charges(self.conn, batch_size=batch_size, lease_seconds=lease_seconds)

    def transition_charge(self, charge_id, from_status, to_status, *, last_error=None):
        return charges.transition_status(
            self.conn,
            charge_id=charge_id,
            from_status=from_status,
            to_status=to_status,
            last_error=last_error,
        )

    def schedule_next_poll(self, charge_id, *, next_poll_at, last_error, count_attempt):
        return charges.schedule_next_poll(
            self.conn,
            charge_id=charge_id,
            next_poll_at=next_poll_at,
            last_error=last_error,
            count_attempt=count_attempt,
        )

    def flag_manual_refund(self, *, charge_id, buyer_id, product_id, gross_amount, quantity, reason):
        return charges.insert_manual_refund(
            self.conn,
            charge_id=charge_id,
            buyer_id=buyer_id,
            product_id=product_id,
            gross_amount=gross_amount,
            quantity=quantity,
            reason=reason,
        )

    def list_manual_refunds(self, *, limit=200):
        return charges.list_manual_refunds(self.conn, limit=limit)

    def list_completed_without_order(self, *, limit=200):
        return charges.list_completed_without_order(self.conn, limit=limit)

    # orders
    def insert_order(self, order):
        orders.insert_order(self.conn, order)

    def get_order(self, order_id):
        return orders.get_order(self.conn, order_id)

    def get_order_by_charge(self, charge_id):
        return orders.get_order_by_charge(self.conn, charge_id)

    def list_orders(self, *, buyer_id=None, seller_id=None, limit=50):
        return orders.list_orders(self.conn, buyer_id=buyer_id, seller_id=seller_id, limit=limit)

    def mark_order_delivered(self, order_id):
        return orders.mark_delivered(self.conn, order_id)

    def clear_purge_pending(self, order_id):
        return orders.clear_purge_pending(self.conn, order_id)

    # payouts
    def insert_payout(self, payout):
        payouts.insert_payout(self.conn, payout)

    def get_payout(self, payout_id):
        return payouts.get_payout(self.conn, payout_id)

    def get_payout_by_order(self, order_id):
        return payouts.get_payout_by_order(self.conn, order_id)

    def get_payout_by_charge(self, charge_id):
        return payouts.get_payout_by_charge(self.conn, charge_id)

    def claim_retryable_payouts(self, *, batch_size, lease_seconds):
        return payouts.claim_retryable_payouts(self.conn, batch_size=batch_size, lease_seconds=lease_seconds)

    def update_payout(self, payout_id, **kwargs):
        return payouts.update_status(self.conn, payout_id=payout_id, **kwargs)

    def list_payouts_by_status(self, status, *, limit=200):
        return payouts.list_payouts_by_status(self.conn, status, limit=limit)

    # reports
    def save_reconcile_report(self, *, summary, items):
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO app.reconcile_reports (summary, items)
                VALUES (%s::jsonb, %s::jsonb)
                RETURNING id::text
                """,
                (Json(summary), Json(items)),
            )
            return cur.fetchone()[0]


class PostgresStore:
    @contextmanager
    def unit_of_work(self) -> Iterator[PostgresUnitOfWork]:
        # get_conn commits on success, rolls back on error
        with get_conn() as conn:
            yield PostgresUnitOfWork(conn)
