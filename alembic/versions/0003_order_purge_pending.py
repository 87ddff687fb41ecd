"""orders.purge_pending: chat purge owed after delivery

Revision ID: 0003_order_purge_pending
Revises: 0002_add_reconcile_reports
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0003_order_purge_pending"
down_revision = "0002_add_reconcile_reports"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("ALTER TABLE app.orders ADD COLUMN IF NOT EXISTS purge_pending boolean NOT NULL DEFAULT false;")
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_orders_purge_pending ON app.orders (id) WHERE purge_pending;"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS app.ix_orders_purge_pending;")
    op.execute("ALTER TABLE app.orders DROP COLUMN IF EXISTS purge_pending;")
