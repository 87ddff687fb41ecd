"""add reconcile reports table

Revision ID: 0002_add_reconcile_reports
Revises: 0001_marketplace_schema
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0002_add_reconcile_reports"
down_revision = "0001_marketplace_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.reconcile_reports (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          run_at timestamptz NOT NULL DEFAULT now(),
          summary jsonb NOT NULL,
          items jsonb NOT NULL
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_reconcile_reports_run_at ON app.reconcile_reports (run_at DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.reconcile_reports;")
