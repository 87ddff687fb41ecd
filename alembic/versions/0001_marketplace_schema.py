"""marketplace schema: products, charges, orders, payouts

Revision ID: 0001_marketplace_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_marketplace_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.products (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          seller_id uuid NOT NULL,
          title text NOT NULL,
          description text NOT NULL DEFAULT '',
          price numeric(12,2) NOT NULL CHECK (price > 0),
          quantity integer NOT NULL DEFAULT 1 CHECK (quantity >= 0),
          city text NOT NULL DEFAULT 'Não informado',
          delivery_method text NOT NULL DEFAULT 'pickup',
          beneficiary_key text NOT NULL DEFAULT '',
          beneficiary_key_kind text NOT NULL
            CHECK (beneficiary_key_kind IN ('EMAIL', 'CPF', 'CNPJ', 'PHONE', 'RANDOM')),
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_products_seller ON app.products (seller_id);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.charges (
          id uuid PRIMARY KEY,
          buyer_id uuid NOT NULL,
          seller_id uuid NOT NULL,
          product_id uuid NOT NULL REFERENCES app.products(id),
          product_title text NOT NULL DEFAULT '',
          quantity integer NOT NULL CHECK (quantity > 0),
          gross_amount numeric(12,2) NOT NULL CHECK (gross_amount > 0),
          status text NOT NULL CHECK (status IN ('PENDING', 'ACTIVE', 'COMPLETED', 'FAILED')),
          description text NOT NULL DEFAULT '',
          shipping_address jsonb NULL,
          external_id text NULL UNIQUE,
          provider_transaction_id text NULL,
          qrcode_url text NULL,
          copy_paste text NULL,
          poll_attempts integer NOT NULL DEFAULT 0,
          next_poll_at timestamptz NULL,
          last_error text NULL,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NULL
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_charges_outstanding
        ON app.charges (next_poll_at, created_at)
        WHERE status IN ('PENDING', 'ACTIVE');
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_charges_buyer ON app.charges (buyer_id, created_at DESC);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.orders (
          id uuid PRIMARY KEY,
          buyer_id uuid NOT NULL,
          seller_id uuid NOT NULL,
          product_id uuid NOT NULL REFERENCES app.products(id),
          product_title text NOT NULL DEFAULT '',
          price numeric(12,2) NOT NULL CHECK (price > 0),
          quantity integer NOT NULL CHECK (quantity > 0),
          charge_id uuid NOT NULL REFERENCES app.charges(id),
          status text NOT NULL CHECK (status IN ('PAID', 'DELIVERED')),
          shipping_address jsonb NULL,
          created_at timestamptz NOT NULL DEFAULT now(),
          delivered_at timestamptz NULL,
          CONSTRAINT uq_orders_charge UNIQUE (charge_id)
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_orders_buyer ON app.orders (buyer_id, created_at DESC);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_orders_seller ON app.orders (seller_id, created_at DESC);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payouts (
          id uuid PRIMARY KEY,
          source_charge_id uuid NOT NULL REFERENCES app.charges(id),
          order_id uuid NOT NULL REFERENCES app.orders(id),
          seller_id uuid NOT NULL,
          gross_amount numeric(12,2) NOT NULL CHECK (gross_amount > 0),
          net_amount numeric(12,2) NOT NULL CHECK (net_amount > 0),
          fee_amount numeric(12,2) NOT NULL CHECK (fee_amount >= 0),
          beneficiary_key text NOT NULL,
          beneficiary_key_kind text NOT NULL,
          status text NOT NULL CHECK (status IN ('PENDING', 'COMPLETED', 'FAILED')),
          provider_ref text NULL,
          attempt_count integer NOT NULL DEFAULT 0,
          next_retry_at timestamptz NULL,
          last_error text NULL,
          provider_response jsonb NULL,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NULL,
          CONSTRAINT uq_payouts_source_charge UNIQUE (source_charge_id),
          CONSTRAINT ck_payouts_completed_has_ref CHECK (status <> 'COMPLETED' OR provider_ref IS NOT NULL)
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_payouts_retryable
        ON app.payouts (next_retry_at, created_at)
        WHERE status = 'PENDING' AND provider_ref IS NULL;
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_payouts_order ON app.payouts (order_id);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.manual_refunds (
          charge_id uuid PRIMARY KEY REFERENCES app.charges(id),
          buyer_id uuid NOT NULL,
          product_id uuid NOT NULL,
          gross_amount numeric(12,2) NOT NULL,
          quantity integer NOT NULL,
          reason text NOT NULL,
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    # Chat rows owned by the messaging collaborator; the core only purges by order
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.messages (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          order_id uuid NOT NULL,
          sender_id uuid NOT NULL,
          content text NOT NULL,
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_messages_order ON app.messages (order_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.messages;")
    op.execute("DROP TABLE IF EXISTS app.manual_refunds;")
    op.execute("DROP TABLE IF EXISTS app.payouts;")
    op.execute("DROP TABLE IF EXISTS app.orders;")
    op.execute("DROP TABLE IF EXISTS app.charges;")
    op.execute("DROP TABLE IF EXISTS app.products;")
