"""Marketplace dispute tables

Revision ID: 001
Revises:
Create Date: 2026-10-17

Creates: marketplace_orders, marketplace_invoices, marketplace_disputes,
marketplace_dispute_evidence, marketplace_dispute_events,
marketplace_return_requests, dispute_number_counters
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    # ── 1. Orders and invoices (owned by the order workflow) ──────────────
    op.execute("""
        CREATE TABLE marketplace_orders (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_number VARCHAR(50) NOT NULL,

            buyer_id UUID NOT NULL,
            seller_id UUID NOT NULL,
            buyer_name VARCHAR(255),
            buyer_email VARCHAR(255),
            buyer_company VARCHAR(255),

            item_id UUID,
            item_name VARCHAR(500) NOT NULL,
            item_sku VARCHAR(100),
            quantity INTEGER NOT NULL,
            unit_price NUMERIC(15, 2) NOT NULL,
            total_price NUMERIC(15, 2) NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'USD',

            status VARCHAR(32) NOT NULL,
            delivered_at TIMESTAMPTZ,
            has_exception BOOLEAN NOT NULL DEFAULT FALSE,
            exception_type VARCHAR(50),

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_marketplace_orders_order_number UNIQUE (order_number)
        );
    """)
    op.execute("CREATE INDEX ix_marketplace_orders_buyer_id ON marketplace_orders (buyer_id);")
    op.execute("CREATE INDEX ix_marketplace_orders_seller_id ON marketplace_orders (seller_id);")

    op.execute("""
        CREATE TABLE marketplace_invoices (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            invoice_number VARCHAR(50) NOT NULL,
            order_id UUID NOT NULL REFERENCES marketplace_orders(id) ON DELETE CASCADE,
            seller_name VARCHAR(255),
            seller_company VARCHAR(255),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_marketplace_invoices_invoice_number UNIQUE (invoice_number),
            CONSTRAINT uq_marketplace_invoices_order_id UNIQUE (order_id)
        );
    """)

    # ── 2. Disputes ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE marketplace_disputes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            dispute_number VARCHAR(30) NOT NULL,

            -- Links
            order_id UUID NOT NULL REFERENCES marketplace_orders(id) ON DELETE CASCADE,
            invoice_id UUID REFERENCES marketplace_invoices(id) ON DELETE SET NULL,
            buyer_id UUID NOT NULL,
            seller_id UUID NOT NULL,

            -- Order / invoice snapshot
            order_number VARCHAR(50) NOT NULL,
            invoice_number VARCHAR(50),
            buyer_name VARCHAR(255) NOT NULL DEFAULT '',
            buyer_email VARCHAR(255),
            buyer_company VARCHAR(255),
            seller_name VARCHAR(255) NOT NULL DEFAULT '',
            seller_company VARCHAR(255),
            item_id UUID,
            item_name VARCHAR(500) NOT NULL,
            item_sku VARCHAR(100),
            quantity INTEGER NOT NULL,
            unit_price NUMERIC(15, 2) NOT NULL,
            total_price NUMERIC(15, 2) NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'USD',

            -- Case content
            reason VARCHAR(32) NOT NULL,
            description TEXT NOT NULL,
            requested_resolution VARCHAR(500),
            requested_amount NUMERIC(15, 2),

            -- Workflow
            status VARCHAR(32) NOT NULL DEFAULT 'open',
            priority_level VARCHAR(32) NOT NULL DEFAULT 'medium',
            response_deadline TIMESTAMPTZ NOT NULL,
            resolution_deadline TIMESTAMPTZ NOT NULL,
            is_escalated BOOLEAN NOT NULL DEFAULT FALSE,
            escalated_at TIMESTAMPTZ,
            escalation_reason TEXT,
            closed_at TIMESTAMPTZ,

            -- Seller response
            seller_response_type VARCHAR(32),
            seller_response TEXT,
            seller_proposed_resolution VARCHAR(500),
            seller_proposed_amount NUMERIC(15, 2),
            responded_at TIMESTAMPTZ,

            -- Resolution
            resolution VARCHAR(500),
            resolution_amount NUMERIC(15, 2),
            resolved_by VARCHAR(50),

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_marketplace_disputes_dispute_number UNIQUE (dispute_number)
        );
    """)
    op.execute("CREATE INDEX ix_marketplace_disputes_order_id ON marketplace_disputes (order_id);")
    op.execute("CREATE INDEX ix_marketplace_disputes_buyer_id ON marketplace_disputes (buyer_id);")
    op.execute("CREATE INDEX ix_marketplace_disputes_seller_id ON marketplace_disputes (seller_id);")
    op.execute("CREATE INDEX ix_marketplace_disputes_status ON marketplace_disputes (status);")
    # At most one active dispute per order
    op.execute("""
        CREATE UNIQUE INDEX uq_marketplace_disputes_active_order
          ON marketplace_disputes (order_id)
          WHERE status IN ('open', 'under_review', 'seller_responded', 'escalated');
    """)

    # ── 3. Evidence (insert-only) ─────────────────────────────────────────
    op.execute("""
        CREATE TABLE marketplace_dispute_evidence (
            position SERIAL PRIMARY KEY,
            dispute_id UUID NOT NULL REFERENCES marketplace_disputes(id) ON DELETE CASCADE,
            id VARCHAR(100) NOT NULL,
            name VARCHAR(255) NOT NULL,
            type VARCHAR(100) NOT NULL,
            url VARCHAR(2048) NOT NULL,
            uploaded_at VARCHAR(64) NOT NULL
        );
    """)
    op.execute(
        "CREATE INDEX ix_marketplace_dispute_evidence_dispute_id "
        "ON marketplace_dispute_evidence (dispute_id);"
    )

    # ── 4. Audit events (append-only) ─────────────────────────────────────
    op.execute("""
        CREATE TABLE marketplace_dispute_events (
            sequence SERIAL PRIMARY KEY,
            id UUID NOT NULL UNIQUE DEFAULT gen_random_uuid(),
            dispute_id UUID NOT NULL REFERENCES marketplace_disputes(id) ON DELETE CASCADE,
            event_type VARCHAR(50) NOT NULL,
            actor_id UUID,
            actor_type VARCHAR(32) NOT NULL,
            from_status VARCHAR(32),
            to_status VARCHAR(32),
            metadata JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_marketplace_dispute_events_dispute_id "
        "ON marketplace_dispute_events (dispute_id, created_at, sequence);"
    )

    # ── 5. Return requests (owned by the returns workflow) ────────────────
    op.execute("""
        CREATE TABLE marketplace_return_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            return_number VARCHAR(30) NOT NULL,
            dispute_id UUID REFERENCES marketplace_disputes(id) ON DELETE SET NULL,
            status VARCHAR(30) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_marketplace_return_requests_return_number UNIQUE (return_number),
            CONSTRAINT uq_marketplace_return_requests_dispute_id UNIQUE (dispute_id)
        );
    """)

    # ── 6. Dispute number counters ────────────────────────────────────────
    op.execute("""
        CREATE TABLE dispute_number_counters (
            year INTEGER PRIMARY KEY,
            last_value INTEGER NOT NULL
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS dispute_number_counters;")
    op.execute("DROP TABLE IF EXISTS marketplace_return_requests;")
    op.execute("DROP TABLE IF EXISTS marketplace_dispute_events;")
    op.execute("DROP TABLE IF EXISTS marketplace_dispute_evidence;")
    op.execute("DROP TABLE IF EXISTS marketplace_disputes;")
    op.execute("DROP TABLE IF EXISTS marketplace_invoices;")
    op.execute("DROP TABLE IF EXISTS marketplace_orders;")
