"""003: create orders and allocations tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                  VARCHAR(32)     PRIMARY KEY,
            group_id            VARCHAR(64)     NOT NULL REFERENCES groups(id),
            proposal_id         VARCHAR(32)     NOT NULL,
            asset               VARCHAR(64)     NOT NULL,
            token_amount        NUMERIC(39, 0)  NOT NULL,
            total_amount_spent  BIGINT          NOT NULL,
            fees                BIGINT          NOT NULL DEFAULT 0,
            bought_at_price     NUMERIC(38, 18) NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'COMPLETED',
            buy_signature       VARCHAR(128),
            sold_at_price       NUMERIC(38, 18),
            sol_received        BIGINT,
            sell_fees           BIGINT,
            sell_signature      VARCHAR(128),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            closed_at           TIMESTAMPTZ,
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_proposal_id        UNIQUE (proposal_id),
            CONSTRAINT ck_orders_status             CHECK (status IN ('COMPLETED', 'SELLING', 'SOLD')),
            CONSTRAINT ck_orders_token_amount       CHECK (token_amount > 0),
            CONSTRAINT ck_orders_spent              CHECK (total_amount_spent > 0),
            CONSTRAINT ck_orders_fees               CHECK (fees >= 0),
            CONSTRAINT ck_orders_sold_fields        CHECK (
                status IN ('COMPLETED', 'SELLING') OR
                (sold_at_price IS NOT NULL AND sol_received IS NOT NULL
                 AND sell_fees IS NOT NULL AND closed_at IS NOT NULL)
            )
        )
    """)
    op.execute("CREATE INDEX idx_orders_group_status ON orders (group_id, status)")
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp()
    """)

    op.execute("""
        CREATE TABLE allocations (
            id                  VARCHAR(32)     PRIMARY KEY,
            order_id            VARCHAR(32)     NOT NULL REFERENCES orders(id),
            participant_id      VARCHAR(64)     NOT NULL,
            amount_contributed  BIGINT          NOT NULL,
            tokens_allocated    NUMERIC(39, 0)  NOT NULL,
            fees_charged        BIGINT          NOT NULL DEFAULT 0,
            status              VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            proceeds_received   BIGINT,
            profit_loss         BIGINT,
            payout_signature    VARCHAR(128),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_allocations_order_participant UNIQUE (order_id, participant_id),
            CONSTRAINT ck_allocations_status    CHECK (status IN ('ACTIVE', 'SOLD')),
            CONSTRAINT ck_allocations_amount    CHECK (amount_contributed > 0),
            CONSTRAINT ck_allocations_tokens    CHECK (tokens_allocated >= 0),
            CONSTRAINT ck_allocations_sold_pnl  CHECK (
                status = 'ACTIVE' OR (proceeds_received IS NOT NULL AND profit_loss IS NOT NULL)
            )
        )
    """)
    op.execute("CREATE INDEX idx_allocations_participant ON allocations (participant_id, status)")
    op.execute("""
        CREATE TRIGGER trg_allocations_updated_at
            BEFORE UPDATE ON allocations
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp()
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS allocations;")
    op.execute("DROP TABLE IF EXISTS orders;")
