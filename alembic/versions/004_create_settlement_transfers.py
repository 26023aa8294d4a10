"""004: create settlement_transfers table (append-only reconciliation log)

Revision ID: 004
Revises: 003
Create Date: 2026-10-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE settlement_transfers (
            id              BIGSERIAL       PRIMARY KEY,
            proposal_id     VARCHAR(32)     NOT NULL,
            direction       VARCHAR(10)     NOT NULL,
            participant_id  VARCHAR(64),
            amount          BIGINT          NOT NULL,
            from_address    VARCHAR(64),
            to_address      VARCHAR(64),
            status          VARCHAR(20)     NOT NULL,
            signature       VARCHAR(128),
            error           TEXT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_transfers_direction CHECK (direction IN ('COLLECT', 'DRAIN', 'PAYOUT')),
            CONSTRAINT ck_transfers_status    CHECK (status IN ('CONFIRMED', 'FAILED')),
            CONSTRAINT ck_transfers_outcome   CHECK (
                (status = 'CONFIRMED' AND error IS NULL) OR
                (status = 'FAILED' AND error IS NOT NULL)
            )
        )
    """)
    op.execute("CREATE INDEX idx_transfers_proposal ON settlement_transfers (proposal_id)")
    op.execute("""
        CREATE INDEX idx_transfers_failed ON settlement_transfers (created_at)
        WHERE status = 'FAILED'
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS settlement_transfers;")
