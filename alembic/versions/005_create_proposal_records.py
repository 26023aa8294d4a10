"""005: create proposal_records and vote_records tables

Revision ID: 005
Revises: 004
Create Date: 2026-10-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE proposal_records (
            id                  VARCHAR(32)     PRIMARY KEY,
            session_id          VARCHAR(32)     NOT NULL,
            group_id            VARCHAR(64)     NOT NULL,
            kind                VARCHAR(10)     NOT NULL,
            text                VARCHAR(500)    NOT NULL,
            proposer_id         VARCHAR(64)     NOT NULL,
            duration_minutes    SMALLINT        NOT NULL,
            start_time          TIMESTAMPTZ     NOT NULL,
            end_time            TIMESTAMPTZ     NOT NULL,
            status              VARCHAR(20)     NOT NULL,
            yes_count           INT             NOT NULL DEFAULT 0,
            no_count            INT             NOT NULL DEFAULT 0,
            abstained_count     INT             NOT NULL DEFAULT 0,
            yes_amount          BIGINT          NOT NULL DEFAULT 0,
            target_asset        VARCHAR(64),
            target_amount       BIGINT,
            target_price        NUMERIC(38, 18),
            slippage_bps        INT,
            order_ref           VARCHAR(32),
            settlement_status   VARCHAR(20)     NOT NULL DEFAULT 'NONE',
            settled_order_id    VARCHAR(32),
            closed_at           TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_proposal_records_kind   CHECK (kind IN ('BUY', 'SELL')),
            CONSTRAINT ck_proposal_records_status CHECK (
                status IN ('APPROVED', 'REJECTED', 'DISCARDED')
            ),
            CONSTRAINT ck_proposal_records_settlement CHECK (
                settlement_status IN ('NONE', 'PENDING', 'SETTLED', 'UNSETTLED')
            )
        )
    """)
    op.execute("CREATE INDEX idx_proposal_records_group ON proposal_records (group_id, closed_at)")
    op.execute("""
        CREATE TRIGGER trg_proposal_records_updated_at
            BEFORE UPDATE ON proposal_records
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp()
    """)

    op.execute("""
        CREATE TABLE vote_records (
            proposal_id     VARCHAR(32)     NOT NULL REFERENCES proposal_records(id),
            participant_id  VARCHAR(64)     NOT NULL,
            choice          VARCHAR(3)      NOT NULL,
            amount          BIGINT          NOT NULL DEFAULT 0,
            cast_at         TIMESTAMPTZ,
            PRIMARY KEY (proposal_id, participant_id),
            CONSTRAINT ck_vote_records_choice CHECK (choice IN ('YES', 'NO')),
            CONSTRAINT ck_vote_records_amount CHECK (amount >= 0)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS vote_records;")
    op.execute("DROP TABLE IF EXISTS proposal_records;")
