"""002: create groups and participant_wallets tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE groups (
            id              VARCHAR(64)     PRIMARY KEY,
            name            VARCHAR(128)    NOT NULL,
            owner_id        VARCHAR(64)     NOT NULL,
            admin_ids       VARCHAR(64)[]   NOT NULL DEFAULT '{}',
            pool_address    VARCHAR(64)     NOT NULL,
            relay_address   VARCHAR(64)     NOT NULL,
            wallet_address  VARCHAR(64)     NOT NULL,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            total_pnl       BIGINT          NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TRIGGER trg_groups_updated_at
            BEFORE UPDATE ON groups
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp()
    """)

    op.execute("""
        CREATE TABLE participant_wallets (
            participant_id  VARCHAR(64)     PRIMARY KEY,
            wallet_address  VARCHAR(64)     NOT NULL,
            total_pnl       BIGINT          NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_participant_wallets_address UNIQUE (wallet_address)
        )
    """)
    op.execute("""
        CREATE TRIGGER trg_participant_wallets_updated_at
            BEFORE UPDATE ON participant_wallets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp()
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS participant_wallets;")
    op.execute("DROP TABLE IF EXISTS groups;")
