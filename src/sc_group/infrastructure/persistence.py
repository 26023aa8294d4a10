"""GroupRepository / WalletRepository — raw SQL persistence implementation.

Group P&L is recomputed from SOLD orders on every call, in integer lamports:
    Σ (sol_received − total_amount_spent − fees − sell_fees)
which equals Σ (sold_at_price − bought_at_price) × token_amount − fees − sell_fees.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.sc_group.domain.models import Group, ParticipantWallet

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_GET_GROUP_SQL = text("""
    SELECT id, name, owner_id, admin_ids, pool_address, relay_address,
           wallet_address, is_active, total_pnl
    FROM groups WHERE id = :id
""")

_SET_ACTIVE_SQL = text("""
    UPDATE groups SET is_active = :is_active, updated_at = NOW()
    WHERE id = :id
""")

_RECOMPUTE_GROUP_PNL_SQL = text("""
    UPDATE groups
    SET total_pnl = COALESCE((
            SELECT SUM(sol_received - total_amount_spent - fees - sell_fees)
            FROM orders
            WHERE group_id = :id AND status = 'SOLD'
        ), 0),
        updated_at = NOW()
    WHERE id = :id
    RETURNING total_pnl
""")

_GET_WALLET_SQL = text("""
    SELECT participant_id, wallet_address, total_pnl
    FROM participant_wallets WHERE participant_id = :participant_id
""")

_GET_ADDRESSES_SQL = text("""
    SELECT participant_id, wallet_address
    FROM participant_wallets
    WHERE participant_id = ANY(:participant_ids)
""")

_RECOMPUTE_PARTICIPANT_PNL_SQL = text("""
    UPDATE participant_wallets w
    SET total_pnl = COALESCE((
            SELECT SUM(a.profit_loss)
            FROM allocations a
            WHERE a.participant_id = w.participant_id AND a.status = 'SOLD'
        ), 0),
        updated_at = NOW()
    WHERE w.participant_id = ANY(:participant_ids)
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_group(row: Any) -> Group:
    return Group(
        id=row.id,
        name=row.name,
        owner_id=row.owner_id,
        admin_ids=list(row.admin_ids or []),
        pool_address=row.pool_address,
        relay_address=row.relay_address,
        wallet_address=row.wallet_address,
        is_active=row.is_active,
        total_pnl=row.total_pnl,
    )


def _row_to_wallet(row: Any) -> ParticipantWallet:
    return ParticipantWallet(
        participant_id=row.participant_id,
        wallet_address=row.wallet_address,
        total_pnl=row.total_pnl,
    )


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class GroupRepository:
    """Concrete implementation of GroupRepositoryProtocol using raw SQL."""

    async def get(self, group_id: str, db: AsyncSession) -> Group | None:
        result = await db.execute(_GET_GROUP_SQL, {"id": group_id})
        row = result.fetchone()
        return _row_to_group(row) if row else None

    async def set_active(self, group_id: str, is_active: bool, db: AsyncSession) -> None:
        await db.execute(_SET_ACTIVE_SQL, {"id": group_id, "is_active": is_active})

    async def recompute_total_pnl(self, group_id: str, db: AsyncSession) -> int:
        result = await db.execute(_RECOMPUTE_GROUP_PNL_SQL, {"id": group_id})
        row = result.fetchone()
        return int(row.total_pnl) if row else 0


class WalletRepository:
    """Concrete implementation of WalletRepositoryProtocol using raw SQL."""

    async def get(self, participant_id: str, db: AsyncSession) -> ParticipantWallet | None:
        result = await db.execute(_GET_WALLET_SQL, {"participant_id": participant_id})
        row = result.fetchone()
        return _row_to_wallet(row) if row else None

    async def get_addresses(self, participant_ids: list[str], db: AsyncSession) -> dict[str, str]:
        if not participant_ids:
            return {}
        result = await db.execute(_GET_ADDRESSES_SQL, {"participant_ids": participant_ids})
        return {row.participant_id: row.wallet_address for row in result.fetchall()}

    async def recompute_total_pnl(self, participant_ids: list[str], db: AsyncSession) -> None:
        if not participant_ids:
            return
        await db.execute(_RECOMPUTE_PARTICIPANT_PNL_SQL, {"participant_ids": participant_ids})


class SqlGroupDirectory:
    """GroupDirectoryProtocol backed by short-lived DB sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        groups: GroupRepository | None = None,
        wallets: WalletRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._groups = groups or GroupRepository()
        self._wallets = wallets or WalletRepository()

    async def get_group(self, group_id: str) -> Group | None:
        async with self._session_factory() as db:
            return await self._groups.get(group_id, db)

    async def get_wallet_address(self, participant_id: str) -> str | None:
        async with self._session_factory() as db:
            wallet = await self._wallets.get(participant_id, db)
        return wallet.wallet_address if wallet else None
