"""Group / wallet repository Protocols — interface contract for persistence layer."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sc_group.domain.models import Group, ParticipantWallet


class GroupRepositoryProtocol(Protocol):
    async def get(self, group_id: str, db: AsyncSession) -> Group | None: ...

    async def set_active(self, group_id: str, is_active: bool, db: AsyncSession) -> None: ...

    async def recompute_total_pnl(self, group_id: str, db: AsyncSession) -> int: ...


class WalletRepositoryProtocol(Protocol):
    async def get(self, participant_id: str, db: AsyncSession) -> ParticipantWallet | None: ...

    async def get_addresses(
        self, participant_ids: list[str], db: AsyncSession
    ) -> dict[str, str]: ...

    async def recompute_total_pnl(self, participant_ids: list[str], db: AsyncSession) -> None: ...


class GroupDirectoryProtocol(Protocol):
    """Read side used outside a request-scoped DB session (session manager)."""

    async def get_group(self, group_id: str) -> Group | None: ...

    async def get_wallet_address(self, participant_id: str) -> str | None: ...
