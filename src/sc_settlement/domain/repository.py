"""Order / transfer repository Protocols — interface contract for persistence layer."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sc_settlement.domain.models import Allocation, Holding, Order, TransferAttempt


class OrderRepositoryProtocol(Protocol):
    async def save(self, order: Order, allocations: list[Allocation], db: AsyncSession) -> None: ...

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None: ...

    async def claim_for_sale(self, order_id: str, db: AsyncSession) -> Order | None: ...

    async def release_claim(self, order_id: str, db: AsyncSession) -> None: ...

    async def list_by_group(
        self, group_id: str, status: str | None, limit: int, db: AsyncSession
    ) -> list[Order]: ...

    async def list_allocations(self, order_id: str, db: AsyncSession) -> list[Allocation]: ...

    async def list_holdings(
        self, participant_id: str, limit: int, db: AsyncSession
    ) -> list[Holding]: ...

    async def mark_sold(self, order: Order, paid: list[Allocation], db: AsyncSession) -> None: ...


class TransferRepositoryProtocol(Protocol):
    async def append(self, attempts: list[TransferAttempt], db: AsyncSession) -> None: ...


class OrderDirectoryProtocol(Protocol):
    """Read side used outside a request-scoped DB session (session manager)."""

    async def get_order(self, order_id: str) -> Order | None: ...

    async def list_allocations(self, order_id: str) -> list[Allocation]: ...
