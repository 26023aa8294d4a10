"""OrderRepository / TransferRepository — raw SQL persistence implementation.

Token quantities live in NUMERIC(39,0) columns and come back as Decimal;
the row mappers convert them to int.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.sc_common.enums import AllocationStatus, OrderStatus
from src.sc_common.errors import InvariantViolationError
from src.sc_settlement.domain.models import Allocation, Holding, Order, TransferAttempt

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, group_id, proposal_id, asset, token_amount,
        total_amount_spent, fees, bought_at_price, status, buy_signature, created_at)
    VALUES (:id, :group_id, :proposal_id, :asset, :token_amount,
        :total_amount_spent, :fees, :bought_at_price, :status, :buy_signature, :created_at)
""")

_INSERT_ALLOCATION_SQL = text("""
    INSERT INTO allocations (id, order_id, participant_id, amount_contributed,
        tokens_allocated, fees_charged, status)
    VALUES (:id, :order_id, :participant_id, :amount_contributed,
        :tokens_allocated, :fees_charged, :status)
""")

_ORDER_COLUMNS = """
    id, group_id, proposal_id, asset, token_amount, total_amount_spent, fees,
    bought_at_price, status, buy_signature, sold_at_price, sol_received,
    sell_fees, sell_signature, created_at, closed_at
"""

_GET_ORDER_BY_ID_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM orders WHERE id = :id
""")

_CLAIM_ORDER_FOR_SALE_SQL = text(f"""
    UPDATE orders
    SET status = 'SELLING', updated_at = NOW()
    WHERE id = :id AND status = 'COMPLETED'
    RETURNING {_ORDER_COLUMNS}
""")

_RELEASE_ORDER_CLAIM_SQL = text("""
    UPDATE orders
    SET status = 'COMPLETED', updated_at = NOW()
    WHERE id = :id AND status = 'SELLING'
""")

_LIST_ORDERS_BY_GROUP_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM orders
    WHERE group_id = :group_id
      AND (CAST(:status AS TEXT) IS NULL OR status = :status)
    ORDER BY created_at DESC
    LIMIT :limit
""")

_LIST_ALLOCATIONS_SQL = text("""
    SELECT id, order_id, participant_id, amount_contributed, tokens_allocated,
           fees_charged, status, proceeds_received, profit_loss, payout_signature, created_at
    FROM allocations
    WHERE order_id = :order_id
    ORDER BY created_at ASC, id ASC
""")

_LIST_PARTICIPANT_HOLDINGS_SQL = text("""
    SELECT a.id, a.order_id, a.participant_id, a.amount_contributed, a.tokens_allocated,
           a.fees_charged, a.status, a.proceeds_received, a.profit_loss,
           a.payout_signature, a.created_at, o.group_id, o.asset
    FROM allocations a
    JOIN orders o ON o.id = a.order_id
    WHERE a.participant_id = :participant_id
    ORDER BY a.created_at DESC, a.id DESC
    LIMIT :limit
""")

_MARK_ORDER_SOLD_SQL = text("""
    UPDATE orders
    SET status = 'SOLD', sold_at_price = :sold_at_price, sol_received = :sol_received,
        sell_fees = :sell_fees, sell_signature = :sell_signature,
        closed_at = :closed_at, updated_at = NOW()
    WHERE id = :id AND status = 'SELLING'
""")

_MARK_ALLOCATION_SOLD_SQL = text("""
    UPDATE allocations
    SET status = 'SOLD', proceeds_received = :proceeds_received,
        profit_loss = :profit_loss, payout_signature = :payout_signature,
        updated_at = NOW()
    WHERE id = :id AND status = 'ACTIVE'
""")

_INSERT_TRANSFER_SQL = text("""
    INSERT INTO settlement_transfers (proposal_id, direction, participant_id, amount,
        from_address, to_address, status, signature, error)
    VALUES (:proposal_id, :direction, :participant_id, :amount,
        :from_address, :to_address, :status, :signature, :error)
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _to_int(value: Decimal | int | None) -> int | None:
    return int(value) if value is not None else None


def _row_to_order(row: Any) -> Order:
    return Order(
        id=row.id,
        group_id=row.group_id,
        proposal_id=row.proposal_id,
        asset=row.asset,
        token_amount=int(row.token_amount),
        total_amount_spent=row.total_amount_spent,
        fees=row.fees,
        bought_at_price=row.bought_at_price,
        status=OrderStatus(row.status),
        buy_signature=row.buy_signature,
        sold_at_price=row.sold_at_price,
        sol_received=row.sol_received,
        sell_fees=row.sell_fees,
        sell_signature=row.sell_signature,
        created_at=row.created_at,
        closed_at=row.closed_at,
    )


def _row_to_allocation(row: Any) -> Allocation:
    return Allocation(
        id=row.id,
        order_id=row.order_id,
        participant_id=row.participant_id,
        amount_contributed=row.amount_contributed,
        tokens_allocated=int(row.tokens_allocated),
        fees_charged=row.fees_charged,
        status=AllocationStatus(row.status),
        proceeds_received=_to_int(row.proceeds_received),
        profit_loss=_to_int(row.profit_loss),
        payout_signature=row.payout_signature,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def save(self, order: Order, allocations: list[Allocation], db: AsyncSession) -> None:
        """Insert the order and its allocations. The caller owns the transaction."""
        await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "group_id": order.group_id,
                "proposal_id": order.proposal_id,
                "asset": order.asset,
                "token_amount": order.token_amount,
                "total_amount_spent": order.total_amount_spent,
                "fees": order.fees,
                "bought_at_price": order.bought_at_price,
                "status": order.status.value,
                "buy_signature": order.buy_signature,
                "created_at": order.created_at,
            },
        )
        for allocation in allocations:
            await db.execute(
                _INSERT_ALLOCATION_SQL,
                {
                    "id": allocation.id,
                    "order_id": allocation.order_id,
                    "participant_id": allocation.participant_id,
                    "amount_contributed": allocation.amount_contributed,
                    "tokens_allocated": allocation.tokens_allocated,
                    "fees_charged": allocation.fees_charged,
                    "status": allocation.status.value,
                },
            )

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None:
        result = await db.execute(_GET_ORDER_BY_ID_SQL, {"id": order_id})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def claim_for_sale(self, order_id: str, db: AsyncSession) -> Order | None:
        """COMPLETED -> SELLING in one statement. None if missing or already claimed/sold."""
        result = await db.execute(_CLAIM_ORDER_FOR_SALE_SQL, {"id": order_id})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def release_claim(self, order_id: str, db: AsyncSession) -> None:
        await db.execute(_RELEASE_ORDER_CLAIM_SQL, {"id": order_id})

    async def list_by_group(
        self, group_id: str, status: str | None, limit: int, db: AsyncSession
    ) -> list[Order]:
        result = await db.execute(
            _LIST_ORDERS_BY_GROUP_SQL, {"group_id": group_id, "status": status, "limit": limit}
        )
        return [_row_to_order(row) for row in result.fetchall()]

    async def list_allocations(self, order_id: str, db: AsyncSession) -> list[Allocation]:
        result = await db.execute(_LIST_ALLOCATIONS_SQL, {"order_id": order_id})
        return [_row_to_allocation(row) for row in result.fetchall()]

    async def list_holdings(
        self, participant_id: str, limit: int, db: AsyncSession
    ) -> list[Holding]:
        """A participant's allocations across orders, newest first."""
        result = await db.execute(
            _LIST_PARTICIPANT_HOLDINGS_SQL, {"participant_id": participant_id, "limit": limit}
        )
        return [
            Holding(allocation=_row_to_allocation(row), group_id=row.group_id, asset=row.asset)
            for row in result.fetchall()
        ]

    async def mark_sold(self, order: Order, paid: list[Allocation], db: AsyncSession) -> None:
        result = await db.execute(
            _MARK_ORDER_SOLD_SQL,
            {
                "id": order.id,
                "sold_at_price": order.sold_at_price,
                "sol_received": order.sol_received,
                "sell_fees": order.sell_fees,
                "sell_signature": order.sell_signature,
                "closed_at": order.closed_at,
            },
        )
        if result.rowcount == 0:
            raise InvariantViolationError(f"order {order.id} was not claimed for sale")
        for allocation in paid:
            await db.execute(
                _MARK_ALLOCATION_SOLD_SQL,
                {
                    "id": allocation.id,
                    "proceeds_received": allocation.proceeds_received,
                    "profit_loss": allocation.profit_loss,
                    "payout_signature": allocation.payout_signature,
                },
            )


class TransferRepository:
    """Append-only settlement_transfers writer."""

    async def append(self, attempts: list[TransferAttempt], db: AsyncSession) -> None:
        for attempt in attempts:
            await db.execute(
                _INSERT_TRANSFER_SQL,
                {
                    "proposal_id": attempt.proposal_id,
                    "direction": attempt.direction.value,
                    "participant_id": attempt.participant_id,
                    "amount": attempt.amount,
                    "from_address": attempt.from_address,
                    "to_address": attempt.to_address,
                    "status": attempt.status.value,
                    "signature": attempt.signature,
                    "error": attempt.error,
                },
            )


class SqlOrderDirectory:
    """Order lookups for the session manager, on short-lived DB sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        orders: OrderRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._orders = orders or OrderRepository()

    async def get_order(self, order_id: str) -> Order | None:
        async with self._session_factory() as db:
            return await self._orders.get_by_id(order_id, db)

    async def list_allocations(self, order_id: str) -> list[Allocation]:
        async with self._session_factory() as db:
            return await self._orders.list_allocations(order_id, db)
