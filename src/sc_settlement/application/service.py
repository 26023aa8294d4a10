"""Settlement reporting service — read-only views over orders and allocations."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.sc_common.enums import AllocationStatus, OrderStatus
from src.sc_common.errors import (
    GroupNotFoundError,
    OrderNotFoundError,
    ParticipantNotFoundError,
)
from src.sc_common.lamports import lamports_to_display
from src.sc_group.infrastructure.persistence import GroupRepository, WalletRepository
from src.sc_settlement.application.schemas import (
    AllocationListResponse,
    AllocationResponse,
    GroupPnlResponse,
    HoldingResponse,
    OrderListResponse,
    OrderResponse,
    ParticipantAllocationsResponse,
)
from src.sc_settlement.domain.models import Allocation, Holding, Order
from src.sc_settlement.infrastructure.persistence import OrderRepository

_GROUP_ORDERS_LIMIT = 100
_PARTICIPANT_HOLDINGS_LIMIT = 200


def _order_to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        group_id=order.group_id,
        proposal_id=order.proposal_id,
        asset=order.asset,
        status=order.status.value,
        token_amount=order.token_amount,
        total_amount_spent=order.total_amount_spent,
        fees=order.fees,
        bought_at_price=str(order.bought_at_price),
        sold_at_price=str(order.sold_at_price) if order.sold_at_price is not None else None,
        sol_received=order.sol_received,
        sell_fees=order.sell_fees,
        profit_loss=order.profit_loss,
        created_at=order.created_at,
        closed_at=order.closed_at,
    )


def _allocation_to_response(allocation: Allocation) -> AllocationResponse:
    return AllocationResponse(
        id=allocation.id,
        order_id=allocation.order_id,
        participant_id=allocation.participant_id,
        status=allocation.status.value,
        amount_contributed=allocation.amount_contributed,
        tokens_allocated=allocation.tokens_allocated,
        fees_charged=allocation.fees_charged,
        proceeds_received=allocation.proceeds_received,
        profit_loss=allocation.profit_loss,
    )


def _holding_to_response(holding: Holding) -> HoldingResponse:
    return HoldingResponse(
        **_allocation_to_response(holding.allocation).model_dump(),
        group_id=holding.group_id,
        asset=holding.asset,
    )


class ReportingApplicationService:
    def __init__(
        self,
        orders: OrderRepository | None = None,
        groups: GroupRepository | None = None,
        wallets: WalletRepository | None = None,
    ) -> None:
        self._orders = orders or OrderRepository()
        self._groups = groups or GroupRepository()
        self._wallets = wallets or WalletRepository()

    async def get_order(self, db: AsyncSession, order_id: str) -> OrderResponse:
        order = await self._orders.get_by_id(order_id, db)
        if order is None:
            raise OrderNotFoundError(order_id)
        return _order_to_response(order)

    async def list_allocations(self, db: AsyncSession, order_id: str) -> AllocationListResponse:
        if await self._orders.get_by_id(order_id, db) is None:
            raise OrderNotFoundError(order_id)
        allocations = await self._orders.list_allocations(order_id, db)
        return AllocationListResponse(
            order_id=order_id, items=[_allocation_to_response(a) for a in allocations]
        )

    async def list_group_orders(
        self, db: AsyncSession, group_id: str, status: str | None
    ) -> OrderListResponse:
        orders = await self._orders.list_by_group(group_id, status, _GROUP_ORDERS_LIMIT, db)
        return OrderListResponse(items=[_order_to_response(o) for o in orders])

    async def get_group_pnl(self, db: AsyncSession, group_id: str) -> GroupPnlResponse:
        group = await self._groups.get(group_id, db)
        if group is None:
            raise GroupNotFoundError(group_id)
        orders = await self._orders.list_by_group(group_id, None, _GROUP_ORDERS_LIMIT, db)
        return GroupPnlResponse(
            group_id=group_id,
            total_pnl=group.total_pnl,
            total_pnl_display=lamports_to_display(group.total_pnl),
            sold_orders=sum(1 for o in orders if o.status == OrderStatus.SOLD),
            open_orders=sum(1 for o in orders if o.status != OrderStatus.SOLD),
        )

    async def get_participant_allocations(
        self, db: AsyncSession, participant_id: str
    ) -> ParticipantAllocationsResponse:
        wallet = await self._wallets.get(participant_id, db)
        holdings = await self._orders.list_holdings(
            participant_id, _PARTICIPANT_HOLDINGS_LIMIT, db
        )
        if wallet is None and not holdings:
            raise ParticipantNotFoundError(participant_id)

        allocations = [h.allocation for h in holdings]
        realized = sum(
            a.profit_loss or 0 for a in allocations if a.status == AllocationStatus.SOLD
        )
        total_pnl = wallet.total_pnl if wallet is not None else realized
        return ParticipantAllocationsResponse(
            participant_id=participant_id,
            items=[_holding_to_response(h) for h in holdings],
            total_invested=sum(a.cost_basis for a in allocations),
            active_tokens=sum(
                a.tokens_allocated for a in allocations if a.status == AllocationStatus.ACTIVE
            ),
            realized_pnl=realized,
            total_pnl=total_pnl,
            total_pnl_display=lamports_to_display(total_pnl),
        )
