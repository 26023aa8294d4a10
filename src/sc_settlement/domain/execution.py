"""Settlement/Execution Adapter — turn pooled lamports into an Order.

Allocations go to successful contributors only. Tokens and buy fees are
split by contributed amount with the largest-remainder method, so
    Σ tokens_allocated == token_amount  and  Σ fees_charged == fees
hold exactly.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from src.sc_common.enums import AllocationStatus, OrderStatus
from src.sc_common.errors import ExecutionFailedError, InvariantViolationError
from src.sc_common.id_generator import generate_id
from src.sc_common.lamports import apportion, lamports_to_display, price
from src.sc_settlement.domain.models import Allocation, Contribution, Order
from src.sc_settlement.domain.ports import Exchange

logger = logging.getLogger(__name__)


def build_allocations(
    order: Order, contributions: list[Contribution], new_id: Callable[[str], str] = generate_id
) -> list[Allocation]:
    weights = [c.amount for c in contributions]
    tokens = apportion(order.token_amount, weights)
    fees = apportion(order.fees, weights)
    allocations = [
        Allocation(
            id=new_id("alc_"),
            order_id=order.id,
            participant_id=c.participant_id,
            amount_contributed=c.amount,
            tokens_allocated=t,
            fees_charged=f,
            status=AllocationStatus.ACTIVE,
            created_at=order.created_at,
        )
        for c, t, f in zip(contributions, tokens, fees, strict=True)
    ]
    verify_allocations(order, allocations)
    return allocations


def verify_allocations(order: Order, allocations: list[Allocation]) -> None:
    token_sum = sum(a.tokens_allocated for a in allocations)
    fee_sum = sum(a.fees_charged for a in allocations)
    spent_sum = sum(a.amount_contributed for a in allocations)
    if token_sum != order.token_amount:
        raise InvariantViolationError(
            f"order {order.id}: allocated {token_sum} tokens of {order.token_amount}"
        )
    if fee_sum != order.fees:
        raise InvariantViolationError(f"order {order.id}: allocated {fee_sum} fees of {order.fees}")
    if spent_sum != order.total_amount_spent:
        raise InvariantViolationError(
            f"order {order.id}: contributions {spent_sum} != spent {order.total_amount_spent}"
        )


class ExecutionAdapter:
    def __init__(
        self,
        exchange: Exchange,
        source_asset: str,
        new_id: Callable[[str], str] = generate_id,
    ) -> None:
        self._exchange = exchange
        self._source_asset = source_asset
        self._new_id = new_id

    async def execute(
        self,
        *,
        group_id: str,
        proposal_id: str,
        pooled_amount: int,
        target_asset: str,
        contributions: list[Contribution],
        slippage_bps: int,
        now: datetime,
    ) -> tuple[Order, list[Allocation]]:
        """Swap the pooled source asset into `target_asset`.

        Raises NoRouteFoundError / ExecutionFailedError from the exchange, and
        ExecutionFailedError when the swap yields no tokens.
        """
        result = await self._exchange.swap(
            pooled_amount, self._source_asset, target_asset, slippage_bps
        )
        if result.amount_out <= 0:
            raise ExecutionFailedError(f"swap of {pooled_amount} lamports returned no tokens")

        order = Order(
            id=self._new_id("ord_"),
            group_id=group_id,
            proposal_id=proposal_id,
            asset=target_asset,
            token_amount=result.amount_out,
            total_amount_spent=pooled_amount,
            fees=result.fees_paid,
            bought_at_price=price(pooled_amount, result.amount_out),
            status=OrderStatus.COMPLETED,
            buy_signature=result.signature,
            created_at=now,
        )
        allocations = build_allocations(order, contributions, self._new_id)
        logger.info(
            "Order %s: %s -> %d %s (fees %s, %d allocations)",
            order.id,
            lamports_to_display(pooled_amount),
            order.token_amount,
            target_asset,
            lamports_to_display(order.fees),
            len(allocations),
        )
        return order, allocations
