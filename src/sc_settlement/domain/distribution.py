"""Distribution Pipeline — sell an Order and pay out the proceeds.

1. Swap the whole position back to the source asset. The Order must already
   be claimed (SELLING); it becomes SOLD.
2. Split net proceeds by tokens_allocated (largest remainder) and pay each
   ACTIVE allocation concurrently from the group wallet. Failures are
   isolated per participant; a failed payout leaves its allocation ACTIVE.

Per allocation:  profit_loss = proceeds − (amount_contributed + fees_charged)
Summed over a fully paid order this equals the order P&L
    sol_received − total_amount_spent − fees − sell_fees.
"""

import asyncio
import logging
from datetime import datetime

from src.sc_common.enums import (
    AllocationStatus,
    OrderStatus,
    TransferDirection,
    TransferStatus,
)
from src.sc_common.errors import ExecutionFailedError, TransferFailedError
from src.sc_common.lamports import apportion, lamports_to_display, price
from src.sc_settlement.domain.models import Allocation, DistributionResult, Order, TransferAttempt
from src.sc_settlement.domain.ports import Exchange, Ledger

logger = logging.getLogger(__name__)


class DistributionPipeline:
    def __init__(
        self, exchange: Exchange, ledger: Ledger, source_asset: str, concurrency: int
    ) -> None:
        self._exchange = exchange
        self._ledger = ledger
        self._source_asset = source_asset
        self._concurrency = max(concurrency, 1)

    async def sell(self, order: Order, slippage_bps: int, now: datetime) -> int:
        """Swap a claimed order's tokens back; mutate the order to SOLD. Returns net proceeds.

        Once the swap has gone through, order.sell_signature is set even if the
        proceeds turn out to be unusable, so the caller knows the tokens moved.
        """
        if order.status != OrderStatus.SELLING:
            raise ExecutionFailedError(f"order {order.id} is {order.status.value}, not SELLING")

        result = await self._exchange.swap(
            order.token_amount, order.asset, self._source_asset, slippage_bps
        )
        order.sell_signature = result.signature
        net_proceeds = result.amount_out - result.fees_paid
        if net_proceeds <= 0:
            raise ExecutionFailedError(
                f"sell of order {order.id} yields no proceeds "
                f"({result.amount_out} out, {result.fees_paid} fees)"
            )

        order.status = OrderStatus.SOLD
        order.sold_at_price = price(result.amount_out, order.token_amount)
        order.sol_received = result.amount_out
        order.sell_fees = result.fees_paid
        order.closed_at = now
        logger.info(
            "Order %s sold: %d tokens -> %s net",
            order.id,
            order.token_amount,
            lamports_to_display(net_proceeds),
        )
        return net_proceeds

    async def distribute(
        self,
        proposal_id: str,
        order: Order,
        allocations: list[Allocation],
        net_proceeds: int,
        wallets: dict[str, str],
        group_wallet: str,
    ) -> DistributionResult:
        """Pay every ACTIVE allocation its share. Never raises for a single participant."""
        active = [a for a in allocations if a.status == AllocationStatus.ACTIVE]
        shares = apportion(net_proceeds, [a.tokens_allocated for a in active])
        result = DistributionResult(order=order, net_proceeds=net_proceeds)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def pay_one(allocation: Allocation, share: int) -> TransferAttempt:
            async with semaphore:
                return await self._pay(
                    proposal_id, allocation, share, wallets.get(allocation.participant_id), group_wallet
                )

        attempts = await asyncio.gather(*(pay_one(a, s) for a, s in zip(active, shares, strict=True)))
        result.attempts.extend(attempts)
        result.paid.extend(a for a in active if a.status == AllocationStatus.SOLD)
        logger.info(
            "Distributed %s for order %s (%d paid, %d failed)",
            lamports_to_display(net_proceeds),
            order.id,
            len(result.paid),
            len(active) - len(result.paid),
        )
        return result

    async def _pay(
        self,
        proposal_id: str,
        allocation: Allocation,
        share: int,
        wallet: str | None,
        group_wallet: str,
    ) -> TransferAttempt:
        participant_id = allocation.participant_id

        def failed(reason: str) -> TransferAttempt:
            logger.warning(
                "Payout failed for %s on order %s: %s", participant_id, allocation.order_id, reason
            )
            return TransferAttempt(
                proposal_id=proposal_id,
                direction=TransferDirection.PAYOUT,
                amount=share,
                from_address=group_wallet,
                to_address=wallet,
                status=TransferStatus.FAILED,
                participant_id=participant_id,
                error=reason,
            )

        if wallet is None:
            return failed("wallet not found")

        signature = None
        if share > 0:
            try:
                signature = await self._ledger.transfer(group_wallet, wallet, share)
            except TransferFailedError as e:
                return failed(e.message)
            except Exception as e:  # isolate one participant's unexpected failure from the rest
                logger.exception("Unexpected error paying %s", participant_id)
                return failed(str(e) or type(e).__name__)

        allocation.status = AllocationStatus.SOLD
        allocation.proceeds_received = share
        allocation.profit_loss = share - allocation.cost_basis
        allocation.payout_signature = signature
        return TransferAttempt(
            proposal_id=proposal_id,
            direction=TransferDirection.PAYOUT,
            amount=share,
            from_address=group_wallet,
            to_address=wallet,
            status=TransferStatus.CONFIRMED,
            participant_id=participant_id,
            signature=signature,
        )
