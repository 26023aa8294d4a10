"""SettlementDispatcher — routes a proposal's terminal transition to a pipeline.

    APPROVED BUY   -> Fund Collection -> Execution -> Order + Allocations
    APPROVED SELL  -> claim the Order (COMPLETED -> SELLING) -> Distribution
                      (sell, pay out, recompute P&L)
    REJECTED / DISCARDED -> nothing moves, the proposal is only archived

Pipeline-fatal errors stop here: they are logged, the proposal ends up
UNSETTLED ("approved but unsettled") and a SettlementSummary is still
published. Nothing propagates back into the auto-close timer.
"""

import logging
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.sc_common.datetime_utils import utc_now
from src.sc_common.enums import ProposalKind, ProposalStatus, SettlementStatus
from src.sc_common.errors import InvariantViolationError, SettlementError
from src.sc_common.lamports import lamports_to_display
from src.sc_group.domain.repository import GroupRepositoryProtocol, WalletRepositoryProtocol
from src.sc_group.infrastructure.persistence import GroupRepository, WalletRepository
from src.sc_notify.domain.events import SettlementSummaryPublished
from src.sc_notify.domain.publisher import NotificationPublisherProtocol
from src.sc_session.domain.models import Proposal
from src.sc_session.infrastructure.archive import ProposalArchiveRepository
from src.sc_settlement.domain.collection import FundCollectionPipeline
from src.sc_settlement.domain.distribution import DistributionPipeline
from src.sc_settlement.domain.execution import ExecutionAdapter
from src.sc_settlement.domain.models import SettlementSummary, TransferAttempt
from src.sc_settlement.domain.repository import (
    OrderRepositoryProtocol,
    TransferRepositoryProtocol,
)
from src.sc_settlement.infrastructure.persistence import OrderRepository, TransferRepository

logger = logging.getLogger(__name__)

# Recently dispatched proposal ids kept for the double-settlement check
_DISPATCHED_MEMORY = 10_000


class SettlementDispatcher:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        collection: FundCollectionPipeline,
        execution: ExecutionAdapter,
        distribution: DistributionPipeline,
        publisher: NotificationPublisherProtocol,
        slippage_bps: int,
        groups: GroupRepositoryProtocol | None = None,
        wallets: WalletRepositoryProtocol | None = None,
        orders: OrderRepositoryProtocol | None = None,
        transfers: TransferRepositoryProtocol | None = None,
        archive: ProposalArchiveRepository | None = None,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._collection = collection
        self._execution = execution
        self._distribution = distribution
        self._publisher = publisher
        self._slippage_bps = slippage_bps
        self._groups = groups or GroupRepository()
        self._wallets = wallets or WalletRepository()
        self._orders = orders or OrderRepository()
        self._transfers = transfers or TransferRepository()
        self._archive_repo = archive or ProposalArchiveRepository()
        self._now = now_fn
        self._dispatched: OrderedDict[str, None] = OrderedDict()

    async def settle(self, proposal: Proposal) -> SettlementSummary | None:
        """Run settlement for a closed proposal. Returns None when nothing moves."""
        if proposal.status != ProposalStatus.APPROVED:
            await self._archive(proposal)
            return None

        if proposal.id in self._dispatched:
            logger.error("Proposal %s dispatched for settlement twice", proposal.id)
            raise InvariantViolationError(f"proposal {proposal.id} settled twice")
        self._dispatched[proposal.id] = None
        if len(self._dispatched) > _DISPATCHED_MEMORY:
            self._dispatched.popitem(last=False)

        try:
            if proposal.kind == ProposalKind.BUY:
                summary = await self._settle_buy(proposal)
            else:
                summary = await self._settle_sell(proposal)
        except Exception:  # the timer must never see a settlement crash
            logger.exception("Settlement of proposal %s crashed", proposal.id)
            summary = SettlementSummary(
                proposal_id=proposal.id,
                group_id=proposal.group_id,
                kind=proposal.kind,
                settlement_status=SettlementStatus.UNSETTLED,
                error="internal error during settlement",
            )

        proposal.settlement_status = summary.settlement_status
        proposal.settled_order_id = summary.order_id
        await self._archive(proposal)
        await self._publish(summary)
        return summary

    # ------------------------------------------------------------------
    # BUY: collect -> drain -> swap -> persist
    # ------------------------------------------------------------------

    async def _settle_buy(self, proposal: Proposal) -> SettlementSummary:
        yes_votes = proposal.votes.yes_votes()
        async with self._session_factory() as db:
            group = await self._groups.get(proposal.group_id, db)
            wallets = await self._wallets.get_addresses([pid for pid, _ in yes_votes], db)

        summary = SettlementSummary(
            proposal_id=proposal.id,
            group_id=proposal.group_id,
            kind=ProposalKind.BUY,
            settlement_status=SettlementStatus.UNSETTLED,
        )
        if group is None:
            summary.error = f"group {proposal.group_id} not found"
            logger.error("BUY %s unsettled: %s", proposal.id, summary.error)
            return summary
        if proposal.target_asset is None:
            summary.error = "proposal has no target asset"
            logger.error("BUY %s unsettled: %s", proposal.id, summary.error)
            return summary

        collected = await self._collection.collect(
            proposal.id, yes_votes, wallets, group.pool_address
        )
        summary.total_collected = collected.total_collected
        summary.succeeded = collected.succeeded
        summary.failures = collected.failures
        summary.failed = len(summary.failures)

        try:
            await self._collection.drain(collected, group.pool_address, group.relay_address)
            order, allocations = await self._execution.execute(
                group_id=proposal.group_id,
                proposal_id=proposal.id,
                pooled_amount=collected.total_collected,
                target_asset=proposal.target_asset,
                contributions=collected.contributions,
                slippage_bps=proposal.slippage_bps or self._slippage_bps,
                now=self._now(),
            )
            async with self._session_factory() as db, db.begin():
                await self._orders.save(order, allocations, db)
        except SettlementError as e:
            summary.error = e.message
            logger.error("BUY %s unsettled: %s", proposal.id, e.message)
            return summary
        finally:
            await self._record_transfers(collected.attempts)

        summary.settlement_status = SettlementStatus.SETTLED
        summary.order_id = order.id
        logger.info(
            "BUY %s settled: order %s, %s collected from %d voter(s)",
            proposal.id,
            order.id,
            lamports_to_display(collected.total_collected),
            collected.succeeded,
        )
        return summary

    # ------------------------------------------------------------------
    # SELL: swap back -> pay out -> recompute P&L
    # ------------------------------------------------------------------

    async def _settle_sell(self, proposal: Proposal) -> SettlementSummary:
        summary = SettlementSummary(
            proposal_id=proposal.id,
            group_id=proposal.group_id,
            kind=ProposalKind.SELL,
            settlement_status=SettlementStatus.UNSETTLED,
            order_id=proposal.order_ref,
        )
        if proposal.order_ref is None:
            summary.error = "proposal has no order reference"
            logger.error("SELL %s unsettled: %s", proposal.id, summary.error)
            return summary

        async with self._session_factory() as db:
            group = await self._groups.get(proposal.group_id, db)
        if group is None:
            summary.error = f"group {proposal.group_id} not found"
            logger.error("SELL %s unsettled: %s", proposal.id, summary.error)
            return summary

        # Only one settlement can move an order out of COMPLETED
        async with self._session_factory() as db, db.begin():
            order = await self._orders.claim_for_sale(proposal.order_ref, db)
        if order is None:
            summary.error = f"order {proposal.order_ref} not found or not COMPLETED"
            logger.error("SELL %s unsettled: %s", proposal.id, summary.error)
            return summary

        async with self._session_factory() as db:
            allocations = await self._orders.list_allocations(order.id, db)
            wallets = await self._wallets.get_addresses(
                [a.participant_id for a in allocations], db
            )

        try:
            net_proceeds = await self._distribution.sell(order, self._slippage_bps, self._now())
        except SettlementError as e:
            summary.error = e.message
            if order.sell_signature is None:
                await self._release(order.id)
            else:
                logger.error(
                    "Order %s swapped (%s) but unusable, left SELLING",
                    order.id,
                    order.sell_signature,
                )
            logger.error("SELL %s unsettled: %s", proposal.id, e.message)
            return summary
        summary.net_proceeds = net_proceeds

        result = await self._distribution.distribute(
            proposal.id, order, allocations, net_proceeds, wallets, group.wallet_address
        )
        paid_ids = [a.participant_id for a in result.paid]
        async with self._session_factory() as db, db.begin():
            await self._orders.mark_sold(order, result.paid, db)
            await self._transfers.append(result.attempts, db)
            group_pnl = await self._groups.recompute_total_pnl(proposal.group_id, db)
            await self._wallets.recompute_total_pnl(paid_ids, db)

        summary.succeeded = len(result.paid)
        summary.failures = result.failures
        summary.failed = len(summary.failures)
        if result.paid:
            summary.settlement_status = SettlementStatus.SETTLED
        else:
            summary.error = "no payout succeeded"
        logger.info(
            "SELL %s: order %s sold for %s net, %d paid, %d failed, group P&L %s",
            proposal.id,
            order.id,
            lamports_to_display(net_proceeds),
            summary.succeeded,
            summary.failed,
            lamports_to_display(group_pnl),
        )
        return summary

    async def _release(self, order_id: str) -> None:
        try:
            async with self._session_factory() as db, db.begin():
                await self._orders.release_claim(order_id, db)
        except Exception:
            logger.exception("Failed to release sale claim on order %s", order_id)

    # ------------------------------------------------------------------
    # Records and notifications
    # ------------------------------------------------------------------

    async def _record_transfers(self, attempts: list[TransferAttempt]) -> None:
        if not attempts:
            return
        try:
            async with self._session_factory() as db, db.begin():
                await self._transfers.append(attempts, db)
        except Exception:
            logger.exception("Failed to record %d transfer attempt(s)", len(attempts))

    async def _archive(self, proposal: Proposal) -> None:
        try:
            async with self._session_factory() as db, db.begin():
                await self._archive_repo.archive(proposal, db)
        except Exception:
            logger.exception("Failed to archive proposal %s", proposal.id)

    async def _publish(self, summary: SettlementSummary) -> None:
        event = SettlementSummaryPublished(
            group_id=summary.group_id,
            proposal_id=summary.proposal_id,
            kind=summary.kind.value,
            settlement_status=summary.settlement_status.value,
            total_collected=summary.total_collected,
            net_proceeds=summary.net_proceeds,
            succeeded=summary.succeeded,
            failed=summary.failed,
            failures=dict(summary.failures),
            order_id=summary.order_id,
            error=summary.error,
        )
        try:
            await self._publisher.publish(event)
        except Exception:
            logger.warning("Failed to publish settlement summary for %s", summary.proposal_id)
