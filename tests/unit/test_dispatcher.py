"""Unit tests for SettlementDispatcher — routing, failure containment, summaries.

Pipelines run for real on the simulated ledger/exchange; repositories are
AsyncMocks behind a fake async session factory.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from src.sc_common.enums import (
    OrderStatus,
    ProposalKind,
    ProposalStatus,
    SettlementStatus,
    TransferDirection,
    VoteChoice,
)
from src.sc_common.errors import InvariantViolationError
from src.sc_group.domain.models import Group
from src.sc_notify.domain.events import SettlementSummaryPublished
from src.sc_notify.infrastructure.publishers import InMemoryNotificationPublisher
from src.sc_session.domain.models import Proposal
from src.sc_session.domain.vote_ledger import Vote, VoteLedger
from src.sc_settlement.application import dispatcher as dispatcher_module
from src.sc_settlement.application.dispatcher import SettlementDispatcher
from src.sc_settlement.domain.collection import FundCollectionPipeline
from src.sc_settlement.domain.distribution import DistributionPipeline
from src.sc_settlement.domain.execution import ExecutionAdapter
from src.sc_settlement.domain.models import Allocation, Order
from src.sc_settlement.infrastructure.simulated import SimulatedExchange, SimulatedLedger

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
SOL_MINT = "So11111111111111111111111111111111111111112"
BONK = "BonkMint"


class _Ctx:
    def __init__(self, value) -> None:
        self._value = value

    async def __aenter__(self):
        return self._value

    async def __aexit__(self, *exc) -> bool:
        return False


class _FakeDb:
    def begin(self) -> _Ctx:
        return _Ctx(None)


def _make_group() -> Group:
    return Group(
        id="grp-1",
        name="Degens",
        owner_id="alice",
        pool_address="pool-1",
        relay_address="relay-1",
        wallet_address="gwallet",
    )


def _make_proposal(kind: ProposalKind = ProposalKind.BUY, **kwargs) -> Proposal:
    votes = VoteLedger(
        [
            ("alice", Vote(VoteChoice.YES, 50_000_000 if kind == ProposalKind.BUY else 0, T0)),
            ("bob", Vote(VoteChoice.YES, 30_000_000 if kind == ProposalKind.BUY else 0, T0)),
            ("carol", Vote(VoteChoice.NO, 0, T0)),
        ]
    )
    defaults = dict(
        id="prp-1",
        session_id="ses-1",
        group_id="grp-1",
        kind=kind,
        text="BUY token=BONK" if kind == ProposalKind.BUY else "SELL order=ord-1",
        proposer_id="alice",
        duration_minutes=5,
        start_time=T0,
        end_time=T0 + timedelta(minutes=5),
        eligible_voters=["alice", "bob", "carol"],
        status=ProposalStatus.APPROVED,
        votes=votes,
        settlement_status=SettlementStatus.PENDING,
    )
    if kind == ProposalKind.BUY:
        defaults.update(target_asset=BONK, slippage_bps=100)
    else:
        defaults.update(order_ref="ord-1")
    defaults.update(kwargs)
    return Proposal(**defaults)


def _make_order() -> Order:
    return Order(
        id="ord-1",
        group_id="grp-1",
        proposal_id="prp-buy",
        asset=BONK,
        token_amount=800_000,
        total_amount_spent=80_000_000,
        fees=0,
        bought_at_price=Decimal(100),
    )


def _make_allocations() -> list[Allocation]:
    return [
        Allocation("alc-a", "ord-1", "alice", 50_000_000, 500_000, 0),
        Allocation("alc-b", "ord-1", "bob", 30_000_000, 300_000, 0),
    ]


class Harness:
    def __init__(self) -> None:
        self.ledger = SimulatedLedger(
            {"w-alice": 100_000_000, "w-bob": 100_000_000, "gwallet": 500_000_000}
        )
        self.exchange = SimulatedExchange(
            SOL_MINT, {(SOL_MINT, BONK): Decimal("0.01"), (BONK, SOL_MINT): Decimal(150)}
        )
        self.publisher = InMemoryNotificationPublisher()
        self.db = _FakeDb()
        self.groups = AsyncMock()
        self.groups.get.return_value = _make_group()
        self.groups.recompute_total_pnl.return_value = 40_000_000
        self.wallets = AsyncMock()
        self.wallets.get_addresses.return_value = {"alice": "w-alice", "bob": "w-bob"}
        self.order_status = {"ord-1": OrderStatus.COMPLETED}
        self.orders = AsyncMock()
        self.orders.claim_for_sale.side_effect = self._claim
        self.orders.release_claim.side_effect = self._release
        self.orders.mark_sold.side_effect = self._mark_sold
        self.orders.list_allocations.return_value = _make_allocations()
        self.transfers = AsyncMock()
        self.archive = AsyncMock()
        self.dispatcher = SettlementDispatcher(
            session_factory=lambda: _Ctx(self.db),
            collection=FundCollectionPipeline(self.ledger, fee_reserve=5_000, concurrency=4),
            execution=ExecutionAdapter(self.exchange, SOL_MINT),
            distribution=DistributionPipeline(self.exchange, self.ledger, SOL_MINT, concurrency=4),
            publisher=self.publisher,
            slippage_bps=100,
            groups=self.groups,
            wallets=self.wallets,
            orders=self.orders,
            transfers=self.transfers,
            archive=self.archive,
            now_fn=lambda: T0,
        )

    async def _claim(self, order_id: str, db) -> Order | None:
        if self.order_status.get(order_id) != OrderStatus.COMPLETED:
            return None
        self.order_status[order_id] = OrderStatus.SELLING
        order = _make_order()
        order.status = OrderStatus.SELLING
        return order

    async def _release(self, order_id: str, db) -> None:
        if self.order_status.get(order_id) == OrderStatus.SELLING:
            self.order_status[order_id] = OrderStatus.COMPLETED

    async def _mark_sold(self, order: Order, paid, db) -> None:
        self.order_status[order.id] = OrderStatus.SOLD

    def summary_event(self) -> SettlementSummaryPublished:
        (event,) = self.publisher.drain()
        assert isinstance(event, SettlementSummaryPublished)
        return event


@pytest.fixture
def harness() -> Harness:
    return Harness()


class TestNonApproved:
    @pytest.mark.parametrize("status", [ProposalStatus.REJECTED, ProposalStatus.DISCARDED])
    async def test_archive_only(self, harness: Harness, status: ProposalStatus) -> None:
        proposal = _make_proposal(status=status, settlement_status=SettlementStatus.NONE)
        assert await harness.dispatcher.settle(proposal) is None
        harness.archive.archive.assert_awaited_once_with(proposal, harness.db)
        assert harness.ledger.transfers == []
        assert harness.publisher.drain() == []


class TestBuy:
    async def test_settled(self, harness: Harness) -> None:
        proposal = _make_proposal()
        summary = await harness.dispatcher.settle(proposal)

        assert summary.settlement_status == SettlementStatus.SETTLED
        assert summary.total_collected == 80_000_000
        assert summary.succeeded == 2
        assert summary.failed == 0
        assert proposal.settlement_status == SettlementStatus.SETTLED
        assert proposal.settled_order_id == summary.order_id

        order, allocations, _ = harness.orders.save.await_args.args
        assert order.token_amount == 800_000
        assert [a.participant_id for a in allocations] == ["alice", "bob"]
        attempts, _ = harness.transfers.append.await_args.args
        assert [a.direction for a in attempts] == [
            TransferDirection.COLLECT,
            TransferDirection.COLLECT,
            TransferDirection.DRAIN,
        ]
        assert harness.ledger.balances["relay-1"] == 80_000_000
        harness.wallets.get_addresses.assert_awaited_once_with(["alice", "bob"], harness.db)

        event = harness.summary_event()
        assert event.settlement_status == "SETTLED"
        assert event.order_id == order.id
        assert event.to_payload()["event"] == "SettlementSummary"

    async def test_partial_collection(self, harness: Harness) -> None:
        harness.ledger.balances["w-bob"] = 1_000
        summary = await harness.dispatcher.settle(_make_proposal())
        assert summary.settlement_status == SettlementStatus.SETTLED
        assert summary.total_collected == 50_000_000
        assert summary.failed == 1
        assert "bob" in summary.failures
        _, allocations, _ = harness.orders.save.await_args.args
        assert [a.participant_id for a in allocations] == ["alice"]

    async def test_no_funds_collected(self, harness: Harness) -> None:
        harness.ledger.balances.update({"w-alice": 0, "w-bob": 0})
        proposal = _make_proposal()
        summary = await harness.dispatcher.settle(proposal)

        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert summary.error.startswith("No funds were collected")
        assert proposal.settlement_status == SettlementStatus.UNSETTLED
        harness.orders.save.assert_not_awaited()
        harness.transfers.append.assert_awaited_once()
        assert harness.summary_event().settlement_status == "UNSETTLED"

    async def test_no_route(self, harness: Harness) -> None:
        harness.exchange.rates.clear()
        summary = await harness.dispatcher.settle(_make_proposal())
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert summary.error == f"No swap route found: {SOL_MINT} -> {BONK}"
        assert summary.order_id is None
        harness.orders.save.assert_not_awaited()
        # Funds already sit on the relay for manual recovery
        assert harness.ledger.balances["relay-1"] == 80_000_000

    async def test_missing_group(self, harness: Harness) -> None:
        harness.groups.get.return_value = None
        summary = await harness.dispatcher.settle(_make_proposal())
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert harness.ledger.transfers == []


class TestSell:
    async def test_settled(self, harness: Harness) -> None:
        proposal = _make_proposal(ProposalKind.SELL)
        summary = await harness.dispatcher.settle(proposal)

        assert summary.settlement_status == SettlementStatus.SETTLED
        assert summary.net_proceeds == 120_000_000
        assert summary.succeeded == 2
        assert summary.order_id == "ord-1"
        order, paid, _ = harness.orders.mark_sold.await_args.args
        assert order.status == OrderStatus.SOLD
        assert [a.proceeds_received for a in paid] == [75_000_000, 45_000_000]
        harness.groups.recompute_total_pnl.assert_awaited_once_with("grp-1", harness.db)
        harness.wallets.recompute_total_pnl.assert_awaited_once_with(["alice", "bob"], harness.db)
        assert harness.ledger.balances["w-alice"] == 100_000_000 + 75_000_000

    async def test_no_payout_succeeded(self, harness: Harness) -> None:
        harness.ledger.failing_addresses.update({"w-alice", "w-bob"})
        summary = await harness.dispatcher.settle(_make_proposal(ProposalKind.SELL))
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert summary.error == "no payout succeeded"
        assert summary.failed == 2
        harness.orders.mark_sold.assert_awaited_once()

    async def test_missing_order(self, harness: Harness) -> None:
        harness.order_status.clear()
        summary = await harness.dispatcher.settle(_make_proposal(ProposalKind.SELL))
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert harness.exchange.swaps == []

    async def test_order_already_sold(self, harness: Harness) -> None:
        harness.order_status["ord-1"] = OrderStatus.SOLD
        summary = await harness.dispatcher.settle(_make_proposal(ProposalKind.SELL))
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert "not COMPLETED" in summary.error
        assert harness.exchange.swaps == []
        harness.orders.mark_sold.assert_not_awaited()

    async def test_two_sells_of_one_order_swap_once(self, harness: Harness) -> None:
        first = _make_proposal(ProposalKind.SELL)
        second = _make_proposal(ProposalKind.SELL, id="prp-2")
        summaries = await asyncio.gather(
            harness.dispatcher.settle(first), harness.dispatcher.settle(second)
        )

        statuses = [s.settlement_status for s in summaries]
        assert statuses.count(SettlementStatus.SETTLED) == 1
        assert statuses.count(SettlementStatus.UNSETTLED) == 1
        assert len(harness.exchange.swaps) == 1
        assert harness.orders.mark_sold.await_count == 1
        assert harness.ledger.balances["w-alice"] == 100_000_000 + 75_000_000
        assert harness.order_status["ord-1"] == OrderStatus.SOLD

    async def test_failed_swap_releases_claim(self, harness: Harness) -> None:
        harness.exchange.rates.clear()
        summary = await harness.dispatcher.settle(_make_proposal(ProposalKind.SELL))
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert summary.error == f"No swap route found: {BONK} -> {SOL_MINT}"
        harness.orders.release_claim.assert_awaited_once_with("ord-1", harness.db)
        assert harness.order_status["ord-1"] == OrderStatus.COMPLETED

    async def test_swapped_without_proceeds_keeps_claim(self, harness: Harness) -> None:
        harness.exchange.rates[(BONK, SOL_MINT)] = Decimal("0.000001")
        summary = await harness.dispatcher.settle(_make_proposal(ProposalKind.SELL))
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert "yields no proceeds" in summary.error
        harness.orders.release_claim.assert_not_awaited()
        assert harness.order_status["ord-1"] == OrderStatus.SELLING


class TestFailureContainment:
    async def test_settles_once(self, harness: Harness) -> None:
        proposal = _make_proposal()
        await harness.dispatcher.settle(proposal)
        with pytest.raises(InvariantViolationError):
            await harness.dispatcher.settle(proposal)
        assert harness.orders.save.await_count == 1

    async def test_dispatch_memory_is_bounded(self, harness: Harness, monkeypatch) -> None:
        monkeypatch.setattr(dispatcher_module, "_DISPATCHED_MEMORY", 2)
        harness.groups.get.return_value = None
        for proposal_id in ("prp-1", "prp-2", "prp-3"):
            await harness.dispatcher.settle(_make_proposal(id=proposal_id))
        assert list(harness.dispatcher._dispatched) == ["prp-2", "prp-3"]

    async def test_crash_becomes_unsettled(self, harness: Harness) -> None:
        harness.groups.get.side_effect = RuntimeError("db gone")
        proposal = _make_proposal()
        summary = await harness.dispatcher.settle(proposal)
        assert summary.settlement_status == SettlementStatus.UNSETTLED
        assert summary.error == "internal error during settlement"
        assert harness.summary_event().error == "internal error during settlement"
        harness.archive.archive.assert_awaited_once()

    async def test_publish_failure_swallowed(self, harness: Harness) -> None:
        harness.dispatcher._publisher = AsyncMock()
        harness.dispatcher._publisher.publish.side_effect = ConnectionError("redis down")
        summary = await harness.dispatcher.settle(_make_proposal())
        assert summary.settlement_status == SettlementStatus.SETTLED
