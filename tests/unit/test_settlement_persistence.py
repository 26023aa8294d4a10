# tests/unit/test_settlement_persistence.py
"""Unit tests for settlement and group repositories using MagicMock AsyncSession."""
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.sc_common.enums import (
    AllocationStatus,
    OrderStatus,
    TransferDirection,
    TransferStatus,
)
from src.sc_common.errors import InvariantViolationError
from src.sc_group.infrastructure.persistence import (
    GroupRepository,
    SqlGroupDirectory,
    WalletRepository,
)
from src.sc_settlement.domain.models import Allocation, Order, TransferAttempt
from src.sc_settlement.infrastructure.persistence import (
    OrderRepository,
    SqlOrderDirectory,
    TransferRepository,
)


def _make_order_row(**kwargs: Any) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", "ord-1")
    row.group_id = kwargs.get("group_id", "grp-1")
    row.proposal_id = kwargs.get("proposal_id", "prp-1")
    row.asset = kwargs.get("asset", "BonkMint")
    row.token_amount = kwargs.get("token_amount", Decimal("800000"))
    row.total_amount_spent = kwargs.get("total_amount_spent", 80_000_000)
    row.fees = kwargs.get("fees", 240_000)
    row.bought_at_price = kwargs.get("bought_at_price", Decimal("100"))
    row.status = kwargs.get("status", "COMPLETED")
    row.buy_signature = kwargs.get("buy_signature", "sig-buy")
    row.sold_at_price = kwargs.get("sold_at_price")
    row.sol_received = kwargs.get("sol_received")
    row.sell_fees = kwargs.get("sell_fees")
    row.sell_signature = kwargs.get("sell_signature")
    row.created_at = kwargs.get("created_at", datetime.now(UTC))
    row.closed_at = kwargs.get("closed_at")
    return row


def _make_allocation_row(**kwargs: Any) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", "alc-1")
    row.order_id = kwargs.get("order_id", "ord-1")
    row.participant_id = kwargs.get("participant_id", "alice")
    row.amount_contributed = kwargs.get("amount_contributed", 50_000_000)
    row.tokens_allocated = kwargs.get("tokens_allocated", Decimal("500000"))
    row.fees_charged = kwargs.get("fees_charged", 150_000)
    row.status = kwargs.get("status", "ACTIVE")
    row.proceeds_received = kwargs.get("proceeds_received")
    row.profit_loss = kwargs.get("profit_loss")
    row.payout_signature = kwargs.get("payout_signature")
    row.created_at = kwargs.get("created_at", datetime.now(UTC))
    return row


def _make_order() -> Order:
    return Order(
        id="ord-1",
        group_id="grp-1",
        proposal_id="prp-1",
        asset="BonkMint",
        token_amount=800_000,
        total_amount_spent=80_000_000,
        fees=240_000,
        bought_at_price=Decimal("100"),
    )


def _db_returning(rows: list[MagicMock] | MagicMock | None) -> AsyncMock:
    db = AsyncMock()
    result_mock = MagicMock()
    if isinstance(rows, list):
        result_mock.fetchall.return_value = rows
    else:
        result_mock.fetchone.return_value = rows
    db.execute.return_value = result_mock
    return db


class _Ctx:
    def __init__(self, value) -> None:
        self._value = value

    async def __aenter__(self):
        return self._value

    async def __aexit__(self, *exc) -> bool:
        return False


class TestOrderRepository:
    async def test_save_inserts_order_and_allocations(self) -> None:
        db = AsyncMock()
        allocations = [
            Allocation("alc-1", "ord-1", "alice", 50_000_000, 500_000, 150_000),
            Allocation("alc-2", "ord-1", "bob", 30_000_000, 300_000, 90_000),
        ]
        await OrderRepository().save(_make_order(), allocations, db)
        assert db.execute.await_count == 3
        order_params = db.execute.await_args_list[0].args[1]
        assert order_params["status"] == "COMPLETED"
        assert order_params["token_amount"] == 800_000
        alloc_params = db.execute.await_args_list[2].args[1]
        assert alloc_params["participant_id"] == "bob"
        assert alloc_params["status"] == "ACTIVE"

    async def test_get_by_id_maps_numeric_to_int(self) -> None:
        db = _db_returning(_make_order_row())
        order = await OrderRepository().get_by_id("ord-1", db)
        assert order.token_amount == 800_000
        assert isinstance(order.token_amount, int)
        assert order.status == OrderStatus.COMPLETED
        assert order.profit_loss is None

    async def test_get_by_id_missing(self) -> None:
        db = _db_returning(None)
        assert await OrderRepository().get_by_id("nope", db) is None

    async def test_list_by_group_passes_filter(self) -> None:
        db = _db_returning([_make_order_row(), _make_order_row(id="ord-2")])
        orders = await OrderRepository().list_by_group("grp-1", "SOLD", 50, db)
        assert [o.id for o in orders] == ["ord-1", "ord-2"]
        params = db.execute.await_args.args[1]
        assert params == {"group_id": "grp-1", "status": "SOLD", "limit": 50}

    async def test_list_allocations(self) -> None:
        db = _db_returning(
            [_make_allocation_row(status="SOLD", proceeds_received=Decimal("79760000"),
                                  profit_loss=Decimal("29610000"))]
        )
        (allocation,) = await OrderRepository().list_allocations("ord-1", db)
        assert allocation.status == AllocationStatus.SOLD
        assert allocation.tokens_allocated == 500_000
        assert allocation.proceeds_received == 79_760_000
        assert allocation.profit_loss == 29_610_000

    async def test_mark_sold_updates_order_and_paid_allocations(self) -> None:
        db = AsyncMock()
        db.execute.return_value.rowcount = 1
        order = _make_order()
        order.status = OrderStatus.SOLD
        order.sol_received = 128_000_000
        order.sell_fees = 384_000
        paid = [Allocation("alc-1", "ord-1", "alice", 50_000_000, 500_000, 150_000,
                           status=AllocationStatus.SOLD, proceeds_received=79_760_000,
                           profit_loss=29_610_000)]
        await OrderRepository().mark_sold(order, paid, db)
        assert db.execute.await_count == 2
        assert db.execute.await_args_list[0].args[1]["sol_received"] == 128_000_000
        assert db.execute.await_args_list[1].args[1]["profit_loss"] == 29_610_000

    async def test_list_holdings_joins_order(self) -> None:
        row = _make_allocation_row()
        row.group_id = "grp-1"
        row.asset = "BonkMint"
        db = _db_returning([row])
        (holding,) = await OrderRepository().list_holdings("alice", 200, db)
        assert holding.allocation.participant_id == "alice"
        assert holding.allocation.tokens_allocated == 500_000
        assert (holding.group_id, holding.asset) == ("grp-1", "BonkMint")
        sql, params = db.execute.await_args.args
        assert "JOIN orders" in str(sql)
        assert params == {"participant_id": "alice", "limit": 200}

    async def test_mark_sold_requires_claim(self) -> None:
        db = AsyncMock()
        db.execute.return_value.rowcount = 0
        with pytest.raises(InvariantViolationError):
            await OrderRepository().mark_sold(_make_order(), [], db)
        sql = str(db.execute.await_args.args[0])
        assert "status = 'SELLING'" in sql

    async def test_claim_for_sale_returns_claimed_order(self) -> None:
        db = _db_returning(_make_order_row(status="SELLING"))
        order = await OrderRepository().claim_for_sale("ord-1", db)
        assert order.status == OrderStatus.SELLING
        sql = str(db.execute.await_args.args[0])
        assert "WHERE id = :id AND status = 'COMPLETED'" in sql
        assert "RETURNING" in sql

    async def test_claim_for_sale_nothing_claimed(self) -> None:
        db = _db_returning(None)
        assert await OrderRepository().claim_for_sale("ord-1", db) is None

    async def test_release_claim_only_from_selling(self) -> None:
        db = AsyncMock()
        await OrderRepository().release_claim("ord-1", db)
        sql, params = db.execute.await_args.args
        assert "status = 'SELLING'" in str(sql)
        assert params == {"id": "ord-1"}


class TestTransferRepository:
    async def test_append_one_row_per_attempt(self) -> None:
        db = AsyncMock()
        attempts = [
            TransferAttempt("prp-1", TransferDirection.COLLECT, 5, "w-a", "pool",
                            TransferStatus.CONFIRMED, "alice", "sig"),
            TransferAttempt("prp-1", TransferDirection.DRAIN, 5, "pool", "relay",
                            TransferStatus.FAILED, error="boom"),
        ]
        await TransferRepository().append(attempts, db)
        assert db.execute.await_count == 2
        drain = db.execute.await_args_list[1].args[1]
        assert drain["direction"] == "DRAIN"
        assert drain["participant_id"] is None
        assert drain["error"] == "boom"


class TestGroupRepositories:
    async def test_get_group(self) -> None:
        row = MagicMock()
        row.id = "grp-1"
        row.name = "Degens"
        row.owner_id = "alice"
        row.admin_ids = None
        row.pool_address = "pool"
        row.relay_address = "relay"
        row.wallet_address = "gwallet"
        row.is_active = True
        row.total_pnl = 0
        group = await GroupRepository().get("grp-1", _db_returning(row))
        assert group.admin_ids == []
        assert group.can_manage("alice")
        assert not group.can_manage("bob")

    async def test_recompute_group_pnl_returns_total(self) -> None:
        row = MagicMock()
        row.total_pnl = Decimal("47376000")
        assert await GroupRepository().recompute_total_pnl("grp-1", _db_returning(row)) == 47_376_000

    async def test_get_addresses(self) -> None:
        row = MagicMock()
        row.participant_id = "alice"
        row.wallet_address = "w-alice"
        db = _db_returning([row])
        assert await WalletRepository().get_addresses(["alice", "zed"], db) == {"alice": "w-alice"}

    async def test_empty_inputs_skip_queries(self) -> None:
        db = AsyncMock()
        assert await WalletRepository().get_addresses([], db) == {}
        await WalletRepository().recompute_total_pnl([], db)
        db.execute.assert_not_awaited()

    async def test_group_directory_wallet_lookup(self) -> None:
        wallets = AsyncMock()
        wallets.get.return_value = None
        directory = SqlGroupDirectory(lambda: _Ctx(AsyncMock()), wallets=wallets)
        assert await directory.get_wallet_address("alice") is None

    async def test_order_directory(self) -> None:
        orders = AsyncMock()
        orders.get_by_id.return_value = _make_order()
        directory = SqlOrderDirectory(lambda: _Ctx(AsyncMock()), orders=orders)
        assert (await directory.get_order("ord-1")).id == "ord-1"


@pytest.mark.parametrize("status", ["COMPLETED", "SELLING", "SOLD"])
async def test_order_status_round_trips_from_row(status: str) -> None:
    db = _db_returning(_make_order_row(status=status))
    order = await OrderRepository().get_by_id("ord-1", db)
    assert order.status.value == status
