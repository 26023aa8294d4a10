"""In-memory Ledger / Exchange for development (CHAIN_MODE=simulated) and tests.

SimulatedExchange prices every pair at a fixed rate: amount_out =
amount_in × rate[(asset_in, asset_out)], rounded down. Fees are fee_bps of
the source-asset side of the swap, so they are always in lamports. Pairs
without a rate have no route.

In development (CHAIN_MODE=simulated) every wallet starts at a default
balance and each configured mint trades both ways at a fixed rate.
"""

import asyncio
import itertools
from decimal import ROUND_DOWN, Decimal

from src.sc_common.errors import ExecutionFailedError, NoRouteFoundError, TransferFailedError
from src.sc_settlement.domain.ports import SwapResult


class SimulatedLedger:
    def __init__(self, balances: dict[str, int] | None = None, default_balance: int = 0) -> None:
        self.balances: dict[str, int] = dict(balances or {})
        self.default_balance = default_balance
        self.failing_addresses: set[str] = set()
        self.transfers: list[tuple[str, str, int]] = []
        self._lock = asyncio.Lock()
        self._seq = itertools.count(1)

    async def balance(self, address: str) -> int:
        return self.balances.get(address, self.default_balance)

    async def transfer(self, from_address: str, to_address: str, amount: int) -> str:
        if amount <= 0:
            raise TransferFailedError(f"amount must be positive, got {amount}")
        async with self._lock:
            if from_address in self.failing_addresses or to_address in self.failing_addresses:
                raise TransferFailedError(f"simulated failure for {from_address} -> {to_address}")
            available = self.balances.get(from_address, self.default_balance)
            if available < amount:
                raise TransferFailedError(
                    f"insufficient funds in {from_address}: {available} < {amount}"
                )
            self.balances[from_address] = available - amount
            self.balances[to_address] = (
                self.balances.get(to_address, self.default_balance) + amount
            )
            self.transfers.append((from_address, to_address, amount))
            return f"sim-tx-{next(self._seq)}"


class SimulatedExchange:
    def __init__(
        self,
        source_asset: str,
        rates: dict[tuple[str, str], Decimal] | None = None,
        fee_bps: int = 0,
    ) -> None:
        self.source_asset = source_asset
        self.rates: dict[tuple[str, str], Decimal] = dict(rates or {})
        self.fee_bps = fee_bps
        self.fail_with: str | None = None
        self.swaps: list[tuple[int, str, str]] = []
        self._seq = itertools.count(1)

    @classmethod
    def with_pairs(
        cls, source_asset: str, units_per_lamport: dict[str, Decimal], fee_bps: int = 0
    ) -> "SimulatedExchange":
        """Both directions for every mint: source -> mint at the rate, mint -> source at 1/rate."""
        rates: dict[tuple[str, str], Decimal] = {}
        for mint, rate in units_per_lamport.items():
            if mint == source_asset or rate <= 0:
                continue
            rates[(source_asset, mint)] = rate
            rates[(mint, source_asset)] = 1 / rate
        return cls(source_asset, rates, fee_bps)

    async def swap(
        self, amount_in: int, asset_in: str, asset_out: str, slippage_bps: int
    ) -> SwapResult:
        if self.fail_with is not None:
            raise ExecutionFailedError(self.fail_with)
        rate = self.rates.get((asset_in, asset_out))
        if rate is None:
            raise NoRouteFoundError(asset_in, asset_out)
        amount_out = int((Decimal(amount_in) * rate).to_integral_value(rounding=ROUND_DOWN))
        if asset_in == self.source_asset:
            fees_paid = amount_in * self.fee_bps // 10_000
        elif asset_out == self.source_asset:
            fees_paid = amount_out * self.fee_bps // 10_000
        else:
            fees_paid = 0
        self.swaps.append((amount_in, asset_in, asset_out))
        return SwapResult(
            amount_out=amount_out, fees_paid=fees_paid, signature=f"sim-swap-{next(self._seq)}"
        )
