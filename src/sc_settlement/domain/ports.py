"""Ledger and Exchange ports.

Ledger.transfer raises TransferFailedError; Exchange.swap raises
NoRouteFoundError or ExecutionFailedError. All amounts are int base units
(lamports for SOL).
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class SwapResult:
    amount_out: int
    fees_paid: int    # lamports
    signature: str


class Ledger(Protocol):
    async def transfer(self, from_address: str, to_address: str, amount: int) -> str:
        """Move `amount` lamports, return the transaction signature."""
        ...

    async def balance(self, address: str) -> int: ...


class Exchange(Protocol):
    async def swap(
        self, amount_in: int, asset_in: str, asset_out: str, slippage_bps: int
    ) -> SwapResult: ...
