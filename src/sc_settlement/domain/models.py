"""Domain models for sc_settlement — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.sc_common.enums import (
    AllocationStatus,
    OrderStatus,
    ProposalKind,
    SettlementStatus,
    TransferDirection,
    TransferStatus,
)


@dataclass
class Order:
    id: str
    group_id: str
    proposal_id: str
    asset: str                      # token mint
    token_amount: int               # token base units
    total_amount_spent: int         # lamports, equals total collected
    fees: int                       # lamports, buy-side swap fees
    bought_at_price: Decimal        # lamports per token base unit
    status: OrderStatus = OrderStatus.COMPLETED
    buy_signature: str | None = None
    sold_at_price: Decimal | None = None
    sol_received: int | None = None  # gross lamports out of the sell swap
    sell_fees: int | None = None
    sell_signature: str | None = None
    created_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def profit_loss(self) -> int | None:
        """Realized order P&L in lamports; None until SOLD."""
        if self.status != OrderStatus.SOLD or self.sol_received is None:
            return None
        return self.sol_received - self.total_amount_spent - self.fees - (self.sell_fees or 0)


@dataclass
class Allocation:
    id: str
    order_id: str
    participant_id: str
    amount_contributed: int         # lamports
    tokens_allocated: int           # token base units
    fees_charged: int               # lamports, share of Order.fees
    status: AllocationStatus = AllocationStatus.ACTIVE
    proceeds_received: int | None = None
    profit_loss: int | None = None
    payout_signature: str | None = None
    created_at: datetime | None = None

    @property
    def cost_basis(self) -> int:
        return self.amount_contributed + self.fees_charged


@dataclass(frozen=True)
class Holding:
    """An allocation seen from its participant, with the order it belongs to."""

    allocation: Allocation
    group_id: str
    asset: str


@dataclass(frozen=True)
class TransferAttempt:
    """One Ledger.transfer attempt, kept for manual reconciliation."""

    proposal_id: str
    direction: TransferDirection
    amount: int
    from_address: str | None
    to_address: str | None
    status: TransferStatus
    participant_id: str | None = None   # None for the pool -> relay drain
    signature: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == TransferStatus.CONFIRMED


@dataclass(frozen=True)
class Contribution:
    participant_id: str
    amount: int


@dataclass
class CollectionResult:
    proposal_id: str
    contributions: list[Contribution] = field(default_factory=list)  # successful only, vote order
    attempts: list[TransferAttempt] = field(default_factory=list)
    total_collected: int = 0
    drain_signature: str | None = None

    @property
    def succeeded(self) -> int:
        return len(self.contributions)

    @property
    def failures(self) -> dict[str, str]:
        return {
            a.participant_id: a.error or "unknown error"
            for a in self.attempts
            if not a.ok and a.participant_id is not None
        }


@dataclass
class DistributionResult:
    order: Order
    net_proceeds: int
    paid: list[Allocation] = field(default_factory=list)
    attempts: list[TransferAttempt] = field(default_factory=list)

    @property
    def failures(self) -> dict[str, str]:
        return {
            a.participant_id: a.error or "unknown error"
            for a in self.attempts
            if not a.ok and a.participant_id is not None
        }


@dataclass
class SettlementSummary:
    proposal_id: str
    group_id: str
    kind: ProposalKind
    settlement_status: SettlementStatus
    total_collected: int | None = None     # BUY
    net_proceeds: int | None = None        # SELL
    succeeded: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    order_id: str | None = None
    error: str | None = None
