"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class ProposalKind(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class ProposalStatus(str, Enum):
    OPEN = "OPEN"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DISCARDED = "DISCARDED"  # session closed while the proposal was open, no settlement


class VoteChoice(str, Enum):
    YES = "YES"
    NO = "NO"


class SettlementStatus(str, Enum):
    NONE = "NONE"            # rejected / discarded, nothing to settle
    PENDING = "PENDING"      # approved, pipeline running
    SETTLED = "SETTLED"
    UNSETTLED = "UNSETTLED"  # approved-but-unsettled: pipeline-fatal error


class OrderStatus(str, Enum):
    COMPLETED = "COMPLETED"
    SELLING = "SELLING"  # claimed by a SELL settlement, swap in flight
    SOLD = "SOLD"


class AllocationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"


class TransferDirection(str, Enum):
    COLLECT = "COLLECT"  # participant wallet -> pool
    DRAIN = "DRAIN"      # pool -> relay
    PAYOUT = "PAYOUT"    # group wallet -> participant wallet


class TransferStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
