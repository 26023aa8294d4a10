"""Domain models for sc_session — pure dataclasses, no Redis dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.sc_common.enums import ProposalKind, ProposalStatus, SettlementStatus
from src.sc_session.domain.vote_ledger import Tally, VoteLedger


@dataclass
class Proposal:
    id: str
    session_id: str
    group_id: str
    kind: ProposalKind
    text: str
    proposer_id: str
    duration_minutes: int
    start_time: datetime
    end_time: datetime
    eligible_voters: list[str]  # BUY: session participants, SELL: order allocation holders
    status: ProposalStatus = ProposalStatus.OPEN
    votes: VoteLedger = field(default_factory=VoteLedger)
    # BUY target
    target_asset: str | None = None
    target_amount: int | None = None        # lamports requested in total, None = unspecified
    target_price: Decimal | None = None     # None = market price
    slippage_bps: int | None = None
    # SELL target
    order_ref: str | None = None
    # Outcome
    settlement_status: SettlementStatus = SettlementStatus.NONE
    settled_order_id: str | None = None
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == ProposalStatus.OPEN

    def tally(self) -> Tally:
        return self.votes.tally(self.eligible_voters)


@dataclass
class Session:
    id: str
    group_id: str
    creator_id: str
    created_at: datetime
    join_deadline: datetime
    participants: list[str] = field(default_factory=list)  # join order, display only
    is_open: bool = True
    proposals: list[Proposal] = field(default_factory=list)  # chronological
    closed_at: datetime | None = None
    version: int = 0  # optimistic concurrency token, bumped by the repository

    def has_participant(self, participant_id: str) -> bool:
        return participant_id in self.participants

    def open_proposal(self) -> Proposal | None:
        for proposal in reversed(self.proposals):
            if proposal.is_open:
                return proposal
        return None

    def get_proposal(self, proposal_id: str) -> Proposal | None:
        for proposal in self.proposals:
            if proposal.id == proposal_id:
                return proposal
        return None
