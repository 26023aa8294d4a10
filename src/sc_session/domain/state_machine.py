"""Proposal state machine: OPEN -> APPROVED | REJECTED | DISCARDED.

OPEN is the only non-terminal state and each proposal leaves it exactly
once. APPROVED/REJECTED happen at end_time through the auto-close timer;
DISCARDED happens when the owning session is closed and never settles.

Outcome rule (BUY and SELL alike): approved iff yes + no > 0 and yes > no.
Ties and zero votes reject. Abstentions count in neither side.
"""

from dataclasses import dataclass
from datetime import datetime

from src.sc_common.enums import ProposalKind, ProposalStatus, VoteChoice
from src.sc_common.errors import (
    AlreadyVotedError,
    InvalidAmountError,
    NotEligibleError,
    ProposalClosedError,
)
from src.sc_session.domain.models import Proposal
from src.sc_session.domain.vote_ledger import Tally, Vote


@dataclass(frozen=True)
class StakeBounds:
    min_lamports: int
    max_lamports: int


def decide_outcome(tally: Tally) -> ProposalStatus:
    if tally.total > 0 and tally.yes > tally.no:
        return ProposalStatus.APPROVED
    return ProposalStatus.REJECTED


def build_vote(
    proposal: Proposal,
    participant_id: str,
    choice: VoteChoice,
    amount: int,
    now: datetime,
    bounds: StakeBounds,
) -> Vote:
    """Validate a vote against the proposal without mutating it."""
    if not proposal.is_open or now >= proposal.end_time:
        raise ProposalClosedError(proposal.id)
    if participant_id not in proposal.eligible_voters:
        raise NotEligibleError(participant_id)
    if proposal.votes.has_voted(participant_id):
        raise AlreadyVotedError(participant_id)

    if proposal.kind == ProposalKind.BUY and choice == VoteChoice.YES:
        if not (bounds.min_lamports <= amount <= bounds.max_lamports):
            raise InvalidAmountError(amount, bounds.min_lamports, bounds.max_lamports)
        return Vote(choice=choice, amount=amount, cast_at=now)
    # BUY NO and every SELL vote carry no stake
    return Vote(choice=choice, amount=0, cast_at=now)


def record_vote(proposal: Proposal, participant_id: str, vote: Vote) -> Tally:
    proposal.votes.record(participant_id, vote)
    return proposal.tally()


def close_at_deadline(proposal: Proposal, now: datetime) -> ProposalStatus | None:
    """Terminal transition at end_time.

    Returns the new status, or None when the proposal is already terminal
    (idempotent) or the deadline has not been reached yet.
    """
    if not proposal.is_open or now < proposal.end_time:
        return None
    proposal.status = decide_outcome(proposal.tally())
    proposal.closed_at = now
    return proposal.status


def discard(proposal: Proposal, now: datetime) -> bool:
    """Session closure: drop votes, no settlement. False if already terminal."""
    if not proposal.is_open:
        return False
    proposal.status = ProposalStatus.DISCARDED
    proposal.votes.clear()
    proposal.closed_at = now
    return True
