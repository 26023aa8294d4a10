"""Pydantic request/response schemas for the session API.

Stakes are int lamports on the wire; `amount` on a BUY YES vote must lie in
[MIN_STAKE_LAMPORTS, MAX_STAKE_LAMPORTS]. Prices are strings (Decimal).
"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.sc_common.enums import ProposalKind, VoteChoice
from src.sc_session.domain.models import Proposal, Session
from src.sc_session.domain.vote_ledger import Tally


class CreateSessionRequest(BaseModel):
    group_id: str = Field(..., min_length=1, max_length=64)


class CreateProposalRequest(BaseModel):
    kind: ProposalKind
    text: str = Field(..., min_length=1, max_length=500)
    duration_minutes: int
    order_ref: str | None = Field(None, max_length=64)


class CastVoteRequest(BaseModel):
    choice: VoteChoice
    amount: int = Field(0, ge=0, description="Stake in lamports (BUY YES only)")


class TallyResponse(BaseModel):
    yes: int
    no: int
    abstained: int
    yes_amount: int

    @classmethod
    def from_tally(cls, tally: Tally) -> "TallyResponse":
        return cls(yes=tally.yes, no=tally.no, abstained=tally.abstained, yes_amount=tally.yes_amount)


class VoteResponse(BaseModel):
    participant_id: str
    choice: VoteChoice
    amount: int
    cast_at: datetime | None = None


class ProposalResponse(BaseModel):
    id: str
    session_id: str
    group_id: str
    kind: ProposalKind
    text: str
    proposer_id: str
    status: str
    duration_minutes: int
    start_time: datetime
    end_time: datetime
    eligible_voters: list[str]
    votes: list[VoteResponse]
    tally: TallyResponse
    target_asset: str | None = None
    target_amount: int | None = None
    target_price: str | None = None
    slippage_bps: int | None = None
    order_ref: str | None = None
    settlement_status: str
    settled_order_id: str | None = None
    closed_at: datetime | None = None

    @classmethod
    def from_domain(cls, p: Proposal) -> "ProposalResponse":
        return cls(
            id=p.id,
            session_id=p.session_id,
            group_id=p.group_id,
            kind=p.kind,
            text=p.text,
            proposer_id=p.proposer_id,
            status=p.status.value,
            duration_minutes=p.duration_minutes,
            start_time=p.start_time,
            end_time=p.end_time,
            eligible_voters=list(p.eligible_voters),
            votes=[
                VoteResponse(participant_id=pid, choice=v.choice, amount=v.amount, cast_at=v.cast_at)
                for pid, v in p.votes.items()
            ],
            tally=TallyResponse.from_tally(p.tally()),
            target_asset=p.target_asset,
            target_amount=p.target_amount,
            target_price=str(p.target_price) if p.target_price is not None else None,
            slippage_bps=p.slippage_bps,
            order_ref=p.order_ref,
            settlement_status=p.settlement_status.value,
            settled_order_id=p.settled_order_id,
            closed_at=p.closed_at,
        )


class SessionResponse(BaseModel):
    id: str
    group_id: str
    creator_id: str
    is_open: bool
    created_at: datetime
    join_deadline: datetime
    closed_at: datetime | None = None
    participants: list[str]
    proposals: list[ProposalResponse]

    @classmethod
    def from_domain(cls, s: Session) -> "SessionResponse":
        return cls(
            id=s.id,
            group_id=s.group_id,
            creator_id=s.creator_id,
            is_open=s.is_open,
            created_at=s.created_at,
            join_deadline=s.join_deadline,
            closed_at=s.closed_at,
            participants=list(s.participants),
            proposals=[ProposalResponse.from_domain(p) for p in s.proposals],
        )
