"""JSON payload mapping for Session documents.

Votes are stored as an ordered list of [participant_id, vote] pairs so the
arrival order survives a round trip through the store.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.sc_common.enums import ProposalKind, ProposalStatus, SettlementStatus, VoteChoice
from src.sc_session.domain.models import Proposal, Session
from src.sc_session.domain.vote_ledger import Vote, VoteLedger


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _vote_to_payload(vote: Vote) -> dict[str, Any]:
    return {"choice": vote.choice.value, "amount": vote.amount, "cast_at": _dt(vote.cast_at)}


def _proposal_to_payload(p: Proposal) -> dict[str, Any]:
    return {
        "id": p.id,
        "session_id": p.session_id,
        "group_id": p.group_id,
        "kind": p.kind.value,
        "text": p.text,
        "proposer_id": p.proposer_id,
        "duration_minutes": p.duration_minutes,
        "start_time": _dt(p.start_time),
        "end_time": _dt(p.end_time),
        "eligible_voters": list(p.eligible_voters),
        "status": p.status.value,
        "votes": [[pid, _vote_to_payload(v)] for pid, v in p.votes.items()],
        "target_asset": p.target_asset,
        "target_amount": p.target_amount,
        "target_price": str(p.target_price) if p.target_price is not None else None,
        "slippage_bps": p.slippage_bps,
        "order_ref": p.order_ref,
        "settlement_status": p.settlement_status.value,
        "settled_order_id": p.settled_order_id,
        "closed_at": _dt(p.closed_at),
    }


def _payload_to_proposal(d: dict[str, Any]) -> Proposal:
    ledger = VoteLedger(
        (
            pid,
            Vote(
                choice=VoteChoice(v["choice"]),
                amount=int(v["amount"]),
                cast_at=_parse_dt(v.get("cast_at")),
            ),
        )
        for pid, v in d.get("votes", [])
    )
    return Proposal(
        id=d["id"],
        session_id=d["session_id"],
        group_id=d["group_id"],
        kind=ProposalKind(d["kind"]),
        text=d["text"],
        proposer_id=d["proposer_id"],
        duration_minutes=int(d["duration_minutes"]),
        start_time=datetime.fromisoformat(d["start_time"]),
        end_time=datetime.fromisoformat(d["end_time"]),
        eligible_voters=list(d["eligible_voters"]),
        status=ProposalStatus(d["status"]),
        votes=ledger,
        target_asset=d.get("target_asset"),
        target_amount=d.get("target_amount"),
        target_price=Decimal(d["target_price"]) if d.get("target_price") is not None else None,
        slippage_bps=d.get("slippage_bps"),
        order_ref=d.get("order_ref"),
        settlement_status=SettlementStatus(d.get("settlement_status", "NONE")),
        settled_order_id=d.get("settled_order_id"),
        closed_at=_parse_dt(d.get("closed_at")),
    )


def session_to_payload(s: Session) -> dict[str, Any]:
    return {
        "id": s.id,
        "group_id": s.group_id,
        "creator_id": s.creator_id,
        "created_at": _dt(s.created_at),
        "join_deadline": _dt(s.join_deadline),
        "participants": list(s.participants),
        "is_open": s.is_open,
        "proposals": [_proposal_to_payload(p) for p in s.proposals],
        "closed_at": _dt(s.closed_at),
        "version": s.version,
    }


def payload_to_session(d: dict[str, Any]) -> Session:
    return Session(
        id=d["id"],
        group_id=d["group_id"],
        creator_id=d["creator_id"],
        created_at=datetime.fromisoformat(d["created_at"]),
        join_deadline=datetime.fromisoformat(d["join_deadline"]),
        participants=list(d.get("participants", [])),
        is_open=bool(d["is_open"]),
        proposals=[_payload_to_proposal(p) for p in d.get("proposals", [])],
        closed_at=_parse_dt(d.get("closed_at")),
        version=int(d.get("version", 0)),
    )


def encode_session(s: Session) -> str:
    return json.dumps(session_to_payload(s))


def decode_session(raw: str) -> Session:
    return payload_to_session(json.loads(raw))
