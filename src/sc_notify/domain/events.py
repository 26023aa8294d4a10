"""Outbound notification events.

Every event is a frozen dataclass routed by group_id. The payload shape is
flat JSON: {"event": <event_type>, "group_id": ..., **fields}.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar


@dataclass(frozen=True)
class TallyView:
    yes: int
    no: int
    abstained: int
    yes_amount: int


@dataclass(frozen=True)
class NotificationEvent:
    event_type: ClassVar[str] = "Notification"

    group_id: str

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["event"] = self.event_type
        return payload


@dataclass(frozen=True)
class SessionOpened(NotificationEvent):
    event_type: ClassVar[str] = "SessionOpened"

    session_id: str = ""
    creator_id: str = ""
    join_deadline: str = ""


@dataclass(frozen=True)
class ParticipantJoined(NotificationEvent):
    event_type: ClassVar[str] = "ParticipantJoined"

    session_id: str = ""
    participant_id: str = ""
    participant_count: int = 0


@dataclass(frozen=True)
class SessionClosed(NotificationEvent):
    event_type: ClassVar[str] = "SessionClosed"

    session_id: str = ""
    closed_by: str = ""
    discarded_proposals: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProposalOpened(NotificationEvent):
    event_type: ClassVar[str] = "ProposalOpened"

    session_id: str = ""
    proposal_id: str = ""
    kind: str = ""
    text: str = ""
    proposer_id: str = ""
    duration_minutes: int = 0
    end_time: str = ""
    eligible_voters: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class VoteRecorded(NotificationEvent):
    event_type: ClassVar[str] = "VoteRecorded"

    proposal_id: str = ""
    participant_id: str = ""
    choice: str = ""
    amount: int = 0
    tally: TallyView | None = None


@dataclass(frozen=True)
class ProposalClosed(NotificationEvent):
    event_type: ClassVar[str] = "ProposalClosed"

    proposal_id: str = ""
    kind: str = ""
    outcome: str = ""
    tally: TallyView | None = None
    voters: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SettlementSummaryPublished(NotificationEvent):
    event_type: ClassVar[str] = "SettlementSummary"

    proposal_id: str = ""
    kind: str = ""
    settlement_status: str = ""
    total_collected: int | None = None
    net_proceeds: int | None = None
    succeeded: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    order_id: str | None = None
    error: str | None = None
