"""SessionApplicationService — Session Manager and Proposal State Machine use cases.

Every mutation is load -> validate/mutate -> compare-and-set on the session
version, retried up to CAS_MAX_RETRIES times. Within one process mutations
of a session are additionally serialized by a per-session asyncio.Lock.

Side effects (timers, notifications, settlement) run only after the
repository accepted the write, and only in the caller that won it: two
auto-close firings for the same proposal dispatch settlement at most once.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol, TypeVar

from config.settings import Settings
from src.sc_common.datetime_utils import minutes_after, utc_now
from src.sc_common.enums import (
    AllocationStatus,
    OrderStatus,
    ProposalKind,
    ProposalStatus,
    SettlementStatus,
    VoteChoice,
)
from src.sc_common.errors import (
    AlreadyJoinedError,
    AlreadyOpenProposalError,
    ConcurrentModificationError,
    GroupInactiveError,
    GroupNotFoundError,
    InsufficientBalanceError,
    InvalidDurationError,
    JoinWindowClosedError,
    NotAuthorizedError,
    PreconditionFailedError,
    ProposalNotFoundError,
    SessionClosedError,
    SessionNotFoundError,
)
from src.sc_common.id_generator import generate_id
from src.sc_group.domain.models import Group
from src.sc_group.domain.repository import GroupDirectoryProtocol
from src.sc_notify.domain.events import (
    NotificationEvent,
    ParticipantJoined,
    ProposalClosed,
    ProposalOpened,
    SessionClosed,
    SessionOpened,
    TallyView,
    VoteRecorded,
)
from src.sc_notify.domain.publisher import NotificationPublisherProtocol
from src.sc_session.application.scheduler import ProposalScheduler
from src.sc_session.domain.actions import parse_buy_action, parse_sell_order_ref
from src.sc_session.domain.models import Proposal, Session
from src.sc_session.domain.repository import SessionRepositoryProtocol
from src.sc_session.domain.state_machine import (
    StakeBounds,
    build_vote,
    close_at_deadline,
    discard,
    record_vote,
)
from src.sc_session.domain.vote_ledger import Tally
from src.sc_settlement.domain.ports import Ledger
from src.sc_settlement.domain.repository import OrderDirectoryProtocol

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BUY_FORMAT = "BUY token=<symbol|mint> [amount=<sol>] [price=market|target:<p>] [slippage=<pct>]"


class ProposalSettler(Protocol):
    async def settle(self, proposal: Proposal) -> Any: ...


@dataclass(frozen=True)
class SessionRules:
    stake: StakeBounds
    transfer_fee: int
    min_minutes: int
    max_minutes: int
    join_window_seconds: int
    default_slippage_bps: int
    cas_max_retries: int
    token_symbols: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, s: Settings) -> "SessionRules":
        return cls(
            stake=StakeBounds(s.MIN_STAKE_LAMPORTS, s.MAX_STAKE_LAMPORTS),
            transfer_fee=s.FIXED_TRANSFER_FEE_LAMPORTS,
            min_minutes=s.PROPOSAL_MIN_MINUTES,
            max_minutes=s.PROPOSAL_MAX_MINUTES,
            join_window_seconds=s.JOIN_WINDOW_SECONDS,
            default_slippage_bps=s.SLIPPAGE_BPS,
            cas_max_retries=s.CAS_MAX_RETRIES,
            token_symbols={k.upper(): v for k, v in s.TOKEN_SYMBOLS.items()},
        )


def _tally_view(tally: Tally) -> TallyView:
    return TallyView(
        yes=tally.yes, no=tally.no, abstained=tally.abstained, yes_amount=tally.yes_amount
    )


class SessionApplicationService:
    def __init__(
        self,
        *,
        repo: SessionRepositoryProtocol,
        scheduler: ProposalScheduler,
        settler: ProposalSettler,
        groups: GroupDirectoryProtocol,
        orders: OrderDirectoryProtocol,
        ledger: Ledger,
        publisher: NotificationPublisherProtocol,
        rules: SessionRules,
        now_fn: Callable[[], datetime] = utc_now,
        new_id: Callable[[str], str] = generate_id,
    ) -> None:
        self._repo = repo
        self._scheduler = scheduler
        self._settler = settler
        self._groups = groups
        self._orders = orders
        self._ledger = ledger
        self._publisher = publisher
        self._rules = rules
        self._now = now_fn
        self._new_id = new_id
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, group_id: str, creator_id: str) -> Session:
        group = await self._require_group(group_id)
        if not group.is_active:
            raise GroupInactiveError(group_id)
        if not group.can_manage(creator_id):
            raise NotAuthorizedError("Only the group owner or an admin can open a session")

        now = self._now()
        session = Session(
            id=self._new_id("ses_"),
            group_id=group_id,
            creator_id=creator_id,
            created_at=now,
            join_deadline=now + timedelta(seconds=self._rules.join_window_seconds),
        )
        await self._repo.create(session)
        logger.info("Session %s opened for group %s by %s", session.id, group_id, creator_id)
        await self._notify(
            SessionOpened(
                group_id=group_id,
                session_id=session.id,
                creator_id=creator_id,
                join_deadline=session.join_deadline.isoformat(),
            )
        )
        return session

    async def join_session(self, session_id: str, participant_id: str) -> Session:
        def join(session: Session) -> Session:
            if not session.is_open:
                raise SessionClosedError(session.id)
            if self._now() > session.join_deadline:
                raise JoinWindowClosedError(session.id)
            if session.has_participant(participant_id):
                raise AlreadyJoinedError(participant_id)
            session.participants.append(participant_id)
            return session

        session, _ = await self._mutate(session_id, join)
        await self._notify(
            ParticipantJoined(
                group_id=session.group_id,
                session_id=session.id,
                participant_id=participant_id,
                participant_count=len(session.participants),
            )
        )
        return session

    async def close_session(self, session_id: str, actor_id: str) -> Session:
        """Close the session and discard its open proposal. Idempotent once closed."""
        session = await self._load(session_id)
        group = await self._groups.get_group(session.group_id)
        if actor_id != session.creator_id and not (group and group.can_manage(actor_id)):
            raise NotAuthorizedError("Only the session creator, group owner or an admin can close it")

        def close(s: Session) -> list[Proposal] | None:
            if not s.is_open:
                return None
            now = self._now()
            s.is_open = False
            s.closed_at = now
            return [p for p in s.proposals if discard(p, now)]

        session, discarded = await self._mutate(session_id, close)
        if discarded is None:
            return session
        self._locks.pop(session_id, None)

        for proposal in discarded:
            self._scheduler.cancel(proposal.id)
            await self._settler.settle(proposal)
        logger.info(
            "Session %s closed by %s (%d proposal(s) discarded)", session_id, actor_id, len(discarded)
        )
        await self._notify(
            SessionClosed(
                group_id=session.group_id,
                session_id=session.id,
                closed_by=actor_id,
                discarded_proposals=[p.id for p in discarded],
            )
        )
        return session

    async def close_open_session(self, group_id: str, actor_id: str) -> Session | None:
        session = await self._repo.find_open_by_group(group_id)
        if session is None:
            return None
        return await self.close_session(session.id, actor_id)

    async def get_session(self, session_id: str) -> Session:
        return await self._load(session_id)

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def create_proposal(
        self,
        session_id: str,
        proposer_id: str,
        kind: ProposalKind,
        text: str,
        duration_minutes: int,
        order_ref: str | None = None,
    ) -> Proposal:
        rules = self._rules
        if not (rules.min_minutes <= duration_minutes <= rules.max_minutes):
            raise InvalidDurationError(duration_minutes, rules.min_minutes, rules.max_minutes)

        session = await self._load(session_id)
        target: dict[str, Any] = {}
        holders: list[str] = []
        if kind == ProposalKind.BUY:
            action = parse_buy_action(text, rules.token_symbols, rules.default_slippage_bps)
            if action is None:
                raise PreconditionFailedError(f"BUY text must look like '{_BUY_FORMAT}'")
            target = {
                "target_asset": action.token,
                "target_amount": action.amount,
                "target_price": action.price,
                "slippage_bps": action.slippage_bps,
            }
        else:
            ref = order_ref or parse_sell_order_ref(text)
            if not ref:
                raise PreconditionFailedError("SELL needs an order reference: 'SELL order=<order_id>'")
            holders = await self._sell_eligible_voters(ref, session.group_id, proposer_id)
            target = {"order_ref": ref}

        def add(s: Session) -> Proposal:
            if not s.is_open:
                raise SessionClosedError(s.id)
            if s.open_proposal() is not None:
                raise AlreadyOpenProposalError(s.id)
            if kind == ProposalKind.BUY and not s.has_participant(proposer_id):
                raise PreconditionFailedError("the proposer must join the session first")
            now = self._now()
            proposal = Proposal(
                id=self._new_id("prp_"),
                session_id=s.id,
                group_id=s.group_id,
                kind=kind,
                text=text.strip(),
                proposer_id=proposer_id,
                duration_minutes=duration_minutes,
                start_time=now,
                end_time=minutes_after(now, duration_minutes),
                eligible_voters=list(s.participants) if kind == ProposalKind.BUY else holders,
                **target,
            )
            s.proposals.append(proposal)
            return proposal

        session, proposal = await self._mutate(session_id, add)
        self._scheduler.schedule(proposal.id, proposal.end_time, self.auto_close)
        logger.info(
            "%s proposal %s opened in session %s (%d min, %d eligible)",
            kind.value,
            proposal.id,
            session_id,
            duration_minutes,
            len(proposal.eligible_voters),
        )
        await self._notify(
            ProposalOpened(
                group_id=proposal.group_id,
                session_id=session_id,
                proposal_id=proposal.id,
                kind=kind.value,
                text=proposal.text,
                proposer_id=proposer_id,
                duration_minutes=duration_minutes,
                end_time=proposal.end_time.isoformat(),
                eligible_voters=list(proposal.eligible_voters),
            )
        )
        return proposal

    async def cast_vote(
        self, proposal_id: str, participant_id: str, choice: VoteChoice, amount: int = 0
    ) -> Tally:
        session = await self._repo.find_by_proposal(proposal_id)
        if session is None:
            raise ProposalNotFoundError(proposal_id)
        proposal = self._proposal_in(session, proposal_id)

        # Validate before the balance lookup so rule violations win over I/O errors
        vote = build_vote(proposal, participant_id, choice, amount, self._now(), self._rules.stake)
        if proposal.kind == ProposalKind.BUY and choice == VoteChoice.YES:
            await self._check_balance(participant_id, vote.amount)

        def record(s: Session) -> Tally:
            p = self._proposal_in(s, proposal_id)
            v = build_vote(p, participant_id, choice, amount, self._now(), self._rules.stake)
            return record_vote(p, participant_id, v)

        session, tally = await self._mutate(session.id, record)
        await self._notify(
            VoteRecorded(
                group_id=session.group_id,
                proposal_id=proposal_id,
                participant_id=participant_id,
                choice=choice.value,
                amount=vote.amount,
                tally=_tally_view(tally),
            )
        )
        return tally

    async def auto_close(self, proposal_id: str) -> ProposalStatus | None:
        """Timer callback at end_time. Idempotent: only the first successful close settles."""
        session = await self._repo.find_by_proposal(proposal_id)
        if session is None:
            logger.warning("Auto-close for unknown proposal %s", proposal_id)
            return None
        proposal = self._proposal_in(session, proposal_id)
        if proposal.is_open and self._now() < proposal.end_time:
            logger.info("Auto-close for %s fired early, re-arming", proposal_id)
            self._scheduler.schedule(proposal_id, proposal.end_time, self.auto_close)
            return None

        def close(s: Session) -> Proposal | None:
            p = self._proposal_in(s, proposal_id)
            status = close_at_deadline(p, self._now())
            if status is None:
                return None
            if status == ProposalStatus.APPROVED:
                p.settlement_status = SettlementStatus.PENDING
            return p

        session, closed = await self._mutate(session.id, close)
        if closed is None:
            return None

        tally = closed.tally()
        logger.info(
            "Proposal %s closed %s (yes=%d no=%d abstained=%d)",
            proposal_id,
            closed.status.value,
            tally.yes,
            tally.no,
            tally.abstained,
        )
        await self._notify(
            ProposalClosed(
                group_id=closed.group_id,
                proposal_id=proposal_id,
                kind=closed.kind.value,
                outcome=closed.status.value,
                tally=_tally_view(tally),
                voters=[pid for pid, _ in closed.votes.items()],
            )
        )

        summary = await self._settler.settle(closed)
        if summary is not None:
            await self._record_settlement(
                session.id, proposal_id, summary.settlement_status, summary.order_id
            )
        return closed.status

    async def get_proposal(self, proposal_id: str) -> Proposal:
        session = await self._repo.find_by_proposal(proposal_id)
        if session is None:
            raise ProposalNotFoundError(proposal_id)
        return self._proposal_in(session, proposal_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def recover_timers(self) -> int:
        """Re-arm auto-close timers for every open proposal after a restart."""
        armed = 0
        for session in await self._repo.list_open():
            for proposal in session.proposals:
                if proposal.is_open:
                    self._scheduler.schedule(proposal.id, proposal.end_time, self.auto_close)
                    armed += 1
                elif proposal.settlement_status == SettlementStatus.PENDING:
                    logger.warning(
                        "Proposal %s was left PENDING settlement by a previous process",
                        proposal.id,
                    )
        logger.info("Re-armed %d auto-close timer(s)", armed)
        return armed

    async def shutdown(self) -> None:
        await self._scheduler.shutdown()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _mutate(
        self, session_id: str, fn: Callable[[Session], T | None]
    ) -> tuple[Session, T | None]:
        """Apply `fn` to a fresh copy of the session and compare-and-set it.

        `fn` may raise to reject the change; returning None means "nothing to
        write" and skips the update.
        """
        async with self._locks[session_id]:
            for attempt in range(1, self._rules.cas_max_retries + 1):
                session = await self._load(session_id)
                result = fn(session)
                if result is None:
                    return session, None
                try:
                    await self._repo.update(session, session.version)
                except ConcurrentModificationError:
                    logger.info(
                        "Version conflict on session %s (attempt %d/%d)",
                        session_id,
                        attempt,
                        self._rules.cas_max_retries,
                    )
                    continue
                return session, result
        raise ConcurrentModificationError(session_id)

    async def _load(self, session_id: str) -> Session:
        session = await self._repo.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def _proposal_in(session: Session, proposal_id: str) -> Proposal:
        proposal = session.get_proposal(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    async def _require_group(self, group_id: str) -> Group:
        group = await self._groups.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    async def _sell_eligible_voters(self, order_id: str, group_id: str, proposer_id: str) -> list[str]:
        order = await self._orders.get_order(order_id)
        if order is None:
            raise PreconditionFailedError(f"order {order_id} not found")
        if order.group_id != group_id:
            raise PreconditionFailedError(f"order {order_id} belongs to another group")
        if order.status != OrderStatus.COMPLETED:
            raise PreconditionFailedError(f"order {order_id} is {order.status.value}, not COMPLETED")
        allocations = await self._orders.list_allocations(order_id)
        holders = list(
            dict.fromkeys(
                a.participant_id for a in allocations if a.status == AllocationStatus.ACTIVE
            )
        )
        if proposer_id not in holders:
            raise PreconditionFailedError(f"the proposer holds no allocation on order {order_id}")
        return holders

    async def _check_balance(self, participant_id: str, amount: int) -> None:
        wallet = await self._groups.get_wallet_address(participant_id)
        if wallet is None:
            return
        available = await self._ledger.balance(wallet)
        required = amount + self._rules.transfer_fee
        if available < required:
            raise InsufficientBalanceError(required, available)

    async def _record_settlement(
        self,
        session_id: str,
        proposal_id: str,
        status: SettlementStatus,
        order_id: str | None,
    ) -> None:
        def apply(s: Session) -> Proposal:
            p = self._proposal_in(s, proposal_id)
            p.settlement_status = status
            p.settled_order_id = order_id
            return p

        await self._mutate(session_id, apply)

    async def _notify(self, event: NotificationEvent) -> None:
        try:
            await self._publisher.publish(event)
        except Exception:
            logger.warning("Failed to publish %s", event.event_type, exc_info=True)
