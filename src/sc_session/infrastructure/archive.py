"""ProposalArchiveRepository — durable record of closed proposals and their votes.

Redis holds a session only while it is live (plus a retention window);
proposal_records / vote_records keep the outcome for reporting. Archiving
is an upsert so the settlement status can be written after the outcome.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sc_session.domain.models import Proposal

_UPSERT_PROPOSAL_SQL = text("""
    INSERT INTO proposal_records (id, session_id, group_id, kind, text, proposer_id,
        duration_minutes, start_time, end_time, status,
        yes_count, no_count, abstained_count, yes_amount,
        target_asset, target_amount, target_price, slippage_bps, order_ref,
        settlement_status, settled_order_id, closed_at)
    VALUES (:id, :session_id, :group_id, :kind, :text, :proposer_id,
        :duration_minutes, :start_time, :end_time, :status,
        :yes_count, :no_count, :abstained_count, :yes_amount,
        :target_asset, :target_amount, :target_price, :slippage_bps, :order_ref,
        :settlement_status, :settled_order_id, :closed_at)
    ON CONFLICT (id) DO UPDATE
    SET settlement_status = EXCLUDED.settlement_status,
        settled_order_id = EXCLUDED.settled_order_id,
        updated_at = NOW()
""")

_INSERT_VOTE_SQL = text("""
    INSERT INTO vote_records (proposal_id, participant_id, choice, amount, cast_at)
    VALUES (:proposal_id, :participant_id, :choice, :amount, :cast_at)
    ON CONFLICT (proposal_id, participant_id) DO NOTHING
""")


class ProposalArchiveRepository:
    async def archive(self, proposal: Proposal, db: AsyncSession) -> None:
        tally = proposal.tally()
        await db.execute(
            _UPSERT_PROPOSAL_SQL,
            {
                "id": proposal.id,
                "session_id": proposal.session_id,
                "group_id": proposal.group_id,
                "kind": proposal.kind.value,
                "text": proposal.text,
                "proposer_id": proposal.proposer_id,
                "duration_minutes": proposal.duration_minutes,
                "start_time": proposal.start_time,
                "end_time": proposal.end_time,
                "status": proposal.status.value,
                "yes_count": tally.yes,
                "no_count": tally.no,
                "abstained_count": tally.abstained,
                "yes_amount": tally.yes_amount,
                "target_asset": proposal.target_asset,
                "target_amount": proposal.target_amount,
                "target_price": proposal.target_price,
                "slippage_bps": proposal.slippage_bps,
                "order_ref": proposal.order_ref,
                "settlement_status": proposal.settlement_status.value,
                "settled_order_id": proposal.settled_order_id,
                "closed_at": proposal.closed_at,
            },
        )
        for participant_id, vote in proposal.votes.items():
            await db.execute(
                _INSERT_VOTE_SQL,
                {
                    "proposal_id": proposal.id,
                    "participant_id": participant_id,
                    "choice": vote.choice.value,
                    "amount": vote.amount,
                    "cast_at": vote.cast_at,
                },
            )
