"""Fund Collection Pipeline — pull YES stakes into the group pool.

Fan-out/fan-in: one coroutine per YES voter, bounded by a semaphore and
joined with asyncio.gather. A failing voter never affects the others; its
attempt is recorded and the rest proceed. After the barrier the pooled total
moves pool -> relay in a single transfer.

Failure semantics:
  - nobody paid            -> NoFundsCollectedError (nothing to drain)
  - pool -> relay failed   -> RelayTransferFailedError; funds stay in the pool
                              (recoverable by hand, no rollback of collections)
"""

import asyncio
import logging

from src.sc_common.enums import TransferDirection, TransferStatus
from src.sc_common.errors import (
    NoFundsCollectedError,
    RelayTransferFailedError,
    TransferFailedError,
)
from src.sc_common.lamports import lamports_to_display
from src.sc_settlement.domain.models import CollectionResult, Contribution, TransferAttempt
from src.sc_settlement.domain.ports import Ledger

logger = logging.getLogger(__name__)


class FundCollectionPipeline:
    def __init__(self, ledger: Ledger, fee_reserve: int, concurrency: int) -> None:
        self._ledger = ledger
        self._fee_reserve = fee_reserve
        self._concurrency = max(concurrency, 1)

    async def collect(
        self,
        proposal_id: str,
        yes_votes: list[tuple[str, int]],
        wallets: dict[str, str],
        pool_address: str,
    ) -> CollectionResult:
        """Transfer every YES stake to the pool. Never raises for a single voter."""
        result = CollectionResult(proposal_id=proposal_id)
        semaphore = asyncio.Semaphore(self._concurrency)
        lock = asyncio.Lock()

        async def collect_one(participant_id: str, amount: int) -> TransferAttempt:
            async with semaphore:
                attempt = await self._transfer_stake(
                    proposal_id, participant_id, amount, wallets.get(participant_id), pool_address
                )
            if attempt.ok:
                async with lock:
                    result.total_collected += amount
            return attempt

        attempts = await asyncio.gather(*(collect_one(pid, amt) for pid, amt in yes_votes))

        # Attempts come back in vote order regardless of completion order
        result.attempts.extend(attempts)
        result.contributions.extend(
            Contribution(participant_id=a.participant_id, amount=a.amount)
            for a in attempts
            if a.ok and a.participant_id is not None
        )
        logger.info(
            "Collected %s for proposal %s (%d ok, %d failed)",
            lamports_to_display(result.total_collected),
            proposal_id,
            result.succeeded,
            len(attempts) - result.succeeded,
        )
        return result

    async def drain(self, result: CollectionResult, pool_address: str, relay_address: str) -> str:
        """Move the pooled total to the relay wallet. Appends the attempt to `result`."""
        if result.total_collected == 0:
            raise NoFundsCollectedError(len(result.failures))

        try:
            signature = await self._ledger.transfer(
                pool_address, relay_address, result.total_collected
            )
        except TransferFailedError as e:
            result.attempts.append(
                TransferAttempt(
                    proposal_id=result.proposal_id,
                    direction=TransferDirection.DRAIN,
                    amount=result.total_collected,
                    from_address=pool_address,
                    to_address=relay_address,
                    status=TransferStatus.FAILED,
                    error=e.message,
                )
            )
            raise RelayTransferFailedError(e.message) from e

        result.drain_signature = signature
        result.attempts.append(
            TransferAttempt(
                proposal_id=result.proposal_id,
                direction=TransferDirection.DRAIN,
                amount=result.total_collected,
                from_address=pool_address,
                to_address=relay_address,
                status=TransferStatus.CONFIRMED,
                signature=signature,
            )
        )
        logger.info(
            "Drained %s pool -> relay for proposal %s (%s)",
            lamports_to_display(result.total_collected),
            result.proposal_id,
            signature,
        )
        return signature

    async def _transfer_stake(
        self,
        proposal_id: str,
        participant_id: str,
        amount: int,
        wallet: str | None,
        pool_address: str,
    ) -> TransferAttempt:
        def failed(reason: str) -> TransferAttempt:
            logger.warning(
                "Collection failed for %s on proposal %s: %s", participant_id, proposal_id, reason
            )
            return TransferAttempt(
                proposal_id=proposal_id,
                direction=TransferDirection.COLLECT,
                amount=amount,
                from_address=wallet,
                to_address=pool_address,
                status=TransferStatus.FAILED,
                participant_id=participant_id,
                error=reason,
            )

        if wallet is None:
            return failed("wallet not found")
        try:
            balance = await self._ledger.balance(wallet)
            required = amount + self._fee_reserve
            if balance < required:
                return failed(
                    f"insufficient balance: required {required} lamports, available {balance} lamports"
                )
            signature = await self._ledger.transfer(wallet, pool_address, amount)
        except TransferFailedError as e:
            return failed(e.message)
        except Exception as e:  # isolate one voter's unexpected failure from the rest
            logger.exception("Unexpected error collecting from %s", participant_id)
            return failed(str(e) or type(e).__name__)

        return TransferAttempt(
            proposal_id=proposal_id,
            direction=TransferDirection.COLLECT,
            amount=amount,
            from_address=wallet,
            to_address=pool_address,
            status=TransferStatus.CONFIRMED,
            participant_id=participant_id,
            signature=signature,
        )
