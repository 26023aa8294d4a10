"""Wires the session manager, settlement pipelines and chain adapters.

CHAIN_MODE=http talks to the chain gateway over httpx; CHAIN_MODE=simulated
uses the in-memory ledger and exchange (development only).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

import httpx
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import Settings
from src.sc_common import id_generator
from src.sc_group.infrastructure.persistence import SqlGroupDirectory
from src.sc_notify.infrastructure.publishers import RedisNotificationPublisher
from src.sc_session.application.scheduler import ProposalScheduler
from src.sc_session.application.service import SessionApplicationService, SessionRules
from src.sc_session.infrastructure.redis_repository import RedisSessionRepository
from src.sc_settlement.application.dispatcher import SettlementDispatcher
from src.sc_settlement.domain.collection import FundCollectionPipeline
from src.sc_settlement.domain.distribution import DistributionPipeline
from src.sc_settlement.domain.execution import ExecutionAdapter
from src.sc_settlement.domain.ports import Exchange, Ledger
from src.sc_settlement.infrastructure.chain_client import (
    HttpExchangeClient,
    HttpLedgerClient,
    build_chain_http_client,
)
from src.sc_settlement.infrastructure.persistence import SqlOrderDirectory
from src.sc_settlement.infrastructure.simulated import SimulatedExchange, SimulatedLedger

logger = logging.getLogger(__name__)


@dataclass
class Services:
    sessions: SessionApplicationService
    dispatcher: SettlementDispatcher
    http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        await self.sessions.shutdown()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_chain(s: Settings) -> tuple[Ledger, Exchange, httpx.AsyncClient | None]:
    if s.CHAIN_MODE == "simulated":
        logger.warning("CHAIN_MODE=simulated: no real funds move")
        pairs = {mint: Decimal(1) for mint in s.TOKEN_SYMBOLS.values()}
        pairs.update(s.SIM_UNITS_PER_LAMPORT)
        ledger = SimulatedLedger(default_balance=s.SIM_WALLET_BALANCE_LAMPORTS)
        exchange = SimulatedExchange.with_pairs(s.SOURCE_ASSET, pairs, s.SIM_FEE_BPS)
        return ledger, exchange, None
    if s.CHAIN_MODE != "http":
        raise ValueError(f"Unknown CHAIN_MODE: {s.CHAIN_MODE!r}")
    client = build_chain_http_client(s.CHAIN_GATEWAY_URL, s.CHAIN_TIMEOUT_SECONDS)
    return HttpLedgerClient(client), HttpExchangeClient(client), client


def build_services(
    s: Settings,
    redis: aioredis.Redis,
    session_factory: async_sessionmaker[AsyncSession],
) -> Services:
    id_generator.configure(s.ID_NODE)
    ledger, exchange, http_client = build_chain(s)
    publisher = RedisNotificationPublisher(redis)

    dispatcher = SettlementDispatcher(
        session_factory=session_factory,
        collection=FundCollectionPipeline(
            ledger, s.FIXED_TRANSFER_FEE_LAMPORTS, s.SETTLEMENT_CONCURRENCY
        ),
        execution=ExecutionAdapter(exchange, s.SOURCE_ASSET),
        distribution=DistributionPipeline(
            exchange, ledger, s.SOURCE_ASSET, s.SETTLEMENT_CONCURRENCY
        ),
        publisher=publisher,
        slippage_bps=s.SLIPPAGE_BPS,
    )
    sessions = SessionApplicationService(
        repo=RedisSessionRepository(redis, s.CLOSED_SESSION_RETENTION_SECONDS),
        scheduler=ProposalScheduler(),
        settler=dispatcher,
        groups=SqlGroupDirectory(session_factory),
        orders=SqlOrderDirectory(session_factory),
        ledger=ledger,
        publisher=publisher,
        rules=SessionRules.from_settings(s),
    )
    return Services(sessions=sessions, dispatcher=dispatcher, http_client=http_client)
