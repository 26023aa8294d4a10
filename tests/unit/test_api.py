"""API tests: session/proposal routes over an in-memory service (no DB, no Redis)."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from src.main import app
from src.sc_common.database import get_db_session
from src.sc_gateway.auth.dependencies import get_current_participant
from src.sc_gateway.auth.jwt_handler import create_access_token
from src.sc_group.domain.models import Group, ParticipantWallet
from src.sc_notify.infrastructure.publishers import InMemoryNotificationPublisher
from src.sc_session.application.provider import get_session_service
from src.sc_session.application.scheduler import ProposalScheduler
from src.sc_session.application.service import SessionApplicationService, SessionRules
from src.sc_session.domain.state_machine import StakeBounds
from src.sc_session.infrastructure.memory_repository import InMemorySessionRepository
from src.sc_settlement.api import router as settlement_router_module
from src.sc_settlement.application.service import ReportingApplicationService
from src.sc_settlement.infrastructure.simulated import SimulatedLedger

RULES = SessionRules(
    stake=StakeBounds(min_lamports=1_000_000, max_lamports=1_000_000_000),
    transfer_fee=5_000,
    min_minutes=1,
    max_minutes=10,
    join_window_seconds=60,
    default_slippage_bps=100,
    cas_max_retries=3,
    token_symbols={"BONK": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"},
)


class _Groups:
    async def get_group(self, group_id: str) -> Group | None:
        if group_id != "grp-1":
            return None
        return Group(
            id="grp-1",
            name="Degens",
            owner_id="alice",
            pool_address="pool",
            relay_address="relay",
            wallet_address="gwallet",
        )

    async def get_wallet_address(self, participant_id: str) -> str | None:
        return f"w-{participant_id}"


class _Orders:
    async def get_order(self, order_id: str):
        return None

    async def list_allocations(self, order_id: str):
        return []


class _Settler:
    async def settle(self, proposal):
        return None


class _Actor:
    participant_id = "alice"


@pytest.fixture
async def service():
    svc = SessionApplicationService(
        repo=InMemorySessionRepository(),
        scheduler=ProposalScheduler(),
        settler=_Settler(),
        groups=_Groups(),
        orders=_Orders(),
        ledger=SimulatedLedger({"w-alice": 1_000_000_000, "w-bob": 1_000}),
        publisher=InMemoryNotificationPublisher(),
        rules=RULES,
    )
    yield svc
    await svc.shutdown()


@pytest.fixture
def actor(service) -> _Actor:
    actor = _Actor()
    app.dependency_overrides[get_session_service] = lambda: service
    app.dependency_overrides[get_current_participant] = lambda: actor.participant_id
    return actor


async def _open_session(client: AsyncClient, actor: _Actor) -> str:
    resp = await client.post("/api/v1/sessions", json={"group_id": "grp-1"})
    assert resp.status_code == 201
    session_id = resp.json()["data"]["id"]
    for pid in ("alice", "bob"):
        actor.participant_id = pid
        resp = await client.post(f"/api/v1/sessions/{session_id}/participants")
        assert resp.status_code == 200
    actor.participant_id = "alice"
    return session_id


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_requires_bearer_token(client: AsyncClient, service) -> None:
    app.dependency_overrides[get_session_service] = lambda: service
    resp = await client.post("/api/v1/sessions", json={"group_id": "grp-1"})
    assert resp.status_code == 401


async def test_real_token_accepted(client: AsyncClient, service) -> None:
    app.dependency_overrides[get_session_service] = lambda: service
    token = create_access_token("alice")
    resp = await client.post(
        "/api/v1/sessions",
        json={"group_id": "grp-1"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["creator_id"] == "alice"


async def test_session_and_vote_flow(client: AsyncClient, actor: _Actor) -> None:
    session_id = await _open_session(client, actor)

    resp = await client.post(
        f"/api/v1/sessions/{session_id}/proposals",
        json={"kind": "BUY", "text": "BUY token=BONK amount=0.08", "duration_minutes": 5},
    )
    assert resp.status_code == 201
    proposal = resp.json()["data"]
    assert proposal["status"] == "OPEN"
    assert proposal["eligible_voters"] == ["alice", "bob"]
    assert proposal["target_amount"] == 80_000_000

    resp = await client.post(
        f"/api/v1/proposals/{proposal['id']}/votes", json={"choice": "YES", "amount": 50_000_000}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"] == {"yes": 1, "no": 0, "abstained": 1, "yes_amount": 50_000_000}
    assert body["request_id"] == resp.headers["X-Request-ID"]

    resp = await client.get(f"/api/v1/proposals/{proposal['id']}")
    assert resp.json()["data"]["votes"][0]["participant_id"] == "alice"


async def test_error_envelope(client: AsyncClient, actor: _Actor) -> None:
    session_id = await _open_session(client, actor)
    resp = await client.post(f"/api/v1/sessions/{session_id}/participants")
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == 2004
    assert body["data"] is None
    assert body["request_id"] == resp.headers["X-Request-ID"]


async def test_insufficient_balance(client: AsyncClient, actor: _Actor) -> None:
    session_id = await _open_session(client, actor)
    resp = await client.post(
        f"/api/v1/sessions/{session_id}/proposals",
        json={"kind": "BUY", "text": "BUY token=BONK", "duration_minutes": 5},
    )
    proposal_id = resp.json()["data"]["id"]
    actor.participant_id = "bob"
    resp = await client.post(
        f"/api/v1/proposals/{proposal_id}/votes", json={"choice": "YES", "amount": 1_000_000}
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == 3009


async def test_invalid_duration(client: AsyncClient, actor: _Actor) -> None:
    session_id = await _open_session(client, actor)
    resp = await client.post(
        f"/api/v1/sessions/{session_id}/proposals",
        json={"kind": "BUY", "text": "BUY token=BONK", "duration_minutes": 11},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == 3004


async def test_negative_amount_rejected_by_schema(client: AsyncClient, actor: _Actor) -> None:
    resp = await client.post("/api/v1/proposals/prp_x/votes", json={"choice": "YES", "amount": -1})
    assert resp.status_code == 422


async def test_unknown_session(client: AsyncClient, actor: _Actor) -> None:
    resp = await client.get("/api/v1/sessions/ses_missing")
    assert resp.status_code == 404
    assert resp.json()["code"] == 2001


async def test_close_session(client: AsyncClient, actor: _Actor) -> None:
    session_id = await _open_session(client, actor)
    actor.participant_id = "bob"
    resp = await client.post(f"/api/v1/sessions/{session_id}/close")
    assert resp.status_code == 403
    actor.participant_id = "alice"
    resp = await client.post(f"/api/v1/sessions/{session_id}/close")
    assert resp.status_code == 200
    assert resp.json()["data"]["is_open"] is False


async def test_inbound_request_id_propagates(client: AsyncClient, actor: _Actor) -> None:
    resp = await client.get("/api/v1/sessions/ses_missing", headers={"X-Request-ID": "chat-msg-42"})
    assert resp.headers["X-Request-ID"] == "chat-msg-42"
    assert resp.json()["request_id"] == "chat-msg-42"


async def test_participant_allocations_route(
    client: AsyncClient, actor: _Actor, monkeypatch
) -> None:
    orders = AsyncMock()
    orders.list_holdings.return_value = []
    wallets = AsyncMock()
    wallets.get.return_value = None
    monkeypatch.setattr(
        settlement_router_module,
        "_service",
        ReportingApplicationService(orders=orders, groups=AsyncMock(), wallets=wallets),
    )
    app.dependency_overrides[get_db_session] = lambda: AsyncMock()

    resp = await client.get("/api/v1/participants/nobody/allocations")
    assert resp.status_code == 404
    assert resp.json()["code"] == 5003

    wallets.get.return_value = ParticipantWallet("carol", "w-carol", total_pnl=-1)
    resp = await client.get("/api/v1/participants/carol/allocations")
    assert resp.status_code == 200
    assert resp.json()["data"]["total_pnl_display"] == "-0.000000001 SOL"
