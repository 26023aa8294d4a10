"""sc_session REST API — session and proposal intents, all require JWT authentication."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.sc_common.response import ApiResponse, success_response
from src.sc_gateway.auth.dependencies import get_current_participant
from src.sc_session.application.provider import get_session_service
from src.sc_session.application.schemas import (
    CastVoteRequest,
    CreateProposalRequest,
    CreateSessionRequest,
    ProposalResponse,
    SessionResponse,
    TallyResponse,
)
from src.sc_session.application.service import SessionApplicationService

router = APIRouter(tags=["sessions"])

Participant = Annotated[str, Depends(get_current_participant)]
Service = Annotated[SessionApplicationService, Depends(get_session_service)]


@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest, participant_id: Participant, service: Service, request: Request
) -> ApiResponse:
    session = await service.create_session(body.group_id, participant_id)
    return success_response(SessionResponse.from_domain(session).model_dump(mode="json"), request)


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str, participant_id: Participant, service: Service, request: Request
) -> ApiResponse:
    session = await service.get_session(session_id)
    return success_response(SessionResponse.from_domain(session).model_dump(mode="json"), request)


@router.post("/sessions/{session_id}/participants")
async def join_session(
    session_id: str, participant_id: Participant, service: Service, request: Request
) -> ApiResponse:
    session = await service.join_session(session_id, participant_id)
    return success_response(SessionResponse.from_domain(session).model_dump(mode="json"), request)


@router.post("/sessions/{session_id}/close")
async def close_session(
    session_id: str, participant_id: Participant, service: Service, request: Request
) -> ApiResponse:
    session = await service.close_session(session_id, participant_id)
    return success_response(SessionResponse.from_domain(session).model_dump(mode="json"), request)


@router.post("/sessions/{session_id}/proposals", status_code=201)
async def create_proposal(
    session_id: str,
    body: CreateProposalRequest,
    participant_id: Participant,
    service: Service,
    request: Request,
) -> ApiResponse:
    proposal = await service.create_proposal(
        session_id,
        participant_id,
        body.kind,
        body.text,
        body.duration_minutes,
        order_ref=body.order_ref,
    )
    return success_response(ProposalResponse.from_domain(proposal).model_dump(mode="json"), request)


@router.get("/proposals/{proposal_id}")
async def get_proposal(
    proposal_id: str, participant_id: Participant, service: Service, request: Request
) -> ApiResponse:
    proposal = await service.get_proposal(proposal_id)
    return success_response(ProposalResponse.from_domain(proposal).model_dump(mode="json"), request)


@router.post("/proposals/{proposal_id}/votes")
async def cast_vote(
    proposal_id: str,
    body: CastVoteRequest,
    participant_id: Participant,
    service: Service,
    request: Request,
) -> ApiResponse:
    tally = await service.cast_vote(proposal_id, participant_id, body.choice, body.amount)
    return success_response(TallyResponse.from_tally(tally).model_dump(), request)
