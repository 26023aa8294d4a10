"""sc_group REST API — group view and deactivation, JWT required."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.sc_common.database import get_db_session
from src.sc_common.response import ApiResponse, success_response
from src.sc_gateway.auth.dependencies import get_current_participant
from src.sc_group.application.service import GroupApplicationService
from src.sc_session.application.provider import get_session_service
from src.sc_session.application.service import SessionApplicationService

router = APIRouter(prefix="/groups", tags=["groups"])

_service = GroupApplicationService()


@router.get("/{group_id}")
async def get_group(
    group_id: str,
    participant_id: Annotated[str, Depends(get_current_participant)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_group(db, group_id)
    return success_response(data.model_dump(), request)


@router.post("/{group_id}/deactivate")
async def deactivate_group(
    group_id: str,
    participant_id: Annotated[str, Depends(get_current_participant)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    sessions: Annotated[SessionApplicationService, Depends(get_session_service)],
    request: Request,
) -> ApiResponse:
    data = await _service.deactivate_group(db, sessions, group_id, participant_id)
    return success_response(data.model_dump(), request)
