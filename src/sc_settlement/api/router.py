"""sc_settlement REST API — read-only order / allocation / P&L reports, JWT required."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.sc_common.database import get_db_session
from src.sc_common.response import ApiResponse, success_response
from src.sc_gateway.auth.dependencies import get_current_participant
from src.sc_settlement.application.service import ReportingApplicationService

router = APIRouter(tags=["settlement"])

_service = ReportingApplicationService()


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    participant_id: Annotated[str, Depends(get_current_participant)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_order(db, order_id)
    return success_response(data.model_dump(mode="json"), request)


@router.get("/orders/{order_id}/allocations")
async def list_allocations(
    order_id: str,
    participant_id: Annotated[str, Depends(get_current_participant)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.list_allocations(db, order_id)
    return success_response(data.model_dump(mode="json"), request)


@router.get("/groups/{group_id}/orders")
async def list_group_orders(
    group_id: str,
    participant_id: Annotated[str, Depends(get_current_participant)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    status: Literal["COMPLETED", "SELLING", "SOLD"] | None = Query(None, description="Filter by order status"),
) -> ApiResponse:
    data = await _service.list_group_orders(db, group_id, status)
    return success_response(data.model_dump(mode="json"), request)


@router.get("/groups/{group_id}/pnl")
async def get_group_pnl(
    group_id: str,
    participant_id: Annotated[str, Depends(get_current_participant)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_group_pnl(db, group_id)
    return success_response(data.model_dump(mode="json"), request)


@router.get("/participants/{target_id}/allocations")
async def get_participant_allocations(
    target_id: str,
    participant_id: Annotated[str, Depends(get_current_participant)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_participant_allocations(db, target_id)
    return success_response(data.model_dump(mode="json"), request)
