"""Pydantic response schemas for the settlement reporting API.

Lamport and token amounts are plain ints; prices are Decimal rendered as
strings so no precision is lost in JSON.
"""

from datetime import datetime

from pydantic import BaseModel


class OrderResponse(BaseModel):
    id: str
    group_id: str
    proposal_id: str
    asset: str
    status: str
    token_amount: int
    total_amount_spent: int
    fees: int
    bought_at_price: str
    sold_at_price: str | None = None
    sol_received: int | None = None
    sell_fees: int | None = None
    profit_loss: int | None = None
    created_at: datetime | None = None
    closed_at: datetime | None = None


class AllocationResponse(BaseModel):
    id: str
    order_id: str
    participant_id: str
    status: str
    amount_contributed: int
    tokens_allocated: int
    fees_charged: int
    proceeds_received: int | None = None
    profit_loss: int | None = None


class OrderListResponse(BaseModel):
    items: list[OrderResponse]


class AllocationListResponse(BaseModel):
    order_id: str
    items: list[AllocationResponse]


class GroupPnlResponse(BaseModel):
    group_id: str
    total_pnl: int
    total_pnl_display: str
    sold_orders: int
    open_orders: int


class HoldingResponse(AllocationResponse):
    group_id: str
    asset: str


class ParticipantAllocationsResponse(BaseModel):
    """A participant's allocations plus totals over the listed rows.

    total_pnl is the lifetime figure recomputed after every SELL.
    """

    participant_id: str
    items: list[HoldingResponse]
    total_invested: int     # lamports, contributions plus fees
    active_tokens: int      # token base units still held
    realized_pnl: int
    total_pnl: int
    total_pnl_display: str
