from pydantic import BaseModel


class GroupResponse(BaseModel):
    id: str
    name: str
    owner_id: str
    admin_ids: list[str]
    is_active: bool
    total_pnl: int


class DeactivateGroupResponse(BaseModel):
    group: GroupResponse
    closed_session_id: str | None = None
