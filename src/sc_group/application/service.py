"""Group application service.

deactivate_group marks the group inactive in its own transaction, then
closes the group's open session (if any) through the session manager, so
the open proposal is discarded exactly like a manual close.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.sc_common.errors import GroupNotFoundError, NotAuthorizedError
from src.sc_group.application.schemas import DeactivateGroupResponse, GroupResponse
from src.sc_group.domain.models import Group
from src.sc_group.domain.repository import GroupRepositoryProtocol
from src.sc_group.infrastructure.persistence import GroupRepository
from src.sc_session.application.service import SessionApplicationService

logger = logging.getLogger(__name__)


def _to_response(group: Group) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        owner_id=group.owner_id,
        admin_ids=list(group.admin_ids),
        is_active=group.is_active,
        total_pnl=group.total_pnl,
    )


class GroupApplicationService:
    def __init__(self, groups: GroupRepositoryProtocol | None = None) -> None:
        self._groups = groups or GroupRepository()

    async def get_group(self, db: AsyncSession, group_id: str) -> GroupResponse:
        group = await self._groups.get(group_id, db)
        if group is None:
            raise GroupNotFoundError(group_id)
        return _to_response(group)

    async def deactivate_group(
        self,
        db: AsyncSession,
        sessions: SessionApplicationService,
        group_id: str,
        actor_id: str,
    ) -> DeactivateGroupResponse:
        group = await self._groups.get(group_id, db)
        if group is None:
            raise GroupNotFoundError(group_id)
        if not group.can_manage(actor_id):
            raise NotAuthorizedError("Only the group owner or an admin can deactivate the group")

        if group.is_active:
            await self._groups.set_active(group_id, False, db)
            await db.commit()
            group.is_active = False
            logger.info("Group %s deactivated by %s", group_id, actor_id)

        closed = await sessions.close_open_session(group_id, actor_id)
        return DeactivateGroupResponse(
            group=_to_response(group),
            closed_session_id=closed.id if closed else None,
        )
