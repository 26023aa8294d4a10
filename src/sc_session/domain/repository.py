"""SessionRepository Protocol — explicit store for live session/proposal state.

Unit tests inject InMemorySessionRepository; production uses the Redis one.
`update` is compare-and-set on Session.version: a stale version raises
ConcurrentModificationError and the caller reloads and retries.
"""

from typing import Protocol

from src.sc_session.domain.models import Session


class SessionRepositoryProtocol(Protocol):
    async def get(self, session_id: str) -> Session | None: ...

    async def find_open_by_group(self, group_id: str) -> Session | None: ...

    async def find_by_proposal(self, proposal_id: str) -> Session | None: ...

    async def list_open(self) -> list[Session]: ...

    async def create(self, session: Session) -> Session:
        """Persist a new open session. Raises SessionAlreadyOpenError if the group has one."""
        ...

    async def update(self, session: Session, expected_version: int) -> Session:
        """Persist `session` iff the stored version equals expected_version; bumps version."""
        ...
