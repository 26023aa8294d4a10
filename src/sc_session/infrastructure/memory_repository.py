"""InMemorySessionRepository — single-process SessionRepositoryProtocol.

Stores encoded documents, not live objects, so callers only ever see
copies and every change must go through update() like with Redis.
"""

import asyncio

from src.sc_common.errors import (
    ConcurrentModificationError,
    SessionAlreadyOpenError,
    SessionNotFoundError,
)
from src.sc_session.domain.models import Session
from src.sc_session.infrastructure.codec import decode_session, encode_session


class InMemorySessionRepository:
    def __init__(self) -> None:
        self._docs: dict[str, str] = {}
        self._open_by_group: dict[str, str] = {}
        self._proposal_index: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, session_id: str) -> Session | None:
        raw = self._docs.get(session_id)
        return decode_session(raw) if raw else None

    async def find_open_by_group(self, group_id: str) -> Session | None:
        session_id = self._open_by_group.get(group_id)
        return await self.get(session_id) if session_id else None

    async def find_by_proposal(self, proposal_id: str) -> Session | None:
        session_id = self._proposal_index.get(proposal_id)
        return await self.get(session_id) if session_id else None

    async def list_open(self) -> list[Session]:
        return [decode_session(self._docs[sid]) for sid in self._open_by_group.values()]

    async def create(self, session: Session) -> Session:
        async with self._lock:
            if session.group_id in self._open_by_group:
                raise SessionAlreadyOpenError(session.group_id)
            session.version = 1
            self._docs[session.id] = encode_session(session)
            self._open_by_group[session.group_id] = session.id
        return session

    async def update(self, session: Session, expected_version: int) -> Session:
        async with self._lock:
            raw = self._docs.get(session.id)
            if raw is None:
                raise SessionNotFoundError(session.id)
            if decode_session(raw).version != expected_version:
                raise ConcurrentModificationError(session.id)
            session.version = expected_version + 1
            self._docs[session.id] = encode_session(session)
            for proposal in session.proposals:
                self._proposal_index[proposal.id] = session.id
            if not session.is_open and self._open_by_group.get(session.group_id) == session.id:
                del self._open_by_group[session.group_id]
        return session
