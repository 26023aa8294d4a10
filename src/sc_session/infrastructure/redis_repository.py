"""RedisSessionRepository — concrete implementation of SessionRepositoryProtocol.

Key layout:
  session:{session_id}          JSON session document (embeds proposals and votes)
  session:group:{group_id}      id of the group's open session (claimed with SET NX)
  session:proposal:{proposal_id} id of the owning session
  session:open                  set of open session ids (timer recovery on start-up)

Open sessions carry no TTL. A closed session keeps its document and proposal
index for CLOSED_SESSION_RETENTION_SECONDS, then Redis expires it.

update() is WATCH/MULTI compare-and-set on the document's version field.
"""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from src.sc_common.errors import (
    ConcurrentModificationError,
    SessionAlreadyOpenError,
    SessionNotFoundError,
)
from src.sc_session.domain.models import Session
from src.sc_session.infrastructure.codec import decode_session, encode_session

logger = logging.getLogger(__name__)

_OPEN_SET_KEY = "session:open"


def _session_key(session_id: str) -> str:
    return f"session:{session_id}"


def _group_key(group_id: str) -> str:
    return f"session:group:{group_id}"


def _proposal_key(proposal_id: str) -> str:
    return f"session:proposal:{proposal_id}"


class RedisSessionRepository:
    def __init__(self, redis: aioredis.Redis, closed_retention_seconds: int) -> None:
        self._redis = redis
        self._retention = closed_retention_seconds

    async def get(self, session_id: str) -> Session | None:
        raw = await self._redis.get(_session_key(session_id))
        return decode_session(raw) if raw else None

    async def find_open_by_group(self, group_id: str) -> Session | None:
        session_id = await self._redis.get(_group_key(group_id))
        if not session_id:
            return None
        session = await self.get(session_id)
        return session if session and session.is_open else None

    async def find_by_proposal(self, proposal_id: str) -> Session | None:
        session_id = await self._redis.get(_proposal_key(proposal_id))
        return await self.get(session_id) if session_id else None

    async def list_open(self) -> list[Session]:
        sessions = []
        for session_id in await self._redis.smembers(_OPEN_SET_KEY):
            session = await self.get(session_id)
            if session is not None and session.is_open:
                sessions.append(session)
            else:
                # Document expired or closed without index cleanup
                await self._redis.srem(_OPEN_SET_KEY, session_id)
        return sessions

    async def create(self, session: Session) -> Session:
        claimed = await self._redis.set(_group_key(session.group_id), session.id, nx=True)
        if not claimed:
            raise SessionAlreadyOpenError(session.group_id)
        session.version = 1
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(_session_key(session.id), encode_session(session))
            pipe.sadd(_OPEN_SET_KEY, session.id)
            await pipe.execute()
        return session

    async def update(self, session: Session, expected_version: int) -> Session:
        key = _session_key(session.id)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    raise SessionNotFoundError(session.id)
                stored = json.loads(raw)
                if stored.get("version") != expected_version:
                    raise ConcurrentModificationError(session.id)

                session.version = expected_version + 1
                payload = encode_session(session)
                ttl = None if session.is_open else self._retention

                pipe.multi()
                pipe.set(key, payload, ex=ttl)
                for proposal in session.proposals:
                    pipe.set(_proposal_key(proposal.id), session.id, ex=ttl)
                # The group index belongs to whichever session is open now
                if stored.get("is_open") and not session.is_open:
                    pipe.srem(_OPEN_SET_KEY, session.id)
                    pipe.delete(_group_key(session.group_id))
                await pipe.execute()
            except WatchError:
                session.version = expected_version
                logger.info("CAS conflict on session %s (version %d)", session.id, expected_version)
                raise ConcurrentModificationError(session.id) from None
        return session
