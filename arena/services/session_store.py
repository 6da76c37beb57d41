from collections.abc import Sequence
from datetime import timedelta
from typing import Protocol

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, desc, select
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.clock import Clock, SystemClock
from arena.core.errors import PersistFailedError, SessionNotFoundError
from arena.models.battle_session import BattleSessionRecord
from arena.schemas.battle import BattleSession
from arena.utils.misc import ensure_utc


class SessionStore(Protocol):
    """Persistence for battle sessions, keyed by session id."""

    async def save(self, session: BattleSession) -> None: ...

    async def get(self, session_id: str) -> BattleSession: ...

    async def delete(self, session_id: str) -> None: ...

    async def expire_older_than(self, ttl: timedelta) -> int: ...

    async def list_for_user(self, user_id: int) -> Sequence[BattleSession]: ...


def _load(session_id: str, blob: str) -> BattleSession:
    try:
        return BattleSession.model_validate_json(blob)
    except ValidationError as e:
        logger.error(f"Stored battle session {session_id} is unreadable: {e}")
        raise SessionNotFoundError(f"Battle session {session_id} could not be loaded") from e


class SqlSessionStore:
    def __init__(self, db: AsyncSession, *, clock: Clock | None = None) -> None:
        self.db = db
        self.clock = clock or SystemClock()

    async def save(self, session: BattleSession) -> None:
        try:
            record = await self.db.get(BattleSessionRecord, session.id)
            if record is None:
                record = BattleSessionRecord(
                    id=session.id,
                    player_id=session.owner_user_id,
                    state=session.model_dump_json(),
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                )
            else:
                record.state = session.model_dump_json()
                record.updated_at = session.updated_at

            self.db.add(record)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to save battle session {session.id}: {e}")
            raise PersistFailedError from e

    async def get(self, session_id: str) -> BattleSession:
        result = await self.db.exec(
            select(BattleSessionRecord).where(BattleSessionRecord.id == session_id)
        )
        record = result.first()
        if not record:
            raise SessionNotFoundError(f"Battle session {session_id} not found")
        return _load(session_id, record.state)

    async def delete(self, session_id: str) -> None:
        record = await self.db.get(BattleSessionRecord, session_id)
        if not record:
            return

        await self.db.delete(record)
        await self.db.commit()

    async def expire_older_than(self, ttl: timedelta) -> int:
        cutoff = self.clock.now() - ttl
        result = await self.db.execute(
            delete(BattleSessionRecord).where(col(BattleSessionRecord.updated_at) < cutoff)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def list_for_user(self, user_id: int) -> Sequence[BattleSession]:
        result = await self.db.exec(
            select(BattleSessionRecord)
            .where(BattleSessionRecord.player_id == user_id)
            .order_by(desc(col(BattleSessionRecord.updated_at)))
        )
        return [_load(record.id, record.state) for record in result.all()]


class MemorySessionStore:
    """Keeps serialized sessions in a dict; for tests and in-process drivers."""

    def __init__(self, *, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()
        self._blobs: dict[str, str] = {}

    async def save(self, session: BattleSession) -> None:
        self._blobs[session.id] = session.model_dump_json()

    async def get(self, session_id: str) -> BattleSession:
        blob = self._blobs.get(session_id)
        if blob is None:
            raise SessionNotFoundError(f"Battle session {session_id} not found")
        return _load(session_id, blob)

    async def delete(self, session_id: str) -> None:
        self._blobs.pop(session_id, None)

    async def expire_older_than(self, ttl: timedelta) -> int:
        cutoff = self.clock.now() - ttl
        expired = [
            session_id
            for session_id, blob in self._blobs.items()
            if ensure_utc(_load(session_id, blob).updated_at) < cutoff
        ]
        for session_id in expired:
            del self._blobs[session_id]
        return len(expired)

    async def list_for_user(self, user_id: int) -> Sequence[BattleSession]:
        sessions = [_load(session_id, blob) for session_id, blob in self._blobs.items()]
        return sorted(
            (s for s in sessions if s.owner_user_id == user_id),
            key=lambda s: s.updated_at,
            reverse=True,
        )
