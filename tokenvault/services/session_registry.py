"""Session registry: persisted refresh-token sessions.

``SessionRegistry`` is the interface the token services depend on.
``SqlSessionRegistry`` is the PostgreSQL implementation; every mutating
call commits on its own and is bounded by a timeout.
``InMemorySessionRegistry`` keeps records in-process for single-node
development and tests.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Protocol, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tokenvault.models.session_record import SessionRecord
from tokenvault.services.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRegistry(Protocol):
    """Storage operations for session records."""

    async def create(self, record: SessionRecord) -> None: ...

    async def find_by_id(self, session_id: str) -> SessionRecord | None: ...

    async def mark_revoked(self, session_id: str) -> bool:
        """Flip ``revoked`` to True. Returns True only for the caller that flipped it."""
        ...

    async def revoke_all_by_owner(self, owner_id: uuid.UUID) -> int: ...

    async def delete_expired(self, now: datetime) -> int: ...

    async def list_active(self, owner_id: uuid.UUID, now: datetime) -> list[SessionRecord]: ...


class SqlSessionRegistry:
    """Session registry backed by the ``session_records`` table."""

    def __init__(self, db: AsyncSession, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    async def create(self, record: SessionRecord) -> None:
        async def _create() -> None:
            self.db.add(record)
            await self.db.commit()

        await self._run("create", _create())

    async def find_by_id(self, session_id: str) -> SessionRecord | None:
        async def _find() -> SessionRecord | None:
            result = await self.db.execute(
                select(SessionRecord)
                .where(SessionRecord.id == session_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

        return await self._run("find_by_id", _find())

    async def mark_revoked(self, session_id: str) -> bool:
        # Conditional update: concurrent callers race on the row lock and
        # only one of them sees the row still unrevoked
        async def _mark() -> bool:
            result = await self.db.execute(
                update(SessionRecord)
                .where(SessionRecord.id == session_id, SessionRecord.revoked.is_(False))
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount == 1

        return await self._run("mark_revoked", _mark())

    async def revoke_all_by_owner(self, owner_id: uuid.UUID) -> int:
        async def _revoke_all() -> int:
            result = await self.db.execute(
                update(SessionRecord)
                .where(SessionRecord.owner_id == owner_id, SessionRecord.revoked.is_(False))
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount or 0

        return await self._run("revoke_all_by_owner", _revoke_all())

    async def delete_expired(self, now: datetime) -> int:
        async def _delete() -> int:
            result = await self.db.execute(
                delete(SessionRecord)
                .where(SessionRecord.expires_at < now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount or 0

        return await self._run("delete_expired", _delete())

    async def list_active(self, owner_id: uuid.UUID, now: datetime) -> list[SessionRecord]:
        async def _list() -> list[SessionRecord]:
            result = await self.db.execute(
                select(SessionRecord)
                .where(
                    SessionRecord.owner_id == owner_id,
                    SessionRecord.revoked.is_(False),
                    SessionRecord.expires_at > now,
                )
                .order_by(SessionRecord.created_at.desc())
            )
            return list(result.scalars().all())

        return await self._run("list_active", _list())

    async def _run(self, operation: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except TimeoutError as e:
            await self._rollback()
            logger.error(f"Session registry {operation} timed out after {self.timeout}s")
            raise PersistenceError(f"Session store timed out during {operation}") from e
        except SQLAlchemyError as e:
            await self._rollback()
            logger.error(f"Session registry {operation} failed: {type(e).__name__}")
            raise PersistenceError(f"Session store failed during {operation}") from e

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback after registry failure also failed: {type(e).__name__}")


class InMemorySessionRegistry:
    """Process-local session registry.

    Check-and-set in ``mark_revoked`` runs under a lock, giving the same
    single-winner guarantee as the conditional UPDATE in the SQL registry.
    """

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: SessionRecord) -> None:
        async with self._lock:
            if record.id in self._records:
                raise PersistenceError(f"Session {record.id} already exists")
            if record.revoked is None:
                record.revoked = False
            if record.created_at is None:
                record.created_at = datetime.now(UTC)
            self._records[record.id] = record

    async def find_by_id(self, session_id: str) -> SessionRecord | None:
        return self._records.get(session_id)

    async def mark_revoked(self, session_id: str) -> bool:
        async with self._lock:
            record = self._records.get(session_id)
            if record is None or record.revoked:
                return False
            record.revoked = True
            return True

    async def revoke_all_by_owner(self, owner_id: uuid.UUID) -> int:
        async with self._lock:
            count = 0
            for record in self._records.values():
                if record.owner_id == owner_id and not record.revoked:
                    record.revoked = True
                    count += 1
            return count

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [key for key, record in self._records.items() if record.expires_at < now]
            for key in expired:
                del self._records[key]
            return len(expired)

    async def list_active(self, owner_id: uuid.UUID, now: datetime) -> list[SessionRecord]:
        active = [
            record
            for record in self._records.values()
            if record.owner_id == owner_id and record.is_eligible(now)
        ]
        return sorted(active, key=lambda record: record.created_at, reverse=True)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
