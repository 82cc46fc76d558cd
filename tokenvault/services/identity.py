"""Identity store: the user records the token services read.

Users are managed outside this service; only what login and rotation need
is exposed here.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Protocol, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tokenvault.models.user import Role, User
from tokenvault.services.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def normalize_identifier(identifier: str) -> str:
    """Login identifiers are case-insensitive and ignore surrounding whitespace."""
    return identifier.strip().lower()


class IdentityStore(Protocol):
    async def get_by_identifier(self, identifier: str) -> User | None: ...

    async def get_by_id(self, user_id: uuid.UUID) -> User | None: ...

    async def record_login(self, user_id: uuid.UUID, at: datetime) -> None: ...

    async def update_password_hash(self, user_id: uuid.UUID, password_hash: str) -> None: ...

    async def create_user(
        self,
        email: str,
        password_hash: str,
        role: Role = Role.USER,
        is_active: bool = True,
    ) -> User: ...


class SqlIdentityStore:
    """Identity store backed by the ``users`` table."""

    def __init__(self, db: AsyncSession, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    async def get_by_identifier(self, identifier: str) -> User | None:
        async def _get() -> User | None:
            result = await self.db.execute(
                select(User).where(User.email == normalize_identifier(identifier))
            )
            return result.scalar_one_or_none()

        return await self._run("get_by_identifier", _get())

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        async def _get() -> User | None:
            result = await self.db.execute(select(User).where(User.id == user_id))
            return result.scalar_one_or_none()

        return await self._run("get_by_id", _get())

    async def record_login(self, user_id: uuid.UUID, at: datetime) -> None:
        async def _record() -> None:
            await self.db.execute(update(User).where(User.id == user_id).values(last_login_at=at))
            await self.db.commit()

        await self._run("record_login", _record())

    async def update_password_hash(self, user_id: uuid.UUID, password_hash: str) -> None:
        async def _update() -> None:
            await self.db.execute(
                update(User).where(User.id == user_id).values(password_hash=password_hash)
            )
            await self.db.commit()

        await self._run("update_password_hash", _update())

    async def create_user(
        self,
        email: str,
        password_hash: str,
        role: Role = Role.USER,
        is_active: bool = True,
    ) -> User:
        user = User(
            email=normalize_identifier(email),
            password_hash=password_hash,
            role=role,
            is_active=is_active,
        )

        async def _create() -> User:
            self.db.add(user)
            await self.db.commit()
            await self.db.refresh(user)
            return user

        try:
            return await self._run("create_user", _create())
        except PersistenceError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise ValidationError(f"User {user.email} already exists") from e
            raise

    async def _run(self, operation: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except TimeoutError as e:
            await self.db.rollback()
            logger.error(f"Identity store {operation} timed out after {self.timeout}s")
            raise PersistenceError(f"Identity store timed out during {operation}") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Identity store {operation} failed: {type(e).__name__}")
            raise PersistenceError(f"Identity store failed during {operation}") from e


class InMemoryIdentityStore:
    """Process-local identity store for development and tests."""

    def __init__(self) -> None:
        self._users: dict[uuid.UUID, User] = {}

    async def get_by_identifier(self, identifier: str) -> User | None:
        email = normalize_identifier(identifier)
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return self._users.get(user_id)

    async def record_login(self, user_id: uuid.UUID, at: datetime) -> None:
        user = self._users.get(user_id)
        if user is not None:
            user.last_login_at = at

    async def update_password_hash(self, user_id: uuid.UUID, password_hash: str) -> None:
        user = self._users.get(user_id)
        if user is not None:
            user.password_hash = password_hash

    async def create_user(
        self,
        email: str,
        password_hash: str,
        role: Role = Role.USER,
        is_active: bool = True,
    ) -> User:
        email = normalize_identifier(email)
        if await self.get_by_identifier(email) is not None:
            raise ValidationError(f"User {email} already exists")
        now = datetime.now(UTC)
        user = User(
            id=uuid.uuid4(),
            email=email,
            password_hash=password_hash,
            role=role,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        self._users[user.id] = user
        return user

    def clear(self) -> None:
        self._users.clear()
