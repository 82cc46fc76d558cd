"""User model read by the credential and token services."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from tokenvault.models.base import BaseModel


class Role(str, enum.Enum):
    """Roles carried in access tokens."""

    ADMIN = "ADMIN"
    GESTOR = "GESTOR"
    USER = "USER"


class User(BaseModel):
    """A principal that can log in.

    The email is the login identifier and is stored normalized
    (lower-case, stripped). Deactivating a user blocks new logins and
    makes every outstanding refresh token unusable.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="user_role"), default=Role.USER, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.email}>"
