"""Persisted refresh-token sessions."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from tokenvault.core.database import Base


class SessionRecord(Base):
    """One issued refresh token, identified by the token id (jti) it shares
    with its access token.

    Only the SHA-256 digest of the refresh token is stored. ``revoked``
    goes from False to True once and never back.
    """

    __tablename__ = "session_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    secret_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    # Lookup key only; users live in an external store
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def is_eligible(self, now: datetime) -> bool:
        """True while the session may still be rotated."""
        return not self.revoked and now < self.expires_at

    def __repr__(self) -> str:
        return f"<SessionRecord {self.id} owner={self.owner_id} revoked={self.revoked}>"
