"""Account database model (owner managers and delegated staff)."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import TIMESTAMP, Boolean, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class AccountRole(str, enum.Enum):
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class Account(Base):
    """Login account. Billing writes only ``is_premium``; the rest is owned elsewhere."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    username: Mapped[str | None] = mapped_column(Text, nullable=True)
    fullname: Mapped[str | None] = mapped_column(Text, nullable=True)

    role: Mapped[str] = mapped_column(Text, nullable=False, server_default=AccountRole.MANAGER.value)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"), default=False)

    # Store the staff member (or manager) is currently operating in; no FK to avoid a users<->stores cycle
    current_store_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def is_owner(self) -> bool:
        return self.role == AccountRole.MANAGER.value

    @property
    def is_staff(self) -> bool:
        return self.role == AccountRole.STAFF.value

    @property
    def display_name(self) -> str:
        return self.fullname or self.username or self.email
