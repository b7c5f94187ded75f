"""Identity tables: users, roles, role membership and user claims."""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_identifier

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    """Application user; credentials and lockout state live on the row."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_identifier)
    username: Mapped[str] = mapped_column(String(256))
    normalized_username: Mapped[str] = mapped_column(String(256), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(256), default="")
    normalized_email: Mapped[str] = mapped_column(String(256), unique=True, index=True, default="")
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    password_hash: Mapped[str] = mapped_column(String, default="")
    security_stamp: Mapped[str] = mapped_column(String(36), default=new_identifier)
    first_name: Mapped[str] = mapped_column(String(128), default="")
    last_name: Mapped[str] = mapped_column(String(128), default="")
    lockout_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    lockout_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    access_failed_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.id})>"


class Role(Base):
    """Named role; membership is mirrored as an ``Is{Name}`` claim."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(256))
    normalized_name: Mapped[str] = mapped_column(String(256), unique=True, index=True)


class UserClaim(Base):
    """Typed key/value fact attached to a user."""

    __tablename__ = "user_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    claim_type: Mapped[str] = mapped_column(String(256))
    claim_value: Mapped[str] = mapped_column(String, default="")
