"""Append-only record of API calls."""
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ApiLogEntry(Base):
    """A single request handled under ``/api``."""

    __tablename__ = "api_logs"

    __table_args__ = (Index("ix_api_logs_user_time", "user_id", "request_time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    response_millis: Mapped[int] = mapped_column(Integer, default=0)
    status_code: Mapped[int] = mapped_column(Integer)
    method: Mapped[str] = mapped_column(String(16))
    path: Mapped[str] = mapped_column(String)
    query_string: Mapped[str] = mapped_column(String, default="")
    ip_address: Mapped[str] = mapped_column(String(64), default="")
    # Rows are removed explicitly before their user, never cascaded.
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )
