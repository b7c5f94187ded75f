"""Per-user UI preferences."""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

DEFAULT_LAST_PAGE = "/dashboard"


class UserProfile(Base):
    """One row per user, created lazily on the first upsert."""

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    last_page_visited: Mapped[str] = mapped_column(String, default=DEFAULT_LAST_PAGE)
    is_nav_open: Mapped[bool] = mapped_column(Boolean, default=True)
    is_nav_minified: Mapped[bool] = mapped_column(Boolean, default=False)
    count: Mapped[int] = mapped_column(Integer, default=0)
    last_updated_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
