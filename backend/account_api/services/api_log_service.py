"""Read and maintenance queries over recorded API calls."""
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ApiLogEntry

logger = structlog.get_logger(__name__)


class ApiLogService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_all(self, limit: Optional[int] = None) -> Sequence[ApiLogEntry]:
        """Every entry, newest first."""

        query = select(ApiLogEntry).order_by(ApiLogEntry.request_time.desc(), ApiLogEntry.id.desc())
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_for_user(self, user_id: str) -> Sequence[ApiLogEntry]:
        """Entries owned by ``user_id``, newest first."""

        result = await self.session.execute(
            select(ApiLogEntry)
            .where(ApiLogEntry.user_id == user_id)
            .order_by(ApiLogEntry.request_time.desc(), ApiLogEntry.id.desc())
        )
        return list(result.scalars().all())

    async def delete_for_user(self, user_id: str) -> int:
        """Stage removal of a user's entries; the caller commits."""

        result = await self.session.execute(delete(ApiLogEntry).where(ApiLogEntry.user_id == user_id))
        logger.info("Api log entries removed", user_id=user_id, count=result.rowcount)
        return result.rowcount or 0

    async def record(self, entry: ApiLogEntry) -> None:
        self.session.add(entry)
        await self.session.commit()
