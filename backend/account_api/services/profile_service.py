"""Per-user UI preference records."""
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DEFAULT_LAST_PAGE, User, UserProfile
from ..schemas import UserProfileData


class ProfileService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str) -> UserProfileData:
        """Return the stored profile, or an unsaved default one for ``user_id``."""

        profile = await self.session.get(UserProfile, user_id)
        if profile is None:
            return UserProfileData(user_id=user_id, last_page_visited=DEFAULT_LAST_PAGE)
        return UserProfileData.model_validate(profile)

    async def upsert(self, data: UserProfileData) -> UserProfileData:
        """Update every mutable field of the user's profile, creating the row if needed."""

        profile = await self.session.get(UserProfile, data.user_id)
        if profile is None:
            profile = UserProfile(user_id=data.user_id)
            self.session.add(profile)

        profile.last_page_visited = data.last_page_visited or DEFAULT_LAST_PAGE
        profile.is_nav_open = data.is_nav_open
        profile.is_nav_minified = data.is_nav_minified
        profile.count = data.count
        profile.last_updated_date = datetime.utcnow()

        await self.session.commit()
        return UserProfileData.model_validate(profile)

    async def get_last_page_visited(self, username: str) -> str:
        """Stored landing page for ``username``, or the default when unset."""

        result = await self.session.execute(
            select(UserProfile.last_page_visited)
            .join(User, User.id == UserProfile.user_id)
            .where(User.normalized_username == username.strip().upper())
        )
        last_page = result.scalars().first()
        return last_page or DEFAULT_LAST_PAGE
