"""SQLAlchemy models exposed by the backend."""
from .api_log import ApiLogEntry
from .base import Base
from .user import Role, User, UserClaim, user_roles
from .user_profile import DEFAULT_LAST_PAGE, UserProfile

__all__ = [
    "ApiLogEntry",
    "Base",
    "DEFAULT_LAST_PAGE",
    "Role",
    "User",
    "UserClaim",
    "UserProfile",
    "user_roles",
]
