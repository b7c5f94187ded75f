"""Baseline roles and the optional bootstrap administrator."""
import structlog

from ..config import Settings
from ..models import User
from .account_service import DEFAULT_ROLE, initial_claims
from .user_manager import UserManager

logger = structlog.get_logger(__name__)

ADMIN_ROLE = "Admin"
BASELINE_ROLES = (ADMIN_ROLE, DEFAULT_ROLE)


async def ensure_seed_data(user_manager: UserManager, settings: Settings) -> None:
    """Create missing baseline roles, then the configured admin account if absent."""

    for name in BASELINE_ROLES:
        await user_manager.ensure_role(name)

    if not (settings.admin_username and settings.admin_email and settings.admin_password):
        return
    if await user_manager.find_by_name(settings.admin_username) is not None:
        return

    admin = User(username=settings.admin_username, email=settings.admin_email, email_confirmed=True)
    result = await user_manager.create(
        admin, settings.admin_password, claims=initial_claims(admin), roles=BASELINE_ROLES
    )
    if not result.succeeded:
        logger.error("Could not create admin user", errors=result.errors)
        return
    logger.info("Admin user created", username=admin.username)
