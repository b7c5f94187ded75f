"""FastAPI application entry point."""
from fastapi import FastAPI

from . import models
from .config import get_settings
from .database import AsyncSessionLocal, engine
from .exceptions import register_exception_handlers
from .logging_config import configure_logging
from .middleware import ApiLogMiddleware
from .routers.account import router as account_router
from .routers.api_log import router as api_log_router
from .routers.user_profile import router as user_profile_router
from .services.seed import ensure_seed_data
from .services.user_manager import UserManager

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)

app = FastAPI(title="Account API", version="0.1.0")
app.add_middleware(ApiLogMiddleware)
register_exception_handlers(app)
app.include_router(account_router)
app.include_router(api_log_router)
app.include_router(user_profile_router)


@app.on_event("startup")
async def on_startup() -> None:
    """Ensure database tables exist and baseline roles are present."""

    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        await ensure_seed_data(UserManager(session, get_settings()), get_settings())


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    """Simple readiness probe for uptime checks."""

    return {"status": "ok"}
