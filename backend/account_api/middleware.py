"""Middleware that records every ``/api`` call as an :class:`ApiLogEntry`."""
from __future__ import annotations

import time
from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .config import get_settings
from .database import AsyncSessionLocal
from .models import ApiLogEntry, User
from .security import decode_session_token
from .services.api_log_service import ApiLogService

logger = structlog.get_logger(__name__)


class ApiLogMiddleware(BaseHTTPMiddleware):
    """Append one audit row per API request; bodies are never stored."""

    def __init__(self, app, path_prefix: str = "/api") -> None:
        super().__init__(app)
        self.path_prefix = path_prefix

    def _user_id(self, request: Request) -> str | None:
        settings = get_settings()
        token = request.cookies.get(settings.session_cookie_name)
        authorization = request.headers.get("authorization", "")
        if authorization.lower().startswith("bearer "):
            token = authorization[7:].strip()
        if not token:
            return None
        principal = decode_session_token(token, settings)
        return principal.user_id if principal else None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self.path_prefix) or not get_settings().api_logging_enabled:
            return await call_next(request)

        started_at = datetime.utcnow()
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        entry = ApiLogEntry(
            request_time=started_at,
            response_millis=elapsed_ms,
            status_code=response.status_code,
            method=request.method,
            path=request.url.path,
            query_string=request.url.query,
            ip_address=request.client.host if request.client else "",
            user_id=self._user_id(request),
        )
        try:
            async with AsyncSessionLocal() as session:
                # sessions of deleted users are recorded as anonymous
                if entry.user_id and await session.get(User, entry.user_id) is None:
                    entry.user_id = None
                await ApiLogService(session).record(entry)
        except SQLAlchemyError as exc:
            logger.warning("Could not record api call", path=entry.path, error=str(exc))
        return response
