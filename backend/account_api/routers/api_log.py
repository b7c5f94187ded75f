"""Read-only audit log endpoints."""
from fastapi import APIRouter, Depends, Query

from ..dependencies import get_api_log_service, require_admin
from ..schemas import ApiLogEntryRead, ApiResponse, api_response
from ..security import Principal
from ..services.api_log_service import ApiLogService

router = APIRouter(prefix="/api/ApiLog", tags=["api-log"])


@router.get("", response_model=ApiResponse)
async def list_api_logs(
    limit: int | None = Query(default=None, ge=1),
    admin: Principal = Depends(require_admin),
    api_logs: ApiLogService = Depends(get_api_log_service),
) -> ApiResponse:
    """Return recorded API calls, newest first."""

    entries = await api_logs.list_all(limit)
    return api_response(
        200, "Retrieved Api Log", [ApiLogEntryRead.model_validate(entry) for entry in entries]
    )


@router.get("/GetByApplicationUserId", response_model=ApiResponse)
async def list_api_logs_for_user(
    user_id: str = Query(alias="userId", min_length=1),
    admin: Principal = Depends(require_admin),
    api_logs: ApiLogService = Depends(get_api_log_service),
) -> ApiResponse:
    """Return the API calls made by one user."""

    entries = await api_logs.list_for_user(user_id)
    return api_response(
        200, "Retrieved Api Log", [ApiLogEntryRead.model_validate(entry) for entry in entries]
    )
