"""Endpoints for the caller's own UI preferences."""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from ..dependencies import get_current_principal, get_profile_service
from ..exceptions import PersistenceError
from ..schemas import ApiResponse, UserProfileData, api_response
from ..security import Principal
from ..services.profile_service import ProfileService

router = APIRouter(prefix="/api/UserProfile", tags=["user-profile"])


@router.get("/Get", response_model=ApiResponse)
async def get_profile(
    principal: Principal = Depends(get_current_principal),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse:
    return api_response(200, "Retrieved User Profile", await profiles.get(principal.user_id))


@router.post("/Upsert", response_model=ApiResponse)
async def upsert_profile(
    payload: UserProfileData,
    principal: Principal = Depends(get_current_principal),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse:
    """Save the caller's preferences; any ``userId`` in the body is ignored."""

    data = payload.model_copy(update={"user_id": principal.user_id})
    try:
        saved = await profiles.upsert(data)
    except SQLAlchemyError as exc:
        raise PersistenceError("Failed to Update User Profile", status_code=400) from exc
    return api_response(200, "Updated User Profile", saved)
