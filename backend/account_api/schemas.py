"""Pydantic schemas used across the backend API."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel):
    """Uniform response envelope."""

    status_code: int
    message: str
    result: Any = None


class LoginRequest(CamelModel):
    """Credentials supplied during login."""

    user_name: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1)
    remember_me: bool = False


class RegisterRequest(CamelModel):
    """Payload for self-registration and admin creation."""

    user_name: str = Field(min_length=2, max_length=64)
    email: EmailStr
    password: str = Field(min_length=1)
    password_confirm: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password_confirm is not None and self.password_confirm != self.password:
            raise ValueError("Passwords do not match")
        return self


class ConfirmEmailRequest(CamelModel):
    """Link parameters from a confirmation email."""

    user_id: Optional[str] = None
    token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    """Link parameters from a reset email plus the new password."""

    user_id: str = Field(min_length=1)
    token: str = Field(min_length=1)
    password: str = Field(min_length=1)
    password_confirm: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.password_confirm is not None and self.password_confirm != self.password:
            raise ValueError("Passwords do not match")
        return self


class ClaimPair(CamelModel):
    key: str
    value: str


class UserInfo(CamelModel):
    """Identity summary returned to clients."""

    is_authenticated: bool = False
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    exposed_claims: list[ClaimPair] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)


class UserUpdate(CamelModel):
    """
    Profile fields for a user.

    Self-service updates locate the user by ``email``; the admin update uses
    ``user_id`` and may also change ``user_name`` and reconcile ``roles``.
    """

    user_id: Optional[str] = None
    user_name: Optional[str] = Field(default=None, min_length=2, max_length=64)
    email: EmailStr
    first_name: str = ""
    last_name: str = ""
    roles: Optional[list[str]] = None


class UserProfileData(CamelModel):
    """UI preferences for a single user."""

    user_id: Optional[str] = None
    last_page_visited: Optional[str] = None
    is_nav_open: bool = True
    is_nav_minified: bool = False
    count: int = 0
    last_updated_date: Optional[datetime] = None


class ApiLogEntryRead(CamelModel):
    """Audit record of one API call."""

    id: int
    request_time: datetime
    response_millis: int
    status_code: int
    method: str
    path: str
    query_string: str
    ip_address: str
    user_id: Optional[str] = None


def api_response(status_code: int, message: str, result: Any = None) -> ApiResponse:
    """Build the envelope, dumping nested models with their wire aliases."""

    if isinstance(result, BaseModel):
        result = result.model_dump(by_alias=True, mode="json")
    elif isinstance(result, list):
        result = [
            item.model_dump(by_alias=True, mode="json") if isinstance(item, BaseModel) else item
            for item in result
        ]
    return ApiResponse(status_code=status_code, message=message, result=result)


def logged_out_user() -> UserInfo:
    """Canonical shape for a caller without a session."""

    return UserInfo(is_authenticated=False, roles=[])
