"""Account endpoints: sign-in, registration, recovery and user administration."""
from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, Response
from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings, get_settings
from ..dependencies import (
    ADMIN_POLICY_CLAIM,
    get_account_service,
    get_api_log_service,
    get_current_principal,
    get_email_sender,
    get_optional_principal,
    get_profile_service,
    get_sign_in_manager,
    get_user_manager,
    require_admin,
)
from ..exceptions import (
    AuthenticationError,
    AuthorizationError,
    DomainError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..models import User
from ..schemas import (
    ApiResponse,
    ClaimPair,
    ConfirmEmailRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserInfo,
    UserUpdate,
    api_response,
    logged_out_user,
)
from ..security import Principal
from ..services.account_service import DEFAULT_ROLE, AccountService
from ..services.api_log_service import ApiLogService
from ..services.mailer import (
    EmailMessage,
    EmailSender,
    build_forgot_password_email,
    build_new_user_confirmation_email,
    build_new_user_email,
    build_password_reset_email,
    callback_url,
    send_quietly,
)
from ..services.profile_service import ProfileService
from ..services.sign_in import SignInManager, SignInResult
from ..services.user_manager import UserManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/Account", tags=["account"])

EXPOSED_CLAIM_TYPES = frozenset({"name", "email", "email_verified"})


def exposed_claims(claims: list[tuple[str, str]]) -> list[ClaimPair]:
    """Profile claims and ``Is{Role}`` flags; raw role entries are reported separately."""

    return [
        ClaimPair(key=claim_type, value=value)
        for claim_type, value in claims
        if claim_type in EXPOSED_CLAIM_TYPES or claim_type.startswith("Is")
    ]


async def _send_confirmation_email(
    sender: EmailSender, settings: Settings, user: User, token: str
) -> None:
    url = callback_url(settings, "ConfirmEmail", user.id, token)
    message = build_new_user_confirmation_email(
        EmailMessage.to(user.email), user.username, user.email, url, user.id, token
    )
    await send_quietly(sender, message)


async def _login(
    payload: LoginRequest,
    response: Response,
    sign_in: SignInManager,
    profiles: ProfileService,
) -> ApiResponse:
    try:
        result = await sign_in.password_sign_in(
            response, payload.user_name, payload.password, payload.remember_me, lockout_on_failure=True
        )
    except SQLAlchemyError as exc:
        logger.warning("Login failed", username=payload.user_name, error=str(exc))
        result = SignInResult.FAILED

    if result is SignInResult.LOCKED_OUT:
        logger.info("User locked out", username=payload.user_name)
        raise AuthenticationError("User is locked out!")
    if result is SignInResult.NOT_ALLOWED:
        logger.info("User not allowed to log in", username=payload.user_name)
        raise AuthenticationError("Login not allowed!")
    if result is SignInResult.SUCCEEDED:
        logger.info("Logged in", username=payload.user_name)
        return api_response(200, await profiles.get_last_page_visited(payload.user_name))

    logger.info("Invalid credentials", username=payload.user_name)
    raise AuthenticationError("Login Failed")


@router.post("/Login", response_model=ApiResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    sign_in: SignInManager = Depends(get_sign_in_manager),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse:
    """Authenticate and return the user's last visited page."""

    return await _login(payload, response, sign_in, profiles)


@router.post("/Register", response_model=ApiResponse)
async def register(
    payload: RegisterRequest,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
    sign_in: SignInManager = Depends(get_sign_in_manager),
    profiles: ProfileService = Depends(get_profile_service),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_settings),
) -> ApiResponse:
    """Create an account, then either mail a confirmation link or sign the user in."""

    require_confirmed = settings.require_confirmed_email
    try:
        registration = await accounts.register_new_user(
            payload.user_name, payload.email, payload.password, require_confirmed
        )
    except DomainError as exc:
        logger.warning("Register user failed", username=payload.user_name, reason=exc.description)
        raise DomainError(exc.description, f"Register User Failed: {exc.description}") from exc
    except SQLAlchemyError as exc:
        logger.error("Register user failed", username=payload.user_name, error=str(exc))
        raise PersistenceError("Register User Failed", status_code=400) from exc

    if require_confirmed:
        await _send_confirmation_email(
            sender, settings, registration.user, registration.confirmation_token or ""
        )
        return api_response(200, "Register User Success")

    return await _login(
        LoginRequest(user_name=payload.user_name, password=payload.password),
        response,
        sign_in,
        profiles,
    )


@router.post("/ConfirmEmail", response_model=ApiResponse)
async def confirm_email(
    payload: ConfirmEmailRequest,
    response: Response,
    users: UserManager = Depends(get_user_manager),
    sign_in: SignInManager = Depends(get_sign_in_manager),
) -> ApiResponse:
    """Mark the email confirmed and start a session."""

    if not payload.user_id or not payload.token:
        raise NotFoundError("User does not exist")

    user = await users.find_by_id(payload.user_id)
    if user is None:
        logger.info("User does not exist", user_id=payload.user_id)
        raise NotFoundError("User does not exist")

    result = await users.confirm_email(user, payload.token)
    if not result.succeeded:
        logger.info("User email confirmation failed", user_id=user.id, reason=result.first_error)
        raise ValidationError("User Email Confirmation Failed")

    await sign_in.sign_in(response, user, remember_me=True)
    return api_response(200, "Success")


@router.post("/ForgotPassword", response_model=ApiResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    users: UserManager = Depends(get_user_manager),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_settings),
) -> ApiResponse:
    """Mail a reset link to confirmed accounts; the response never reveals which."""

    user = await users.find_by_email(payload.email)
    if user is None or not await users.is_email_confirmed(user):
        logger.info("Forgot password for unknown or unconfirmed email")
        return api_response(200, "Success")

    token = await users.generate_password_reset_token(user)
    url = callback_url(settings, "ResetPassword", user.id, token)
    message = build_forgot_password_email(EmailMessage.to(user.email), user.username, url, token)
    if await send_quietly(sender, message):
        logger.info("Forgot password email sent", user_id=user.id)
    return api_response(200, "Success")


@router.post("/ResetPassword", response_model=ApiResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    users: UserManager = Depends(get_user_manager),
    sender: EmailSender = Depends(get_email_sender),
) -> ApiResponse:
    """Set a new password using a mailed reset token."""

    user = await users.find_by_id(payload.user_id)
    if user is None:
        logger.info("User does not exist", user_id=payload.user_id)
        raise NotFoundError("User does not exist")

    result = await users.reset_password(user, payload.token, payload.password)
    if not result.succeeded:
        logger.info("Reset password failed", user_id=user.id, reason=result.first_error)
        raise ValidationError(f"Error while resetting the password!: {user.username}")

    await send_quietly(sender, build_password_reset_email(EmailMessage.to(user.email), user.username))
    logger.info("Reset password succeeded", user_id=user.id)
    return api_response(200, f"Reset Password Successful Email Sent: {user.email}")


@router.post("/Logout", response_model=ApiResponse)
async def logout(
    response: Response,
    principal: Principal = Depends(get_current_principal),
    sign_in: SignInManager = Depends(get_sign_in_manager),
) -> ApiResponse:
    sign_in.sign_out(response)
    logger.info("Logged out", username=principal.username)
    return api_response(200, "Logout Successful")


@router.get("/UserInfo", response_model=ApiResponse)
async def user_info(
    principal: Optional[Principal] = Depends(get_optional_principal),
    users: UserManager = Depends(get_user_manager),
) -> ApiResponse:
    """Describe the caller, or return the logged-out shape."""

    user = await users.find_by_id(principal.user_id) if principal else None
    if principal is None or user is None:
        return api_response(200, "Retrieved UserInfo", logged_out_user())

    info = UserInfo(
        is_authenticated=True,
        user_id=user.id,
        user_name=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        exposed_claims=exposed_claims(principal.claims),
        roles=principal.roles,
    )
    return api_response(200, "Retrieved UserInfo", info)


@router.post("/UpdateUser", response_model=ApiResponse)
async def update_user(
    payload: UserUpdate,
    principal: Principal = Depends(get_current_principal),
    users: UserManager = Depends(get_user_manager),
) -> ApiResponse:
    """Update the caller's own name fields; the email identifies the record."""

    user = await users.find_by_email(payload.email)
    if user is None:
        logger.info("User does not exist", email=payload.email)
        raise NotFoundError("User does not exist")
    if user.id != principal.user_id and not principal.has_claim(ADMIN_POLICY_CLAIM):
        raise AuthorizationError("Users may only update their own account")

    user.first_name = payload.first_name
    user.last_name = payload.last_name
    user.email = payload.email

    result = await users.update(user)
    if not result.succeeded:
        logger.info("User update failed", user_id=user.id, reason=result.first_error)
        raise ValidationError("User Update Failed")
    return api_response(200, "User Updated Successfully")


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------
@router.post("/Create", response_model=ApiResponse)
async def create_user(
    payload: RegisterRequest,
    admin: Principal = Depends(require_admin),
    users: UserManager = Depends(get_user_manager),
    accounts: AccountService = Depends(get_account_service),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_settings),
) -> ApiResponse:
    """Create an account on behalf of a user."""

    user = User(username=payload.user_name, email=payload.email, email_confirmed=False)
    try:
        result = await accounts.create_user(user, payload.password)
    except SQLAlchemyError as exc:
        logger.error("Create user failed", username=payload.user_name, error=str(exc))
        raise PersistenceError("Create User Failed", status_code=400) from exc
    if not result.succeeded:
        raise DomainError(result.first_error, f"Register User Failed: {result.first_error}")

    logger.info("New user created", user_id=user.id, created_by=admin.username)

    if settings.require_confirmed_email:
        token = await users.generate_email_confirmation_token(user)
        await _send_confirmation_email(sender, settings, user, token)
        return api_response(200, "Create User Success")

    welcome = build_new_user_email(
        EmailMessage.to(user.email), user.full_name, user.username, user.email, payload.password
    )
    await send_quietly(sender, welcome)

    info = UserInfo(
        is_authenticated=False,
        user_id=user.id,
        user_name=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        roles=[DEFAULT_ROLE],
    )
    return api_response(200, "Created New User", info)


@router.delete("/{user_id}", response_model=ApiResponse)
async def delete_user(
    user_id: str,
    admin: Principal = Depends(require_admin),
    users: UserManager = Depends(get_user_manager),
    api_logs: ApiLogService = Depends(get_api_log_service),
) -> ApiResponse:
    """Delete a user and every audit entry it owns."""

    user = await users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User does not exist")

    try:
        await api_logs.delete_for_user(user.id)
        await users.delete(user)
    except SQLAlchemyError as exc:
        await users.session.rollback()
        logger.error("User deletion failed", user_id=user_id, error=str(exc))
        raise PersistenceError("User Deletion Failed", status_code=400) from exc

    logger.info("User deleted", user_id=user_id, deleted_by=admin.username)
    return api_response(200, "User Deletion Successful")


@router.get("/GetUser", response_model=ApiResponse)
async def get_user(principal: Optional[Principal] = Depends(get_optional_principal)) -> ApiResponse:
    info = (
        UserInfo(user_name=principal.username, is_authenticated=True)
        if principal is not None
        else logged_out_user()
    )
    return api_response(200, "Get User Successful", info)


@router.get("/ListRoles", response_model=ApiResponse)
async def list_roles(
    principal: Principal = Depends(get_current_principal),
    users: UserManager = Depends(get_user_manager),
) -> ApiResponse:
    return api_response(200, "", await users.list_role_names())


@router.put("", response_model=ApiResponse)
async def update(
    payload: UserUpdate,
    admin: Principal = Depends(require_admin),
    users: UserManager = Depends(get_user_manager),
) -> ApiResponse:
    """Update a user's profile fields and reconcile its role set."""

    if not payload.user_id:
        raise ValidationError("User Model is Invalid")

    user = await users.find_by_id(payload.user_id)
    if user is None:
        raise NotFoundError("User does not exist")

    if payload.user_name:
        user.username = payload.user_name
    user.first_name = payload.first_name
    user.last_name = payload.last_name
    user.email = payload.email

    try:
        result = await users.update(user)
    except SQLAlchemyError as exc:
        logger.error("Error updating user", user_id=user.id, error=str(exc))
        raise PersistenceError("Error Updating User") from exc
    if not result.succeeded:
        logger.info("Error updating user", user_id=user.id, reason=result.first_error)
        raise PersistenceError("Error Updating User")

    if payload.roles is not None:
        try:
            changes = await users.reconcile_roles(user, payload.roles)
        except SQLAlchemyError as exc:
            logger.error("Error updating roles", user_id=user.id, error=str(exc))
            raise PersistenceError("Error Updating Roles") from exc
        if not changes.result.succeeded:
            logger.info("Error updating roles", user_id=user.id, reason=changes.result.first_error)
            raise PersistenceError("Error Updating Roles")
        logger.info(
            "Roles reconciled",
            user_id=user.id,
            added=changes.added,
            removed=changes.removed,
            updated_by=admin.username,
        )

    return api_response(200, "User Updated")


@router.post("/AdminUserPasswordReset/{user_id}", response_model=ApiResponse)
async def admin_reset_user_password(
    user_id: str,
    new_password: str = Body(..., min_length=1),
    admin: Principal = Depends(require_admin),
    users: UserManager = Depends(get_user_manager),
) -> ApiResponse:
    """Set a user's password without knowing the current one."""

    user = await users.find_by_id(user_id)
    if user is None:
        raise ValidationError("Unable to find user")

    token = await users.generate_password_reset_token(user)
    result = await users.reset_password(user, token, new_password)
    if not result.succeeded:
        logger.info("Admin password reset failed", user_id=user.id, requested_by=admin.username)
        # Trusted administrators see the raw policy errors.
        raise ValidationError(", ".join(result.errors) or "Password reset failed")

    logger.info("Admin password reset", user_id=user.id, requested_by=admin.username)
    return api_response(200, f"{user.username} password reset")
