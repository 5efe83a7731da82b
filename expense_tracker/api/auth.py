import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from expense_tracker.api.deps import (
    get_current_user,
    get_password_service,
    get_session_token_service,
    get_token_service,
    get_user_service,
    require_authentication,
)
from expense_tracker.api.schemas import (
    MessageResponse,
    UserResponse,
    password_error_detail,
)
from expense_tracker.exceptions import (
    InvalidTokenError,
    PasswordPolicyError,
    TokenAlreadyUsedError,
    TokenNotFoundError,
)
from expense_tracker.models.user import User
from expense_tracker.services.first_login_tokens import FirstLoginTokenService
from expense_tracker.services.passwords import PasswordService
from expense_tracker.services.session_tokens import (
    SessionTokenService,
    SessionValidation,
)
from expense_tracker.services.users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class SetPasswordRequest(BaseModel):
    password: str


class SetupRequiredResponse(BaseModel):
    setup_required: bool


class TokenValidationResponse(BaseModel):
    valid: bool
    username: str | None = None
    expires_at: datetime | None = None


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    users: UserService = Depends(get_user_service),
    passwords: PasswordService = Depends(get_password_service),
    session_tokens: SessionTokenService = Depends(get_session_token_service),
):
    user = users.find_by_username(body.username)
    # Same answer for unknown user and wrong password.
    if not user or not passwords.match_password(body.password, user.password_hash):
        logger.info("Rejected login attempt")
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if not user.is_active or not user.password_set:
        raise HTTPException(status_code=403, detail="User not activated")

    issued = session_tokens.issue_token(user)
    return LoginResponse(
        token=issued.token,
        expires_at=issued.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse)
def logout(_claims: SessionValidation = Depends(require_authentication)):
    """Stateless: the client discards its token, which stays valid until it expires."""
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.get("/setup-required", response_model=SetupRequiredResponse)
def setup_required(users: UserService = Depends(get_user_service)):
    admin = users.get_default_admin()
    return SetupRequiredResponse(setup_required=admin is None or not admin.password_set)


@router.post("/setup-admin", response_model=UserResponse)
def setup_admin(
    body: SetPasswordRequest,
    users: UserService = Depends(get_user_service),
):
    admin = users.get_default_admin()
    if not admin:
        raise HTTPException(status_code=404, detail="Default admin not found")
    if admin.password_set:
        raise HTTPException(status_code=409, detail="Setup already complete")
    try:
        return users.setup_default_admin(admin, body.password)
    except PasswordPolicyError as e:
        raise HTTPException(status_code=400, detail=password_error_detail(e.errors))


@router.post("/set-password/{token}", response_model=UserResponse)
def set_password(
    token: str,
    body: SetPasswordRequest,
    users: UserService = Depends(get_user_service),
):
    try:
        return users.set_password_with_token(token, body.password)
    except PasswordPolicyError as e:
        raise HTTPException(status_code=400, detail=password_error_detail(e.errors))
    except (InvalidTokenError, TokenAlreadyUsedError, TokenNotFoundError):
        # Unknown, used and expired tokens look the same from outside.
        raise HTTPException(status_code=400, detail="Invalid or expired token")


@router.get("/validate-token/{token}", response_model=TokenValidationResponse)
def validate_token(
    token: str,
    tokens: FirstLoginTokenService = Depends(get_token_service),
):
    validation = tokens.validate_token(token)
    if not validation.valid:
        return TokenValidationResponse(valid=False)
    return TokenValidationResponse(
        valid=True,
        username=validation.user.username,
        expires_at=validation.token.expires_at,
    )
