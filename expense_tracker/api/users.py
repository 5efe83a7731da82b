from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator

from expense_tracker.api.deps import (
    get_token_service,
    get_user_service,
    require_admin,
    require_authentication,
)
from expense_tracker.api.schemas import MessageResponse, UserResponse
from expense_tracker.bootstrap import setup_url
from expense_tracker.config import settings
from expense_tracker.exceptions import (
    DefaultAdminProtectedError,
    UsernameTakenError,
    UserNotFoundError,
    UserStateError,
)
from expense_tracker.models.user import UserRole
from expense_tracker.services.first_login_tokens import FirstLoginTokenService
from expense_tracker.services.session_tokens import SessionValidation
from expense_tracker.services.users import UserService

router = APIRouter(prefix="/users", tags=["users"])


class CreateUserRequest(BaseModel):
    username: str
    email: str | None = None
    role: UserRole | None = None

    @field_validator("username")
    @classmethod
    def _username_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Username is required")
        return value


class UpdateUserRequest(BaseModel):
    email: str | None = None
    role: UserRole | None = None
    is_active: bool | None = None


class CreateUserResponse(BaseModel):
    user: UserResponse
    setup_url: str


class GenerateTokenResponse(BaseModel):
    setup_url: str
    expires_at: datetime


def _get_user_or_404(users: UserService, user_id: int):
    try:
        return users.get_user(user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")


@router.get("", response_model=list[UserResponse])
def list_users(
    users: UserService = Depends(get_user_service),
    _admin: SessionValidation = Depends(require_admin),
):
    return users.list_users()


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    users: UserService = Depends(get_user_service),
    claims: SessionValidation = Depends(require_authentication),
):
    if not claims.is_admin and claims.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return _get_user_or_404(users, user_id)


@router.post("", response_model=CreateUserResponse, status_code=201)
def create_user(
    body: CreateUserRequest,
    users: UserService = Depends(get_user_service),
    _admin: SessionValidation = Depends(require_admin),
):
    try:
        user, token = users.create_user(body.username, body.email, body.role)
    except UsernameTakenError:
        raise HTTPException(status_code=409, detail="Username already exists")
    return CreateUserResponse(
        user=UserResponse.model_validate(user),
        setup_url=setup_url(settings, token.token),
    )


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    body: UpdateUserRequest,
    users: UserService = Depends(get_user_service),
    _admin: SessionValidation = Depends(require_admin),
):
    _get_user_or_404(users, user_id)
    try:
        return users.update_user(
            user_id, email=body.email, role=body.role, is_active=body.is_active
        )
    except DefaultAdminProtectedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except UserStateError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    users: UserService = Depends(get_user_service),
    _admin: SessionValidation = Depends(require_admin),
):
    _get_user_or_404(users, user_id)
    try:
        users.delete_user(user_id)
    except DefaultAdminProtectedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return MessageResponse(message="User deleted successfully")


@router.post("/{user_id}/generate-token", response_model=GenerateTokenResponse)
def generate_token(
    user_id: int,
    users: UserService = Depends(get_user_service),
    tokens: FirstLoginTokenService = Depends(get_token_service),
    _admin: SessionValidation = Depends(require_admin),
):
    """Replace every outstanding token of the user with a fresh one."""
    _get_user_or_404(users, user_id)
    tokens.revoke_tokens_for_user(user_id)
    token = tokens.generate_token(user_id)
    return GenerateTokenResponse(
        setup_url=setup_url(settings, token.token),
        expires_at=token.expires_at,
    )
