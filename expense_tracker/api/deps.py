from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from expense_tracker.config import settings
from expense_tracker.database import get_session
from expense_tracker.models.user import User
from expense_tracker.services.first_login_tokens import FirstLoginTokenService
from expense_tracker.services.passwords import PasswordService
from expense_tracker.services.session_tokens import (
    SessionTokenService,
    SessionValidation,
)
from expense_tracker.services.users import UserService

security = HTTPBearer(auto_error=False)


# --- Service providers ---


def get_password_service() -> PasswordService:
    return PasswordService(rounds=settings.bcrypt_rounds)


def get_session_token_service() -> SessionTokenService:
    return SessionTokenService(settings.secret_key, settings.access_token_expire_ms)


def get_token_service(
    session: Session = Depends(get_session),
) -> FirstLoginTokenService:
    return FirstLoginTokenService(session, settings.first_login_token_expire_minutes)


def get_user_service(
    session: Session = Depends(get_session),
    passwords: PasswordService = Depends(get_password_service),
    tokens: FirstLoginTokenService = Depends(get_token_service),
) -> UserService:
    return UserService(session, passwords, tokens)


# --- Guards ---


async def require_authentication(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session_tokens: SessionTokenService = Depends(get_session_token_service),
) -> SessionValidation:
    """Accept any valid session token. Claims come from the token alone."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    validation = session_tokens.validate_token(credentials.credentials)
    if not validation.valid:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return validation


async def require_admin(
    claims: SessionValidation = Depends(require_authentication),
) -> SessionValidation:
    """Authorize on the role embedded in the token, without a database read."""
    if not claims.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return claims


def get_current_user(
    claims: SessionValidation = Depends(require_authentication),
    session: Session = Depends(get_session),
) -> User:
    user = session.get(User, claims.user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
