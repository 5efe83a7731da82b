"""First-time login tokens: one-time, short-lived tickets for setting an initial password."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import delete, update
from sqlmodel import Session, select

from expense_tracker.exceptions import (
    TokenAlreadyUsedError,
    TokenNotFoundError,
    UserNotFoundError,
)
from expense_tracker.models.token import FirstTimeLoginToken
from expense_tracker.models.user import User

logger = logging.getLogger(__name__)

# 32 random bytes, url-safe base64 encoded: 256 bits of entropy.
TOKEN_BYTES = 32


class InvalidReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"


@dataclass
class TokenValidation:
    valid: bool
    user: User | None = None
    token: FirstTimeLoginToken | None = None
    invalid_reason: InvalidReason | None = None


class FirstLoginTokenService:
    def __init__(self, session: Session, expiry_minutes: int = 15):
        self.session = session
        self.expiry = timedelta(minutes=expiry_minutes)

    def generate_token_for_user(
        self, user: User, commit: bool = True
    ) -> FirstTimeLoginToken:
        """Issue a new token for ``user``. Existing tokens are left alone."""
        token = FirstTimeLoginToken(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            user_id=user.id,
            expires_at=datetime.utcnow() + self.expiry,
            used=False,
        )
        self.session.add(token)
        if commit:
            self.session.commit()
            self.session.refresh(token)
        else:
            self.session.flush()
        logger.info(f"Issued first-time login token for user {user.id}")
        return token

    def generate_token(self, user_id: int) -> FirstTimeLoginToken:
        user = self.session.get(User, user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return self.generate_token_for_user(user)

    def get_token(self, token_value: str | None) -> FirstTimeLoginToken | None:
        if not token_value:
            return None
        return self.session.exec(
            select(FirstTimeLoginToken).where(FirstTimeLoginToken.token == token_value)
        ).first()

    def get_latest_token_for_user(self, user_id: int) -> FirstTimeLoginToken | None:
        return self.session.exec(
            select(FirstTimeLoginToken)
            .where(FirstTimeLoginToken.user_id == user_id)
            .order_by(FirstTimeLoginToken.id.desc())
        ).first()

    def validate_token(self, token_value: str | None) -> TokenValidation:
        """Read-only check; reasons are reported as NOT_FOUND, ALREADY_USED, EXPIRED in that order."""
        token = self.get_token(token_value)
        if not token:
            return TokenValidation(False, invalid_reason=InvalidReason.NOT_FOUND)
        if token.used:
            return TokenValidation(False, invalid_reason=InvalidReason.ALREADY_USED)
        if token.expires_at < datetime.utcnow():
            return TokenValidation(False, invalid_reason=InvalidReason.EXPIRED)
        user = self.session.get(User, token.user_id)
        if not user:
            return TokenValidation(False, invalid_reason=InvalidReason.NOT_FOUND)
        return TokenValidation(True, user=user, token=token)

    def mark_token_as_used(self, token_value: str, commit: bool = True) -> None:
        """Consume a token with a single conditional UPDATE.

        Only one caller can flip ``used`` from false to true; every other
        concurrent caller sees zero affected rows and gets TokenAlreadyUsedError.
        """
        result = self.session.exec(
            update(FirstTimeLoginToken)
            .where(
                FirstTimeLoginToken.token == token_value,
                FirstTimeLoginToken.used == False,  # noqa: E712
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if self.get_token(token_value) is None:
                raise TokenNotFoundError()
            raise TokenAlreadyUsedError()
        if commit:
            self.session.commit()

    def revoke_tokens_for_user(self, user_id: int, commit: bool = True) -> int:
        result = self.session.exec(
            delete(FirstTimeLoginToken).where(FirstTimeLoginToken.user_id == user_id)
        )
        if commit:
            self.session.commit()
        return result.rowcount

    def revoke_expired_tokens(self) -> int:
        """Delete every token whose expiry has passed. Returns the number removed."""
        result = self.session.exec(
            delete(FirstTimeLoginToken).where(
                FirstTimeLoginToken.expires_at < datetime.utcnow()
            )
        )
        self.session.commit()
        if result.rowcount:
            logger.info(f"Removed {result.rowcount} expired first-time login tokens")
        return result.rowcount
