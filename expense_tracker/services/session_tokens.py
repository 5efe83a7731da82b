"""Signed, stateless session tokens (JWT, HS256).

Everything a request guard needs (user id, username, role) travels inside the
token, so validating one never touches the database. A role change therefore
only takes effect once the holder's token is reissued or expires.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from expense_tracker.models.user import User, UserRole

ALGORITHM = "HS256"


@dataclass
class SessionValidation:
    valid: bool
    user_id: int | None = None
    username: str | None = None
    role: UserRole | None = None

    @classmethod
    def invalid(cls) -> "SessionValidation":
        return cls(valid=False)

    @property
    def is_admin(self) -> bool:
        return self.valid and self.role == UserRole.ADMIN


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime  # naive UTC, same instant as the exp claim


class SessionTokenService:
    def __init__(self, secret_key: str, expiration_ms: int):
        self.secret_key = secret_key
        self.expiration = timedelta(milliseconds=expiration_ms)

    def issue_token(self, user: User) -> IssuedToken:
        """Sign a token for ``user`` and report the expiry written into its ``exp`` claim."""
        now = int(datetime.now(UTC).timestamp())
        exp = now + int(self.expiration.total_seconds())
        token = jwt.encode(
            {
                "sub": str(user.id),
                "username": user.username,
                "role": UserRole(user.role).value,
                "iat": now,
                "exp": exp,
                "jti": uuid.uuid4().hex,
            },
            self.secret_key,
            algorithm=ALGORITHM,
        )
        return IssuedToken(token, datetime.fromtimestamp(exp, UTC).replace(tzinfo=None))

    def generate_token(self, user: User) -> str:
        return self.issue_token(user).token

    def validate_token(self, token: str | None) -> SessionValidation:
        if not token:
            return SessionValidation.invalid()
        try:
            payload = self._decode(token)
            return SessionValidation(
                valid=True,
                user_id=int(payload["sub"]),
                username=payload["username"],
                role=UserRole(payload["role"]),
            )
        except (JWTError, KeyError, TypeError, ValueError):
            return SessionValidation.invalid()

    def extract_user_id(self, token: str | None) -> int | None:
        return self.validate_token(token).user_id

    def extract_role(self, token: str | None) -> UserRole | None:
        return self.validate_token(token).role

    def is_token_expired(self, token: str | None) -> bool:
        """Unparsable, badly signed or missing tokens count as expired."""
        if not token:
            return True
        try:
            payload = self._decode(token)
        except JWTError:
            return True
        exp = payload.get("exp")
        if exp is None:
            return True
        return datetime.fromtimestamp(exp, UTC) <= datetime.now(UTC)

    def _decode(self, token: str) -> dict:
        return jwt.decode(token, self.secret_key, algorithms=[ALGORITHM])
