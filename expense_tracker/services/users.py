"""User lifecycle: creation, updates, deletion and password setup."""

import logging
from datetime import datetime

from sqlalchemy import func
from sqlmodel import Session, select

from expense_tracker.exceptions import (
    DefaultAdminProtectedError,
    ExpenseTrackerError,
    InvalidTokenError,
    PasswordPolicyError,
    UsernameTakenError,
    UserNotFoundError,
    UserStateError,
)
from expense_tracker.models.token import FirstTimeLoginToken
from expense_tracker.models.user import User, UserRole
from expense_tracker.services.first_login_tokens import FirstLoginTokenService
from expense_tracker.services.passwords import PasswordService

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"


class UserService:
    def __init__(
        self,
        session: Session,
        passwords: PasswordService,
        tokens: FirstLoginTokenService,
    ):
        self.session = session
        self.passwords = passwords
        self.tokens = tokens

    # --- Lookups ---

    def list_users(self) -> list[User]:
        return list(self.session.exec(select(User).order_by(User.id)).all())

    def get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    def find_by_username(self, username: str) -> User | None:
        """Case-insensitive username lookup."""
        return self.session.exec(
            select(User).where(func.lower(User.username) == username.lower())
        ).first()

    def get_default_admin(self) -> User | None:
        return self.session.exec(
            select(User).where(User.is_default_admin == True)  # noqa: E712
        ).first()

    # --- Mutations ---

    def create_user(
        self,
        username: str,
        email: str | None = None,
        role: UserRole | None = None,
    ) -> tuple[User, FirstTimeLoginToken]:
        """Create an inactive user without a password and issue its first token."""
        if self.find_by_username(username):
            raise UsernameTakenError(username)

        user = User(
            username=username,
            email=email,
            role=role or UserRole.USER,
            is_active=False,
            password_set=False,
            is_default_admin=False,
        )
        self.session.add(user)
        self.session.flush()
        token = self.tokens.generate_token_for_user(user, commit=False)
        self.session.commit()
        self.session.refresh(user)
        self.session.refresh(token)
        logger.info(f"Created user {user.id} ({user.role.value})")
        return user, token

    def update_user(
        self,
        user_id: int,
        email: str | None = None,
        role: UserRole | None = None,
        is_active: bool | None = None,
    ) -> User:
        """Apply the non-None fields. The default admin is read-only here."""
        user = self.get_user(user_id)
        if user.is_default_admin:
            raise DefaultAdminProtectedError("Cannot modify default admin")
        if is_active and not user.password_set:
            raise UserStateError(
                "Cannot activate a user who has not set a password"
            )

        if email is not None:
            user.email = email
        if role is not None:
            user.role = role
        if is_active is not None:
            user.is_active = is_active
        user.updated_at = datetime.utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete_user(self, user_id: int) -> None:
        user = self.get_user(user_id)
        if user.is_default_admin:
            raise DefaultAdminProtectedError("Cannot delete default admin")
        self.tokens.revoke_tokens_for_user(user_id, commit=False)
        self.session.delete(user)
        self.session.commit()
        logger.info(f"Deleted user {user_id}")

    def set_password(self, user: User, password: str, commit: bool = True) -> User:
        """Validate, hash and store a password, activating the account."""
        validation = self.passwords.validate_password_complexity(password)
        if not validation.is_valid:
            raise PasswordPolicyError(validation.errors)

        user.password_hash = self.passwords.encode_password(password)
        user.password_set = True
        user.is_active = True
        user.updated_at = datetime.utcnow()
        self.session.add(user)
        if commit:
            self.session.commit()
            self.session.refresh(user)
        return user

    def set_password_with_token(self, token_value: str, password: str) -> User:
        """Exchange a first-time login token for a password.

        The password write and the token consumption share one transaction:
        either both are committed or neither is.
        """
        validation = self.tokens.validate_token(token_value)
        if not validation.valid:
            raise InvalidTokenError(validation.invalid_reason)

        user = validation.user
        try:
            self.set_password(user, password, commit=False)
            self.tokens.mark_token_as_used(token_value, commit=False)
            self.session.commit()
        except ExpenseTrackerError:
            self.session.rollback()
            raise
        self.session.refresh(user)
        logger.info(f"User {user.id} set a password with a first-time login token")
        return user

    def setup_default_admin(self, admin: User, password: str) -> User:
        """Set the default admin's first password and drop its bootstrap tokens.

        Both happen in one transaction, so no leftover token can reset the
        password once setup is done.
        """
        try:
            self.set_password(admin, password, commit=False)
            self.tokens.revoke_tokens_for_user(admin.id, commit=False)
            self.session.commit()
        except ExpenseTrackerError:
            self.session.rollback()
            raise
        self.session.refresh(admin)
        logger.info("Default admin completed setup")
        return admin

    def create_default_admin(self) -> User | None:
        """Create the default admin unless one already exists.

        Returns the new admin, or None when nothing was created.
        """
        if self.get_default_admin():
            return None

        admin = User(
            username=DEFAULT_ADMIN_USERNAME,
            email=None,
            role=UserRole.ADMIN,
            is_default_admin=True,
            is_active=False,
            password_set=False,
            password_hash=None,
        )
        self.session.add(admin)
        self.session.flush()
        self.tokens.generate_token_for_user(admin, commit=False)
        self.session.commit()
        self.session.refresh(admin)
        return admin
