"""Startup routines: default admin creation and the expired-token sweep."""

import asyncio
import logging

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from expense_tracker.config import Settings
from expense_tracker.models.user import User
from expense_tracker.services.first_login_tokens import FirstLoginTokenService
from expense_tracker.services.passwords import PasswordService
from expense_tracker.services.users import UserService

logger = logging.getLogger(__name__)


def setup_url(settings: Settings, token_value: str) -> str:
    return f"{settings.frontend_url}/setup-password/{token_value}"


def ensure_default_admin(session: Session, settings: Settings) -> User | None:
    """Make sure exactly one default admin exists. Safe to call any number of times."""
    tokens = FirstLoginTokenService(session, settings.first_login_token_expire_minutes)
    users = UserService(session, PasswordService(settings.bcrypt_rounds), tokens)
    try:
        admin = users.create_default_admin()
    except IntegrityError:
        # Another process created it between our check and insert.
        session.rollback()
        logger.debug("Default admin created concurrently; skipping")
        return None

    if admin is None:
        logger.debug("Default admin already exists. Skipping admin initialization.")
        return None

    token = tokens.get_latest_token_for_user(admin.id)
    logger.info(
        f"Default admin '{admin.username}' created. Finish setup via "
        f"/api/auth/setup-admin or {setup_url(settings, token.token)}"
    )
    return admin


def revoke_expired_tokens(engine: Engine) -> int:
    with Session(engine) as session:
        return FirstLoginTokenService(session).revoke_expired_tokens()


async def sweep_expired_tokens(engine: Engine, interval_seconds: int) -> None:
    """Periodically delete expired first-time login tokens until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(revoke_expired_tokens, engine)
        except Exception:
            logger.exception("Expired token sweep failed")
