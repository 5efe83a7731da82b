from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, create_engine, select

from expense_tracker.database import configure_sqlite, init_db
from expense_tracker.exceptions import (
    TokenAlreadyUsedError,
    TokenNotFoundError,
    UserNotFoundError,
)
from expense_tracker.models.token import FirstTimeLoginToken
from expense_tracker.models.user import User
from expense_tracker.services.first_login_tokens import (
    FirstLoginTokenService,
    InvalidReason,
)


@pytest.fixture
def alice(session: Session) -> User:
    user = User(username="alice")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _expire(session: Session, token: FirstTimeLoginToken) -> None:
    token.expires_at = datetime.utcnow() - timedelta(minutes=1)
    session.add(token)
    session.commit()


# ==================== Generation ====================


class TestGenerateToken:
    def test_generate_for_user(self, token_service: FirstLoginTokenService, alice: User):
        token = token_service.generate_token_for_user(alice)
        assert token.id is not None
        assert token.user_id == alice.id
        assert token.used is False
        assert len(token.token) >= 32
        window = token.expires_at - datetime.utcnow()
        assert timedelta(minutes=14) < window <= timedelta(minutes=15)

    def test_tokens_are_unique(self, token_service: FirstLoginTokenService, alice: User):
        values = {token_service.generate_token_for_user(alice).token for _ in range(5)}
        assert len(values) == 5

    def test_new_token_does_not_invalidate_previous(
        self, token_service: FirstLoginTokenService, alice: User
    ):
        first = token_service.generate_token_for_user(alice)
        token_service.generate_token_for_user(alice)
        assert token_service.validate_token(first.token).valid

    def test_generate_by_user_id(self, token_service: FirstLoginTokenService, alice: User):
        token = token_service.generate_token(alice.id)
        assert token.user_id == alice.id

    def test_generate_for_unknown_user(self, token_service: FirstLoginTokenService):
        with pytest.raises(UserNotFoundError):
            token_service.generate_token(99999)

    def test_custom_expiry_window(self, session: Session, alice: User):
        token = FirstLoginTokenService(session, expiry_minutes=60).generate_token_for_user(
            alice
        )
        assert token.expires_at - datetime.utcnow() > timedelta(minutes=59)


# ==================== Validation ====================


class TestValidateToken:
    def test_valid_token_returns_user(
        self, token_service: FirstLoginTokenService, alice: User
    ):
        token = token_service.generate_token_for_user(alice)
        result = token_service.validate_token(token.token)
        assert result.valid
        assert result.user.id == alice.id
        assert result.invalid_reason is None

    def test_validation_is_repeatable(
        self, token_service: FirstLoginTokenService, alice: User
    ):
        token = token_service.generate_token_for_user(alice)
        assert token_service.validate_token(token.token).valid
        assert token_service.validate_token(token.token).valid

    @pytest.mark.parametrize("value", [None, "", "does-not-exist"])
    def test_unknown_token(self, token_service: FirstLoginTokenService, value):
        result = token_service.validate_token(value)
        assert not result.valid
        assert result.invalid_reason == InvalidReason.NOT_FOUND

    def test_used_token(self, token_service: FirstLoginTokenService, alice: User):
        token = token_service.generate_token_for_user(alice)
        token_service.mark_token_as_used(token.token)
        result = token_service.validate_token(token.token)
        assert not result.valid
        assert result.invalid_reason == InvalidReason.ALREADY_USED

    def test_expired_token(
        self, session: Session, token_service: FirstLoginTokenService, alice: User
    ):
        token = token_service.generate_token_for_user(alice)
        _expire(session, token)
        result = token_service.validate_token(token.token)
        assert not result.valid
        assert result.invalid_reason == InvalidReason.EXPIRED

    def test_used_takes_priority_over_expired(
        self, session: Session, token_service: FirstLoginTokenService, alice: User
    ):
        token = token_service.generate_token_for_user(alice)
        token_service.mark_token_as_used(token.token)
        session.refresh(token)
        _expire(session, token)
        assert (
            token_service.validate_token(token.token).invalid_reason
            == InvalidReason.ALREADY_USED
        )


# ==================== Consumption ====================


class TestMarkTokenAsUsed:
    def test_mark_used(
        self, session: Session, token_service: FirstLoginTokenService, alice: User
    ):
        token = token_service.generate_token_for_user(alice)
        token_service.mark_token_as_used(token.token)
        session.refresh(token)
        assert token.used is True

    def test_unknown_token(self, token_service: FirstLoginTokenService):
        with pytest.raises(TokenNotFoundError):
            token_service.mark_token_as_used("does-not-exist")

    def test_second_consumption_loses(
        self, token_service: FirstLoginTokenService, alice: User
    ):
        token = token_service.generate_token_for_user(alice)
        token_service.mark_token_as_used(token.token)
        with pytest.raises(TokenAlreadyUsedError):
            token_service.mark_token_as_used(token.token)

    def test_concurrent_consumption_has_single_winner(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        configure_sqlite(engine)
        init_db(engine)
        with Session(engine) as session:
            user = User(username="racer")
            session.add(user)
            session.commit()
            session.refresh(user)
            token_value = FirstLoginTokenService(session).generate_token_for_user(
                user
            ).token

        def consume(_):
            with Session(engine) as session:
                try:
                    FirstLoginTokenService(session).mark_token_as_used(token_value)
                    return True
                except TokenAlreadyUsedError:
                    return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(consume, range(8)))
        engine.dispose()

        assert results.count(True) == 1
        assert results.count(False) == 7


# ==================== Revocation ====================


class TestRevokeTokens:
    def test_revoke_expired_tokens(
        self, session: Session, token_service: FirstLoginTokenService, alice: User
    ):
        live = token_service.generate_token_for_user(alice)
        expired = token_service.generate_token_for_user(alice)
        expired_and_used = token_service.generate_token_for_user(alice)
        token_service.mark_token_as_used(expired_and_used.token)
        session.refresh(expired_and_used)
        _expire(session, expired)
        _expire(session, expired_and_used)

        assert token_service.revoke_expired_tokens() == 2

        remaining = session.exec(select(FirstTimeLoginToken.token)).all()
        assert remaining == [live.token]

    def test_revoke_expired_is_noop_when_nothing_expired(
        self, token_service: FirstLoginTokenService, alice: User
    ):
        token_service.generate_token_for_user(alice)
        assert token_service.revoke_expired_tokens() == 0
        assert token_service.revoke_expired_tokens() == 0

    def test_revoke_tokens_for_user(
        self, session: Session, token_service: FirstLoginTokenService, alice: User
    ):
        token_service.generate_token_for_user(alice)
        token_service.generate_token_for_user(alice)
        assert token_service.revoke_tokens_for_user(alice.id) == 2
        assert token_service.get_latest_token_for_user(alice.id) is None
