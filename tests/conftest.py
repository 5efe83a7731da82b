import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from expense_tracker.config import settings
from expense_tracker.database import configure_sqlite, get_session
from expense_tracker.main import app
from expense_tracker.models.user import User, UserRole
from expense_tracker.services.first_login_tokens import FirstLoginTokenService
from expense_tracker.services.passwords import PasswordService
from expense_tracker.services.users import UserService

ADMIN_PASSWORD = "Adm1n-Secret-Pass!"
USER_PASSWORD = "Us3r-Secret-Pass!"

# Lowest cost bcrypt accepts; production uses settings.bcrypt_rounds.
TEST_BCRYPT_ROUNDS = 4


@pytest.fixture(autouse=True)
def _fast_bcrypt(monkeypatch):
    monkeypatch.setattr(settings, "bcrypt_rounds", TEST_BCRYPT_ROUNDS)


@pytest.fixture
def passwords() -> PasswordService:
    return PasswordService(rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="empty_session")
def empty_session_fixture(engine):
    """A session on an empty database (no default admin yet)."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="session")
def session_fixture(engine, passwords: PasswordService):
    with Session(engine) as session:
        # Seed a default admin that has already completed setup
        admin = User(
            username="admin",
            password_hash=passwords.encode_password(ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            is_default_admin=True,
            is_active=True,
            password_set=True,
        )
        session.add(admin)
        session.commit()
        yield session


@pytest.fixture
def token_service(session: Session) -> FirstLoginTokenService:
    return FirstLoginTokenService(session, expiry_minutes=15)


@pytest.fixture
def user_service(
    session: Session, passwords: PasswordService, token_service: FirstLoginTokenService
) -> UserService:
    return UserService(session, passwords, token_service)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_token(client: TestClient) -> str:
    response = client.post(
        "/api/auth/login",
        json={"username": "admin", "password": ADMIN_PASSWORD},
    )
    return response.json()["token"]


@pytest.fixture
def regular_user(session: Session, passwords: PasswordService) -> User:
    user = User(
        username="testuser",
        password_hash=passwords.encode_password(USER_PASSWORD),
        role=UserRole.USER,
        is_active=True,
        password_set=True,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def user_token(client: TestClient, regular_user: User) -> str:
    response = client.post(
        "/api/auth/login",
        json={"username": "testuser", "password": USER_PASSWORD},
    )
    return response.json()["token"]
