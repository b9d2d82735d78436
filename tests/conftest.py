import os

# Must be set before carebook is imported so the engine points at SQLite
os.environ["TESTING"] = "1"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///./test_carebook.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from carebook.main import app
from carebook.core.database import Base, build_engine, get_db, get_redis
from carebook.core.security import Role, get_password_hash, token_service
from carebook.models.user import User

SQLALCHEMY_DATABASE_URL = os.environ["TEST_DATABASE_URL"]
engine = build_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEFAULT_PASSWORD = "TestPassword123"


class FakeRedis:
    """In-memory stand-in for the few Redis commands the rate limiter uses."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        value = self.store.get(key)
        return None if value is None else str(value)

    def setex(self, key, ttl, value):
        self.store[key] = int(value)

    def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def client(test_db, fake_redis):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def db_session(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_user(session, email, role, first_name="Test", last_name="User", is_active=True):
    user = User(
        email=email,
        password_hash=get_password_hash(DEFAULT_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=is_active,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def auth_headers(user):
    token = token_service.issue(user.id, user.role, email=user.email).access_token
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def coordinator(db_session):
    return make_user(db_session, "coordinator@example.com", Role.COORDINATOR, "Cora", "Ordinator")


@pytest.fixture
def clinician(db_session):
    return make_user(db_session, "clinician@example.com", Role.CLINICIAN, "Pat", "Clinic")


@pytest.fixture
def other_clinician(db_session):
    return make_user(db_session, "clinician2@example.com", Role.CLINICIAN, "Quinn", "Clinic")


@pytest.fixture
def client_user(db_session):
    return make_user(db_session, "client@example.com", Role.CLIENT, "Casey", "Client")


@pytest.fixture
def other_client(db_session):
    return make_user(db_session, "client2@example.com", Role.CLIENT, "Devon", "Client")


@pytest.fixture
def headers_for():
    return auth_headers
