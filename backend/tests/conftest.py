import os

# Must be set before the service modules read their settings
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-access-secret"
os.environ["REFRESH_SECRET_KEY"] = "test-refresh-secret"

import pytest
from fastapi.testclient import TestClient

from user_service.core.config import settings
from user_service.core.database import Base, SessionLocal, engine
from user_service.main import app
from user_service.schemas.user import UserCreate
from user_service.services.auth_service import AuthService
from user_service.services.credential_store import CredentialStore
from user_service.services.token_service import TokenIssuer, TokenVerifier
from user_service.services.user_service import UserService


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return CredentialStore(db, bcrypt_rounds=settings.BCRYPT_ROUNDS)


@pytest.fixture
def issuer(store):
    return TokenIssuer(store, settings)


@pytest.fixture
def verifier():
    return TokenVerifier(settings)


@pytest.fixture
def auth_service(store, issuer):
    return AuthService(store, issuer)


@pytest.fixture
def user_service(store):
    return UserService(store)


@pytest.fixture
def client():
    return TestClient(app)


def make_candidate(email="a@x.com", password="pw123456", **overrides) -> UserCreate:
    data = {
        "email": email,
        "password": password,
        "first_name": "A",
        "last_name": "B",
    }
    data.update(overrides)
    return UserCreate(**data)
