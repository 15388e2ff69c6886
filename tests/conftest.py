import os

# Secrets must be in place before the app modules read them
os.environ.setdefault("FLW_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("FLW_SECRET_KEY", "FLWSECK_TEST-secret")
os.environ.setdefault("DEFAULT_BRAND_ID", "serac")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_session
from app.main import app as fastapi_app
from app.store import DocumentStore
import app.models  # noqa: F401

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def override_get_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    fastapi_app.dependency_overrides[get_session] = override_get_session
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    yield db
    db.close()


@pytest.fixture
def store(db_session):
    return DocumentStore(db_session)


@pytest.fixture
def unsafe_client():
    """Client that returns 500 responses instead of re-raising server errors."""
    fastapi_app.dependency_overrides[get_session] = override_get_session
    with TestClient(fastapi_app, raise_server_exceptions=False) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def session_factory():
    return TestingSessionLocal
