import os
import tempfile
from pathlib import Path

# Point the app at a throwaway SQLite database before anything imports it.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="nuvyra-admin-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["ADMIN_EMAIL"] = "admin@nuvyra.test"
os.environ["ADMIN_PASSWORD"] = "correct horse battery"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["AI_INTEGRITY_ENABLED"] = "false"
os.environ.pop("IMGUR_CLIENT_ID", None)
os.environ.pop("OPENAI_API_KEY", None)

import pytest

from nuvyra_admin import models  # noqa: F401  (registers tables on Base)
from nuvyra_admin.database import Base, SessionLocal, engine, init_db

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from nuvyra_admin.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_client(client):
    response = client.post(
        "/login",
        data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return client


@pytest.fixture
def product_data():
    def make(**overrides):
        data = {
            "name": "Shirt",
            "description": "Cotton shirt",
            "image": "https://cdn.example.com/shirt.png",
            "category": "shirts",
            "price": 10,
            "is_active": True,
        }
        data.update(overrides)
        return data

    return make
