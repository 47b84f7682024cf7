import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import AuthService, UserRepository
from database import get_db
from main import app
from settings import Settings, get_settings


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret-0123456789abcdef",
        bcrypt_rounds=4,
        upload_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def database():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def client(database, settings):
    app.dependency_overrides[get_db] = lambda: database
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(database, settings):
    users = UserRepository(database)
    users.ensure_indexes()
    return AuthService(users, settings)


@pytest.fixture
def admin_headers(auth):
    auth.bootstrap_admin("admin", "admin-pass-123")
    token, _ = auth.login("admin", "admin-pass-123")
    return {"Authorization": f"Bearer {token}"}


def _register(client, username):
    resp = client.post("/auth/register", json={"username": username, "password": "secret123"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]


@pytest.fixture
def user_headers(client):
    headers, _ = _register(client, "alice")
    return headers


@pytest.fixture
def other_user_headers(client):
    headers, _ = _register(client, "bob")
    return headers


def order_payload(**overrides):
    payload = {
        "orderRef": "ORD-1001",
        "subtotal": 1000,
        "customer": {
            "name": "Priya Sharma",
            "phone": "+91 98765-43210",
            "type": "Delivery",
            "address": "12 MG Road, Pune",
            "payment": "Cash",
        },
        "items": [{"name": "Cake", "qty": 2, "price": 500, "lineTotal": 1000}],
    }
    payload.update(overrides)
    return payload
