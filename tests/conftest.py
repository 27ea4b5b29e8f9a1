"""Shared fixtures: an isolated app per test on in-memory SQLite."""
import json
import os

os.environ["OTEL_ENABLED"] = "false"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ.setdefault("JWT_SECRET", "edgeup-test-secret-at-least-32-bytes-long")

import pytest
import redis
from fastapi.testclient import TestClient

from edgeup.main import create_app
from edgeup.models import User
from edgeup.security import create_access_token, hash_password


class FakeRedis:
    """Records publishes instead of talking to a Redis server."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []

    def publish(self, channel, message):
        if self.fail:
            raise redis.exceptions.ConnectionError("Connection refused")
        self.published.append((channel, json.loads(message)))
        return 1

    def messages_for(self, user_id):
        return [payload for channel, payload in self.published if channel == f"notifications:{user_id}"]

    def close(self):
        pass


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def app(redis_client):
    return create_app("sqlite://", redis_client=redis_client, async_redis_client=FakeRedis(), seed=False)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_factory(app, client):
    return app.state.session_factory


@pytest.fixture
def register(client):
    """Register a user through the API and return {id, token, headers}."""
    counter = {"n": 0}

    def _register(name, role="Untrusted", country="RO", city="București"):
        counter["n"] += 1
        response = client.post("/register", json={
            "name": name,
            "email": f"{name.lower()}{counter['n']}@example.com",
            "password": "secret",
            "role": role,
            "country": country,
            "city": city
        })
        assert response.status_code == 201, response.text
        body = response.json()
        return {"id": body["user"]["id"], "token": body["token"], "headers": bearer(body["token"])}

    return _register


@pytest.fixture
def seller(register):
    return register("Seller", role="Trusted")


@pytest.fixture
def buyer(register):
    return register("Buyer")


@pytest.fixture
def other_buyer(register):
    return register("Rival")


@pytest.fixture
def admin(session_factory):
    with session_factory() as db:
        user = User(name="Admin", email="admin@example.com", password=hash_password("admin"),
                    role="Admin", country="RO", city="Iași")
        db.add(user)
        db.commit()
        token = create_access_token(user.id, user.role)
        return {"id": user.id, "token": token, "headers": bearer(token)}


@pytest.fixture
def create_product(client, seller):
    def _create(price=100, stock=5, title="Mechanical Keyboard", category="Electronics", owner=None):
        response = client.post("/product", headers=(owner or seller)["headers"], json={
            "title": title,
            "description": "Hot-swappable switches, barely used.",
            "price": price,
            "category": category,
            "stock": stock
        })
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def product(create_product):
    return create_product()
