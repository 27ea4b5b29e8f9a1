"""Registration, login and bearer-token handling."""
from edgeup.security import create_access_token


def registration(**overrides):
    body = {
        "name": "Ana",
        "email": "ana@example.com",
        "password": "pass123",
        "country": "RO",
        "city": "Iași"
    }
    body.update(overrides)
    return body


def test_register_returns_token_and_user(client):
    response = client.post("/register", json=registration())

    assert response.status_code == 201
    body = response.json()
    assert body["token"]
    assert body["user"]["role"] == "Untrusted"
    assert body["user"]["karma"] == 0
    assert "password" not in body["user"]


def test_register_rejects_admin_role(client):
    response = client.post("/register", json=registration(role="Admin"))

    assert response.status_code == 400


def test_register_rejects_city_outside_country(client):
    response = client.post("/register", json=registration(country="DE", city="Iași"))

    assert response.status_code == 400


def test_register_rejects_bad_email(client):
    response = client.post("/register", json=registration(email="not-an-email"))

    assert response.status_code == 400
    assert "Invalid email" in response.json()["error"]


def test_register_duplicate_email(client):
    client.post("/register", json=registration())

    response = client.post("/register", json=registration(name="Other"))

    assert response.status_code == 409


def test_login_and_me(client):
    client.post("/register", json=registration(role="Trusted"))

    login = client.post("/login", json={"email": "ana@example.com", "password": "pass123"})
    assert login.status_code == 200
    token = login.json()["token"]

    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "ana@example.com"
    assert me.json()["user"]["role"] == "Trusted"


def test_login_wrong_password(client):
    client.post("/register", json=registration())

    response = client.post("/login", json={"email": "ana@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"error": "invalid credentials"}


def test_login_unknown_email(client):
    response = client.post("/login", json={"email": "ghost@example.com", "password": "x"})

    assert response.status_code == 401


def test_malformed_header(client):
    response = client.get("/me", headers={"Authorization": "Token abc"})

    assert response.status_code == 401
    assert response.json() == {"error": "Missing or invalid token"}


def test_garbage_token(client):
    response = client.get("/me", headers={"Authorization": "Bearer abc.def.ghi"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired token"}


def test_expired_token(client, buyer):
    token = create_access_token(buyer["id"], "Untrusted", expires_minutes=-1)

    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_token_for_unknown_user(client):
    token = create_access_token("ghost", "Admin")

    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_untrusted_cannot_post_products(client, buyer):
    response = client.post("/product", headers=buyer["headers"], json={
        "title": "Lamp", "description": "Desk lamp", "price": 40, "category": "Home"
    })

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden: Only Trusted sellers can post products."}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
