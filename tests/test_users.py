"""Profiles and the Trusted-seller approval flow."""
from edgeup.models import TrustedRequest, User


def test_directory_lists_users(client, buyer, seller):
    response = client.get("/users")

    assert response.status_code == 200
    assert {u["id"] for u in response.json()} == {buyer["id"], seller["id"]}


def test_update_profile(client, buyer):
    response = client.put("/user/profile", headers=buyer["headers"], json={
        "name": "Bianca",
        "email": "bianca@example.com",
        "country": "FR",
        "city": "Lyon",
        "avatarUrl": "/uploads/avatars/b.png"
    })

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Bianca"
    assert body["city"] == "Lyon"
    assert body["avatarUrl"] == "/uploads/avatars/b.png"


def test_update_profile_requires_all_fields(client, buyer):
    response = client.put("/user/profile", headers=buyer["headers"], json={"name": "Bianca"})

    assert response.status_code == 400


def test_update_profile_email_taken(client, buyer, seller):
    seller_email = client.get("/me", headers=seller["headers"]).json()["user"]["email"]

    response = client.put("/user/profile", headers=buyer["headers"], json={
        "name": "Buyer", "email": seller_email, "country": "RO", "city": "Iași"
    })

    assert response.status_code == 409


def test_no_trusted_request_yet(client, buyer):
    response = client.get("/my-trusted-request", headers=buyer["headers"])

    assert response.json() == {}


def test_request_notifies_admins(client, buyer, admin, redis_client):
    response = client.post("/request-trusted", headers=buyer["headers"], json={"pitch": "I sell books."})

    assert response.status_code == 201
    assert client.get("/my-trusted-request", headers=buyer["headers"]).json()["status"] == "pending"
    pushed = redis_client.messages_for(admin["id"])
    assert len(pushed) == 1
    assert pushed[0]["notification_type"] == "system"


def test_only_one_pending_request(client, buyer):
    client.post("/request-trusted", headers=buyer["headers"], json={"pitch": "First"})

    response = client.post("/request-trusted", headers=buyer["headers"], json={"pitch": "Second"})

    assert response.status_code == 400


def test_trusted_user_cannot_apply(client, seller):
    response = client.post("/request-trusted", headers=seller["headers"], json={"pitch": "Again"})

    assert response.status_code == 400


def test_admin_lists_pending_requests(client, buyer, admin):
    client.post("/request-trusted", headers=buyer["headers"], json={"pitch": "Books"})

    response = client.get("/admin/requests", headers=admin["headers"])

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["user_id"] == buyer["id"]
    assert rows[0]["name"] == "Buyer"


def test_admin_routes_need_admin(client, buyer):
    assert client.get("/admin/requests", headers=buyer["headers"]).status_code == 403


def test_approval_promotes_without_relogin(client, buyer, admin, session_factory, redis_client):
    client.post("/request-trusted", headers=buyer["headers"], json={"pitch": "Books"})
    request_id = client.get("/admin/requests", headers=admin["headers"]).json()[0]["id"]

    response = client.post(f"/admin/request/{request_id}/approve", headers=admin["headers"])

    assert response.status_code == 200
    with session_factory() as db:
        assert db.get(User, buyer["id"]).role == "Trusted"
        assert db.get(TrustedRequest, request_id).status == "approved"
    assert "approved" in redis_client.messages_for(buyer["id"])[-1]["message"]
    created = client.post("/product", headers=buyer["headers"], json={
        "title": "Atlas", "description": "World atlas", "price": 90, "category": "Books"
    })
    assert created.status_code == 201


def test_rejection_keeps_role(client, buyer, admin, session_factory):
    client.post("/request-trusted", headers=buyer["headers"], json={"pitch": "Books"})
    request_id = client.get("/admin/requests", headers=admin["headers"]).json()[0]["id"]

    client.post(f"/admin/request/{request_id}/reject", headers=admin["headers"])

    with session_factory() as db:
        assert db.get(User, buyer["id"]).role == "Untrusted"
        assert db.get(TrustedRequest, request_id).status == "rejected"


def test_request_decided_only_once(client, buyer, admin):
    client.post("/request-trusted", headers=buyer["headers"], json={"pitch": "Books"})
    request_id = client.get("/admin/requests", headers=admin["headers"]).json()[0]["id"]
    client.post(f"/admin/request/{request_id}/reject", headers=admin["headers"])

    response = client.post(f"/admin/request/{request_id}/approve", headers=admin["headers"])

    assert response.status_code == 400


def test_unknown_request_and_action(client, admin):
    assert client.post("/admin/request/missing/approve", headers=admin["headers"]).status_code == 404
    assert client.post("/admin/request/missing/promote", headers=admin["headers"]).status_code == 400
