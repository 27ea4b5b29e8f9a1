"""Offer lifecycle: create, accept, decline, lookup."""
from edgeup.models import Negotiation, Notification


def make_offer(client, buyer, product, price=80, quantity=2):
    return client.post("/negotiations", headers=buyer["headers"], json={
        "productId": product["id"],
        "offeredPrice": price,
        "quantity": quantity
    })


def test_offer_starts_pending(client, buyer, product):
    response = make_offer(client, buyer, product)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["message"] == "Offer sent"


def test_offer_copies_seller_from_product(client, buyer, seller, product, session_factory):
    negotiation_id = make_offer(client, buyer, product).json()["id"]

    with session_factory() as db:
        negotiation = db.get(Negotiation, negotiation_id)
        assert negotiation.seller_id == seller["id"]
        assert negotiation.buyer_id == buyer["id"]
        assert negotiation.offered_price == 80


def test_offer_above_stock_is_rejected(client, buyer, product, session_factory):
    response = make_offer(client, buyer, product, quantity=10)

    assert response.status_code == 400
    assert "Insufficient stock" in response.json()["error"]
    with session_factory() as db:
        assert db.query(Negotiation).count() == 0


def test_cannot_negotiate_own_product(client, seller, product):
    response = make_offer(client, seller, product)

    assert response.status_code == 400
    assert response.json()["error"] == "You cannot negotiate on your own product"


def test_offer_on_missing_product(client, buyer):
    response = make_offer(client, buyer, {"id": "does-not-exist"})

    assert response.status_code == 404


def test_offer_on_archived_product(client, buyer, seller, product):
    client.delete(f"/product/{product['id']}", headers=seller["headers"])

    response = make_offer(client, buyer, product)

    assert response.status_code == 400
    assert response.json()["error"] == "Product is no longer available"


def test_offer_requires_positive_quantity(client, buyer, product):
    response = make_offer(client, buyer, product, quantity=0)

    assert response.status_code == 400


def test_offer_requires_token(client, product):
    response = client.post("/negotiations", json={"productId": product["id"], "offeredPrice": 80})

    assert response.status_code == 401
    assert response.json() == {"error": "Missing or invalid token"}


def test_seller_accepts_and_buyer_is_notified(client, buyer, seller, product, redis_client, session_factory):
    negotiation_id = make_offer(client, buyer, product).json()["id"]

    response = client.patch(f"/negotiations/{negotiation_id}/accept", headers=seller["headers"])

    assert response.status_code == 200
    assert response.json()["status"] == "ACCEPTED"
    with session_factory() as db:
        notifications = db.query(Notification).filter(Notification.user_id == buyer["id"]).all()
        assert len(notifications) == 1
        assert notifications[0].notification_type == "deal"
        assert notifications[0].is_read is False
    pushed = redis_client.messages_for(buyer["id"])
    assert len(pushed) == 1
    assert "accepted" in pushed[0]["message"]


def test_non_seller_cannot_accept(client, buyer, other_buyer, product, session_factory):
    negotiation_id = make_offer(client, buyer, product).json()["id"]

    for caller in (buyer, other_buyer):
        response = client.patch(f"/negotiations/{negotiation_id}/accept", headers=caller["headers"])
        assert response.status_code == 403

    with session_factory() as db:
        assert db.get(Negotiation, negotiation_id).status == "PENDING"


def test_non_seller_cannot_decline(client, buyer, other_buyer, product):
    negotiation_id = make_offer(client, buyer, product).json()["id"]

    response = client.patch(f"/negotiations/{negotiation_id}/decline", headers=other_buyer["headers"])

    assert response.status_code == 403


def test_accept_missing_negotiation(client, seller):
    response = client.patch("/negotiations/nope/accept", headers=seller["headers"])

    assert response.status_code == 404


def test_accept_rechecks_current_stock(client, buyer, other_buyer, seller, product):
    negotiation_id = make_offer(client, buyer, product, quantity=4).json()["id"]
    client.post("/order", headers=other_buyer["headers"], json={
        "productId": product["id"],
        "quantity": 3,
        "shipping_address": "Strada Lunga 1, Cluj"
    })

    response = client.patch(f"/negotiations/{negotiation_id}/accept", headers=seller["headers"])

    assert response.status_code == 400
    assert "Insufficient stock" in response.json()["error"]


def test_accept_rejects_archived_product(client, buyer, seller, product):
    negotiation_id = make_offer(client, buyer, product).json()["id"]
    client.delete(f"/product/{product['id']}", headers=seller["headers"])

    response = client.patch(f"/negotiations/{negotiation_id}/accept", headers=seller["headers"])

    assert response.status_code == 400


def test_decline_does_not_notify_buyer(client, buyer, seller, product, redis_client, session_factory):
    negotiation_id = make_offer(client, buyer, product).json()["id"]

    response = client.patch(f"/negotiations/{negotiation_id}/decline", headers=seller["headers"])

    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"
    assert redis_client.messages_for(buyer["id"]) == []
    with session_factory() as db:
        assert db.query(Notification).filter(Notification.user_id == buyer["id"]).count() == 0


def test_decided_offers_cannot_be_decided_again(client, buyer, seller, product, redis_client, session_factory):
    accepted_id = make_offer(client, buyer, product).json()["id"]
    declined_id = make_offer(client, buyer, product).json()["id"]
    client.patch(f"/negotiations/{accepted_id}/accept", headers=seller["headers"])
    client.patch(f"/negotiations/{declined_id}/decline", headers=seller["headers"])

    for negotiation_id in (accepted_id, declined_id):
        for action in ("accept", "decline"):
            response = client.patch(f"/negotiations/{negotiation_id}/{action}", headers=seller["headers"])
            assert response.status_code == 400
            assert "already processed" in response.json()["error"]

    with session_factory() as db:
        assert db.get(Negotiation, accepted_id).status == "ACCEPTED"
        assert db.get(Negotiation, declined_id).status == "REJECTED"
        assert db.query(Notification).filter(Notification.user_id == buyer["id"]).count() == 1
    assert len(redis_client.messages_for(buyer["id"])) == 1


def test_ordered_offer_cannot_be_declined(client, buyer, seller, product):
    negotiation_id = make_offer(client, buyer, product).json()["id"]
    client.patch(f"/negotiations/{negotiation_id}/accept", headers=seller["headers"])
    client.post("/order", headers=buyer["headers"], json={
        "negotiationId": negotiation_id,
        "shipping_address": "Bd. Eroilor 10, Cluj"
    })

    response = client.patch(f"/negotiations/{negotiation_id}/decline", headers=seller["headers"])

    assert response.status_code == 400


def test_list_shows_both_sides(client, buyer, seller, product):
    make_offer(client, buyer, product)

    for party in (buyer, seller):
        response = client.get("/negotiations/list", headers=party["headers"])
        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["product_title"] == product["title"]
        assert rows[0]["buyer_email"].startswith("buyer")
        assert rows[0]["seller_email"].startswith("seller")


def test_list_hides_unrelated_offers(client, buyer, other_buyer, product):
    make_offer(client, buyer, product)

    response = client.get("/negotiations/list", headers=other_buyer["headers"])

    assert response.json() == []


def test_lookup_by_product_returns_latest(client, buyer, product):
    make_offer(client, buyer, product, price=70)
    latest_id = make_offer(client, buyer, product, price=90, quantity=1).json()["id"]

    response = client.get("/negotiation", headers=buyer["headers"], params={"productId": product["id"]})

    assert response.status_code == 200
    assert response.json() == {
        "negotiationId": latest_id,
        "productId": product["id"],
        "price": 90,
        "quantity": 1,
        "status": "PENDING"
    }


def test_lookup_without_negotiation_returns_null(client, buyer, product):
    response = client.get("/negotiation", headers=buyer["headers"], params={"productId": product["id"]})

    assert response.status_code == 200
    assert response.json() is None


def test_lookup_by_id_for_seller(client, buyer, seller, product):
    negotiation_id = make_offer(client, buyer, product).json()["id"]

    response = client.get("/negotiation", headers=seller["headers"], params={"negotiationId": negotiation_id})

    assert response.json()["negotiationId"] == negotiation_id


def test_lookup_requires_a_parameter(client, buyer):
    response = client.get("/negotiation", headers=buyer["headers"])

    assert response.status_code == 400
