"""Buyer/seller messaging."""


def open_conversation(client, buyer, seller):
    return client.post("/conversations", headers=buyer["headers"], json={"sellerId": seller["id"]})


def test_open_is_idempotent(client, buyer, seller):
    first = open_conversation(client, buyer, seller)
    second = open_conversation(client, buyer, seller)

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()["id"] == second.json()["id"]


def test_cannot_talk_to_yourself(client, buyer):
    assert open_conversation(client, buyer, buyer).status_code == 400


def test_unknown_seller(client, buyer):
    assert open_conversation(client, buyer, {"id": "ghost"}).status_code == 404


def test_messages_flow(client, buyer, seller, other_buyer):
    conversation_id = open_conversation(client, buyer, seller).json()["id"]

    sent = client.post(f"/conversations/{conversation_id}/messages", headers=buyer["headers"],
                       json={"message": "Is it still available?"})
    assert sent.status_code == 201
    assert sent.json()["to_user"] == seller["id"]
    assert sent.json()["is_read"] is False

    client.post(f"/conversations/{conversation_id}/messages", headers=seller["headers"], json={"message": "Yes"})

    thread = client.get(f"/conversations/{conversation_id}/messages", headers=seller["headers"]).json()
    assert [m["message"] for m in thread] == ["Is it still available?", "Yes"]

    outsider = client.get(f"/conversations/{conversation_id}/messages", headers=other_buyer["headers"])
    assert outsider.status_code == 403


def test_conversation_summary(client, buyer, seller):
    conversation_id = open_conversation(client, buyer, seller).json()["id"]
    client.post(f"/conversations/{conversation_id}/messages", headers=buyer["headers"], json={"message": "Hi"})
    client.post(f"/conversations/{conversation_id}/messages", headers=buyer["headers"], json={"message": "Price?"})

    summary = client.get("/conversations", headers=seller["headers"]).json()

    assert len(summary) == 1
    assert summary[0]["buyer_name"] == "Buyer"
    assert summary[0]["last_message"] == "Price?"
    assert summary[0]["unread_count"] == 2
    assert client.get("/conversations", headers=buyer["headers"]).json()[0]["unread_count"] == 0


def test_mark_conversation_read(client, buyer, seller):
    conversation_id = open_conversation(client, buyer, seller).json()["id"]
    client.post(f"/conversations/{conversation_id}/messages", headers=buyer["headers"], json={"message": "Hi"})

    response = client.put(f"/conversations/{conversation_id}/read", headers=seller["headers"])

    assert response.json()["count"] == 1
    assert client.get("/conversations", headers=seller["headers"]).json()[0]["unread_count"] == 0


def test_edit_rules(client, buyer, seller):
    conversation_id = open_conversation(client, buyer, seller).json()["id"]
    message_id = client.post(f"/conversations/{conversation_id}/messages", headers=buyer["headers"],
                             json={"message": "Hi"}).json()["id"]
    url = f"/conversations/{conversation_id}/messages/{message_id}"

    assert client.put(url, headers=seller["headers"], json={"message": "Edited"}).status_code == 403
    assert client.put(url, headers=buyer["headers"], json={"isRead": True}).status_code == 403

    edited = client.put(url, headers=buyer["headers"], json={"message": "Hello"})
    assert edited.json()["message"] == "Hello"
    read = client.put(url, headers=seller["headers"], json={"isRead": True})
    assert read.json()["is_read"] is True

    assert client.get(url, headers=buyer["headers"]).json()["message"] == "Hello"
    missing = client.get(f"/conversations/{conversation_id}/messages/missing", headers=buyer["headers"])
    assert missing.status_code == 404
