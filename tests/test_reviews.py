"""Reviews and seller karma."""
from edgeup.models import User


def post_review(client, party, product, rating=5, comment="Great seller"):
    return client.post("/review", headers=party["headers"], json={
        "productId": product["id"], "rating": rating, "comment": comment
    })


def test_review_credits_seller_karma(client, buyer, seller, product, session_factory, redis_client):
    response = post_review(client, buyer, product)

    assert response.status_code == 201
    assert response.json()["newKarma"] == 10
    with session_factory() as db:
        assert db.get(User, seller["id"]).karma == 10
    assert redis_client.messages_for(seller["id"])[-1]["notification_type"] == "review"


def test_karma_accumulates(client, buyer, other_buyer, product):
    post_review(client, buyer, product)

    assert post_review(client, other_buyer, product, rating=3).json()["newKarma"] == 20


def test_rating_out_of_range(client, buyer, product):
    assert post_review(client, buyer, product, rating=6).status_code == 400


def test_review_unknown_product(client, buyer):
    assert post_review(client, buyer, {"id": "missing"}).status_code == 404


def test_seller_cannot_review_own_product(client, seller, product):
    assert post_review(client, seller, product).status_code == 400


def test_product_reviews_sorted_by_rating(client, buyer, other_buyer, product):
    post_review(client, buyer, product, rating=2)
    post_review(client, other_buyer, product, rating=5)

    body = client.get(f"/product/{product['id']}/reviews").json()

    assert body["product"]["title"] == product["title"]
    assert [r["rating"] for r in body["reviews"]] == [5, 2]
    assert body["reviews"][0]["user_name"] == "Rival"
    assert client.get("/product/missing/reviews").status_code == 404


def test_list_all_reviews(client, buyer, product):
    post_review(client, buyer, product)

    assert len(client.get("/reviews").json()) == 1


def test_author_updates_review(client, buyer, other_buyer, product):
    review_id = post_review(client, buyer, product).json()["id"]

    assert client.put(f"/review/{review_id}", headers=other_buyer["headers"], json={"rating": 1}).status_code == 403
    response = client.put(f"/review/{review_id}", headers=buyer["headers"], json={"rating": 4, "comment": "Good"})
    assert response.status_code == 200
    assert response.json()["rating"] == 4
    assert response.json()["comment"] == "Good"
