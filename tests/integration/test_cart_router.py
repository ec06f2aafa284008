def test_cart_lifecycle(client, cart_repo):
    res = client.post("/api/v1/cart/items", json={"product_id": "prod-a", "quantity": 2})
    assert res.status_code == 200
    item_id = res.json()["item"]["id"]

    client.post("/api/v1/cart/items", json={"product_id": "prod-a"})
    cart = client.get("/api/v1/cart").json()
    assert cart["total_items"] == 3
    assert len(cart["items"]) == 1

    res = client.patch(f"/api/v1/cart/items/{item_id}", json={"quantity": 5})
    assert res.json()["item"]["quantity"] == 5

    res = client.patch(f"/api/v1/cart/items/{item_id}", json={"quantity": 0})
    assert res.json() == {"removed": True}
    assert cart_repo.rows == []


def test_cart_unknown_product_and_item(client):
    res = client.post("/api/v1/cart/items", json={"product_id": "ghost"})
    assert res.status_code == 400
    res = client.delete("/api/v1/cart/items/ci-missing")
    assert res.status_code == 404
    assert res.json()["code"] == "cart_item_not_found"


def test_clear_cart_only_touches_own_rows(client, cart_repo):
    cart_repo.add("user-1", "prod-a", 1)
    cart_repo.add("user-2", "prod-b", 1)
    assert client.delete("/api/v1/cart").json() == {"cleared": 1}
    assert [r.user_id for r in cart_repo.rows] == ["user-2"]


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
    info = client.get("/health/rate-limit").json()
    assert info["enabled"] is False
