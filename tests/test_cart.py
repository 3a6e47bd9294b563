"""Server-side cart and checkout."""
from local_yield import db
from local_yield.models import Product


def test_add_merges_and_clamps(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer, price_cents=250)
    headers = auth(users.buyer)

    response = client.post("/api/cart", json={"product_id": product_id, "quantity": 2}, headers=headers)
    assert response.status_code == 201
    cart = client.post("/api/cart", json={"product_id": product_id}, headers=headers).get_json()["data"]
    assert cart["item_count"] == 3
    assert cart["total_cents"] == 750
    assert cart["single_producer_id"] == users.producer

    cart = client.patch(f"/api/cart/{product_id}", json={"quantity": 5000}, headers=headers).get_json()["data"]
    assert cart["items"][0]["quantity"] == 999


def test_zero_quantity_removes_line(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    headers = auth(users.buyer)
    client.post("/api/cart", json={"product_id": product_id}, headers=headers)

    cart = client.patch(f"/api/cart/{product_id}", json={"quantity": 0}, headers=headers).get_json()["data"]
    assert cart["items"] == []
    assert cart["single_producer_id"] is None
    assert client.delete(f"/api/cart/{product_id}", headers=headers).status_code == 404


def test_cannot_add_own_product(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    response = client.post("/api/cart", json={"product_id": product_id}, headers=auth(users.producer))
    assert response.status_code == 400
    assert response.get_json()["code"] == "SELF_ORDER"


def test_checkout_creates_one_order_per_producer(client, users, auth, make_product) -> None:
    near = make_product(users.producer, price_cents=300)
    far = make_product(users.far_producer, price_cents=700)
    headers = auth(users.buyer)
    client.post("/api/cart", json={"product_id": near, "quantity": 2}, headers=headers)
    client.post("/api/cart", json={"product_id": far}, headers=headers)
    assert client.get("/api/cart", headers=headers).get_json()["data"]["single_producer_id"] is None

    response = client.post("/api/cart/checkout", json={}, headers=headers)
    assert response.status_code == 201
    orders = response.get_json()["data"]["orders"]
    assert sorted((order["producer_id"], order["total_cents"]) for order in orders) == sorted(
        [(users.producer, 600), (users.far_producer, 700)]
    )
    assert client.get("/api/cart", headers=headers).get_json()["data"]["items"] == []


def test_failed_checkout_keeps_cart(app, client, users, auth, make_product) -> None:
    fine = make_product(users.producer, quantity_available=10)
    scarce = make_product(users.far_producer, quantity_available=5)
    headers = auth(users.buyer)
    client.post("/api/cart", json={"product_id": fine, "quantity": 2}, headers=headers)
    client.post("/api/cart", json={"product_id": scarce, "quantity": 3}, headers=headers)
    with app.app_context():
        db.session.get(Product, scarce).quantity_available = 1
        db.session.commit()

    response = client.post("/api/cart/checkout", json={}, headers=headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "INSUFFICIENT_STOCK"

    assert client.get("/api/orders", headers=headers).get_json()["data"] == []
    assert len(client.get("/api/cart", headers=headers).get_json()["data"]["items"]) == 2
    with app.app_context():
        assert db.session.get(Product, fine).quantity_available == 10


def test_empty_cart_checkout(client, users, auth) -> None:
    response = client.post("/api/cart/checkout", json={}, headers=auth(users.buyer))
    assert response.status_code == 400
    assert response.get_json()["code"] == "EMPTY_CART"


def test_checkout_rejects_price_change(app, client, users, auth, make_product) -> None:
    product_id = make_product(users.producer, price_cents=400, quantity_available=10)
    headers = auth(users.buyer)
    client.post("/api/cart", json={"product_id": product_id, "quantity": 2}, headers=headers)
    with app.app_context():
        db.session.get(Product, product_id).price_cents = 900
        db.session.commit()

    line = client.get("/api/cart", headers=headers).get_json()["data"]["items"][0]
    assert (line["unit_price_cents"], line["price_changed"]) == (400, True)

    response = client.post("/api/cart/checkout", json={}, headers=headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "PRICE_CHANGED"
    assert client.get("/api/orders", headers=headers).get_json()["data"] == []
    with app.app_context():
        assert db.session.get(Product, product_id).quantity_available == 10

    # Editing the line accepts the new price.
    client.patch(f"/api/cart/{product_id}", json={"quantity": 2}, headers=headers)
    response = client.post("/api/cart/checkout", json={}, headers=headers)
    assert response.status_code == 201
    assert response.get_json()["data"]["orders"][0]["total_cents"] == 1800
