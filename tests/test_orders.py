"""Order placement and the order lifecycle."""
import re

import pytest

from local_yield import db
from local_yield.models import Notification, Product


def _order(client, headers, producer_id, items, **extra):
    payload = {"producer_id": producer_id, "items": items}
    payload.update(extra)
    return client.post("/api/orders", json=payload, headers=headers)


def _stock(app, product_id):
    with app.app_context():
        return db.session.get(Product, product_id).quantity_available


def test_create_order_snapshots_price_and_decrements_stock(app, client, users, auth, make_product) -> None:
    product_id = make_product(users.producer, price_cents=400, quantity_available=10)

    response = _order(
        client, auth(users.buyer), users.producer,
        [{"product_id": product_id, "quantity": 2}, {"product_id": product_id, "quantity": 1}],
    )
    assert response.status_code == 201
    order = response.get_json()["data"]
    assert order["status"] == "PENDING"
    assert order["total_cents"] == 1200
    assert order["via_cash"] is True
    assert re.fullmatch(r"[A-HJ-NP-Z2-9]{6}", order["pickup_code"])
    assert [(item["quantity"], item["unit_price_cents"]) for item in order["items"]] == [(3, 400)]
    assert _stock(app, product_id) == 7

    # A later price change does not touch the order.
    client.patch(f"/api/products/{product_id}", json={"price_cents": 999}, headers=auth(users.producer))
    again = client.get(f"/api/orders/{order['id']}", headers=auth(users.buyer)).get_json()["data"]
    assert again["total_cents"] == 1200
    assert again["is_buyer"] is True and again["is_producer"] is False

    with app.app_context():
        assert Notification.query.filter_by(user_id=users.producer, type="NEW_ORDER").count() == 1


def test_insufficient_stock_changes_nothing(app, client, users, auth, make_product) -> None:
    plenty = make_product(users.producer, title="Plenty", quantity_available=50)
    scarce = make_product(users.producer, title="Scarce", quantity_available=1)

    response = _order(
        client, auth(users.buyer), users.producer,
        [{"product_id": plenty, "quantity": 5}, {"product_id": scarce, "quantity": 2}],
    )
    assert response.status_code == 409
    assert response.get_json()["code"] == "INSUFFICIENT_STOCK"
    assert _stock(app, plenty) == 50
    assert client.get("/api/orders", headers=auth(users.buyer)).get_json()["data"] == []


def test_stale_client_price_is_rejected(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer, price_cents=400)
    response = _order(
        client, auth(users.buyer), users.producer,
        [{"product_id": product_id, "quantity": 1, "unit_price_cents": 350}],
    )
    assert response.status_code == 409
    assert response.get_json()["code"] == "PRICE_CHANGED"


def test_product_of_another_producer(client, users, auth, make_product) -> None:
    product_id = make_product(users.far_producer)
    response = _order(client, auth(users.buyer), users.producer, [{"product_id": product_id, "quantity": 1}])
    assert response.status_code == 404
    assert response.get_json()["code"] == "PRODUCT_NOT_FOUND"


def test_cannot_order_from_yourself(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    response = _order(client, auth(users.producer), users.producer, [{"product_id": product_id, "quantity": 1}])
    assert response.status_code == 400
    assert response.get_json()["code"] == "SELF_ORDER"


def test_delivery_fee_and_unavailable_delivery(client, users, auth, make_product) -> None:
    near = make_product(users.producer, price_cents=1000)
    far = make_product(users.far_producer, price_cents=1000)

    response = _order(
        client, auth(users.buyer), users.producer,
        [{"product_id": near, "quantity": 1}], fulfillment_type="DELIVERY",
    )
    assert response.status_code == 201
    assert response.get_json()["data"]["total_cents"] == 1500
    assert response.get_json()["data"]["delivery_fee_cents"] == 500

    response = _order(
        client, auth(users.buyer), users.far_producer,
        [{"product_id": far, "quantity": 1}], fulfillment_type="DELIVERY",
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "DELIVERY_UNAVAILABLE"


@pytest.mark.parametrize("quantity", [0, 1000])
def test_quantity_bounds(client, users, auth, make_product, quantity) -> None:
    product_id = make_product(users.producer)
    response = _order(client, auth(users.buyer), users.producer, [{"product_id": product_id, "quantity": quantity}])
    assert response.status_code == 400


def test_status_transitions(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    order_id = _order(
        client, auth(users.buyer), users.producer, [{"product_id": product_id, "quantity": 1}]
    ).get_json()["data"]["id"]
    producer = auth(users.producer)

    def patch(status, headers=producer):
        return client.patch(f"/api/orders/{order_id}", json={"status": status}, headers=headers)

    assert patch("PAID", headers=auth(users.buyer)).status_code == 403
    assert patch("PENDING").get_json()["code"] == "NO_CHANGE"
    assert patch("FULFILLED").get_json()["code"] == "INVALID_TRANSITION"

    paid = patch("PAID")
    assert paid.status_code == 200
    assert paid.get_json()["data"]["paid_at"] is not None

    fulfilled = patch("FULFILLED")
    assert fulfilled.status_code == 200
    assert fulfilled.get_json()["data"]["fulfilled_at"] is not None

    assert patch("CANCELED").get_json()["code"] == "INVALID_TRANSITION"

    notifications = client.get("/api/notifications", headers=auth(users.buyer)).get_json()["data"]
    assert notifications["unread_count"] == 2


def test_card_orders_cannot_be_marked_paid(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    order_id = _order(
        client, auth(users.buyer), users.producer,
        [{"product_id": product_id, "quantity": 1}], payment_method="card",
    ).get_json()["data"]["id"]
    response = client.patch(f"/api/orders/{order_id}", json={"status": "PAID"}, headers=auth(users.producer))
    assert response.status_code == 400
    assert response.get_json()["code"] == "INVALID_TRANSITION"


def test_cancel_restocks(app, client, users, auth, make_product) -> None:
    product_id = make_product(users.producer, quantity_available=4)
    order_id = _order(
        client, auth(users.buyer), users.producer, [{"product_id": product_id, "quantity": 3}]
    ).get_json()["data"]["id"]
    assert _stock(app, product_id) == 1

    response = client.patch(f"/api/orders/{order_id}", json={"status": "CANCELED"}, headers=auth(users.producer))
    assert response.status_code == 200
    assert _stock(app, product_id) == 4


def test_orders_are_private_to_their_parties(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    order_id = _order(
        client, auth(users.buyer), users.producer, [{"product_id": product_id, "quantity": 1}]
    ).get_json()["data"]["id"]

    assert client.get(f"/api/orders/{order_id}", headers=auth(users.other_buyer)).status_code == 404
    assert client.get(f"/api/orders/{order_id}", headers=auth(users.admin)).status_code == 200

    as_producer = client.get("/api/orders?role=producer", headers=auth(users.producer)).get_json()["data"]
    assert [order["id"] for order in as_producer] == [order_id]
    assert client.get("/api/orders?role=nobody", headers=auth(users.producer)).status_code == 400


def test_order_conversation_is_shared(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    order_id = _order(
        client, auth(users.buyer), users.producer, [{"product_id": product_id, "quantity": 1}]
    ).get_json()["data"]["id"]

    first = client.get(f"/api/orders/{order_id}/conversation", headers=auth(users.buyer)).get_json()["data"]
    second = client.get(f"/api/orders/{order_id}/conversation", headers=auth(users.producer)).get_json()["data"]
    assert first["id"] == second["id"]
    assert first["order_id"] == order_id
    assert client.get(f"/api/orders/{order_id}/conversation", headers=auth(users.admin)).status_code == 404


def test_producer_issues_credit(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer, price_cents=1000)
    order_id = _order(
        client, auth(users.buyer), users.producer, [{"product_id": product_id, "quantity": 1}]
    ).get_json()["data"]["id"]
    producer = auth(users.producer)

    early = client.post(f"/api/orders/{order_id}/credit", json={"amount_cents": 100, "reason": "GOODWILL"}, headers=producer)
    assert early.status_code == 400

    client.patch(f"/api/orders/{order_id}", json={"status": "PAID"}, headers=producer)
    too_much = client.post(f"/api/orders/{order_id}/credit", json={"amount_cents": 1001, "reason": "GOODWILL"}, headers=producer)
    assert too_much.status_code == 400
    needs_report = client.post(
        f"/api/orders/{order_id}/credit", json={"amount_cents": 100, "reason": "DISPUTE_RESOLUTION"}, headers=producer
    )
    assert needs_report.status_code == 400
    buyer_try = client.post(
        f"/api/orders/{order_id}/credit", json={"amount_cents": 100, "reason": "GOODWILL"}, headers=auth(users.buyer)
    )
    assert buyer_try.status_code == 403

    response = client.post(f"/api/orders/{order_id}/credit", json={"amount_cents": 250, "reason": "GOODWILL"}, headers=producer)
    assert response.status_code == 201

    balance = client.get(f"/api/credits/balance?producer_id={users.producer}", headers=auth(users.buyer))
    assert balance.get_json()["data"] == {"producer_id": users.producer, "balance_cents": 250}
    ledger = client.get("/api/credits/ledger", headers=auth(users.buyer)).get_json()["data"]
    assert [(entry["amount_cents"], entry["reason"]) for entry in ledger] == [(250, "GOODWILL")]
