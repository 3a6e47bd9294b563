"""Direct messages and contact-detail filtering."""
import pytest

from local_yield.services.messaging_service import detect_pii, ordered_pair


@pytest.mark.parametrize(
    "body, kind",
    [
        ("mail me at farmer.joe@example.com", "email"),
        ("call 555-123-4567 tonight", "phone"),
        ("ssn 123-45-6789", "ssn"),
        ("card 4111 1111 1111 1111", "credit_card"),
        ("Pickup is at the red barn at 5pm", None),
    ],
)
def test_detect_pii(body, kind) -> None:
    assert detect_pii(body) == kind


def test_ordered_pair() -> None:
    assert ordered_pair(7, 3) == (3, 7)
    assert ordered_pair(3, 7) == (3, 7)


def _start(client, headers, other_id, **extra):
    payload = {"other_user_id": other_id}
    payload.update(extra)
    return client.post("/api/conversations", json=payload, headers=headers)


def test_conversation_is_shared_by_the_pair(client, users, auth) -> None:
    first = _start(client, auth(users.buyer), users.producer)
    assert first.status_code == 201
    second = _start(client, auth(users.producer), users.buyer)
    assert second.get_json()["data"]["id"] == first.get_json()["data"]["id"]


def test_send_and_read_messages(client, users, auth) -> None:
    conversation_id = _start(client, auth(users.buyer), users.producer).get_json()["data"]["id"]
    url = f"/api/conversations/{conversation_id}/messages"

    response = client.post(url, json={"body": "Are the <i>tomatoes</i> ripe?"}, headers=auth(users.buyer))
    assert response.status_code == 201
    assert response.get_json()["data"]["body"] == "Are the tomatoes ripe?"
    client.post(url, json={"body": "Yes, come by Saturday"}, headers=auth(users.producer))

    thread = client.get(f"/api/conversations/{conversation_id}", headers=auth(users.buyer)).get_json()["data"]
    assert [m["body"] for m in thread["messages"]] == ["Are the tomatoes ripe?", "Yes, come by Saturday"]

    inbox = client.get("/api/conversations", headers=auth(users.buyer)).get_json()["data"]
    assert inbox[0]["other_user"]["id"] == users.producer
    assert inbox[0]["last_message"]["body"] == "Yes, come by Saturday"


def test_contact_details_are_blocked(client, users, auth) -> None:
    conversation_id = _start(client, auth(users.buyer), users.producer).get_json()["data"]["id"]
    response = client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"body": "text me on 555.123.4567"},
        headers=auth(users.buyer),
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "PII_DETECTED"
    thread = client.get(f"/api/conversations/{conversation_id}", headers=auth(users.buyer)).get_json()["data"]
    assert thread["messages"] == []


def test_outsiders_get_not_found(client, users, auth) -> None:
    conversation_id = _start(client, auth(users.buyer), users.producer).get_json()["data"]["id"]
    headers = auth(users.other_buyer)
    assert client.get(f"/api/conversations/{conversation_id}", headers=headers).status_code == 404
    response = client.post(
        f"/api/conversations/{conversation_id}/messages", json={"body": "hello"}, headers=headers
    )
    assert response.status_code == 404


def test_cannot_message_yourself_or_strangers_orders(client, users, auth, make_product) -> None:
    assert _start(client, auth(users.buyer), users.buyer).status_code == 400
    assert _start(client, auth(users.buyer), 99999).status_code == 404

    product_id = make_product(users.producer)
    order_id = client.post(
        "/api/orders",
        json={"producer_id": users.producer, "items": [{"product_id": product_id, "quantity": 1}]},
        headers=auth(users.buyer),
    ).get_json()["data"]["id"]
    response = _start(client, auth(users.other_buyer), users.producer, order_id=order_id)
    assert response.status_code == 404
    response = _start(client, auth(users.buyer), users.producer, order_id=order_id)
    assert response.status_code == 201
    assert response.get_json()["data"]["order_id"] == order_id
