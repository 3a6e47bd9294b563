"""Reports, order disputes and their admin resolution."""
import pytest


@pytest.fixture
def order_id(client, users, auth, make_product):
    product_id = make_product(users.producer, price_cents=2000)
    response = client.post(
        "/api/orders",
        json={"producer_id": users.producer, "items": [{"product_id": product_id, "quantity": 1}]},
        headers=auth(users.buyer),
    )
    return response.get_json()["data"]["id"]


def _dispute(client, headers, order_id, **extra):
    payload = {
        "reason": "OTHER",
        "entity_type": "order",
        "entity_id": order_id,
        "problem_type": "DAMAGED",
        "proposed_outcome": "STORE_CREDIT",
        "description": "Half the eggs were cracked",
    }
    payload.update(extra)
    return client.post("/api/reports", json=payload, headers=headers)


def test_report_a_product(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    response = client.post(
        "/api/reports",
        json={"reason": "SCAM", "entity_type": "product", "entity_id": product_id},
        headers=auth(users.other_buyer),
    )
    assert response.status_code == 201
    report = response.get_json()["data"]
    assert report["status"] == "PENDING"
    assert report["problem_type"] is None

    mine = client.get("/api/reports", headers=auth(users.other_buyer)).get_json()["data"]
    assert mine["total"] == 1 and mine["page_size"] == 20
    assert client.get(f"/api/reports/{report['id']}", headers=auth(users.buyer)).status_code == 404


def test_report_missing_entity(client, users, auth) -> None:
    response = client.post(
        "/api/reports",
        json={"reason": "SPAM", "entity_type": "caregiver", "entity_id": users.buyer},
        headers=auth(users.other_buyer),
    )
    assert response.status_code == 404
    assert response.get_json()["code"] == "ENTITY_NOT_FOUND"


def test_dispute_needs_details(client, users, auth, order_id) -> None:
    response = _dispute(client, auth(users.buyer), order_id, problem_type=None)
    assert response.status_code == 400
    payload = {"reason": "OTHER", "entity_type": "order", "entity_id": order_id}
    response = client.post("/api/reports", json=payload, headers=auth(users.buyer))
    assert response.status_code == 400


def test_only_parties_dispute_an_order(client, users, auth, order_id) -> None:
    response = _dispute(client, auth(users.other_buyer), order_id)
    assert response.status_code == 404


def test_dispute_resolved_with_store_credit(client, users, auth, order_id) -> None:
    report_id = _dispute(client, auth(users.buyer), order_id).get_json()["data"]["id"]
    admin = auth(users.admin)

    producer_view = client.get("/api/reports?scope=producer", headers=auth(users.producer)).get_json()["data"]
    assert [r["id"] for r in producer_view["reports"]] == [report_id]
    notifications = client.get("/api/notifications", headers=auth(users.producer)).get_json()["data"]
    assert "DISPUTE_OPENED" in [n["type"] for n in notifications["notifications"]]

    queue = client.get("/api/admin/reports?status=PENDING&entity_type=order", headers=admin).get_json()["data"]
    assert queue["total"] == 1

    assigned = client.patch(f"/api/admin/reports/{report_id}", json={"assigned_to_id": "me"}, headers=admin)
    assert assigned.get_json()["data"]["assigned_to"]["id"] == users.admin

    bad = client.patch(f"/api/admin/reports/{report_id}", json={"assigned_to_id": "someone"}, headers=admin)
    assert bad.status_code == 400

    missing_amount = client.patch(
        f"/api/admin/reports/{report_id}",
        json={"status": "RESOLVED", "resolution_outcome": "STORE_CREDIT"},
        headers=admin,
    )
    assert missing_amount.status_code == 400
    assert "resolution_amount_cents" in missing_amount.get_json()["fields"]

    resolved = client.patch(
        f"/api/admin/reports/{report_id}",
        json={"status": "RESOLVED", "resolution_outcome": "STORE_CREDIT", "resolution_amount_cents": 800,
              "resolution_note": "Sorry about the eggs"},
        headers=admin,
    )
    assert resolved.status_code == 200
    body = resolved.get_json()["data"]
    assert body["status"] == "RESOLVED"
    assert body["reviewed_by_id"] == users.admin

    balance = client.get(f"/api/credits/balance?producer_id={users.producer}", headers=auth(users.buyer))
    assert balance.get_json()["data"]["balance_cents"] == 800
    ledger = client.get(f"/api/credits/ledger?producer_id={users.producer}", headers=auth(users.buyer))
    assert ledger.get_json()["data"][0]["report_id"] == report_id

    log = client.get("/api/admin/audit-log", headers=admin).get_json()["data"]
    assert [entry["action"] for entry in log["entries"]] == ["REPORT_UPDATE", "REPORT_UPDATE"]
    assert log["entries"][0]["details"]["new_status"] == "RESOLVED"


def test_balance_requires_producer(client, users, auth) -> None:
    assert client.get("/api/credits/balance", headers=auth(users.buyer)).status_code == 400


def test_repeated_resolution_credits_once(client, users, auth, order_id) -> None:
    report_id = _dispute(client, auth(users.buyer), order_id).get_json()["data"]["id"]
    payload = {"status": "RESOLVED", "resolution_outcome": "STORE_CREDIT", "resolution_amount_cents": 500}
    for _ in range(2):
        response = client.patch(f"/api/admin/reports/{report_id}", json=payload, headers=auth(users.admin))
        assert response.status_code == 200

    balance = client.get(f"/api/credits/balance?producer_id={users.producer}", headers=auth(users.buyer))
    assert balance.get_json()["data"]["balance_cents"] == 500
    ledger = client.get(f"/api/credits/ledger?producer_id={users.producer}", headers=auth(users.buyer))
    assert len(ledger.get_json()["data"]) == 1
