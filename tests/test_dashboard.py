"""Producer dashboard: badge counts, sales figures and shop settings."""
from datetime import datetime
from types import SimpleNamespace

import pytest

from local_yield.models import OrderStatus
from local_yield.services.sales_service import period_bounds, summarize_sales


def _item(product_id, title, quantity, price):
    return SimpleNamespace(
        product_id=product_id, product=SimpleNamespace(title=title), quantity=quantity, unit_price_cents=price
    )


def _order(status, total, via_cash, items):
    return SimpleNamespace(status=status, total_cents=total, via_cash=via_cash, items=items)


def test_summarize_sales() -> None:
    orders = [
        _order(OrderStatus.PAID, 1000, True, [_item(1, "Eggs", 2, 500)]),
        _order(OrderStatus.FULFILLED, 1500, False, [_item(2, "Honey", 1, 900), _item(1, "Eggs", 1, 600)]),
        _order(OrderStatus.CANCELED, 9999, True, [_item(3, "Gold", 1, 9999)]),
        _order(OrderStatus.REFUNDED, 700, False, [_item(2, "Honey", 1, 700)]),
    ]
    summary = summarize_sales(orders)
    assert summary["total_sales_cents"] == 2500
    assert summary["order_count"] == 2
    assert (summary["cash_total_cents"], summary["cash_count"]) == (1000, 1)
    assert (summary["card_total_cents"], summary["card_count"]) == (1500, 1)
    assert [(p["title"], p["quantity"], p["total_cents"]) for p in summary["top_products"]] == [
        ("Eggs", 3, 1600),
        ("Honey", 1, 900),
    ]


def test_summarize_no_orders() -> None:
    summary = summarize_sales([])
    assert summary["total_sales_cents"] == 0
    assert summary["top_products"] == []


def test_period_bounds() -> None:
    now = datetime(2024, 3, 31, 15, 30)
    assert period_bounds("today", now) == (datetime(2024, 3, 31), now)
    assert period_bounds("week", now) == (datetime(2024, 3, 24), now)
    assert period_bounds("month", now) == (datetime(2024, 2, 29), now)
    with pytest.raises(ValueError):
        period_bounds("year", now)


def test_sales_endpoint(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer, title="Eggs", price_cents=500)
    for method in ("cash", "card"):
        client.post(
            "/api/orders",
            json={"producer_id": users.producer, "items": [{"product_id": product_id, "quantity": 2}],
                  "payment_method": method},
            headers=auth(users.buyer),
        )

    data = client.get("/api/dashboard/sales?period=today", headers=auth(users.producer)).get_json()["data"]
    assert data["period"] == "today"
    assert data["total_sales_cents"] == 2000
    assert data["cash_count"] == 1 and data["card_count"] == 1
    assert data["top_products"][0]["title"] == "Eggs"

    assert client.get("/api/dashboard/sales?period=decade", headers=auth(users.producer)).status_code == 400
    assert client.get("/api/dashboard/sales", headers=auth(users.buyer)).status_code == 403


def test_summary_counts(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    client.post(
        "/api/orders",
        json={"producer_id": users.producer, "items": [{"product_id": product_id, "quantity": 1}]},
        headers=auth(users.buyer),
    )
    producer = client.get("/api/dashboard/summary", headers=auth(users.producer)).get_json()["data"]
    assert producer == {"pending_orders": 1, "unread_notifications": 1, "pending_reviews": 0}

    buyer = client.get("/api/dashboard/summary", headers=auth(users.buyer)).get_json()["data"]
    assert buyer == {"pending_orders": 0, "unread_notifications": 0, "pending_reviews": 0}


def test_mark_notification_read(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    client.post(
        "/api/orders",
        json={"producer_id": users.producer, "items": [{"product_id": product_id, "quantity": 1}]},
        headers=auth(users.buyer),
    )
    notifications = client.get("/api/notifications", headers=auth(users.producer)).get_json()["data"]
    notification_id = notifications["notifications"][0]["id"]

    assert client.post(f"/api/notifications/{notification_id}/read", headers=auth(users.buyer)).status_code == 404
    response = client.post(f"/api/notifications/{notification_id}/read", headers=auth(users.producer))
    assert response.get_json()["data"]["read"] is True
    unread = client.get("/api/notifications?unread=1", headers=auth(users.producer)).get_json()["data"]
    assert unread == {"notifications": [], "unread_count": 0}


def test_producer_profile_settings(client, users, auth) -> None:
    headers = auth(users.far_producer)
    profile = client.get("/api/dashboard/profile", headers=headers).get_json()["data"]
    assert profile["offers_delivery"] is False

    response = client.patch(
        "/api/dashboard/profile",
        json={"business_name": "Faraway Farm", "offers_delivery": True, "delivery_fee_cents": 300,
              "zip_code": "90211"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["business_name"] == "Faraway Farm"
    me = client.get("/api/auth/me", headers=headers).get_json()["data"]
    assert me["user"]["zip_code"] == "90211"
    assert me["producer_profile"]["delivery_fee_cents"] == 300
