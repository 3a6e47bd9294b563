"""Product management and categories."""
from local_yield import db
from local_yield.models import CartItem, Product


def test_producer_creates_product(client, users, auth) -> None:
    response = client.post(
        "/api/products",
        json={"title": "<b>Eggs</b>", "price_cents": 600, "category": "poultry", "unit": "dozen"},
        headers=auth(users.producer),
    )
    assert response.status_code == 201
    product = response.get_json()["data"]
    assert product["title"] == "Eggs"
    assert product["description"] == "No description."
    assert product["quantity_available"] is None
    assert "deleted_at" not in product

    listed = client.get("/api/products", headers=auth(users.producer)).get_json()["data"]
    assert [item["id"] for item in listed] == [product["id"]]


def test_buyer_cannot_create_product(client, users, auth) -> None:
    response = client.post(
        "/api/products", json={"title": "Eggs", "price_cents": 600}, headers=auth(users.buyer)
    )
    assert response.status_code == 403
    assert response.get_json()["code"] == "FORBIDDEN"


def test_unknown_category_is_rejected(client, users, auth) -> None:
    response = client.post(
        "/api/products",
        json={"title": "Eggs", "price_cents": 600, "category": "spaceships"},
        headers=auth(users.producer),
    )
    assert response.status_code == 400
    assert "category" in response.get_json()["fields"]


def test_only_owner_can_update(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)

    response = client.patch(
        f"/api/products/{product_id}", json={"price_cents": 1}, headers=auth(users.far_producer)
    )
    assert response.status_code == 403

    response = client.patch(
        f"/api/products/{product_id}", json={"price_cents": 550}, headers=auth(users.producer)
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["price_cents"] == 550
    assert response.get_json()["data"]["title"] == "Tomatoes"


def test_admin_can_update_any_product(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    response = client.patch(
        f"/api/products/{product_id}", json={"title": "Roma Tomatoes"}, headers=auth(users.admin)
    )
    assert response.status_code == 200


def test_soft_delete_keeps_row_and_clears_carts(app, client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    client.post("/api/cart", json={"product_id": product_id}, headers=auth(users.buyer))

    response = client.delete(f"/api/products/{product_id}", headers=auth(users.producer))
    assert response.status_code == 200
    assert client.get(f"/api/products/{product_id}").status_code == 404

    with app.app_context():
        product = db.session.get(Product, product_id)
        assert product is not None and product.deleted_at is not None
        assert CartItem.query.filter_by(product_id=product_id).count() == 0


def test_categories_endpoint(client) -> None:
    data = client.get("/api/catalog/categories").get_json()["data"]
    assert "produce" in [group["id"] for group in data["groups"]]
    assert "other" in data["category_ids"]
    assert "lb" in data["units"]
    assert data["custom_categories"] == []


def test_custom_category_lifecycle(client, users, auth) -> None:
    response = client.post(
        "/api/catalog/custom-categories",
        json={"name": "Microgreens", "group_id": "produce"},
        headers=auth(users.producer),
    )
    assert response.status_code == 201
    category_id = response.get_json()["data"]["id"]
    assert response.get_json()["data"]["status"] == "PENDING"

    # The creator may use a pending category; others may not see it.
    mine = client.get("/api/catalog/categories", headers=auth(users.producer)).get_json()["data"]
    assert [c["name"] for c in mine["custom_categories"]] == ["Microgreens"]
    theirs = client.get("/api/catalog/categories", headers=auth(users.far_producer)).get_json()["data"]
    assert theirs["custom_categories"] == []
    response = client.post(
        "/api/products",
        json={"title": "Pea shoots", "price_cents": 300, "category": "microgreens"},
        headers=auth(users.producer),
    )
    assert response.status_code == 201
    assert response.get_json()["data"]["category"] == "Microgreens"

    duplicate = client.post(
        "/api/catalog/custom-categories", json={"name": "microgreens"}, headers=auth(users.far_producer)
    )
    assert duplicate.status_code == 409
    assert duplicate.get_json()["code"] == "CATEGORY_EXISTS"

    response = client.patch(
        f"/api/admin/custom-categories/{category_id}",
        json={"status": "APPROVED", "corrected_name": "Micro Greens"},
        headers=auth(users.admin),
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["corrected_name"] == "Micro Greens"

    again = client.patch(
        f"/api/admin/custom-categories/{category_id}",
        json={"status": "REJECTED"},
        headers=auth(users.admin),
    )
    assert again.status_code == 400
    assert again.get_json()["code"] == "ALREADY_DECIDED"

    public = client.get("/api/catalog/categories").get_json()["data"]
    assert [c["corrected_name"] for c in public["custom_categories"]] == ["Micro Greens"]

    log = client.get("/api/admin/audit-log", headers=auth(users.admin)).get_json()["data"]
    assert [entry["action"] for entry in log["entries"]] == ["CATEGORY_APPROVE"]


def test_custom_category_rejects_predefined_name(client, users, auth) -> None:
    response = client.post(
        "/api/catalog/custom-categories", json={"name": "Honey"}, headers=auth(users.producer)
    )
    assert response.status_code == 409
