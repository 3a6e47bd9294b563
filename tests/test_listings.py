"""Marketplace search around a ZIP code."""


def test_invalid_zip_is_rejected(client) -> None:
    response = client.get("/api/listings?zip=123")
    assert response.status_code == 400
    assert response.get_json()["code"] == "INVALID_ZIP"


def test_zip_required_for_anonymous_search(client) -> None:
    response = client.get("/api/listings")
    assert response.status_code == 400
    assert response.get_json()["code"] == "INVALID_ZIP"


def test_nearby_listings_come_first(client, users, make_product) -> None:
    make_product(users.far_producer, title="Far Honey", category="honey")
    make_product(users.producer, title="Near Tomatoes")

    response = client.get("/api/listings?zip=90210&radius=25")
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["total"] == 2
    assert data["radius_miles"] == 25
    titles = [listing["title"] for listing in data["listings"]]
    labels = [listing["label"] for listing in data["listings"]]
    assert titles == ["Near Tomatoes", "Far Honey"]
    assert labels == ["nearby", "farther_out"]
    assert data["listings"][0]["distance"] == 0.0
    assert data["listings"][0]["user"]["zip_code"] == "90210"


def test_wider_radius_makes_far_listing_nearby(client, users, make_product) -> None:
    make_product(users.far_producer, title="Far Honey")
    data = client.get("/api/listings?zip=90210&radius=150").get_json()["data"]
    assert data["listings"][0]["label"] == "nearby"


def test_radius_is_clamped_to_maximum(client, users) -> None:
    data = client.get("/api/listings?zip=90210&radius=5000").get_json()["data"]
    assert data["radius_miles"] == 150


def test_text_and_category_filters(client, users, make_product) -> None:
    make_product(users.producer, title="Heirloom Tomatoes", category="vegetables")
    make_product(users.producer, title="Wildflower Honey", category="honey")

    data = client.get("/api/listings?zip=90210&q=tomato").get_json()["data"]
    assert [listing["title"] for listing in data["listings"]] == ["Heirloom Tomatoes"]

    data = client.get("/api/listings?zip=90210&category=honey").get_json()["data"]
    assert [listing["title"] for listing in data["listings"]] == ["Wildflower Honey"]


def test_search_text_is_literal(client, users, make_product) -> None:
    make_product(users.producer, title="Tomatoes")
    make_product(users.producer, title="Eggs")
    make_product(users.producer, title="Jam 50% off")

    data = client.get("/api/listings?zip=90210&q=_").get_json()["data"]
    assert data["total"] == 0
    data = client.get("/api/listings?zip=90210&q=50%25").get_json()["data"]
    assert [listing["title"] for listing in data["listings"]] == ["Jam 50% off"]


def test_signed_in_user_zip_is_the_default(client, users, auth, make_product) -> None:
    make_product(users.producer)
    data = client.get("/api/listings", headers=auth(users.other_buyer)).get_json()["data"]
    assert data["user_zip"] == "91101"
    assert data["total"] == 1


def test_pagination(client, users, make_product) -> None:
    for index in range(5):
        make_product(users.producer, title=f"Item {index}")
    data = client.get("/api/listings?zip=90210&page=2&page_size=2").get_json()["data"]
    assert data["total"] == 5
    assert data["page"] == 2
    assert len(data["listings"]) == 2


def test_deleted_products_are_hidden(client, users, auth, make_product) -> None:
    product_id = make_product(users.producer)
    client.delete(f"/api/products/{product_id}", headers=auth(users.producer))
    data = client.get("/api/listings?zip=90210").get_json()["data"]
    assert data["total"] == 0
