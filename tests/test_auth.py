"""Registration, login and the development stub login."""
from local_yield import db
from local_yield.models import ProducerProfile, User


def _register(client, **overrides):
    payload = {
        "email": "New.Person@Example.com",
        "password": "s3cret-pass",
        "name": "New Person",
        "zip_code": "90210",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_and_login(client) -> None:
    response = _register(client)
    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["user"]["email"] == "new.person@example.com"
    assert data["user"]["role"] == "BUYER"
    assert "password_hash" not in data["user"]
    assert data["access_token"]

    response = client.post(
        "/api/auth/login", json={"email": "new.person@example.com", "password": "s3cret-pass"}
    )
    assert response.status_code == 200
    token = response.get_json()["data"]["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    body = me.get_json()["data"]
    assert body["user"]["name"] == "New Person"
    assert body["capabilities"]["can_sell"] is False
    assert body["producer_profile"] is None


def test_register_producer_creates_profile(app, client) -> None:
    response = _register(client, roles=["PRODUCER", "CAREGIVER"])
    assert response.status_code == 201
    user_id = response.get_json()["data"]["user"]["id"]
    with app.app_context():
        user = db.session.get(User, user_id)
        assert user.is_producer and user.is_caregiver
        assert ProducerProfile.query.filter_by(user_id=user_id).count() == 1


def test_register_duplicate_email(client) -> None:
    assert _register(client).status_code == 201
    response = _register(client, email="new.person@example.com")
    assert response.status_code == 409
    assert response.get_json()["code"] == "EMAIL_TAKEN"


def test_register_rejects_bad_zip(client) -> None:
    response = _register(client, zip_code="9021")
    assert response.status_code == 400
    assert "zip_code" in response.get_json()["fields"]


def test_login_with_wrong_password(client, users) -> None:
    response = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "nope"})
    assert response.status_code == 401
    assert response.get_json()["code"] == "INVALID_CREDENTIALS"


def test_me_reports_capabilities(client, users, auth) -> None:
    body = client.get("/api/auth/me", headers=auth(users.producer)).get_json()["data"]
    assert body["capabilities"]["can_sell"] is True
    assert body["capabilities"]["can_admin"] is False
    assert body["producer_profile"]["business_name"] == "Pat's Farm"


def test_dev_login_disabled_by_default(client) -> None:
    response = client.post("/api/auth/dev-login", json={"role": "BUYER"})
    assert response.status_code == 404


def test_dev_login_sets_cookie(make_app) -> None:
    app = make_app(DEV_AUTH_ENABLED=True)
    client = app.test_client()

    response = client.post("/api/auth/dev-login", json={"role": "ADMIN"})
    assert response.status_code == 200
    assert "__dev_user=ADMIN" in response.headers["Set-Cookie"]

    me = client.get("/api/auth/me").get_json()["data"]
    assert me["user"]["email"] == "admin@test.localyield.example"
    assert me["capabilities"]["can_admin"] is True

    client.post("/api/auth/dev-logout")
    assert client.get("/api/auth/me").status_code == 401


def test_stub_cookie_ignored_when_dev_auth_disabled(client) -> None:
    client.set_cookie("__dev_user", "ADMIN")
    assert client.get("/api/auth/me").status_code == 401


def test_admin_user_search_is_literal(client, users, auth) -> None:
    headers = auth(users.admin)
    data = client.get("/api/admin/users?search=faraway", headers=headers).get_json()["data"]
    assert [user["id"] for user in data["users"]] == [users.far_producer]
    data = client.get("/api/admin/users?search=_", headers=headers).get_json()["data"]
    assert data["total"] == 0
