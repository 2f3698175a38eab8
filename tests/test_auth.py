import uuid


def _new_name():
    return f"user_{uuid.uuid4().hex[:10]}"


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_register_login_and_profile(client, login):
    headers = login()
    r = client.get("/auth/me", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["total_xp"] == 0
    assert body["level"] == 1
    assert body["hearts"] == 5
    assert body["daily_goal"] == 15
    assert body["email"].endswith("@example.com")


def test_register_validation(client):
    name = _new_name()
    payload = {"username": name, "password": "secret123", "email": "someone@example.com"}
    assert client.post("/auth/register", json=payload).status_code == 201
    assert client.post("/auth/register", json=payload).status_code == 409
    assert client.post("/auth/register", json={**payload, "username": "Guest"}).status_code == 409
    assert client.post("/auth/register", json={**payload, "username": _new_name(), "password": "123"}).status_code == 400
    assert client.post("/auth/register", json={**payload, "username": _new_name(), "email": "nope"}).status_code == 400
    assert client.post("/auth/register", json={**payload, "username": "ab"}).status_code == 400


def test_wrong_password(client, login):
    name = _new_name()
    login(name)
    r = client.post("/auth/token", data={"username": name, "password": "wrong-password"})
    assert r.status_code == 401


def test_guest_login(client):
    r = client.post("/auth/token", data={"username": "Guest", "password": "anything"})
    assert r.status_code == 200
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
    assert client.get("/auth/me", headers=headers).json()["username"] == "guest"


def test_update_profile(client, login):
    headers = login()
    r = client.patch("/auth/me", json={"daily_goal": 30}, headers=headers)
    assert r.status_code == 200
    assert r.json()["daily_goal"] == 30
    assert client.patch("/auth/me", json={"daily_goal": 0}, headers=headers).status_code == 422


def test_logout_revokes_token(client, login):
    headers = login()
    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_requires_token(client):
    assert client.get("/lessons").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
