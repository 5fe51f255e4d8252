def login(client, email: str, password: str = "password123") -> str:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["access_token"]


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_login_and_me(client):
    token = login(client, "student1@example.com")

    r = client.get("/auth/me", headers=auth_header(token))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["email"] == "student1@example.com"
    assert body["role"] == "student"
    assert body["student_number"] == "210001"


def test_login_returns_user(client):
    r = client.post(
        "/auth/login",
        json={"email": "instructor1@example.com", "password": "password123"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "instructor"


def test_login_wrong_password(client):
    r = client.post(
        "/auth/login",
        json={"email": "student1@example.com", "password": "nope"},
    )
    assert r.status_code == 401


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401
    r = client.get("/auth/me", headers=auth_header("not-a-jwt"))
    assert r.status_code == 401


def test_role_guards(client):
    student = login(client, "student1@example.com")
    instructor = login(client, "instructor1@example.com")

    # staff-only route
    r = client.get("/sections/1/students", headers=auth_header(student))
    assert r.status_code == 403

    # student-only route
    r = client.get("/enrollments/me", headers=auth_header(instructor))
    assert r.status_code == 403
