import pytest

from guardian_backend.app import auth, models


def register(client, email="alice@example.com", password="secret1"):
    return client.post("/api/register", data={"email": email, "password": password}).json()


def login(client, email="alice@example.com", password="secret1"):
    return client.post("/api/login", data={"email": email, "password": password}).json()


def test_register_success(client, db_session):
    body = register(client)

    assert body["status"] == "success"
    assert body["message"] == "Registration successful"
    assert body["data"]["user_email"] == "alice@example.com"
    assert isinstance(body["data"]["user_id"], int)

    user = db_session.query(models.UserAccount).one()
    assert user.user_password != "secret1"
    assert user.user_password.startswith("$2")
    assert user.user_reg_date is not None


def test_register_duplicate_email(client, db_session):
    register(client)

    body = register(client, password="another1")

    assert body["status"] == "error"
    assert "already exists" in body["message"]
    assert db_session.query(models.UserAccount).count() == 1


@pytest.mark.parametrize("email,password,message", [
    ("", "secret1", "Email and password are required"),
    ("alice@example.com", "", "Email and password are required"),
    ("not-an-email", "secret1", "Invalid email format"),
    ("alice@", "secret1", "Invalid email format"),
    ("alice@example.com", "12345", "Password must be at least 6 characters long"),
])
def test_register_validation(client, db_session, email, password, message):
    body = register(client, email=email, password=password)

    assert body == {"status": "error", "message": message}
    assert db_session.query(models.UserAccount).count() == 0


def test_register_rejects_overlong_password(client):
    body = register(client, password="x" * 73)

    assert body["status"] == "error"


def test_login_success(client):
    registered = register(client)

    body = login(client)

    assert body["status"] == "success"
    assert body["message"] == "Login successful"
    assert body["data"] == registered["data"]


def test_login_wrong_password(client):
    register(client)

    body = login(client, password="wrong-password")

    assert body == {"status": "error", "message": "Invalid email or password"}


def test_login_unknown_email(client):
    body = login(client, email="nobody@example.com")

    assert body["message"] == "Invalid email or password"


def test_login_missing_fields(client):
    body = client.post("/api/login", data={}).json()

    assert body["status"] == "error"
    assert body["message"] == "Email and password are required"


@pytest.mark.parametrize("path", ["/api/register", "/api/login"])
def test_get_not_allowed(client, path):
    body = client.get(path).json()

    assert body == {"status": "error", "message": "Only POST method allowed"}


def test_password_hash_roundtrip():
    hashed = auth.hash_password("secret1")

    assert auth.check_password(hashed, "secret1")
    assert not auth.check_password(hashed, "secret2")
    assert not auth.check_password("plain-text", "secret1")
