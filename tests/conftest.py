import itertools
import os
import tempfile

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="hivehelp-uploads-"))
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ALLOW_SEED"] = "true"

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import auth  # noqa: E402
import catalog  # noqa: E402
import database  # noqa: E402
from main import app  # noqa: E402
from schemas import User  # noqa: E402

_seq = itertools.count(1)

APPOINTMENT_FORM = {
    "full_name": "Jane Doe",
    "email": "jane@hivehelp.io",
    "phone": "555-0100",
    "date": "2024-06-01",
    "time": "10:00",
    "address": "12 Elm St",
    "hivespot": "roof",
    "severity": "high",
}


@pytest.fixture(autouse=True)
def mongo():
    client = mongomock.MongoClient()
    database.use_database(client["hivehelp_test"])
    database.ensure_indexes()
    auth.rate_store.clear()
    yield database.db
    client.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user():
    def _make(role="customer", password="secret123", is_approved=True, is_blocked=False, locality=None, name=None):
        n = next(_seq)
        email = f"{role}{n}@hivehelp.io"
        name = name or f"{role.capitalize()} {n}"
        user = User(
            name=name,
            email=email,
            phone=f"555-{n:04d}",
            password_hash=auth.hash_password(password),
            role=role,
            is_approved=is_approved,
            is_blocked=is_blocked,
            locality=locality,
        )
        user_id = database.create_document("user", user)
        token = auth.create_access_token(user_id, role)
        return {
            "_id": user_id,
            "role": role,
            "name": name,
            "email": email,
            "password": password,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("customer")


@pytest.fixture
def other_customer(make_user):
    return make_user("customer")


@pytest.fixture
def beekeeper(make_user):
    return make_user("beekeeper", locality="Springfield")


@pytest.fixture
def other_beekeeper(make_user):
    return make_user("beekeeper", locality="Shelbyville")


@pytest.fixture
def admin_user(make_user):
    return make_user("admin")


@pytest.fixture
def make_product():
    def _make(owner, price=250.0, stock=10, name="Wildflower Honey"):
        return catalog.create_product(owner["_id"], name=name, price=price, stock_quantity=stock, description="Raw")

    return _make


@pytest.fixture
def book(client):
    def _book(customer, **overrides):
        form = {**APPOINTMENT_FORM, **overrides}
        res = client.post("/api/appointments", data=form, headers=customer["headers"])
        assert res.status_code == 201, res.text
        return res.json()["_id"]

    return _book
