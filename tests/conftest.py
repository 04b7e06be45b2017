from __future__ import annotations

import itertools
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from lms import create_app
from lms.core.config import Config
from lms.core.extensions import db
from lms.core.models import User, seed_demo_data
from lms.workflow.services import create_customer, create_property

CREDENTIALS = {
    "admin": ("admin@lms.local", "admin123"),
    "approver": ("approver@lms.local", "approver123"),
    "former_approver": ("former.approver@lms.local", "former123"),
    "inputter": ("inputter@lms.local", "inputter123"),
    "inputter2": ("inputter2@lms.local", "inputter123"),
    "viewer": ("viewer@lms.local", "viewer123"),
}


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    REVIEW_QUEUE_LIMIT = 50
    REVIEW_QUEUE_PAGE_SIZE = 50
    REVIEW_OVERDUE_DAYS = 2
    NOTIFICATIONS_PAGE_SIZE = 50


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.instance_path = str(tmp_path / "instance")
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app) -> dict[str, User]:
    return {key: User.query.filter_by(email=email).one() for key, (email, _password) in CREDENTIALS.items()}


@pytest.fixture
def login(client):
    def _login(key: str):
        email, password = CREDENTIALS[key]
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture
def person_payload() -> dict:
    return {
        "customer_type": "PERSON",
        "details": {
            "first_name": "Sahra",
            "father_name": "Ali",
            "grandfather_name": "Hassan",
            "mobile_number": "+252634111222",
            "email": "sahra@example.com",
        },
    }


@pytest.fixture
def make_customer(users, person_payload):
    def _make(actor: str = "inputter", payload: dict | None = None):
        return create_customer(payload or person_payload, users[actor].id)

    return _make


@pytest.fixture
def make_property(users):
    parcels = itertools.count(1)

    def _make(actor: str = "inputter", **overrides):
        payload = {
            "property_type": "BUILDING",
            "parcel_number": f"PCL-T{next(parcels):04d}",
            "property_location": "26 June Road",
            "district": "Hargeisa Central",
            "size": "150",
            "details": {"number_of_floors": 3, "door_number": "12", "road_name": "26 June Road"},
        }
        payload.update(overrides)
        return create_property(payload, users[actor].id)

    return _make
