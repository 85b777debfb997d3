"""
Shared fixtures: an in-memory stand-in for the motor database and factories
for the user documents the auth layer reads.
"""

import copy

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from barista.app import create_app
from barista.auth.helpers import create_access_token, hash_password
from barista.config import get_database

PASSWORD = "s3cret-pass"
PASSWORD_HASH = hash_password(PASSWORD)


class FakeCollection:
    """Just enough of AsyncIOMotorCollection for the auth and permission services."""

    def __init__(self, docs=None):
        self.docs = list(docs or [])

    def _matches(self, doc, query):
        for key, expected in query.items():
            if key == "$or":
                if not any(self._matches(doc, sub) for sub in expected):
                    return False
            elif isinstance(expected, dict) and "$in" in expected:
                if doc.get(key) not in expected["$in"]:
                    return False
            elif doc.get(key) != expected:
                return False
        return True

    async def find_one(self, query):
        for doc in self.docs:
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if self._matches(doc, query):
                doc.update(update.get("$set", {}))
                return
        if upsert:
            self.docs.append(dict(update.get("$set", {})))


class FakeDatabase(dict):
    def __missing__(self, name):
        collection = FakeCollection()
        self[name] = collection
        return collection


def make_user_doc(username, role, overrides=None, is_active=True):
    return {
        "_id": ObjectId(),
        "username": username,
        "email": f"{username}@barista.test",
        "password": PASSWORD_HASH,
        "role": role,
        "first_name": username.title(),
        "last_name": "Test",
        "is_active": is_active,
        "permission_overrides": overrides or [],
    }


def token_for(doc, role=None, overrides=None):
    return create_access_token(
        {
            "sub": str(doc["_id"]),
            "role": role or doc["role"],
            "overrides": overrides if overrides is not None else doc["permission_overrides"],
        }
    )


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def director_doc():
    # Stored with the legacy French role name on purpose.
    return make_user_doc("manon", "directeur")


@pytest.fixture
def employee_doc():
    return make_user_doc("lucas", "employee")


@pytest.fixture
def fake_db(director_doc, employee_doc):
    db = FakeDatabase()
    db["users"] = FakeCollection([director_doc, employee_doc])
    return db


@pytest.fixture
def app(fake_db):
    application = create_app(use_lifespan=False)
    application.dependency_overrides[get_database] = lambda: fake_db
    return application


@pytest.fixture
def client(app):
    return TestClient(app)
