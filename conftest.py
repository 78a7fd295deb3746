from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from booknest.auth import get_token_verifier
from booknest.exceptions import InvalidTokenError
from booknest.main import app, get_db

READER = {"uid": "reader-uid", "email": "reader@example.com", "name": "Reader One"}
OTHER_READER = {"uid": "other-uid", "email": "other@example.com", "name": "Reader Two"}
NO_EMAIL = {"uid": "anonymous-uid"}


class FakeTokenVerifier:
    tokens = {
        "reader-token": READER,
        "other-token": OTHER_READER,
        "no-email-token": NO_EMAIL,
    }

    async def verify(self, token: str) -> dict:
        try:
            return self.tokens[token]
        except KeyError:
            raise InvalidTokenError()


@pytest.fixture(scope="function")
def db():
    # Fresh in-memory database for every test function
    return AsyncMongoMockClient()["test_db"]


@pytest.fixture(scope="function")
def client(db):
    app.state.testing = True
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_token_verifier] = lambda: FakeTokenVerifier()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.testing = False


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer reader-token"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": "Bearer other-token"}


@pytest.fixture
def make_book(db):
    async def _make_book(title="Dune", quantity=2, **fields):
        now = datetime.now(timezone.utc)
        document = {
            "title": title,
            "author": "Frank Herbert",
            "description": "Desert planet politics",
            "category": "Science Fiction",
            "quantity": quantity,
            "available": True,
            "image": None,
            "rating": 5,
            "averageRating": 0,
            "reviewCount": 0,
            "createdAt": now,
            "updatedAt": now,
            **fields,
        }
        result = await db.books.insert_one(document)
        return str(result.inserted_id)

    return _make_book


@pytest.fixture
def make_review(db):
    async def _make_review(book_id, rating=5, email="reader@example.com", **fields):
        now = datetime.now(timezone.utc)
        document = {
            "title": "A review",
            "content": "Worth reading",
            "author": {"name": "Reader", "email": email, "photoURL": ""},
            "rating": rating,
            "category": "Review",
            "bookId": book_id,
            "createdAt": now,
            "updatedAt": now,
            **fields,
        }
        result = await db.reviews.insert_one(document)
        return str(result.inserted_id)

    return _make_review
