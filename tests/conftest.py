import itertools
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.db import Base, get_db
from taskboard.main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client):
    counter = itertools.count(1)

    def _make(email=None, password="secret123", name="Tester"):
        email = email or f"user{next(counter)}@example.com"
        resp = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 201, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _make


@pytest.fixture
def headers(make_user):
    return make_user()


@pytest.fixture
def board(client, headers):
    resp = client.post("/api/boards", json={"title": "Sprint"}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["board"]


@pytest.fixture
def add_card(client, headers):
    def _add(column_id, title, **extra):
        resp = client.post("/api/cards", json={"columnId": column_id, "title": title, **extra}, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["card"]

    return _add


@pytest.fixture
def fetch_columns(client, headers):
    """Return ``{column title: [card titles in order]}`` for a board."""

    def _fetch(board_id):
        resp = client.get(f"/api/boards/{board_id}", headers=headers)
        assert resp.status_code == 200, resp.text
        columns = {}
        for column in resp.json()["board"]["columns"]:
            cards = column["cards"]
            assert [c["order"] for c in cards] == list(range(len(cards)))
            columns[column["title"]] = [c["title"] for c in cards]
        return columns

    return _fetch
