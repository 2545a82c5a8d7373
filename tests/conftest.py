"""Shared fixtures: an in-memory MongoDB (mongomock) wired into the app."""
import os

os.environ.setdefault("DATABASE_NAME", "llama_io_test")

import mongomock
import pytest
from fastapi.testclient import TestClient

from backend.main import app
from database import ensure_indexes, get_db

DEADLINE_MS = "1700000000000"


@pytest.fixture
def db():
    database = mongomock.MongoClient()["llama_io_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client):
    def _make(name="Ada", email=None, pending=None):
        body = {"name": name, "email": email or f"{name.lower()}@example.com"}
        if pending is not None:
            body["pendingTasks"] = pending
        res = client.post("/users", json=body)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def make_task(client):
    def _make(name="Write report", assigned_user="", completed=False, deadline=DEADLINE_MS):
        body = {
            "name": name,
            "deadline": deadline,
            "completed": completed,
            "assignedUser": assigned_user,
        }
        res = client.post("/tasks", json=body)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make
