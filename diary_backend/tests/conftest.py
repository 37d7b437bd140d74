import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from diary_backend.api.main import app, get_storage
from diary_database.db import make_session_factory
from diary_database.models import Base
from diary_database.storage import MemStorage, SqlStorage

@pytest.fixture
def engine():
    """Fixture for a fresh in-memory SQLite engine with all tables created."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def mem_storage():
    return MemStorage()

@pytest.fixture
def sql_storage(engine):
    return SqlStorage(make_session_factory(engine))

@pytest.fixture(params=["memory", "sql"])
def storage(request):
    """Every storage backend, so the same contract is checked against each."""
    if request.param == "memory":
        return request.getfixturevalue("mem_storage")
    return request.getfixturevalue("sql_storage")

@pytest.fixture
def client(mem_storage):
    """Fixture for FastAPI TestClient backed by a fresh in-memory store."""
    app.dependency_overrides[get_storage] = lambda: mem_storage

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()

@pytest.fixture
def sql_client(sql_storage):
    """TestClient backed by SQLite storage."""
    app.dependency_overrides[get_storage] = lambda: sql_storage

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()

@pytest.fixture
def entry_data():
    """Returns a valid diary entry body."""
    return {"title": "Day 1", "content": "Good day", "emotion": "😊"}

@pytest.fixture
def memo_data():
    return {"content": "Buy milk"}
