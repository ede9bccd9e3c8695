"""
Pytest configuration and shared fixtures for the paint inventory tests.
"""
import os
import tempfile

# Point the app at a throwaway database before it is imported
_app_db_fd, _app_db_path = tempfile.mkstemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite:///{_app_db_path}"
os.environ["REDIS_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from paint_inventory import cache, crud, models  # noqa: F401  (registers tables)
from paint_inventory.auth import Actor, Role
from paint_inventory.database import Base, build_engine, get_db
from paint_inventory.main import app


@pytest.fixture(scope='function')
def engine():
    """A fresh SQLite database file per test."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    engine = build_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(bind=engine)

    yield engine

    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Session with the settings rows seeded."""
    session = session_factory()
    crud.ensure_default_settings(session)
    yield session
    session.close()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(cache, "redis_client", None)


@pytest.fixture
def client(session_factory, db_session):
    """A test client whose requests use the per-test database."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin():
    return Actor(name="Admin", role=Role.ADMIN)


@pytest.fixture
def user():
    return Actor(name="Dana", role=Role.USER)


@pytest.fixture
def make_item(db_session):
    """Insert an item straight into the store."""
    def _make_item(item_id, name="Eggshell White", quantity=0, **fields):
        values = {"id": item_id, "name": name, "quantity": quantity}
        values.update(fields)
        result = crud.create_item(db_session, values)
        assert result.success, result.error
        return result.value
    return _make_item
