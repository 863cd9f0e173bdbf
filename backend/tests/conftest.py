"""
Shared fixtures: an in-memory SQLite store with the change feed installed, and a TestClient
whose get_db dependency is bound to it. The lifespan (scheduler) is not started.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_SIGNING_SECRET", "test-signing-secret-for-storage-links")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from theftwatch.db.base import Base
from theftwatch.db.changefeed import install_change_feed
from theftwatch.db.session import get_db, register_sqlite_functions
from theftwatch.models import UserLocation
from theftwatch.services.realtime import registry



@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    register_sqlite_functions(eng)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    install_change_feed(factory)
    return factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clean_registry():
    registry.clear()
    yield
    registry.clear()


@pytest.fixture
def client(session_factory):
    from theftwatch.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def add_user(db):
    """Insert a user_locations row; lat/lon None means location not shared."""

    def _add(user_id, lat=None, lon=None, *, verified=False, token=None):
        row = UserLocation(
            user_id=user_id,
            latitude=lat,
            longitude=lon,
            verified=verified,
            delivery_token=token,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _add
