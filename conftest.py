# conftest.py
import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("APP_SECRET", "test-secret")
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("USAGE_SOURCE", "sql")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shiftledger.db import Base, get_db
from shiftledger import models  # noqa: F401
from shiftledger.util.security import create_token

BKK = timezone(timedelta(hours=7))


def bkk(y, m, d, h=0, mi=0, s=0) -> datetime:
    """Bangkok local wall-clock time as an aware UTC datetime (what gets stored)."""
    return datetime(y, m, d, h, mi, s, tzinfo=BKK).astimezone(timezone.utc)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def client(session_factory):
    from shiftledger.main import app

    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def manager_headers():
    return {"Authorization": f"Bearer {create_token('mgr-1', ['MANAGER'])}"}


@pytest.fixture()
def staff_headers():
    return {"Authorization": f"Bearer {create_token('staff-1', [])}"}
