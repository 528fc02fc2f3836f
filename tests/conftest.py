"""
Shared fixtures: an isolated in-memory SQLite database and an API client bound to it.
"""
from __future__ import annotations

import os

# Settings are read at import time; point them at throwaway values first
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("DEFAULT_TIMEZONE", "America/Chicago")
os.environ.setdefault("METRICS_ENABLED", "false")

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from medreminders.db.base import Base
from medreminders.db.session import get_db
from medreminders.main import app
from medreminders.reminders import models  # noqa: F401
from medreminders.reminders.models import MedicationReminder, UserProfile


@pytest.fixture()
def session_factory() -> Iterator[sessionmaker]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory: sessionmaker) -> Iterator[TestClient]:
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def add_user(db: Session):
    def _add(user_id: str, tz_name: str | None) -> UserProfile:
        profile = UserProfile(user_id=user_id, timezone=tz_name)
        db.add(profile)
        db.commit()
        return profile

    return _add


@pytest.fixture()
def add_reminder(db: Session):
    def _add(**overrides) -> MedicationReminder:
        values = {
            "user_id": "user-1",
            "medication_id": "med-1",
            "medication_name": "Vitamin D",
            "times": ["08:00"],
            "enabled": True,
        }
        values.update(overrides)
        reminder = MedicationReminder(**values)
        db.add(reminder)
        db.commit()
        db.refresh(reminder)
        return reminder

    return _add
