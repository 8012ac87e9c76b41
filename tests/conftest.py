"""
Shared test fixtures for the Home Guardian backend.

Provides:
- In-memory SQLite database (DATABASE_URL is set before the app is imported)
- Fresh tables for every test
- A FastAPI TestClient and a raw SQLAlchemy session
- Helpers to seed the config row and readings

Usage:
    def test_example(client, db_session):
        response = client.get("/api/thresholds")
        assert response.json()["status"] == "success"
"""

import logging
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

from guardian_backend.app import models
from guardian_backend.app.db import SessionLocal, engine
from guardian_backend.app.main import app
from guardian_backend.app.relay import RelayMode, RelayState, SensorState

# Keep test output clean
logging.getLogger("guardian_backend").setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def fresh_tables():
    """Every test starts from empty tables."""
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def seed_config(db_session):
    """Insert the config row with the given mode/relay state."""

    def _seed(mode=RelayMode.AUTO, relay=RelayState.OFF, **thresholds):
        row = models.ThresholdConfig(
            threshold_id=1,
            temp_high_threshold=thresholds.get("temp_high_threshold", 30.0),
            temp_low_threshold=thresholds.get("temp_low_threshold", 18.0),
            humidity_threshold=thresholds.get("humidity_threshold", 90.0),
            auto_relay_control=mode,
            current_relay_state=relay,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _seed


@pytest.fixture()
def seed_readings(db_session):
    """Insert `count` readings; temperature is 20.0 + index so order is visible."""

    def _seed(count):
        for i in range(count):
            db_session.add(models.SensorReading(
                temperature=20.0 + i,
                humidity=50.0,
                motion_detected=SensorState.CLEAR,
                vibration_detected=SensorState.CLEAR,
                relay_state=RelayState.OFF,
            ))
        db_session.commit()

    return _seed


@pytest.fixture()
def stored_config():
    """Read the config row through a new session (no stale identity map)."""

    def _read():
        session = SessionLocal()
        try:
            return session.query(models.ThresholdConfig).filter_by(threshold_id=1).first()
        finally:
            session.close()

    return _read
