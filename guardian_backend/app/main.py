# -*- coding: utf-8 -*-
"""
@file main.py
@brief FastAPI application for the Home Guardian backend.

This module provides:
- Telemetry ingestion for the ESP32, answered with the relay command
- Manual relay control for the app (MANUAL mode only)
- Threshold / relay-mode configuration
- Latest and paged sensor readings
- User registration and login
- Automatic column migration for SQLite

Every endpoint answers HTTP 200 with a {"status": ...} JSON envelope, also
on errors, so the device firmware and the app only have one shape to parse.
"""
from fastapi import FastAPI, Depends, Request, Body, Form
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Optional
import logging
import os

from . import auth, handlers, models, schemas, store
from .db import get_db, engine
from .relay import (
    RelayMode,
    RelayState,
    mode_to_legacy,
    parse_float,
    parse_relay_state,
    parse_sensor_state,
)
from .schemas import now_str

# --------------------------------------------------------------------
# Logging
# --------------------------------------------------------------------
logging.basicConfig(
    level=os.getenv("GUARDIAN_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "Server error processing request. Check server logs."

# Create missing tables on startup
models.Base.metadata.create_all(bind=engine)


# --------------------------------------------------------------------
# Database migration: add these columns to existing SQLite tables that lack them
# --------------------------------------------------------------------
_ADDED_COLUMNS = {
    "tbl_threshold": [
        ("current_relay_state", "VARCHAR(16) NOT NULL DEFAULT 'OFF'"),
    ],
    "tbl_sensor": [
        ("vibration_detected", "VARCHAR(16) DEFAULT 'CLEAR'"),
    ],
}


def ensure_migrations(bind=engine):
    """
    Add the columns in _ADDED_COLUMNS to existing tables that lack them.

    Only runs on SQLite: reads the current schema with PRAGMA table_info and
    issues ALTER TABLE ... ADD COLUMN for each missing column. Other
    databases should be migrated with a proper tool (Alembic).

    Args:
        bind (Engine): engine to migrate (defaults to the app engine)

    Returns:
        list[str]: "table.column" for every column added
    """
    added = []
    try:
        if not str(bind.url).startswith("sqlite"):
            return added
        with bind.begin() as conn:
            for table, columns in _ADDED_COLUMNS.items():
                res = conn.execute(text(f"PRAGMA table_info({table})"))
                existing = {row[1] for row in res}
                for name, ddl in columns:
                    if name not in existing:
                        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
                        added.append(f"{table}.{name}")
                        logger.info("Added column %s to %s", name, table)
    except SQLAlchemyError as e:
        logger.warning("Migration check failed: %s", e)
    return added


ensure_migrations()

# --------------------------------------------------------------------
# FastAPI application
# --------------------------------------------------------------------
app = FastAPI(title="Home Guardian Backend")

# Open CORS: the app and the device call from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
    body = schemas.ErrorResponse(message="Invalid request parameters", timestamp=now_str())
    return JSONResponse(status_code=200, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    body = schemas.ErrorResponse(message=SERVER_ERROR_MESSAGE, timestamp=now_str())
    return JSONResponse(status_code=200, content=body.model_dump())


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": now_str()}


# --------------------------------------------------------------------
# Device endpoints
# --------------------------------------------------------------------

@app.get("/api/ingest", response_model=schemas.IngestResponse, response_model_exclude_unset=True)
def ingest(
    temp: Optional[str] = None,
    hum: Optional[str] = None,
    motion: Optional[str] = None,
    vibration: Optional[str] = None,
    relay: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Telemetry from the ESP32; the answer carries the relay command.

    Query params:
        temp, hum: numbers, malformed values count as 0
        motion, vibration: DETECTED or CLEAR (default CLEAR)
        relay: relay state reported by the device (informational)

    Returns:
        schemas.IngestResponse: relay_command, control_reason and mode. If
        anything goes wrong the device is told OFF with reason "error".
    """
    try:
        outcome = handlers.ingest_telemetry(
            db,
            temperature=parse_float(temp),
            humidity=parse_float(hum),
            motion=parse_sensor_state(motion),
            vibration=parse_sensor_state(vibration),
            reported_relay=parse_relay_state(relay),
        )
    except Exception:
        logger.exception("Ingestion failed")
        return schemas.IngestResponse(
            status="error",
            message=SERVER_ERROR_MESSAGE,
            relay_command=RelayState.OFF,
            control_reason="error",
            timestamp=now_str(),
        )

    return schemas.IngestResponse(
        status="success",
        relay_command=outcome.decision.command,
        control_reason=outcome.decision.reason.value,
        mode=outcome.mode,
        timestamp=now_str(),
    )


@app.get("/api/thresholds", response_model=schemas.ThresholdsResponse, response_model_exclude_unset=True)
def get_thresholds(db: Session = Depends(get_db)):
    """
    Thresholds, relay mode and relay command, polled by the device and app.

    Creates the default row on first use (relay_reason "default").
    """
    try:
        config, created = handlers.read_thresholds(db)
    except SQLAlchemyError:
        logger.exception("Reading thresholds failed")
        return schemas.ThresholdsResponse(
            status="error",
            message=SERVER_ERROR_MESSAGE,
            temp_threshold=store.DEFAULT_TEMP_HIGH,
            temp_low_threshold=store.DEFAULT_TEMP_LOW,
            hum_threshold=store.DEFAULT_HUMIDITY,
            auto_relay=store.DEFAULT_MODE == RelayMode.AUTO,
            relay_command=RelayState.OFF,
            relay_reason="error",
        )

    return schemas.ThresholdsResponse(
        status="success",
        temp_threshold=config.temp_high_threshold,
        temp_low_threshold=config.temp_low_threshold,
        hum_threshold=config.humidity_threshold,
        auto_relay=config.auto_relay_control == RelayMode.AUTO,
        relay_command=config.current_relay_state or RelayState.OFF,
        relay_reason="default" if created else "system",
    )


# --------------------------------------------------------------------
# App endpoints: relay control and configuration
# --------------------------------------------------------------------

@app.get("/api/relay", response_model=schemas.RelayControlResponse, response_model_exclude_unset=True)
def control_relay(relay_state: Optional[str] = None, db: Session = Depends(get_db)):
    """
    Operator relay command. Rejected while the system is in AUTO mode.
    """
    try:
        state = handlers.set_manual_relay(db, relay_state)
    except handlers.GuardianError as e:
        return schemas.RelayControlResponse(status="error", message=e.message, timestamp=now_str())
    except SQLAlchemyError:
        logger.exception("Manual relay control failed")
        return schemas.RelayControlResponse(status="error", message=SERVER_ERROR_MESSAGE, timestamp=now_str())

    return schemas.RelayControlResponse(
        status="success",
        message=f"Manual relay control: {state.value}",
        relay_state=state,
        control_reason="manual_app_control",
        timestamp=now_str(),
    )


def _legacy_values(values: dict) -> dict:
    return {
        "temp_high_threshold": values["temp_high_threshold"],
        "temp_low_threshold": values["temp_low_threshold"],
        "humidity_threshold": values["humidity_threshold"],
        "auto_relay": mode_to_legacy(values["auto_relay_control"]),
    }


def _apply_threshold_update(db: Session, data: Optional[dict]) -> schemas.ThresholdUpdateResponse:
    try:
        result = handlers.update_thresholds(db, data)
    except handlers.GuardianError as e:
        return schemas.ThresholdUpdateResponse(status="error", message=e.message, timestamp=now_str(), **e.extra)
    except SQLAlchemyError:
        logger.exception("Threshold update failed")
        return schemas.ThresholdUpdateResponse(status="error", message=SERVER_ERROR_MESSAGE, timestamp=now_str())

    converted = result.converted_auto_relay
    return schemas.ThresholdUpdateResponse(
        status="success",
        message="Settings updated successfully" if result.affected_rows > 0 else "Settings confirmed (no changes needed)",
        affected_rows=result.affected_rows,
        updated_values=schemas.ThresholdValues(**_legacy_values(result.final)),
        debug_info={
            "input_auto_relay": data.get("auto_relay", "not_provided"),
            "converted_auto_relay": mode_to_legacy(converted) if converted is not None else None,
            "auto_relay_rejected": result.auto_relay_rejected,
            "current_db_auto_relay": mode_to_legacy(result.previous["auto_relay_control"]),
            "final_db_auto_relay": mode_to_legacy(result.final["auto_relay_control"]),
            "threshold_records_found": result.records_found,
            "previous_values": _legacy_values(result.previous),
        },
        timestamp=now_str(),
    )


@app.get("/api/thresholds/update", response_model=schemas.ThresholdUpdateResponse, response_model_exclude_unset=True)
def update_thresholds_query(request: Request, db: Session = Depends(get_db)):
    """Partial threshold update from query parameters."""
    return _apply_threshold_update(db, dict(request.query_params))


@app.post("/api/thresholds/update", response_model=schemas.ThresholdUpdateResponse, response_model_exclude_unset=True)
def update_thresholds_json(payload: Any = Body(None), db: Session = Depends(get_db)):
    """
    Partial threshold update from a JSON object body.

    Body example:
        {"temp_high_threshold": 32, "humidity_threshold": 75, "auto_relay": false}
    """
    return _apply_threshold_update(db, payload if isinstance(payload, dict) else None)


# --------------------------------------------------------------------
# Readings
# --------------------------------------------------------------------

@app.get("/api/readings/latest", response_model=schemas.LatestReadingResponse, response_model_exclude_unset=True)
def get_latest_reading(db: Session = Depends(get_db)):
    """Newest reading plus a one-line system status."""
    try:
        reading = handlers.latest_reading(db)
    except SQLAlchemyError:
        logger.exception("Reading latest sensor data failed")
        return schemas.LatestReadingResponse(
            status="error", message=SERVER_ERROR_MESSAGE, system_status="ERROR", timestamp=now_str(),
        )

    if reading is None:
        return schemas.LatestReadingResponse(
            status="no_data",
            message="No sensor data found in database",
            system_status=handlers.system_status(None),
            timestamp=now_str(),
        )
    return schemas.LatestReadingResponse(
        status="success",
        data=schemas.ReadingOut.model_validate(reading),
        system_status=handlers.system_status(reading),
        timestamp=now_str(),
    )


@app.get("/api/readings", response_model=schemas.ReadingsResponse, response_model_exclude_unset=True)
def list_readings(limit: Optional[str] = None, db: Session = Depends(get_db)):
    """
    The most recent readings, oldest first (ready for charts).

    Args:
        limit (str): number of readings, default 20, clamped to [1, 500]
    """
    limit_applied = handlers.clamp_limit(limit)
    try:
        page = handlers.list_readings(db, limit_applied)
    except SQLAlchemyError:
        logger.exception("Reading sensor data failed")
        return schemas.ReadingsResponse(status="error", message=SERVER_ERROR_MESSAGE)

    return schemas.ReadingsResponse(
        status="success",
        data=[schemas.ReadingOut.model_validate(r) for r in page.rows],
        latest_reading=schemas.ReadingOut.model_validate(page.latest) if page.latest is not None else None,
        count_in_response=len(page.rows),
        total_records_in_table=page.total,
        limit_applied=page.limit,
    )


# --------------------------------------------------------------------
# Users
# --------------------------------------------------------------------

def _post_only():
    return schemas.AuthResponse(status="error", message="Only POST method allowed")


@app.post("/api/register", response_model=schemas.AuthResponse, response_model_exclude_unset=True)
def register(email: str = Form(""), password: str = Form(""), db: Session = Depends(get_db)):
    """Create an account from the form fields email and password (>= 6 chars)."""
    try:
        user = auth.register_user(db, email, password)
    except handlers.GuardianError as e:
        return schemas.AuthResponse(status="error", message=e.message)
    except SQLAlchemyError:
        logger.exception("Registration failed")
        return schemas.AuthResponse(status="error", message="Registration failed")

    return schemas.AuthResponse(
        status="success", message="Registration successful", data=schemas.UserData.model_validate(user),
    )


@app.get("/api/register", response_model=schemas.AuthResponse, response_model_exclude_unset=True)
def register_get():
    return _post_only()


@app.post("/api/login", response_model=schemas.AuthResponse, response_model_exclude_unset=True)
def login(email: str = Form(""), password: str = Form(""), db: Session = Depends(get_db)):
    """Check credentials; no session or token is issued."""
    try:
        user = auth.login_user(db, email, password)
    except handlers.GuardianError as e:
        return schemas.AuthResponse(status="error", message=e.message)
    except SQLAlchemyError:
        logger.exception("Login failed")
        return schemas.AuthResponse(status="error", message=SERVER_ERROR_MESSAGE)

    return schemas.AuthResponse(
        status="success", message="Login successful", data=schemas.UserData.model_validate(user),
    )


@app.get("/api/login", response_model=schemas.AuthResponse, response_model_exclude_unset=True)
def login_get():
    return _post_only()
