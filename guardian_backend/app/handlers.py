# -*- coding: utf-8 -*-
"""
@file handlers.py
@brief Request-independent logic behind each endpoint.

The functions here take a database session plus already-extracted request
values and return plain result objects; main.py turns those into JSON.
Validation and precondition failures are raised as GuardianError
subclasses carrying the message shown to the client.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import store
from .models import SensorReading, ThresholdConfig
from .relay import (
    RelayDecision,
    RelayMode,
    RelayState,
    SensorState,
    decide,
    parse_auto_relay,
    parse_float,
    parse_relay_state,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 500


class GuardianError(Exception):
    """
    Error reported to the client as {"status": "error", "message": ...}.

    Attributes:
        message (str): human readable message
        extra (dict): additional keys merged into the error envelope
    """

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra


class InvalidInput(GuardianError):
    pass


class ModeConflict(GuardianError):
    pass


# --------------------------------------------------------------------
# Telemetry ingestion
# --------------------------------------------------------------------

@dataclass
class IngestionOutcome:
    """
    Result of one ingestion call.

    The device only sees `decision` and `mode`; the two persistence flags
    record whether the best-effort writes went through.
    """
    decision: RelayDecision
    mode: RelayMode
    config_saved: bool
    reading_id: Optional[int]

    @property
    def reading_saved(self) -> bool:
        return self.reading_id is not None


def _save_relay_state(db: Session, config: ThresholdConfig, command: RelayState) -> bool:
    try:
        config.current_relay_state = command
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not store relay state %s: %s", command.value, e)
        return False


def _append_reading(db: Session, temperature: float, humidity: float,
                    motion: SensorState, vibration: SensorState,
                    command: RelayState) -> Optional[int]:
    entity = SensorReading(
        temperature=temperature,
        humidity=humidity,
        motion_detected=motion,
        vibration_detected=vibration,
        relay_state=command,
    )
    try:
        db.add(entity)
        db.commit()
        return entity.sensor_id
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not store sensor reading: %s", e)
        return None


def ingest_telemetry(db: Session, temperature: float, humidity: float,
                     motion: SensorState, vibration: SensorState,
                     reported_relay: Optional[RelayState] = None) -> IngestionOutcome:
    """
    Handle one telemetry event from the device.

    Steps, all while holding the config row:
    1. Load the config row (created with defaults if missing)
    2. Decide the relay command from mode, stored relay state and sensors
    3. Store the command as the current relay state (best effort)
    4. Append the reading with the computed command (best effort)

    Args:
        db (Session): database session
        temperature (float): temperature (°C)
        humidity (float): relative humidity (%)
        motion (SensorState): motion sensor state
        vibration (SensorState): vibration sensor state
        reported_relay (Optional[RelayState]): relay state the device says it
            has; informational only

    Returns:
        IngestionOutcome: decision plus the result of both writes
    """
    with store.locked_config(db) as (config, _):
        mode = config.auto_relay_control or store.DEFAULT_MODE
        stored_relay = config.current_relay_state or RelayState.OFF
        decision = decide(mode, stored_relay, motion, vibration)

        config_saved = _save_relay_state(db, config, decision.command)
        reading_id = _append_reading(db, temperature, humidity, motion, vibration, decision.command)

    if reported_relay is not None and reported_relay != decision.command:
        logger.info("Device reports relay %s, commanding %s", reported_relay.value, decision.command.value)
    logger.info(
        "Telemetry: temp=%.1f hum=%.1f motion=%s vibration=%s -> relay %s (%s, %s)",
        temperature, humidity, motion.value, vibration.value,
        decision.command.value, decision.reason.value, mode.value,
    )
    return IngestionOutcome(decision=decision, mode=mode, config_saved=config_saved, reading_id=reading_id)


# --------------------------------------------------------------------
# Manual relay control
# --------------------------------------------------------------------

def set_manual_relay(db: Session, relay_state: Any) -> RelayState:
    """
    Store an operator relay command. Only allowed in MANUAL mode.

    Args:
        db (Session): database session
        relay_state: requested state, must be exactly "ON" or "OFF"

    Returns:
        RelayState: the stored state

    Raises:
        InvalidInput: relay_state is not "ON"/"OFF"
        ModeConflict: the system is in AUTO mode; nothing is written
    """
    state = parse_relay_state(relay_state)
    if state is None:
        raise InvalidInput("Invalid relay state. Use 'ON' or 'OFF'")

    with store.locked_config(db) as (config, _):
        if config.auto_relay_control == RelayMode.AUTO:
            raise ModeConflict("Cannot control relay manually while in auto mode. Switch to manual mode first.")
        config.current_relay_state = state
        db.commit()

    logger.info("Manual relay control: %s", state.value)
    return state


# --------------------------------------------------------------------
# Thresholds / configuration
# --------------------------------------------------------------------

_RANGED_FIELDS = (
    ("temp_high_threshold", store.TEMP_RANGE),
    ("temp_low_threshold", store.TEMP_RANGE),
    ("humidity_threshold", store.HUMIDITY_RANGE),
)


def read_thresholds(db: Session) -> tuple[ThresholdConfig, bool]:
    """Config row for the device/app poll, plus whether it was just created."""
    return store.ensure_config(db)


def snapshot(config: ThresholdConfig) -> dict:
    return {
        "temp_high_threshold": config.temp_high_threshold,
        "temp_low_threshold": config.temp_low_threshold,
        "humidity_threshold": config.humidity_threshold,
        "auto_relay_control": config.auto_relay_control,
    }


@dataclass
class ThresholdUpdate:
    affected_rows: int
    previous: dict
    final: dict
    applied: dict = field(default_factory=dict)
    converted_auto_relay: Optional[RelayMode] = None
    auto_relay_rejected: bool = False
    records_found: int = 1


def build_update(data: dict) -> tuple[dict, Optional[RelayMode], bool]:
    """
    Validate a partial threshold update.

    Numeric fields outside their range (or not numeric at all) are dropped;
    an unrecognized auto_relay form is dropped and flagged.

    Returns:
        tuple: (column -> value to write, parsed mode or None, auto_relay rejected)
    """
    updates = {}
    for name, bounds in _RANGED_FIELDS:
        if data.get(name) is None:
            continue
        value = parse_float(data[name], default=math.nan)
        if store.in_range(value, bounds):
            updates[name] = value
        else:
            logger.info("Dropping out-of-range %s=%r", name, data[name])

    mode = None
    rejected = False
    if data.get("auto_relay") is not None:
        try:
            mode = parse_auto_relay(data["auto_relay"])
            updates["auto_relay_control"] = mode
        except ValueError:
            rejected = True
            logger.info("Dropping unrecognized auto_relay=%r", data["auto_relay"])
    return updates, mode, rejected


def update_thresholds(db: Session, data: Optional[dict]) -> ThresholdUpdate:
    """
    Apply the valid subset of a threshold/mode update.

    Fields that are absent or invalid keep their stored value.

    Raises:
        InvalidInput: no input at all, or no field survived validation
    """
    if not data:
        raise InvalidInput("No input data received")

    updates, mode, rejected = build_update(data)
    if not updates:
        # The row still gets bootstrapped, only the write is skipped
        store.ensure_config(db)
        raise InvalidInput("No valid fields to update", affected_rows=0, received_data=data)

    with store.locked_config(db) as (config, created):
        previous = snapshot(config)
        changed = any(previous[name] != value for name, value in updates.items())
        for name, value in updates.items():
            setattr(config, name, value)
        db.commit()
        db.refresh(config)
        final = snapshot(config)

    logger.info("Threshold update applied: %s (changed=%s)", updates, changed)
    return ThresholdUpdate(
        affected_rows=1 if changed else 0,
        previous=previous,
        final=final,
        applied=updates,
        converted_auto_relay=mode,
        auto_relay_rejected=rejected,
        records_found=0 if created else 1,
    )


# --------------------------------------------------------------------
# Readings
# --------------------------------------------------------------------

@dataclass
class ReadingsPage:
    rows: list
    latest: Optional[SensorReading]
    total: int
    limit: int


def clamp_limit(raw: Any) -> int:
    limit = int(parse_float(raw, default=DEFAULT_LIMIT))
    if limit < 1:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


def _newest_first(db: Session):
    return db.query(SensorReading).order_by(SensorReading.timestamp.desc(), SensorReading.sensor_id.desc())


def latest_reading(db: Session) -> Optional[SensorReading]:
    return _newest_first(db).first()


def list_readings(db: Session, limit: int) -> ReadingsPage:
    """Most recent `limit` readings, returned oldest to newest for charting."""
    rows = _newest_first(db).limit(limit).all()
    rows.reverse()
    total = db.query(SensorReading).count()
    return ReadingsPage(rows=rows, latest=rows[-1] if rows else None, total=total, limit=limit)


def system_status(reading: Optional[SensorReading]) -> str:
    if reading is None:
        return "OFFLINE"
    if reading.motion_detected == SensorState.DETECTED:
        return "MOTION DETECTED"
    if reading.vibration_detected == SensorState.DETECTED:
        return "VIBRATION ALERT"
    return "MONITORING"
