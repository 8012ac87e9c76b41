# -*- coding: utf-8 -*-
"""
@file models.py
@brief SQLAlchemy models for the database schema.

Each model maps to one table and declares its columns, constraints,
indexes and defaults.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, func
from .db import Base
from .relay import RelayMode, RelayState, SensorState


def utcnow() -> datetime:
    """Naive UTC now; the one clock for stored rows and response timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column(enum_cls, **kwargs):
    # Stored as plain strings ("AUTO", "ON", ...) so SQLite and server databases agree
    return Column(
        Enum(enum_cls, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


class ThresholdConfig(Base):
    """
    The single configuration row (threshold_id = 1).

    Holds the alert thresholds shown to the app and the relay control state.

    Attributes:
        threshold_id (int): primary key, always 1
        temp_high_threshold (float): upper temperature threshold (°C, -50..100)
        temp_low_threshold (float): lower temperature threshold (°C, -50..100)
        humidity_threshold (float): humidity threshold (%, 0..100)
        auto_relay_control (RelayMode): AUTO lets sensors drive the relay,
            MANUAL lets the operator drive it
        current_relay_state (RelayState): relay command currently in force
    """
    __tablename__ = "tbl_threshold"

    threshold_id = Column(Integer, primary_key=True, autoincrement=False)

    temp_high_threshold = Column(Float, nullable=False, default=30.0)
    temp_low_threshold = Column(Float, nullable=False, default=18.0)
    humidity_threshold = Column(Float, nullable=False, default=90.0)

    auto_relay_control = _enum_column(RelayMode, nullable=False, default=RelayMode.AUTO)
    current_relay_state = _enum_column(RelayState, nullable=False, default=RelayState.OFF)


class SensorReading(Base):
    """
    One telemetry event received from the device.

    Rows are appended on ingestion and never changed afterwards.

    Attributes:
        sensor_id (int): primary key, autoincrement
        temperature (float): temperature (°C)
        humidity (float): relative humidity (%)
        motion_detected (SensorState): PIR sensor state
        vibration_detected (SensorState): vibration sensor state
        relay_state (RelayState): relay command computed by the server for
            this event (not the state the device reported)
        timestamp (datetime): insert time (UTC)
    """
    __tablename__ = "tbl_sensor"

    sensor_id = Column(Integer, primary_key=True, index=True)

    temperature = Column(Float)
    humidity = Column(Float)

    motion_detected = _enum_column(SensorState, default=SensorState.CLEAR)
    vibration_detected = _enum_column(SensorState, default=SensorState.CLEAR)

    relay_state = _enum_column(RelayState, default=RelayState.OFF)

    timestamp = Column(DateTime, default=utcnow, server_default=func.now(), index=True)


class UserAccount(Base):
    """
    An app user. Passwords are stored as bcrypt hashes only.

    Attributes:
        user_id (int): primary key
        user_email (str): login email, unique
        user_password (str): bcrypt hash
        user_reg_date (datetime): registration time (UTC)
    """
    __tablename__ = "tbl_users"

    user_id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), unique=True, nullable=False, index=True)
    user_password = Column(String(255), nullable=False)
    user_reg_date = Column(DateTime, default=utcnow, server_default=func.now())
