# -*- coding: utf-8 -*-
"""
@file store.py
@brief Access to the singleton configuration row (threshold_id = 1).

The row is created lazily with the defaults below the first time anything
reads or writes it. Every read-modify-write of the row goes through
`locked_config`, which serializes writers inside this process with
`config_lock` and takes a row lock (SELECT ... FOR UPDATE) on databases
that support it.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import ThresholdConfig
from .relay import RelayMode, RelayState

logger = logging.getLogger(__name__)

CONFIG_ID = 1

DEFAULT_TEMP_HIGH = 30.0
DEFAULT_TEMP_LOW = 18.0
DEFAULT_HUMIDITY = 90.0
DEFAULT_MODE = RelayMode.AUTO
DEFAULT_RELAY = RelayState.OFF

TEMP_RANGE = (-50.0, 100.0)
HUMIDITY_RANGE = (0.0, 100.0)

config_lock = threading.Lock()


def get_config(db: Session, for_update: bool = False) -> Optional[ThresholdConfig]:
    query = db.query(ThresholdConfig).filter(ThresholdConfig.threshold_id == CONFIG_ID)
    if for_update:
        query = query.with_for_update()
    return query.first()


def ensure_config(db: Session, for_update: bool = False) -> tuple[ThresholdConfig, bool]:
    """
    Return the config row, inserting the default row first if it is missing.

    Args:
        db (Session): database session
        for_update (bool): load the row with a row lock

    Returns:
        tuple[ThresholdConfig, bool]: the row and whether it was just created
    """
    row = get_config(db, for_update)
    if row is not None:
        return row, False

    db.add(ThresholdConfig(
        threshold_id=CONFIG_ID,
        temp_high_threshold=DEFAULT_TEMP_HIGH,
        temp_low_threshold=DEFAULT_TEMP_LOW,
        humidity_threshold=DEFAULT_HUMIDITY,
        auto_relay_control=DEFAULT_MODE,
        current_relay_state=DEFAULT_RELAY,
    ))
    try:
        db.commit()
        created = True
        logger.info("Created default threshold config row (mode=%s)", DEFAULT_MODE.value)
    except IntegrityError:
        # Another process inserted it between our select and insert
        db.rollback()
        created = False

    return get_config(db, for_update), created


@contextmanager
def locked_config(db: Session) -> Iterator[tuple[ThresholdConfig, bool]]:
    """
    Hold the config row for a read-modify-write sequence.

    Usage:
        with locked_config(db) as (config, created):
            config.current_relay_state = RelayState.ON
            db.commit()
    """
    with config_lock:
        yield ensure_config(db, for_update=True)


def in_range(value: float, bounds: tuple[float, float]) -> bool:
    low, high = bounds
    return low <= value <= high
