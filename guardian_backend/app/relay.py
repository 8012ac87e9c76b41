# -*- coding: utf-8 -*-
"""
@file relay.py
@brief Relay arbitration: who decides whether the relay is ON or OFF.

In AUTO mode the relay follows the motion and vibration sensors. In MANUAL
mode the relay keeps whatever the operator last stored. The decision itself
is a pure function; reading and writing the stored state is done by the
handlers (see handlers.py).

The parsers below turn loose query-string values into the enums used here.
"""
import enum
import math
from dataclasses import dataclass
from typing import Any, Optional


class RelayState(str, enum.Enum):
    ON = "ON"
    OFF = "OFF"


class RelayMode(str, enum.Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class SensorState(str, enum.Enum):
    DETECTED = "DETECTED"
    CLEAR = "CLEAR"


class ControlReason(str, enum.Enum):
    """Why the relay got its command; the value is what the device receives."""
    AUTO_DETECTED = "auto_sensor_detected"
    AUTO_CLEAR = "auto_sensor_clear"
    MANUAL = "manual_control"


@dataclass(frozen=True)
class RelayDecision:
    command: RelayState
    reason: ControlReason


def decide(mode: RelayMode, manual_relay_state: RelayState,
           motion: SensorState, vibration: SensorState) -> RelayDecision:
    """
    Compute the relay command for one telemetry event.

    Args:
        mode (RelayMode): stored control mode
        manual_relay_state (RelayState): relay state currently stored in the
            config row (last value written by the operator or by this function)
        motion (SensorState): motion sensor of the incoming event
        vibration (SensorState): vibration sensor of the incoming event

    Returns:
        RelayDecision: command and reason. Never raises.
    """
    if mode == RelayMode.MANUAL:
        return RelayDecision(manual_relay_state, ControlReason.MANUAL)
    if motion == SensorState.DETECTED or vibration == SensorState.DETECTED:
        return RelayDecision(RelayState.ON, ControlReason.AUTO_DETECTED)
    return RelayDecision(RelayState.OFF, ControlReason.AUTO_CLEAR)


# --------------------------------------------------------------------
# Input coercion
# --------------------------------------------------------------------

_AUTO_FORMS = {"1", "yes", "true", "on", "auto"}
_MANUAL_FORMS = {"0", "no", "false", "off", "manual"}


def parse_float(value: Any, default: float = 0.0) -> float:
    """
    Parse a numeric query value; malformed input degrades to `default`.

    Examples:
        parse_float("23.5") -> 23.5
        parse_float("abc") -> 0.0
        parse_float(None) -> 0.0
        parse_float("nan") -> 0.0
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return number


def parse_sensor_state(value: Any) -> SensorState:
    # Only the exact string DETECTED counts, everything else reads as clear
    return SensorState.DETECTED if value == SensorState.DETECTED.value else SensorState.CLEAR


def parse_relay_state(value: Any) -> Optional[RelayState]:
    """Return the RelayState for exactly "ON" / "OFF", or None for anything else."""
    if value == RelayState.ON.value:
        return RelayState.ON
    if value == RelayState.OFF.value:
        return RelayState.OFF
    return None


def parse_auto_relay(value: Any) -> RelayMode:
    """
    Map the accepted boolean-like forms of `auto_relay` to a RelayMode.

    AUTO:   True, 1, "1", "yes", "true", "on", "auto"
    MANUAL: False, 0, "0", "no", "false", "off", "manual"

    String forms are compared case-insensitively after stripping whitespace.

    Raises:
        ValueError: for any other value
    """
    if isinstance(value, bool):
        return RelayMode.AUTO if value else RelayMode.MANUAL
    if isinstance(value, int):
        if value == 1:
            return RelayMode.AUTO
        if value == 0:
            return RelayMode.MANUAL
    elif isinstance(value, str):
        text = value.strip().lower()
        if text in _AUTO_FORMS:
            return RelayMode.AUTO
        if text in _MANUAL_FORMS:
            return RelayMode.MANUAL
    raise ValueError(f"Unrecognized auto_relay value: {value!r}")


def mode_to_legacy(mode: RelayMode) -> str:
    """AUTO/MANUAL as the "yes"/"no" strings older app builds expect."""
    return "yes" if mode == RelayMode.AUTO else "no"
