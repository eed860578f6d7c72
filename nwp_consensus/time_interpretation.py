"""
Time Interpretation Modes for NWP Consensus

What an hourly timestamp means depends on the parameter:
- instant:        state at that exact hour (temperature at 08:00)
- preceding_hour: total over the hour ending there
                  (precipitation at 08:00 = 07:00 -> 08:00)

So for a slot [06, 12) instant parameters use hours 06..11, while
preceding-hour parameters use 07..12.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence

import pandas as pd

logger = logging.getLogger(__name__)


class TimeInterpretationMode(str, Enum):
    INSTANT = "instant"
    PRECEDING_HOUR = "preceding_hour"


TIME_INTERPRETATION_MODES: Dict[str, TimeInterpretationMode] = {
    # State variables
    "weather_code": TimeInterpretationMode.INSTANT,
    "temperature": TimeInterpretationMode.INSTANT,
    "temperature_apparent": TimeInterpretationMode.INSTANT,
    "humidity": TimeInterpretationMode.INSTANT,
    "wind_speed": TimeInterpretationMode.INSTANT,
    "wind_direction": TimeInterpretationMode.INSTANT,
    "wind_gust": TimeInterpretationMode.INSTANT,
    "uv_index": TimeInterpretationMode.INSTANT,
    "air_quality": TimeInterpretationMode.INSTANT,
    "pressure": TimeInterpretationMode.INSTANT,
    # Accumulated / flux variables
    "precipitation": TimeInterpretationMode.PRECEDING_HOUR,
    "radiation": TimeInterpretationMode.PRECEDING_HOUR,
    "evapotranspiration": TimeInterpretationMode.PRECEDING_HOUR,
}


def get_time_interpretation_mode(parameter: str) -> TimeInterpretationMode:
    """Mode for a parameter; unknown parameters are instant."""
    return TIME_INTERPRETATION_MODES.get(parameter, TimeInterpretationMode.INSTANT)


def is_preceding_hour_parameter(parameter: str) -> bool:
    return get_time_interpretation_mode(parameter) is TimeInterpretationMode.PRECEDING_HOUR


def _hour_in_slot(hour: int, mode: TimeInterpretationMode, slot_start: int, slot_end: int) -> bool:
    if mode is TimeInterpretationMode.INSTANT:
        if slot_start < slot_end:
            return slot_start <= hour < slot_end
        # wraps midnight, e.g. 18 -> 00
        return hour >= slot_start or hour < slot_end

    start = (slot_start + 1) % 24
    end = slot_end % 24
    if start <= end:
        return start <= hour <= end
    return hour >= start or hour <= end


def get_relevant_hour_indices(
    hourly_data: Sequence[Mapping[str, Any]],
    parameter: str,
    slot_start: int,
    slot_end: int
) -> List[int]:
    """
    Indices of the hourly rows belonging to the slot [slot_start, slot_end).

    Instant parameters take hours in [start, end); preceding-hour parameters
    take [start+1, end] (mod 24, both ends inclusive). Rows without a
    "time" value are skipped. Times are read as local wall-clock time.

    Args:
        hourly_data: Rows with a "time" entry (ISO string or datetime)
        parameter: Parameter name (see TIME_INTERPRETATION_MODES)
        slot_start: First hour of the slot, 0-23
        slot_end: Exclusive end hour, 0-24 (0 or 24 means midnight)
    """
    mode = get_time_interpretation_mode(parameter)
    indices = []

    for i, item in enumerate(hourly_data):
        time_value = item.get("time") if item else None
        if time_value is None or time_value == "":
            continue
        hour = pd.Timestamp(time_value).hour
        if _hour_in_slot(hour, mode, slot_start, slot_end):
            indices.append(i)

    return indices


def get_time_rules_summary() -> Dict[str, Dict[str, Any]]:
    """Parameters grouped by interpretation mode, with a short description."""
    instant = [p for p, m in TIME_INTERPRETATION_MODES.items() if m is TimeInterpretationMode.INSTANT]
    preceding = [p for p, m in TIME_INTERPRETATION_MODES.items() if m is TimeInterpretationMode.PRECEDING_HOUR]

    return {
        TimeInterpretationMode.INSTANT.value: {
            "parameters": instant,
            "description": "Value at the exact hour (temperature at 08:00 = temperature at 8h)",
        },
        TimeInterpretationMode.PRECEDING_HOUR.value: {
            "parameters": preceding,
            "description": "Total over the preceding hour (precipitation at 08:00 = 07:00 -> 08:00)",
        },
    }
