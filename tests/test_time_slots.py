"""
Tests for Time Interpretation and 6-Hour Tranches

These tests verify that:
1. Instant parameters use hours [start, end) of a slot
2. Preceding-hour parameters use hours [start+1, end], wrapping midnight
3. Tranches aggregate weather codes with smart_bary and sum precipitation
4. Hours with risk codes are listed with their "HHh–HHh" label

Run with: python -m pytest tests/test_time_slots.py -v
"""

import logging
import sys
from pathlib import Path

import pytest

# Configure test logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

sys.path.insert(0, str(Path(__file__).parent.parent))

from nwp_consensus.time_interpretation import (
    TimeInterpretationMode,
    get_relevant_hour_indices,
    get_time_interpretation_mode,
    get_time_rules_summary,
    is_preceding_hour_parameter,
)
from nwp_consensus.time_slots import aggregate_time_slots, hour_range_label


def day_rows(date="2025-06-01"):
    return [{"time": f"{date}T{h:02d}:00"} for h in range(24)]


class TestTimeInterpretation:
    """Hour selection per interpretation mode."""

    def test_modes(self):
        assert get_time_interpretation_mode("temperature") is TimeInterpretationMode.INSTANT
        assert get_time_interpretation_mode("precipitation") is TimeInterpretationMode.PRECEDING_HOUR
        assert get_time_interpretation_mode("something_new") is TimeInterpretationMode.INSTANT
        assert is_preceding_hour_parameter("precipitation")
        assert not is_preceding_hour_parameter("weather_code")

    def test_instant_slot(self):
        assert get_relevant_hour_indices(day_rows(), "weather_code", 6, 12) == [6, 7, 8, 9, 10, 11]

    def test_preceding_hour_slot(self):
        assert get_relevant_hour_indices(day_rows(), "precipitation", 6, 12) == [7, 8, 9, 10, 11, 12]

    def test_preceding_hour_wraps_midnight(self):
        logger.info("[TEST] Testing evening slot for accumulated parameters...")
        indices = get_relevant_hour_indices(day_rows(), "precipitation", 18, 0)
        assert indices == [0, 19, 20, 21, 22, 23]
        assert 18 not in indices, "18:00 holds the 17-18 total"
        logger.info("[TEST] Midnight wrap PASSED")

    def test_instant_wraps_midnight(self):
        assert get_relevant_hour_indices(day_rows(), "temperature", 18, 0) == [18, 19, 20, 21, 22, 23]
        assert get_relevant_hour_indices(day_rows(), "temperature", 18, 24) == [18, 19, 20, 21, 22, 23]

    def test_rows_without_time_skipped(self):
        rows = [{"time": "2025-06-01T06:00"}, {"time": None}, {}, {"time": "2025-06-01T07:00"}]
        assert get_relevant_hour_indices(rows, "temperature", 6, 12) == [0, 3]

    def test_rules_summary(self):
        summary = get_time_rules_summary()
        assert "precipitation" in summary["preceding_hour"]["parameters"]
        assert "temperature" in summary["instant"]["parameters"]


class TestTimeSlots:
    """aggregate_time_slots"""

    @pytest.fixture
    def hourly(self):
        rows = []
        for row in day_rows():
            hour = int(row["time"][11:13])
            wmo = 0
            if 6 <= hour < 12:
                wmo = 95 if hour == 8 else 61
            mm = 1.0 if 7 <= hour <= 12 else 0.0
            rows.append({**row, "wmo": wmo, "precipitation_mm": mm})
        return rows

    def test_four_tranches(self, hourly):
        slots = aggregate_time_slots(hourly)
        assert [s.label for s in slots] == ["00-06", "06-12", "12-18", "18-00"]

    def test_morning(self, hourly):
        logger.info("[TEST] Testing morning tranche...")
        morning = aggregate_time_slots(hourly)[1]
        assert morning.code == 61
        assert morning.precipitation_total == pytest.approx(6.0)
        assert morning.risks == [{"tranche": "08h–09h", "type": "Thunderstorm", "qty": 1}]
        assert morning.debug["wmo_hours_collected"] == 6
        logger.info("[TEST] Morning tranche PASSED")

    def test_dry_tranches(self, hourly):
        night, _, afternoon, evening = aggregate_time_slots(hourly)
        assert night.code == 0
        assert night.precipitation_total == 0.0
        assert afternoon.precipitation_total == 0.0, "hour 12 belongs to the morning total"
        assert evening.risks == []

    def test_nested_precipitation_rows(self):
        rows = [{"time": f"2025-06-01T{h:02d}:00", "wmo": 0, "precipitation": {"mm": 0.5}} for h in range(24)]
        night = aggregate_time_slots(rows)[0]
        assert night.precipitation_total == pytest.approx(3.0)

    def test_missing_hours(self):
        rows = [{"time": f"2025-06-01T{h:02d}:00", "wmo": 3, "precipitation_mm": 0.2} for h in range(6)]
        slots = aggregate_time_slots(rows)
        assert slots[0].code == 3
        assert slots[1].code is None
        assert slots[1].risks == []
        assert slots[1].precipitation_total == 0.0
        assert slots[1].to_dict()["code_wmo_final"] is None

    def test_empty_input(self):
        assert aggregate_time_slots([]) == []

    def test_hour_range_label(self):
        assert hour_range_label(6) == "06h–07h"
        assert hour_range_label(23) == "23h–00h"
