"""
6-Hour Tranche Aggregation for NWP Consensus

Reduces processed hourly rows to four daily tranches (night, morning,
afternoon, evening). Each tranche gets:
- a weather code from the smart_bary strategy over its hours (instant rule)
- the summed precipitation (preceding-hour rule)
- the list of hours whose code carries a risk ("06h–07h" labels)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

import pandas as pd

from nwp_consensus.config import WmoAlgorithm, WmoConfig
from nwp_consensus.statistics import is_valid_number
from nwp_consensus.time_interpretation import get_relevant_hour_indices
from nwp_consensus.wmo_algorithms import aggregate_wmo
from nwp_consensus.wmo_tables import RISK_CODE_LABELS

logger = logging.getLogger(__name__)


class TimeSlot(NamedTuple):
    slot_id: str
    label: str
    start: int
    end: int


TIME_SLOTS = (
    TimeSlot("night", "00-06", 0, 6),
    TimeSlot("morning", "06-12", 6, 12),
    TimeSlot("afternoon", "12-18", 12, 18),
    TimeSlot("evening", "18-00", 18, 24),
)

_SMART_BARY_CONFIG = WmoConfig(algorithm=WmoAlgorithm.SMART_BARY)


@dataclass
class SlotResult:
    """Aggregate of one tranche."""
    label: str
    code: Optional[int]
    risks: List[Dict[str, Any]] = field(default_factory=list)
    precipitation_total: float = 0.0
    debug: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tranche": self.label,
            "code_wmo_final": self.code,
            "risques": list(self.risks),
            "precipitation_total": self.precipitation_total,
            "debug": self.debug,
        }


def _precip_mm(row: Mapping[str, Any]) -> float:
    mm = row.get("precipitation_mm")
    if mm is None and isinstance(row.get("precipitation"), Mapping):
        mm = row["precipitation"].get("mm")
    return float(mm) if is_valid_number(mm) else 0.0


def hour_range_label(hour: int) -> str:
    """06 -> '06h–07h'."""
    return f"{hour:02d}h–{(hour + 1) % 24:02d}h"


def aggregate_time_slots(
    hourly_rows: Sequence[Mapping[str, Any]],
    precip_rows: Optional[Sequence[Mapping[str, Any]]] = None
) -> List[SlotResult]:
    """
    Aggregate processed hourly rows into the four daily tranches.

    Args:
        hourly_rows: Rows {time, wmo, precipitation_mm | precipitation: {mm}}
            for one day, in local time
        precip_rows: Precipitation rows for the day when they differ from
            hourly_rows. The accumulation ending at the next 00:00 closes
            this day's evening, so callers pass (day 01:00 .. next day 00:00].
            Defaults to hourly_rows.

    Returns:
        One SlotResult per tranche (empty list for empty input). A tranche
        with no hours has code=None, no risks and precipitation_total=0.
    """
    if not hourly_rows:
        return []
    if precip_rows is None:
        precip_rows = hourly_rows

    results = []
    for slot in TIME_SLOTS:
        wmo_rows = [hourly_rows[i] for i in get_relevant_hour_indices(hourly_rows, "weather_code", slot.start, slot.end)]
        slot_precip = [precip_rows[i] for i in get_relevant_hour_indices(precip_rows, "precipitation", slot.start, slot.end)]

        debug: Dict[str, Any] = {
            "wmo_hours_collected": len(wmo_rows),
            "precip_hours_collected": len(slot_precip),
            "algorithm": WmoAlgorithm.SMART_BARY.value,
            "interpretation_mode": {"wmo": "instant", "precipitation": "preceding_hour"},
            "slot_definition": f"{slot.start}h-{slot.end}h",
        }

        if not wmo_rows:
            debug.update(wmo_codes=[], wmo_hours=[], precip_hours=[])
            results.append(SlotResult(label=slot.label, code=None, debug=debug))
            continue

        codes = [int(row["wmo"]) for row in wmo_rows if is_valid_number(row.get("wmo"))]
        precipitation_total = sum(_precip_mm(row) for row in slot_precip)

        code = None
        if codes:
            smart = aggregate_wmo(codes, _SMART_BARY_CONFIG)
            code = smart.code
            debug["aggregation"] = smart.debug

        risks = []
        for row in wmo_rows:
            label = RISK_CODE_LABELS.get(row.get("wmo"))
            if label:
                hour = pd.Timestamp(row["time"]).hour
                risks.append({"tranche": hour_range_label(hour), "type": label, "qty": 1})

        debug.update(
            wmo_codes=codes,
            wmo_hours=[
                {"time": row["time"], "hour": pd.Timestamp(row["time"]).hour, "code": row.get("wmo")}
                for row in wmo_rows
            ],
            precip_hours=[
                {"time": row["time"], "hour": pd.Timestamp(row["time"]).hour, "mm": _precip_mm(row)}
                for row in slot_precip
            ],
        )

        logger.debug(f"[TimeSlots] {slot.label}: code={code} precip={precipitation_total:.2f} risks={len(risks)}")

        results.append(SlotResult(
            label=slot.label,
            code=code,
            risks=risks,
            precipitation_total=precipitation_total,
            debug=debug,
        ))

    return results
