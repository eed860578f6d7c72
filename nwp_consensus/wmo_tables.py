"""
WMO Weather-Code Tables for NWP Consensus

All domain knowledge the categorical consensus rules depend on lives here
as plain data, so the rules can be audited and tested without touching
the algorithms:

- WEATHER_CODES:         human-readable labels (Open-Meteo WMO subset)
- WMO_TO_ORDINAL:        1-28 severity scale used by the remapped median
- BARY_GROUPS:           3-group partition for the barycenter strategy
- SMART_BARY_GROUPS:     9 priority-ordered groups for smart_bary
- RISK_PRIORITY:         tie-break order for the smart_bary top risk
- RISK_COUNTER_CODES:    codes feeding the 0-5 risk badges
- DEFAULT_SEVERITY_GROUPS: partition used when a config omits its own

Bump TABLES_VERSION whenever a table changes meaning.
"""

from typing import Dict, FrozenSet, NamedTuple, Tuple

TABLES_VERSION = "2.0.0"


WEATHER_CODES: Dict[int, str] = {
    0: "Clear",
    1: "Mostly Clear",
    2: "Partly Cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing Rime Fog",
    51: "Light Drizzle",
    53: "Drizzle",
    55: "Dense Drizzle",
    56: "Light Freezing Drizzle",
    57: "Dense Freezing Drizzle",
    61: "Light Rain",
    63: "Rain",
    65: "Heavy Rain",
    66: "Light Freezing Rain",
    67: "Heavy Freezing Rain",
    71: "Light Snow",
    73: "Snow",
    75: "Heavy Snow",
    77: "Snow Grains",
    80: "Light Showers",
    81: "Showers",
    82: "Violent Showers",
    85: "Snow Showers",
    86: "Heavy Snow Showers",
    95: "Thunderstorm",
    96: "Thunderstorm With Hail",
    99: "Thunderstorm With Heavy Hail",
}

KNOWN_CODES: FrozenSet[int] = frozenset(WEATHER_CODES)


def weather_code_to_condition(code: int) -> str:
    """Convert WMO weather code to human-readable condition."""
    return WEATHER_CODES.get(code, "Unknown")


# === REMAPPED MEDIAN: precipitation / snow / thunder hierarchy ===
WMO_TO_ORDINAL: Dict[int, int] = {
    0: 1, 1: 2, 2: 3, 3: 4,        # clear -> overcast
    45: 5, 48: 6,                  # fog, rime fog
    51: 7, 53: 8, 55: 9,           # drizzle
    56: 10, 57: 11,                # freezing drizzle
    61: 12, 63: 13, 65: 14,        # rain
    66: 15, 67: 16,                # freezing rain
    71: 17, 73: 18, 75: 19,        # snow
    77: 20,                        # snow grains
    80: 21, 81: 22, 82: 23,        # rain showers
    85: 24, 86: 25,                # snow showers
    95: 26,                        # thunderstorm
    96: 27, 99: 28,                # thunderstorm with hail
}

ORDINAL_TO_WMO: Dict[int, int] = {ordinal: code for code, ordinal in WMO_TO_ORDINAL.items()}

UNKNOWN_ORDINAL = 1


# === BARY: 3-group barycenter ===
BARY_TEMPERATE: Tuple[int, ...] = (0, 1, 2, 3, 51, 53, 55, 61, 63, 65, 80, 81, 82, 95)
BARY_FOG: Tuple[int, ...] = (45, 48)
BARY_ICY: Tuple[int, ...] = (56, 57, 66, 67, 71, 73, 75, 77, 85, 86, 96, 99)

# Dominance tie-break rank: higher wins (icy > fog > temperate)
BARY_GROUPS: Dict[str, Tuple[Tuple[int, ...], int]] = {
    "temperate": (BARY_TEMPERATE, 0),
    "fog": (BARY_FOG, 1),
    "icy": (BARY_ICY, 2),
}
BARY_LOWEST_GROUP = "temperate"


# === SMART BARY: 9 priority-ordered groups ===
class SmartBaryGroup(NamedTuple):
    key: str
    codes: Tuple[int, ...]  # fixed ordering, barycenter positions index into it
    description: str
    priority: int           # lower = wins ties
    is_risk: bool


SMART_BARY_GROUPS: Tuple[SmartBaryGroup, ...] = tuple(sorted(
    (
        SmartBaryGroup("THUNDER_HAIL", (96, 99), "Thunderstorm with hail", 1, True),
        SmartBaryGroup("THUNDER", (95,), "Thunderstorm", 2, True),
        SmartBaryGroup("FREEZING_RAIN", (56, 57, 66, 67), "Freezing rain", 3, True),
        SmartBaryGroup("FREEZING_FOG", (48,), "Freezing fog", 4, True),
        SmartBaryGroup("SNOW_CONV", (85, 86), "Convective snow", 5, True),
        SmartBaryGroup("SNOW", (71, 73, 75), "Continuous snow", 6, False),
        SmartBaryGroup("RAIN_CONV", (80, 81, 82), "Convective rain", 7, True),
        SmartBaryGroup("FOG", (45,), "Fog", 8, False),
        SmartBaryGroup("RAIN_CONT", (0, 1, 2, 3, 51, 53, 55, 61, 63, 65), "Dry / continuous rain", 9, False),
    ),
    key=lambda group: group.priority,
))
SMART_BARY_LOWEST_GROUP = "RAIN_CONT"

RISK_PRIORITY: Tuple[str, ...] = (
    "Thunderstorm with hail",
    "Thunderstorm",
    "Freezing rain",
    "Freezing fog",
    "Convective snow",
    "Continuous snow",
    "Convective rain",
    "Continuous rain",
    "Fog",
    "Dry",
)

# Per-hour risk labels used by the 6-hour tranche summary
RISK_CODE_LABELS: Dict[int, str] = {
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    99: "Thunderstorm with hail",
    80: "Convective rain",
    81: "Convective rain",
    82: "Convective rain",
    56: "Freezing rain",
    57: "Freezing rain",
    66: "Freezing rain",
    67: "Freezing rain",
    48: "Freezing fog",
    85: "Convective snow",
    86: "Convective snow",
}


# === RISK BADGES (0-5 scale) ===
RISK_COUNTER_CODES: Dict[str, FrozenSet[int]] = {
    "thunder": frozenset({95}),
    "hail": frozenset({96, 99}),
    "ice": frozenset({67}),
    "fog": frozenset({45, 48}),
}
RISK_SCALE = 5


# === SEVERITY GROUPS (default partition, disjoint and exhaustive) ===
DEFAULT_SEVERITY_GROUPS: Tuple[Tuple[str, Tuple[int, ...], int, str], ...] = (
    ("clear", (0, 1, 2), 1, "Clear to partly cloudy"),
    ("overcast", (3,), 2, "Overcast"),
    ("fog", (45, 48), 3, "Fog"),
    ("drizzle", (51, 53, 55), 4, "Drizzle"),
    ("rain", (61, 63, 65), 5, "Rain"),
    ("showers", (80, 81, 82), 6, "Rain showers"),
    ("snow", (71, 73, 75, 77, 85, 86), 7, "Snow"),
    ("freezing", (56, 57, 66, 67), 8, "Freezing precipitation"),
    ("thunder", (95, 96, 99), 9, "Thunderstorm"),
)
