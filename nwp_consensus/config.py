"""
Configuration for NWP Consensus

Parameter settings are JSON files (one per parameter family) under the
config directory. They are parsed once into frozen dataclasses and then
passed read-only into every aggregation call.

Validation happens HERE, at load time:
- unknown WMO algorithm names
- severity groups that overlap or carry no codes
- trim / sigma values outside their domains

Environment (loaded from .env via python-dotenv):
- NWP_CONSENSUS_CONFIG_DIR: config directory (default: ./config)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from nwp_consensus.wmo_tables import DEFAULT_SEVERITY_GROUPS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path("config")

GLOBAL_FALLBACK_MODELS = ("ecmwf_ifs025", "gfs_global", "icon_global")


class ConfigError(ValueError):
    """Raised when a parameter configuration is malformed."""


class WmoAlgorithm(Enum):
    """Categorical consensus strategies (value = canonical config name)."""
    MODE = "mode"
    SEVERITY_GROUPS = "severityGroups"
    MAX_SEVERITY = "maxSeverity"
    MEDIAN = "median"
    REMAPPED_MEDIAN = "remappedMedian"
    BARY = "bary"
    SMART_BARY = "smart_barycentre_11_groups"


ALGORITHM_ALIASES: Dict[str, WmoAlgorithm] = {
    "wmoSeverityGroups": WmoAlgorithm.SEVERITY_GROUPS,
    "simpleMedian": WmoAlgorithm.MEDIAN,
    "severityMedian": WmoAlgorithm.REMAPPED_MEDIAN,
    "smart_bary": WmoAlgorithm.SMART_BARY,
}


def algorithm_names() -> List[str]:
    """Every accepted algorithm name, canonical names first."""
    return [a.value for a in WmoAlgorithm] + list(ALGORITHM_ALIASES)


def resolve_algorithm(name: Any) -> WmoAlgorithm:
    """
    Map a config name (canonical or alias) to its WmoAlgorithm.

    Raises:
        ConfigError: unknown name
    """
    if isinstance(name, WmoAlgorithm):
        return name
    if name in ALGORITHM_ALIASES:
        return ALGORITHM_ALIASES[name]
    try:
        return WmoAlgorithm(name)
    except ValueError:
        raise ConfigError(
            f"Unknown WMO algorithm: {name}. Available algorithms: {', '.join(algorithm_names())}"
        ) from None


class ParameterFamily(Enum):
    """Which engine processes a parameter."""
    SCALAR = "scalar"
    WIND = "wind"
    PRECIPITATION = "precipitation"
    WEATHER_CODE = "weather_code"


class ScalarAlgorithm(Enum):
    GAUSSIAN = "gaussian_weighted"
    ADAPTIVE_GAUSSIAN = "adaptive_gaussian_weighted"
    ROBUST_GAUSSIAN = "robust_gaussian_weighted"
    TRIMMED = "mean_trimmed"
    MEDIAN = "median"
    WEIGHTED = "weighted_average"


@dataclass(frozen=True)
class SeverityGroup:
    """A named class of WMO codes ranked by severity."""
    group_id: str
    codes: Tuple[int, ...]
    severity: int
    description: str = ""


def default_severity_groups() -> Tuple[SeverityGroup, ...]:
    return tuple(
        SeverityGroup(group_id=gid, codes=codes, severity=sev, description=desc)
        for gid, codes, sev, desc in DEFAULT_SEVERITY_GROUPS
    )


def validate_severity_groups(groups: Tuple[SeverityGroup, ...]) -> None:
    """Groups must be non-empty and pairwise disjoint."""
    if not groups:
        raise ConfigError("severity groups cannot be empty")
    seen: Dict[int, str] = {}
    for group in groups:
        if not group.codes:
            raise ConfigError(f"severity group '{group.group_id}' has no codes")
        for code in group.codes:
            if code in seen:
                raise ConfigError(
                    f"WMO code {code} appears in both '{seen[code]}' and '{group.group_id}'"
                )
            seen[code] = group.group_id


@dataclass(frozen=True)
class WmoConfig:
    """Settings for the categorical (weather code) engine."""
    algorithm: WmoAlgorithm = WmoAlgorithm.SMART_BARY
    severity_groups: Tuple[SeverityGroup, ...] = field(default_factory=default_severity_groups)
    dynamic_threshold_base: float = 80.0
    bary_max_pond: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "algorithm", resolve_algorithm(self.algorithm))
        validate_severity_groups(self.severity_groups)
        if self.dynamic_threshold_base <= 0:
            raise ConfigError("dynamic_threshold_base must be > 0")
        if self.bary_max_pond <= 0:
            raise ConfigError("bary_max_pond must be > 0")


@dataclass(frozen=True)
class PrecipitationConfig:
    """Settings for the precipitation amount and PoP engines."""
    wet_threshold_mm: float = 0.0
    use_log_transform: bool = False
    epsilon: float = 0.001
    sigma_ratio: float = 0.2
    a: float = 0.6
    b: float = 0.3
    c: float = 0.1
    neutral_mm: float = 0.3
    mm_max: float = 3.0
    day_decay_per_day: float = 0.025

    def __post_init__(self):
        if self.epsilon <= 0:
            raise ConfigError("epsilon must be > 0")
        if self.sigma_ratio <= 0:
            raise ConfigError("sigma_ratio must be > 0")


@dataclass(frozen=True)
class WindConfig:
    """Settings for wind speed, gust and direction."""
    sigma_speed: float = 5.0
    sigma_gust: float = 8.0
    sigma_direction_deg: float = 30.0

    def __post_init__(self):
        for name in ("sigma_speed", "sigma_gust", "sigma_direction_deg"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")


@dataclass(frozen=True)
class ScalarConfig:
    """Settings for continuous parameters (temperature, humidity, ...)."""
    algorithm: ScalarAlgorithm = ScalarAlgorithm.GAUSSIAN
    sigma: float = 1.0
    sigma_multiplier: float = 1.0
    trim_percent: float = 0.2

    def __post_init__(self):
        if not isinstance(self.algorithm, ScalarAlgorithm):
            try:
                object.__setattr__(self, "algorithm", ScalarAlgorithm(self.algorithm))
            except ValueError:
                raise ConfigError(f"Unknown scalar algorithm: {self.algorithm}") from None
        if self.sigma <= 0:
            raise ConfigError("sigma must be > 0")
        if not (0 <= self.trim_percent < 0.5):
            raise ConfigError("trim_percent must be in [0, 0.5)")


@dataclass(frozen=True)
class ModelConfig:
    """One NWP model entry of a parameter config."""
    key: str
    enabled: bool = True
    forecast_hours: Tuple[int, int] = (0, 10_000)
    weight: float = 1.0
    short: str = ""
    name: str = ""

    def covers(self, hour_offset: int) -> bool:
        lo, hi = self.forecast_hours
        return lo <= hour_offset <= hi

    @property
    def label(self) -> str:
        return self.short or self.key


@dataclass(frozen=True)
class ParameterConfig:
    """Everything needed to aggregate one parameter hour by hour."""
    parameter: str
    family: ParameterFamily
    api_parameter: str = ""
    unit: str = ""
    models: Tuple[ModelConfig, ...] = ()
    wmo: Optional[WmoConfig] = None
    precipitation: Optional[PrecipitationConfig] = None
    wind: Optional[WindConfig] = None
    scalar: Optional[ScalarConfig] = None
    wind_api_parameters: Mapping[str, str] = field(default_factory=dict)

    @property
    def enabled_models(self) -> Tuple[ModelConfig, ...]:
        return tuple(m for m in self.models if m.enabled)


# ---------------------------------------------------------------------------
# JSON parsing
# ---------------------------------------------------------------------------

def _parse_models(raw: Mapping[str, Any]) -> Tuple[ModelConfig, ...]:
    models = []
    for key, entry in (raw or {}).items():
        entry = entry or {}
        hours = entry.get("forecast_hours")
        if hours is not None:
            if len(hours) != 2 or hours[0] > hours[1]:
                raise ConfigError(f"model '{key}': forecast_hours must be [min, max]")
            hours = (int(hours[0]), int(hours[1]))
        models.append(ModelConfig(
            key=key,
            enabled=bool(entry.get("enabled", True)),
            forecast_hours=hours or (0, 10_000),
            weight=float(entry.get("weight", 1.0)),
            short=entry.get("short", ""),
            name=entry.get("name", ""),
        ))
    return tuple(models)


def _parse_severity_groups(raw: Any) -> Tuple[SeverityGroup, ...]:
    if raw is None:
        return default_severity_groups()
    if not isinstance(raw, Mapping):
        raise ConfigError("severityGroups must be an object keyed by group id")
    groups = []
    for group_id, entry in raw.items():
        try:
            groups.append(SeverityGroup(
                group_id=str(group_id),
                codes=tuple(int(c) for c in entry["codes"]),
                severity=int(entry["severity"]),
                description=entry.get("description", ""),
            ))
        except (KeyError, TypeError) as e:
            raise ConfigError(f"severity group '{group_id}' is malformed: {e}") from e
    return tuple(groups)


def parse_parameter_config(raw: Mapping[str, Any]) -> ParameterConfig:
    """
    Build a ParameterConfig from the decoded JSON document.

    Expected keys: parameter, family, api_parameter, unit, models, and the
    family-specific blocks algorithm / algorithm_params /
    aggregation_params / probability_params / api_parameters.
    """
    if not isinstance(raw, Mapping):
        raise ConfigError("config document must be a JSON object")

    try:
        family = ParameterFamily(raw.get("family", "scalar"))
    except ValueError:
        raise ConfigError(f"Unknown parameter family: {raw.get('family')}") from None

    params = raw.get("algorithm_params") or {}
    kwargs: Dict[str, Any] = {}

    if family is ParameterFamily.WEATHER_CODE:
        kwargs["wmo"] = WmoConfig(
            algorithm=resolve_algorithm(raw.get("algorithm", WmoAlgorithm.SMART_BARY.value)),
            severity_groups=_parse_severity_groups(params.get("severityGroups")),
            dynamic_threshold_base=float(params.get("dynamicThresholdBase", 80)),
            bary_max_pond=float(raw.get("bary_max_pond", params.get("bary_max_pond", 1))),
        )
    elif family is ParameterFamily.PRECIPITATION:
        agg = raw.get("aggregation_params") or {}
        prob = raw.get("probability_params") or {}
        defaults = PrecipitationConfig()
        kwargs["precipitation"] = PrecipitationConfig(
            wet_threshold_mm=float(agg.get("wet_threshold_mm", defaults.wet_threshold_mm)),
            use_log_transform=bool(agg.get("use_log_transform", defaults.use_log_transform)),
            epsilon=float(agg.get("epsilon", prob.get("epsilon", defaults.epsilon))),
            sigma_ratio=float(agg.get("sigma_ratio", defaults.sigma_ratio)),
            a=float(prob.get("a", defaults.a)),
            b=float(prob.get("b", defaults.b)),
            c=float(prob.get("c", defaults.c)),
            neutral_mm=float(prob.get("neutral_mm", defaults.neutral_mm)),
            mm_max=float(prob.get("mm_max", defaults.mm_max)),
            day_decay_per_day=float(prob.get("day_decay_per_day", defaults.day_decay_per_day)),
        )
    elif family is ParameterFamily.WIND:
        defaults = WindConfig()
        kwargs["wind"] = WindConfig(
            sigma_speed=float(params.get("sigma_speed", defaults.sigma_speed)),
            sigma_gust=float(params.get("sigma_gust", defaults.sigma_gust)),
            sigma_direction_deg=float(params.get("sigma_direction_deg", defaults.sigma_direction_deg)),
        )
        api_parameters = raw.get("api_parameters") or {}
        missing = {"speed", "gust", "direction"} - set(api_parameters)
        if missing:
            raise ConfigError(f"wind config missing api_parameters: {sorted(missing)}")
        kwargs["wind_api_parameters"] = dict(api_parameters)
    else:
        defaults = ScalarConfig()
        kwargs["scalar"] = ScalarConfig(
            algorithm=raw.get("algorithm", defaults.algorithm.value),
            sigma=float(params.get("sigma", defaults.sigma)),
            sigma_multiplier=float(params.get("sigmaMultiplier", defaults.sigma_multiplier)),
            trim_percent=float(params.get("trimPercent", defaults.trim_percent)),
        )

    parameter = raw.get("parameter")
    if not parameter:
        raise ConfigError("config is missing 'parameter'")

    return ParameterConfig(
        parameter=parameter,
        family=family,
        api_parameter=raw.get("api_parameter", parameter),
        unit=raw.get("unit", ""),
        models=_parse_models(raw.get("models")),
        **kwargs,
    )


def load_parameter_config(path: Path) -> ParameterConfig:
    """Read and validate one parameter config file."""
    path = Path(path)
    logger.debug(f"[config] Loading {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"[config] Invalid JSON in {path}: {e}")
        raise ConfigError(f"{path}: invalid JSON ({e})") from e

    try:
        return parse_parameter_config(raw)
    except ConfigError as e:
        logger.error(f"[config] {path.name}: {e}")
        raise


def get_config_dir() -> Path:
    """Config directory from NWP_CONSENSUS_CONFIG_DIR (after loading .env)."""
    load_dotenv()
    return Path(os.getenv("NWP_CONSENSUS_CONFIG_DIR", str(DEFAULT_CONFIG_DIR)))


def load_config_dir(config_dir: Optional[Path] = None) -> Dict[str, ParameterConfig]:
    """
    Load every *.json parameter config in a directory.

    Returns:
        Dict mapping parameter name -> ParameterConfig
    """
    config_dir = Path(config_dir) if config_dir is not None else get_config_dir()
    if not config_dir.is_dir():
        raise ConfigError(f"config directory not found: {config_dir}")

    configs: Dict[str, ParameterConfig] = {}
    for path in sorted(config_dir.glob("*.json")):
        cfg = load_parameter_config(path)
        if cfg.parameter in configs:
            raise ConfigError(f"parameter '{cfg.parameter}' defined twice ({path.name})")
        configs[cfg.parameter] = cfg

    logger.info(f"[config] Loaded {len(configs)} parameter configs from {config_dir}: {sorted(configs)}")
    return configs
