"""
Hourly Consensus Engine for NWP Consensus

Runs the consensus algorithms hour by hour over a multi-model forecast
payload in the Open-Meteo layout:

    {"hourly": {"time": [...], "<api_parameter>_<model>": [...], ...}}

Architecture:
1. Payload -> pandas DataFrame (one row per forecast hour)
2. Per hour: collect samples from enabled models whose forecast_hours
   window covers the hour offset (nulls skipped)
3. Per family: scalar / wind / precipitation / weather code aggregation,
   each call isolated so one bad hour never sinks the run
4. Weather codes: global-model fallback for uncovered areas, then the
   preceding-hour shift (value at i takes the value computed for i+1)
5. Per-parameter summary + optional 6-hour tranche aggregation
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from nwp_consensus.config import (
    GLOBAL_FALLBACK_MODELS,
    ParameterConfig,
    ParameterFamily,
    ScalarAlgorithm,
    ScalarConfig,
    WmoAlgorithm,
)
from nwp_consensus.gaussian import adaptive_gaussian_weighted, gaussian_weighted, robust_gaussian_weighted
from nwp_consensus.isolation import run_isolated, with_fallback
from nwp_consensus.precipitation import aggregate_precip_mm, compute_pop
from nwp_consensus.statistics import is_valid_number, median, round_half_up, simple_mean
from nwp_consensus.time_slots import SlotResult, aggregate_time_slots
from nwp_consensus.trimmed import mean_trimmed
from nwp_consensus.weighted import ModelSample, weighted_average
from nwp_consensus.wind import aggregate_wind_direction_gaussian
from nwp_consensus.wmo_algorithms import WmoResult, aggregate_wmo, clean_codes, compute_risk_counters

logger = logging.getLogger(__name__)


@dataclass
class ParameterResult:
    """Hourly consensus rows plus a summary for one parameter."""
    parameter: str
    family: ParameterFamily
    rows: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameter": self.parameter,
            "family": self.family.value,
            "summary": self.summary,
            "hourly": self.rows,
        }


# =============================================================================
# ISOLATED AGGREGATION CALLS
# =============================================================================

SCALAR_ALGORITHMS: Dict[ScalarAlgorithm, Callable[[List[ModelSample], ScalarConfig, Mapping[str, float]], float]] = {
    ScalarAlgorithm.GAUSSIAN: lambda s, cfg, w: gaussian_weighted([x.value for x in s], cfg.sigma),
    ScalarAlgorithm.ADAPTIVE_GAUSSIAN: lambda s, cfg, w: adaptive_gaussian_weighted([x.value for x in s], cfg.sigma_multiplier),
    ScalarAlgorithm.ROBUST_GAUSSIAN: lambda s, cfg, w: robust_gaussian_weighted([x.value for x in s]),
    ScalarAlgorithm.TRIMMED: lambda s, cfg, w: mean_trimmed([x.value for x in s], cfg.trim_percent),
    ScalarAlgorithm.MEDIAN: lambda s, cfg, w: median([x.value for x in s]),
    ScalarAlgorithm.WEIGHTED: lambda s, cfg, w: weighted_average(s, w),
}


def _scalar_mean(samples, cfg, weights) -> float:
    return simple_mean([s.value for s in samples])


@with_fallback(fallback=_scalar_mean, label="Scalar")
def aggregate_scalar(samples: List[ModelSample], cfg: ScalarConfig, weights: Mapping[str, float]) -> float:
    return SCALAR_ALGORITHMS[cfg.algorithm](samples, cfg, weights)


def _plain_mean(values, sigma) -> float:
    return simple_mean(values)


@with_fallback(fallback=_plain_mean, label="WindSpeed")
def aggregate_wind_speed(values: List[float], sigma: float) -> float:
    return gaussian_weighted(values, sigma)


def _wide_direction(values, sigma) -> float:
    # sigma 180 is close to a plain vector mean
    return aggregate_wind_direction_gaussian(values, 180.0)


@with_fallback(fallback=_wide_direction, label="WindDirection")
def aggregate_direction(values: List[float], sigma: float) -> float:
    return aggregate_wind_direction_gaussian(values, sigma)


def _mode_fallback(codes, config) -> WmoResult:
    return aggregate_wmo(codes, config, algorithm=WmoAlgorithm.MODE)


def _round_or_none(value: Optional[float], digits: int) -> Optional[float]:
    if value is None:
        return None
    return round_half_up(value, digits)


# =============================================================================
# ENGINE
# =============================================================================

class ConsensusEngine:
    """
    Hour-by-hour multi-model consensus over a forecast payload.

    Configuration objects are read-only; the engine keeps no state between
    calls, so independent parameters can be processed in parallel.
    """

    def __init__(self, configs: Mapping[str, ParameterConfig]):
        self.configs = dict(configs)
        logger.info(f"[ConsensusEngine] Initializing with parameters: {sorted(self.configs)}")

        self._processors = {
            ParameterFamily.SCALAR: self.process_scalar,
            ParameterFamily.WIND: self.process_wind,
            ParameterFamily.PRECIPITATION: self.process_precipitation,
            ParameterFamily.WEATHER_CODE: self.process_weather_code,
        }

    # ----------------------------------------------------------------- input

    @staticmethod
    def hourly_frame(payload: Mapping[str, Any]) -> pd.DataFrame:
        """
        Build the hourly DataFrame from an Open-Meteo style payload.

        Accepts either the full response ({"hourly": {...}}) or the hourly
        block itself. Series shorter than "time" are padded with NaN.
        """
        hourly = payload.get("hourly", payload) if isinstance(payload, Mapping) else None
        if not isinstance(hourly, Mapping) or not hourly.get("time"):
            logger.error("[ConsensusEngine] Payload has no hourly 'time' series")
            raise ValueError("No hourly data")

        n = len(hourly["time"])
        columns = {"time": list(hourly["time"])}
        for key, series in hourly.items():
            if key == "time" or not isinstance(series, list):
                continue
            padded = list(series[:n]) + [None] * max(0, n - len(series))
            columns[key] = pd.to_numeric(pd.Series(padded, dtype=object), errors="coerce")

        df = pd.DataFrame(columns)
        logger.info(f"[ConsensusEngine] Hourly frame: {len(df)} hours, {len(df.columns) - 1} series")
        return df

    @staticmethod
    def collect_samples(
        df: pd.DataFrame,
        hour_index: int,
        config: ParameterConfig,
        api_parameter: Optional[str] = None
    ) -> List[ModelSample]:
        """Valid samples of the enabled models covering this hour offset."""
        api_parameter = api_parameter or config.api_parameter
        samples = []
        for model in config.enabled_models:
            if not model.covers(hour_index):
                continue
            column = f"{api_parameter}_{model.key}"
            if column not in df.columns:
                continue
            value = df.at[hour_index, column]
            if is_valid_number(value):
                samples.append(ModelSample(model=model.key, value=float(value)))
        return samples

    # ---------------------------------------------------------- processors

    def process_scalar(self, df: pd.DataFrame, config: ParameterConfig) -> List[Dict[str, Any]]:
        weights = {m.key: m.weight for m in config.enabled_models}
        rows = []
        for h, timestamp in enumerate(df["time"]):
            samples = self.collect_samples(df, h, config)
            if not samples:
                continue
            value = aggregate_scalar(samples, config.scalar, weights)
            if value is None:
                continue
            rows.append({"datetime": timestamp, "value": round_half_up(value, 1)})
        return rows

    def process_wind(self, df: pd.DataFrame, config: ParameterConfig) -> List[Dict[str, Any]]:
        wind = config.wind
        api = config.wind_api_parameters
        rows = []
        for h, timestamp in enumerate(df["time"]):
            speeds = [s.value for s in self.collect_samples(df, h, config, api["speed"])]
            gusts = [s.value for s in self.collect_samples(df, h, config, api["gust"])]
            directions = [s.value for s in self.collect_samples(df, h, config, api["direction"])]

            speed = aggregate_wind_speed(speeds, wind.sigma_speed) if speeds else None
            gust = aggregate_wind_speed(gusts, wind.sigma_gust) if gusts else None
            gust_max = max(gusts) if gusts else None
            direction = aggregate_direction(directions, wind.sigma_direction_deg) if directions else None

            if speed is None and gust is None and direction is None:
                continue

            rows.append({
                "datetime": timestamp,
                "speed": _round_or_none(speed, 1),
                "gust": _round_or_none(gust, 1),
                "gust_max": _round_or_none(gust_max, 1),
                "direction": int(round_half_up(direction)) % 360 if direction is not None else None,
            })
        return rows

    def process_precipitation(self, df: pd.DataFrame, config: ParameterConfig) -> List[Dict[str, Any]]:
        precip = config.precipitation
        total_models = len(config.enabled_models)
        short_names = {m.key: m.label for m in config.models}
        rows = []
        for h, timestamp in enumerate(df["time"]):
            samples = [
                {"model": short_names.get(s.model, s.model), "mm": s.value}
                for s in self.collect_samples(df, h, config)
            ]
            result = aggregate_precip_mm(samples, precip)
            pop = compute_pop(total_models, result.wet_count, result.mm_agg, h, precip)
            rows.append({"datetime": timestamp, **result.to_dict(), "PoP": pop})
        return rows

    def _fallback_codes(self, df: pd.DataFrame, hour_index: int, api_parameter: str):
        for model_key in GLOBAL_FALLBACK_MODELS:
            column = f"{api_parameter}_{model_key}"
            if column not in df.columns:
                continue
            codes = clean_codes([df.at[hour_index, column]])
            if codes:
                logger.info(f"[ConsensusEngine] H+{hour_index}: fallback {model_key} (area not covered) -> code {codes[0]}")
                return codes, model_key
        return [], None

    def process_weather_code(self, df: pd.DataFrame, config: ParameterConfig) -> List[Dict[str, Any]]:
        wmo = config.wmo
        rows = []
        for h, timestamp in enumerate(df["time"]):
            codes = clean_codes(s.value for s in self.collect_samples(df, h, config))
            fallback_model = None
            if not codes:
                codes, fallback_model = self._fallback_codes(df, h, config.api_parameter)
            if not codes:
                continue

            outcome = run_isolated(aggregate_wmo, codes, wmo, fallback=_mode_fallback, label=f"WMO H+{h}")
            if outcome.value is None:
                logger.error(f"[ConsensusEngine] H+{h}: no weather code could be computed")
                continue

            result: WmoResult = outcome.value
            debug = dict(result.debug)
            if outcome.fallback_used:
                debug["fallback_used"] = True
                debug["original_error"] = outcome.error
            if fallback_model:
                debug["fallback_model"] = fallback_model
                debug["fallback_reason"] = "area_not_covered"

            row = {"datetime": timestamp, "value": result.code, "risque": dict(result.risk_counters)}
            if result.algorithm is WmoAlgorithm.SMART_BARY:
                row["risks"] = result.top_risk
            row["debug"] = debug
            row["raw_data"] = codes
            rows.append(row)

        return shift_preceding_hour(rows)

    # -------------------------------------------------------------- driver

    def process_parameter(self, df: pd.DataFrame, config: ParameterConfig) -> ParameterResult:
        logger.info(f"[ConsensusEngine] Processing '{config.parameter}' ({config.family.value}, "
                    f"{len(config.enabled_models)} enabled models)")
        rows = self._processors[config.family](df, config)
        result = ParameterResult(parameter=config.parameter, family=config.family, rows=rows)
        result.summary = summarize(config, rows)
        logger.info(f"[ConsensusEngine] '{config.parameter}': {len(rows)} hourly values")
        return result

    def process_all(self, payload: Mapping[str, Any]) -> Dict[str, ParameterResult]:
        df = self.hourly_frame(payload)
        results = {}
        for name, config in self.configs.items():
            results[name] = self.process_parameter(df, config)
        return results

    def build_time_slots(self, results: Mapping[str, ParameterResult]) -> Dict[str, List[SlotResult]]:
        """
        6-hour tranches per calendar day from the weather-code and
        precipitation results.
        """
        wmo = next((r for r in results.values() if r.family is ParameterFamily.WEATHER_CODE), None)
        if wmo is None or not wmo.rows:
            logger.warning("[ConsensusEngine] No weather-code results, skipping time slots")
            return {}

        frame = pd.DataFrame({
            "time": [row["datetime"] for row in wmo.rows],
            "wmo": [row["value"] for row in wmo.rows],
        })
        frame["date"] = pd.to_datetime(frame["time"]).dt.strftime("%Y-%m-%d")

        # An accumulation belongs to the day its hour started in, so the
        # 00:00 value (23:00 -> 00:00) closes the previous day's evening
        precip_by_date: Dict[str, List[Dict[str, Any]]] = {}
        precip = next((r for r in results.values() if r.family is ParameterFamily.PRECIPITATION), None)
        if precip and precip.rows:
            precip_frame = pd.DataFrame({
                "time": [row["datetime"] for row in precip.rows],
                "precipitation_mm": [row["mm_agg"] for row in precip.rows],
            })
            start_of_hour = pd.to_datetime(precip_frame["time"]) - pd.Timedelta(hours=1)
            precip_frame["date"] = start_of_hour.dt.strftime("%Y-%m-%d")
            for date, day in precip_frame.groupby("date", sort=True):
                precip_by_date[date] = day[["time", "precipitation_mm"]].to_dict("records")

        slots = {}
        for date, day in frame.groupby("date", sort=True):
            day_rows = day[["time", "wmo"]].to_dict("records")
            slots[date] = aggregate_time_slots(day_rows, precip_by_date.get(date, []))
        return slots


def shift_preceding_hour(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Move every weather-code value one hour earlier.

    Entry i keeps its datetime but takes value / risks / debug from i+1;
    the last entry is unchanged.
    """
    if len(rows) <= 1:
        return rows

    shifted = []
    for i, row in enumerate(rows[:-1]):
        src = rows[i + 1]
        new_row = dict(row)
        new_row["value"] = src["value"]
        new_row["risque"] = src["risque"]
        if "risks" in src:
            new_row["risks"] = src["risks"]
        new_row["debug"] = {**src["debug"], "shift": "preceding_hour", "shifted_from": src["datetime"]}
        shifted.append(new_row)
    shifted.append(rows[-1])
    return shifted


def summarize(config: ParameterConfig, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Min / max / mean style summary of a parameter's hourly rows."""
    summary: Dict[str, Any] = {
        "parameter": config.parameter,
        "unit": config.unit,
        "enabled_models": [m.name or m.key for m in config.enabled_models],
        "data_points": len(rows),
        "time_range": {
            "start": rows[0]["datetime"] if rows else None,
            "end": rows[-1]["datetime"] if rows else None,
        },
    }
    if not rows:
        return summary

    if config.family is ParameterFamily.SCALAR:
        values = np.array([r["value"] for r in rows])
        summary.update(
            algorithm=config.scalar.algorithm.value,
            min_value=float(values.min()),
            max_value=float(values.max()),
            avg_value=round_half_up(float(values.mean()), 1),
        )

    elif config.family is ParameterFamily.WIND:
        speeds = [r["speed"] for r in rows if r["speed"] is not None]
        gusts = [r["gust"] for r in rows if r["gust"] is not None]
        summary.update(
            sigma_speed=config.wind.sigma_speed,
            sigma_gust=config.wind.sigma_gust,
            sigma_direction_deg=config.wind.sigma_direction_deg,
            speed={"min": min(speeds), "max": max(speeds)} if speeds else None,
            gust={"min": min(gusts), "max": max(gusts)} if gusts else None,
        )

    elif config.family is ParameterFamily.PRECIPITATION:
        amounts = [r["mm_agg"] for r in rows]
        summary.update(
            total_mm=round_half_up(sum(amounts), 2),
            max_mm=round_half_up(max(amounts), 2),
            max_pop=max(r["PoP"] for r in rows),
            wet_hours=sum(1 for r in rows if r["mm_agg"] > 0),
        )

    else:
        distribution = pd.Series([r["value"] for r in rows]).value_counts().sort_index()
        summary.update(
            algorithm=config.wmo.algorithm.value,
            code_distribution={int(code): int(n) for code, n in distribution.items()},
            max_risks={
                risk: max(r["risque"][risk] for r in rows)
                for risk in compute_risk_counters([])
            },
            severity_groups=[g.group_id for g in config.wmo.severity_groups],
        )

    return summary
