"""
Precipitation Consensus for NWP Consensus

Two outputs per hour:
1. aggregate_precip_mm: amount in mm from the "wet" models only
   (mm > wet_threshold_mm), gaussian-weighted around the median in an
   optional log space, plus a consensus index (CI) and the raw IQR
2. compute_pop: probability of precipitation 0-100 from the share of wet
   models, the aggregated amount and the forecast horizon

PoP = clamp(0, 100, round(100 * (a*prop + b*D' + c*w_echeance)))
  prop       = wet models / total models
  D'         = log-ratio of mm against neutral_mm, normalized by mm_max, in [-1, 1]
  w_echeance = max(0, 1 - day_decay_per_day * floor(hour / 24))
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from nwp_consensus.config import PrecipitationConfig
from nwp_consensus.gaussian import gaussian_weights
from nwp_consensus.statistics import is_valid_number, quantile, round_half_up
from nwp_consensus.weighted import ModelSample

logger = logging.getLogger(__name__)

CI_BAND_RATIO = 0.2
MIN_SIGMA = 1e-9


@dataclass
class PrecipitationResult:
    """Aggregated precipitation for one hour."""
    mm_agg: float
    wet_models: List[Dict[str, Any]] = field(default_factory=list)
    ci: int = 0
    iqr: float = 0.0

    @property
    def wet_count(self) -> int:
        return len(self.wet_models)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mm_agg": self.mm_agg,
            "mouillant": list(self.wet_models),
            "CI": self.ci,
            "IQR": self.iqr,
        }


PrecipSample = Union[ModelSample, Mapping[str, Any]]


def _sample_fields(sample: PrecipSample):
    if isinstance(sample, ModelSample):
        return sample.model, sample.value
    model = sample.get("short") or sample.get("model") or sample.get("model_key")
    mm = sample.get("mm", sample.get("value"))
    return model, mm


def aggregate_precip_mm(
    model_values: Sequence[PrecipSample],
    config: Optional[PrecipitationConfig] = None
) -> PrecipitationResult:
    """
    Aggregate the per-model precipitation amounts for one hour.

    Args:
        model_values: ModelSample or {model|short, mm} items; null amounts
            count as dry
        config: PrecipitationConfig (defaults when omitted)

    Returns:
        PrecipitationResult; with no wet model: mm_agg=0, CI=0, IQR=0
    """
    config = config or PrecipitationConfig()
    if model_values is None:
        raise ValueError("model values must be a sequence")

    wet = []
    for sample in model_values:
        if not sample:
            continue
        model, mm = _sample_fields(sample)
        if is_valid_number(mm) and mm > config.wet_threshold_mm:
            wet.append({"model": model, "mm": float(mm)})

    if not wet:
        return PrecipitationResult(mm_agg=0.0, wet_models=[], ci=0, iqr=0.0)

    raw = np.sort(np.array([w["mm"] for w in wet]))
    median_raw = quantile(raw, 0.5)
    q1 = quantile(raw, 0.25)
    q3 = quantile(raw, 0.75)
    iqr = max(0.0, q3 - q1)

    band = CI_BAND_RATIO * median_raw
    in_band = int(np.sum((raw >= median_raw - band) & (raw <= median_raw + band)))
    ci = int(round_half_up(in_band / len(wet) * 100))

    if config.use_log_transform:
        transformed = np.log(raw + config.epsilon)
    else:
        transformed = raw
    median_t = quantile(np.sort(transformed), 0.5)
    sigma = max(MIN_SIGMA, config.sigma_ratio * max(median_t, MIN_SIGMA))

    weights = gaussian_weights(transformed, median_t, sigma)
    total_weight = float(np.sum(weights))
    mean_t = float(np.sum(weights * transformed) / total_weight) if total_weight > 0 else median_t

    if config.use_log_transform:
        mm_agg = max(0.0, math.exp(mean_t) - config.epsilon)
    else:
        mm_agg = max(0.0, mean_t)

    logger.debug(
        f"[PrecipMm] wet={len(wet)} median={median_raw:.3f} sigma={sigma:.4f} "
        f"mm_agg={mm_agg:.3f} CI={ci} IQR={iqr:.3f}"
    )

    return PrecipitationResult(mm_agg=mm_agg, wet_models=wet, ci=ci, iqr=iqr)


def compute_pop(
    total_models: int,
    wet_count: int,
    mm_agg: float,
    forecast_hour: int,
    config: Optional[PrecipitationConfig] = None
) -> int:
    """
    Probability of precipitation in [0, 100].

    Args:
        total_models: Models considered for the hour (0 gives prop = 0)
        wet_count: Models above the wet threshold
        mm_agg: Aggregated amount in mm
        forecast_hour: Hours since the start of the forecast
    """
    config = config or PrecipitationConfig()
    eps = config.epsilon

    prop = wet_count / total_models if total_models > 0 else 0.0

    denominator = math.log(config.mm_max + eps) - math.log(config.neutral_mm + eps)
    numerator = math.log(max(mm_agg, 0.0) + eps) - math.log(config.neutral_mm + eps)
    d_prime = max(-1.0, min(1.0, numerator / denominator)) if denominator != 0 else 0.0

    day_index = max(0, math.floor(forecast_hour / 24))
    w_echeance = max(0.0, 1 - config.day_decay_per_day * day_index)

    raw = 100 * (config.a * prop + config.b * d_prime + config.c * w_echeance)
    return int(max(0, min(100, round_half_up(raw))))
