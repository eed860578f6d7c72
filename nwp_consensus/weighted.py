"""
Weighted Average Family for NWP Consensus

Combines per-model values according to how much each model is trusted.

Variants:
- weighted_average:            {model, value} samples + {model: weight} table
- weighted_average_arrays:     parallel value / weight arrays
- normalized_weighted_average: {value, weight} items, weights normalized to 1
- adaptive_weighted_average:   base weight x confidence factor x recency factor
- robust_weighted_average:     models missing data receive a fallback value
- weighted_statistics:         weighted mean / variance / std in one pass
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, TypedDict, Union

import numpy as np
import pandas as pd

from nwp_consensus.statistics import is_valid_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSample:
    """One ensemble member's value for one (location, hour, parameter)."""
    model: str
    value: Optional[float]

    @property
    def is_valid(self) -> bool:
        return is_valid_number(self.value)


Sample = Union[ModelSample, Mapping[str, Any]]


class WeightedStats(TypedDict):
    """Weighted summary of a set of {value, weight} items."""
    mean: float
    variance: float
    standard_deviation: float
    count: int
    total_weight: float


def _field(item: Sample, name: str) -> Any:
    if isinstance(item, ModelSample):
        return getattr(item, name, None)
    return item.get(name)


def _valid_weight(weight: Any) -> bool:
    return is_valid_number(weight)


def _pairs_from_items(items: Sequence[Mapping[str, Any]]) -> List[Tuple[float, float]]:
    pairs = []
    for item in items:
        if not item:
            continue
        value = item.get("value")
        weight = item.get("weight")
        if is_valid_number(value) and is_valid_number(weight) and weight > 0:
            pairs.append((float(value), float(weight)))
    return pairs


def weighted_average(model_values: Sequence[Sample], weights: Mapping[str, float]) -> float:
    """
    Weighted mean of model samples using a per-model weight table.

    Samples with an invalid value, or whose model has no valid weight,
    are skipped.

    Raises:
        ValueError: empty input, missing weight table, nothing usable, or
            weights summing to zero
    """
    if not model_values:
        raise ValueError("model values cannot be empty")
    if weights is None or not isinstance(weights, Mapping):
        raise ValueError("weights must be a {model: weight} mapping")

    weighted_sum = 0.0
    total_weight = 0.0
    used = 0
    for item in model_values:
        if not item:
            continue
        model = _field(item, "model")
        value = _field(item, "value")
        if not isinstance(model, str) or not is_valid_number(value):
            continue
        weight = weights.get(model)
        if not _valid_weight(weight):
            continue
        weighted_sum += float(value) * weight
        total_weight += weight
        used += 1

    if used == 0:
        raise ValueError("no valid value with a known weight")
    if total_weight == 0:
        raise ValueError("weights sum to zero")

    return weighted_sum / total_weight


def weighted_average_arrays(values: Sequence[Any], weights: Sequence[Any]) -> float:
    """
    Weighted mean from parallel arrays.

    Pairs where either side is invalid, or the weight is negative, are skipped.
    """
    if values is None or weights is None:
        raise ValueError("values and weights must be sequences")
    if len(values) != len(weights):
        raise ValueError(
            f"values and weights must have the same length ({len(values)} != {len(weights)})"
        )
    if len(values) == 0:
        raise ValueError("values and weights cannot be empty")

    pairs = [
        (float(v), float(w))
        for v, w in zip(values, weights)
        if is_valid_number(v) and is_valid_number(w) and w >= 0
    ]
    if not pairs:
        raise ValueError("no valid value/weight pair")

    vals = np.array([p[0] for p in pairs])
    wts = np.array([p[1] for p in pairs])
    total_weight = float(wts.sum())
    if total_weight == 0:
        raise ValueError("weights sum to zero")

    return float(np.dot(vals, wts) / total_weight)


def normalized_weighted_average(items: Sequence[Mapping[str, Any]]) -> float:
    """Weighted mean of {value, weight} items (weights > 0 only), normalized to sum to 1."""
    if not items:
        raise ValueError("items cannot be empty")

    pairs = _pairs_from_items(items)
    if not pairs:
        raise ValueError("no valid item")

    vals = np.array([p[0] for p in pairs])
    wts = np.array([p[1] for p in pairs])
    return float(np.sum(vals * (wts / wts.sum())))


def _to_utc(moment: Any) -> pd.Timestamp:
    ts = pd.Timestamp(moment)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def adaptive_weighted_average(
    model_data: Sequence[Mapping[str, Any]],
    base_weights: Mapping[str, float],
    use_confidence: bool = True,
    use_recency: bool = True,
    max_age_seconds: float = 3600.0,
    confidence_weight: float = 0.3,
    recency_weight: float = 0.2,
    now: Optional[datetime] = None,
) -> float:
    """
    Weighted mean with per-sample weight adjustments.

    Starting from the model's base weight:
    - confidence c in [0, 1] multiplies by 1 + confidence_weight * (2c - 1)
    - age a multiplies by 1 + recency_weight * (2r - 1),
      with r = clamp(1 - a / max_age_seconds, 0, 1)

    Args:
        model_data: Items {model, value, confidence?, timestamp?}
        base_weights: Base weight per model
        now: Reference time for recency (defaults to current UTC time)
    """
    if not model_data:
        raise ValueError("model data cannot be empty")

    reference = _to_utc(now if now is not None else datetime.now(timezone.utc))

    adapted: List[Dict[str, float]] = []
    for item in model_data:
        if not item:
            continue
        value = item.get("value")
        model = item.get("model")
        if not is_valid_number(value) or model not in base_weights:
            continue

        weight = base_weights.get(model) or 0.0

        confidence = item.get("confidence")
        if use_confidence and is_valid_number(confidence):
            factor = max(0.0, min(1.0, float(confidence)))
            weight *= 1 + confidence_weight * (factor - 0.5) * 2

        timestamp = item.get("timestamp")
        if use_recency and timestamp:
            age = (reference - _to_utc(timestamp)).total_seconds()
            recency = max(0.0, min(1.0, 1 - age / max_age_seconds))
            weight *= 1 + recency_weight * (recency - 0.5) * 2

        adapted.append({"value": float(value), "weight": max(0.0, weight)})

    if not adapted:
        raise ValueError("no valid model data after weight adaptation")

    return normalized_weighted_average(adapted)


def robust_weighted_average(
    model_data: Sequence[Sample],
    weights: Mapping[str, float],
    fallback_value: Optional[float] = None
) -> float:
    """
    Weighted mean where weighted models missing data receive `fallback_value`.

    Without a fallback, missing models are simply excluded. If no model
    has data, the fallback is returned (or ValueError raised when None).
    """
    if not model_data:
        raise ValueError("model data cannot be empty")

    available: List[Dict[str, Any]] = []
    missing: List[str] = []
    for item in model_data:
        if not item:
            continue
        model = _field(item, "model")
        if model not in weights:
            continue
        value = _field(item, "value")
        if is_valid_number(value):
            available.append({"model": model, "value": float(value)})
        else:
            missing.append(model)

    if not available:
        if fallback_value is not None:
            logger.warning(f"[robust_weighted_average] No model data, returning fallback {fallback_value}")
            return fallback_value
        raise ValueError("no valid data and no fallback value")

    if missing and fallback_value is not None:
        logger.debug(f"[robust_weighted_average] Substituting {fallback_value} for {missing}")
        available.extend({"model": m, "value": fallback_value} for m in missing)

    return weighted_average(available, weights)


def weighted_statistics(items: Sequence[Mapping[str, Any]]) -> WeightedStats:
    """Weighted mean, variance and standard deviation of {value, weight} items."""
    if not items:
        raise ValueError("items cannot be empty")

    pairs = _pairs_from_items(items)
    if not pairs:
        raise ValueError("no valid item")

    vals = np.array([p[0] for p in pairs])
    wts = np.array([p[1] for p in pairs])
    total_weight = float(wts.sum())
    norm = wts / total_weight
    mean = float(np.sum(vals * norm))
    variance = float(np.sum(norm * (vals - mean) ** 2))

    return WeightedStats(
        mean=mean,
        variance=variance,
        standard_deviation=math.sqrt(variance),
        count=len(pairs),
        total_weight=total_weight,
    )
