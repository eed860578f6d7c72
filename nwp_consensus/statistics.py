"""
Robust Statistics Primitives for NWP Consensus

Central-tendency and spread helpers shared by every consensus engine
(categorical, precipitation, wind and the scalar parameters).

Every function:
1. Drops invalid samples (None, NaN, +/-inf) before computing anything
2. Raises ValueError when the input is empty or entirely invalid
3. Never returns NaN silently

Quartiles follow the "median of halves" convention (the middle element
of an odd-length series belongs to neither half). The linear-interpolation
quantile is kept separately because the precipitation engine depends on it.
"""

import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, TypedDict, Union

import numpy as np

logger = logging.getLogger(__name__)


class Quartiles(TypedDict):
    """First, second and third quartile plus the interquartile range."""
    Q1: float
    Q2: float
    Q3: float
    IQR: float


def is_valid_number(value: Any) -> bool:
    """True for finite int/float values (booleans excluded)."""
    if value is None or isinstance(value, bool):
        return False
    if not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(value)


def clean_values(values: Optional[Iterable[Any]]) -> np.ndarray:
    """
    Filter invalid samples out of a value series.

    Raises:
        ValueError: if `values` is None or has no elements at all.
            An input whose elements are all invalid returns an empty array;
            callers decide whether that is an error.
    """
    if values is None:
        raise ValueError("values cannot be empty")
    if isinstance(values, np.ndarray):
        items = values.ravel().tolist()
    else:
        items = list(values)
    if len(items) == 0:
        raise ValueError("values cannot be empty")
    return np.array([float(v) for v in items if is_valid_number(v)], dtype=float)


def require_valid(values: Optional[Iterable[Any]]) -> np.ndarray:
    """Like clean_values, but an all-invalid series is also an error."""
    valid = clean_values(values)
    if valid.size == 0:
        raise ValueError("no valid value found in input")
    return valid


def median_of_sorted(sorted_values: np.ndarray) -> float:
    n = sorted_values.size
    mid = n // 2
    if n % 2 == 0:
        return float((sorted_values[mid - 1] + sorted_values[mid]) / 2)
    return float(sorted_values[mid])


def median(values: Iterable[Any]) -> float:
    """
    Median of the valid samples.

    Even-length series average the two central values.
    """
    valid = require_valid(values)
    return median_of_sorted(np.sort(valid))


def weighted_median(weighted_values: Sequence[Mapping[str, Any]]) -> float:
    """
    Weighted median over {"value", "weight"} items.

    Items with an invalid value or a non-positive weight are ignored. When
    the cumulative weight lands exactly on half of the total and another
    item follows, the two straddling values are averaged.
    """
    if not weighted_values:
        raise ValueError("weighted values cannot be empty")

    valid: List[Tuple[float, float]] = []
    for item in weighted_values:
        if not item:
            continue
        value = item.get("value")
        weight = item.get("weight")
        if is_valid_number(value) and is_valid_number(weight) and weight > 0:
            valid.append((float(value), float(weight)))

    if not valid:
        raise ValueError("no valid weighted value found")

    valid.sort(key=lambda pair: pair[0])
    total_weight = sum(w for _, w in valid)
    half_weight = total_weight / 2

    cumulative = 0.0
    for i, (value, weight) in enumerate(valid):
        cumulative += weight
        if cumulative >= half_weight:
            if cumulative == half_weight and i + 1 < len(valid):
                return (value + valid[i + 1][0]) / 2
            return value

    return valid[-1][0]


def quartiles(values: Iterable[Any]) -> Quartiles:
    """
    Q1/Q2/Q3 using the median-of-halves method.

    Odd-length series exclude the middle element from both halves.
    """
    sorted_values = np.sort(require_valid(values))
    n = sorted_values.size
    mid = n // 2

    lower = sorted_values[:mid]
    upper = sorted_values[mid:] if n % 2 == 0 else sorted_values[mid + 1:]

    q1 = median_of_sorted(lower) if lower.size > 0 else float(sorted_values[0])
    q2 = median_of_sorted(sorted_values)
    q3 = median_of_sorted(upper) if upper.size > 0 else float(sorted_values[-1])

    return Quartiles(Q1=q1, Q2=q2, Q3=q3, IQR=q3 - q1)


def median_absolute_deviation(values: Iterable[Any]) -> float:
    """Median of |x - median(x)|, robust to outliers."""
    valid = require_valid(values)
    center = median_of_sorted(np.sort(valid))
    return median_of_sorted(np.sort(np.abs(valid - center)))


def quantile(sorted_values: Union[Sequence[float], np.ndarray], q: float) -> float:
    """
    Linear-interpolation quantile of an already sorted series.

    An empty series yields 0.0 (the precipitation engine relies on this).
    """
    if len(sorted_values) == 0:
        return 0.0
    return float(np.quantile(np.asarray(sorted_values, dtype=float), q))


def simple_mean(values: Iterable[Any]) -> float:
    return float(np.mean(require_valid(values)))


def population_std(values: np.ndarray) -> float:
    """Population standard deviation (ddof=0)."""
    return float(np.std(values))


def round_half_up(x: float, digits: int = 0) -> float:
    """Round with ties going towards +infinity (not banker's rounding)."""
    factor = 10 ** digits
    return math.floor(x * factor + 0.5) / factor
