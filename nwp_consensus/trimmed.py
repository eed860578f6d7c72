"""
Trimmed Mean Family for NWP Consensus

Means that discard (or clamp) the tails of a model ensemble so a single
runaway model cannot drag the consensus.

Variants:
- mean_trimmed:          drop floor(n * trim) values from each tail
- adaptive_trimmed_mean: pick the trim fraction from the coefficient of variation
- winsorized_mean:       clamp the tails to the cutoff values instead of dropping
- robust_trimmed_mean:   drop values outside the IQR fences
"""

import logging
import math
from typing import Any, Iterable

import numpy as np

from nwp_consensus.statistics import population_std, require_valid

logger = logging.getLogger(__name__)

# Coefficient-of-variation bands -> share of max_trim_percent
CV_TRIM_BANDS = (
    (0.5, 1.0),   # strong dispersion: full trim
    (0.3, 0.7),   # moderate
    (0.1, 0.4),   # low
)
CV_TRIM_FLOOR = 0.1  # very low dispersion


def _check_trim_percent(trim_percent: float, label: str = "trim_percent") -> None:
    if isinstance(trim_percent, bool) or not isinstance(trim_percent, (int, float)):
        raise ValueError(f"{label} must be a number in [0, 0.5)")
    if not (0 <= trim_percent < 0.5):
        raise ValueError(f"{label} must be in [0, 0.5), got {trim_percent}")


def mean_trimmed(values: Iterable[Any], trim_percent: float = 0.2) -> float:
    """
    Trimmed mean.

    Args:
        values: Model values (invalid entries are ignored)
        trim_percent: Fraction removed from EACH tail, in [0, 0.5)

    Returns:
        Mean of the central part. Falls back to the simple mean when there
        are two values or fewer, or when nothing would be trimmed.
    """
    _check_trim_percent(trim_percent)
    valid = require_valid(values)

    if valid.size <= 2:
        logger.debug("[mean_trimmed] Fewer than 3 values, using simple mean")
        return float(np.mean(valid))

    sorted_values = np.sort(valid)
    n = sorted_values.size
    trim_count = math.floor(n * trim_percent)

    if trim_count == 0:
        return float(np.mean(sorted_values))

    return float(np.mean(sorted_values[trim_count:n - trim_count]))


def adaptive_trimmed_mean(values: Iterable[Any], max_trim_percent: float = 0.3) -> float:
    """
    Trimmed mean whose trim fraction follows the ensemble dispersion.

    The coefficient of variation (std / |mean|) selects a band:
    > 0.5 -> max_trim_percent, > 0.3 -> 0.7x, > 0.1 -> 0.4x, else 0.1x.
    """
    _check_trim_percent(max_trim_percent, "max_trim_percent")
    valid = require_valid(values)

    if valid.size <= 2:
        return float(np.mean(valid))

    mean = float(np.mean(valid))
    std_dev = population_std(valid)
    if mean != 0:
        cv = std_dev / abs(mean)
    else:
        cv = math.inf if std_dev > 0 else 0.0

    trim_percent = max_trim_percent * CV_TRIM_FLOOR
    for lower_bound, share in CV_TRIM_BANDS:
        if cv > lower_bound:
            trim_percent = max_trim_percent * share
            break

    logger.debug(f"[adaptive_trimmed_mean] cv={cv:.3f} -> trim={trim_percent:.3f}")
    return mean_trimmed(valid, trim_percent)


def winsorized_mean(values: Iterable[Any], trim_percent: float = 0.2) -> float:
    """
    Winsorized mean: tail values are replaced by the cutoff values.

    Clamps the same count as mean_trimmed removes, floor(n * trim), on each
    side: the k lowest become sorted[k] and the k highest sorted[n - 1 - k].
    """
    _check_trim_percent(trim_percent)
    valid = require_valid(values)

    if valid.size <= 2:
        return float(np.mean(valid))

    sorted_values = np.sort(valid)
    n = sorted_values.size
    clamp_count = math.floor(n * trim_percent)

    if clamp_count == 0:
        return float(np.mean(sorted_values))

    winsorized = np.clip(sorted_values, sorted_values[clamp_count], sorted_values[n - 1 - clamp_count])
    return float(np.mean(winsorized))


def robust_trimmed_mean(values: Iterable[Any], iqr_multiplier: float = 1.5) -> float:
    """
    Mean after removing values outside [Q1 - k*IQR, Q3 + k*IQR].

    Q1/Q3 are read at sorted indices floor(0.25n) / floor(0.75n). If every
    value is fenced out, (Q1 + Q3) / 2 is returned.
    """
    valid = require_valid(values)

    if valid.size <= 2:
        return float(np.mean(valid))

    sorted_values = np.sort(valid)
    n = sorted_values.size
    q1 = float(sorted_values[math.floor(n * 0.25)])
    q3 = float(sorted_values[math.floor(n * 0.75)])
    iqr = q3 - q1

    lower_bound = q1 - iqr_multiplier * iqr
    upper_bound = q3 + iqr_multiplier * iqr
    kept = valid[(valid >= lower_bound) & (valid <= upper_bound)]

    if kept.size == 0:
        logger.warning("[robust_trimmed_mean] Every value outside the IQR fences, using (Q1+Q3)/2")
        return (q1 + q3) / 2

    removed = valid.size - kept.size
    if removed:
        logger.debug(f"[robust_trimmed_mean] Removed {removed} outlier(s) outside [{lower_bound:.2f}, {upper_bound:.2f}]")

    return float(np.mean(kept))
