"""
Wind Direction Consensus for NWP Consensus

Directions are circular: 350 and 10 degrees are 20 degrees apart, and
their mean is 0, not 180. Every computation therefore works on unit
vectors (cos, sin) and returns to degrees with atan2.

aggregate_wind_direction_gaussian:
1. Vector mean of all directions -> initial center
2. Gaussian weight per direction from its angular distance to the center
3. Vector mean of the weighted unit vectors -> consensus direction
"""

import logging
import math
from typing import Any, Iterable, Optional, Tuple

import numpy as np

from nwp_consensus.statistics import require_valid

logger = logging.getLogger(__name__)

DEFAULT_SIGMA_DEG = 30.0


def normalize_deg(deg: float) -> float:
    """Wrap an angle into [0, 360)."""
    d = math.fmod(deg, 360.0)
    if d < 0:
        d += 360.0
    # fmod of a tiny negative can land on 360 after the shift
    return 0.0 if d >= 360.0 else d


def angular_difference_deg(a: float, b: float) -> float:
    """
    Signed minimal difference a - b in (-180, 180].

    angular_difference_deg(350, 10) == -20
    """
    d = normalize_deg(a) - normalize_deg(b)
    d = math.fmod(d + 180.0, 360.0) - 180.0
    if d < -180.0:
        d += 360.0
    return 180.0 if d == -180.0 else d


def mean_vector(directions_deg: Iterable[float]) -> Tuple[float, float]:
    """
    Unweighted circular mean.

    Returns:
        (mean direction in [0, 360), mean resultant length R in [0, 1])
    """
    radians = np.deg2rad([normalize_deg(float(d)) for d in directions_deg])
    if radians.size == 0:
        raise ValueError("directions cannot be empty")
    x = float(np.sum(np.cos(radians)))
    y = float(np.sum(np.sin(radians)))
    mean_deg = normalize_deg(math.degrees(math.atan2(y, x)))
    resultant = math.hypot(x, y) / radians.size
    return mean_deg, resultant


def _resolve_sigma(sigma_deg: Any) -> float:
    if isinstance(sigma_deg, bool) or not isinstance(sigma_deg, (int, float)) or not sigma_deg > 0:
        return DEFAULT_SIGMA_DEG
    return float(sigma_deg)


def aggregate_wind_direction_gaussian(
    directions_deg: Iterable[Any],
    sigma_deg: Optional[float] = DEFAULT_SIGMA_DEG
) -> float:
    """
    Gaussian-weighted circular mean of wind directions.

    Args:
        directions_deg: Directions in degrees (invalid entries ignored)
        sigma_deg: Kernel width in degrees; missing or non-positive -> 30

    Returns:
        Consensus direction in [0, 360)

    Raises:
        ValueError: empty input or no valid direction
    """
    sigma = _resolve_sigma(sigma_deg)
    valid = [normalize_deg(d) for d in require_valid(directions_deg)]

    if len(valid) == 1:
        return valid[0]

    center, _ = mean_vector(valid)
    sigma_rad = math.radians(sigma)

    deltas = np.radians([abs(angular_difference_deg(d, center)) for d in valid])
    weights = np.exp(-0.5 * (deltas / sigma_rad) ** 2)

    radians = np.radians(valid)
    sum_x = float(np.sum(np.cos(radians) * weights))
    sum_y = float(np.sum(np.sin(radians) * weights))
    total_weight = float(np.sum(weights))

    if total_weight == 0 or (sum_x == 0 and sum_y == 0):
        logger.warning(f"[WindDirection] Degenerate weights for {valid}, using plain vector mean")
        return mean_vector(valid)[0]

    result = normalize_deg(math.degrees(math.atan2(sum_y, sum_x)))
    logger.debug(f"[WindDirection] center={center:.1f} sigma={sigma} -> {result:.1f}")
    return result
