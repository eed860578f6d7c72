"""
Gaussian-Weighted Means for NWP Consensus

Each model value gets a weight exp(-0.5 * ((x - center) / sigma)^2), so
values close to the ensemble median dominate and outliers fade out
smoothly instead of being cut.

Variants differ in how sigma (and the center) are chosen:
- gaussian_weighted:             fixed sigma, centered on the median
- adaptive_gaussian_weighted:    sigma = std * multiplier (floor 0.1)
- robust_gaussian_weighted:      sigma = MAD * 1.4826 (floor 0.1)
- mixture_gaussian_weighted:     k centers, weight = max of the k kernels
- constrained_gaussian_weighted: values beyond max_deviation * sigma dropped first
"""

import logging
import math
from typing import Any, Iterable, List, Optional

import numpy as np

from nwp_consensus.statistics import (
    median_of_sorted,
    median_absolute_deviation,
    population_std,
    require_valid,
)

logger = logging.getLogger(__name__)

MIN_SIGMA = 0.1
MAD_TO_SIGMA = 1.4826


def gaussian_weights(values: np.ndarray, center: float, sigma: float) -> np.ndarray:
    """Unnormalized gaussian kernel weights around `center`."""
    return np.exp(-0.5 * ((values - center) / sigma) ** 2)


def _check_sigma(sigma: Any) -> None:
    if isinstance(sigma, bool) or not isinstance(sigma, (int, float)) or not sigma > 0:
        raise ValueError(f"sigma must be a positive number, got {sigma!r}")


def _weighted_mean(values: np.ndarray, weights: np.ndarray) -> float:
    total_weight = float(np.sum(weights))
    if total_weight == 0:
        raise ValueError("gaussian weights sum to zero")
    return float(np.sum(values * weights) / total_weight)


def gaussian_weighted(values: Iterable[Any], sigma: float = 1.0) -> float:
    """
    Gaussian-weighted mean centered on the median.

    Args:
        values: Model values (invalid entries are ignored)
        sigma: Kernel width, must be > 0

    Returns:
        Weighted mean; a single valid value is returned unchanged.
    """
    _check_sigma(sigma)
    valid = require_valid(values)

    if valid.size == 1:
        return float(valid[0])

    center = median_of_sorted(np.sort(valid))
    weights = gaussian_weights(valid, center, sigma)
    return _weighted_mean(valid, weights)


def adaptive_gaussian_weighted(values: Iterable[Any], sigma_multiplier: float = 1.0) -> float:
    """Gaussian-weighted mean with sigma taken from the ensemble spread."""
    valid = require_valid(values)

    if valid.size == 1:
        return float(valid[0])

    sigma = max(population_std(valid) * sigma_multiplier, MIN_SIGMA)
    return gaussian_weighted(valid, sigma)


def robust_gaussian_weighted(values: Iterable[Any], mad_multiplier: float = MAD_TO_SIGMA) -> float:
    """Gaussian-weighted mean with sigma estimated from the MAD."""
    valid = require_valid(values)

    if valid.size == 1:
        return float(valid[0])

    sigma = max(median_absolute_deviation(valid) * mad_multiplier, MIN_SIGMA)
    return gaussian_weighted(valid, sigma)


def mixture_gaussian_weighted(
    values: Iterable[Any],
    num_gaussians: int = 2,
    sigma: Optional[float] = None
) -> float:
    """
    Max-pooled multimodal gaussian weighting.

    The sorted values are cut into `num_gaussians` equal groups (the last
    group takes the remainder); each group mean is a kernel center. A value's
    weight is the largest of its kernel responses. Without an explicit sigma,
    sigma = max(std / num_gaussians, 0.1).
    """
    if num_gaussians < 1:
        raise ValueError("num_gaussians must be >= 1")
    valid = require_valid(values)

    if valid.size <= num_gaussians:
        return gaussian_weighted(valid, sigma if sigma is not None else 1.0)

    sorted_values = np.sort(valid)
    group_size = sorted_values.size // num_gaussians
    centers: List[float] = []
    for i in range(num_gaussians):
        start = i * group_size
        end = sorted_values.size if i == num_gaussians - 1 else (i + 1) * group_size
        centers.append(float(np.mean(sorted_values[start:end])))

    if sigma is None:
        sigma = max(population_std(valid) / num_gaussians, MIN_SIGMA)
    _check_sigma(sigma)

    kernels = np.vstack([gaussian_weights(valid, c, sigma) for c in centers])
    weights = kernels.max(axis=0)

    logger.debug(f"[mixture_gaussian_weighted] centers={[round(c, 3) for c in centers]} sigma={sigma:.3f}")
    return _weighted_mean(valid, weights)


def constrained_gaussian_weighted(
    values: Iterable[Any],
    sigma: float = 1.0,
    max_deviation: float = 3.0
) -> float:
    """
    Gaussian-weighted mean after dropping values farther than
    max_deviation * sigma from the median.

    When nothing survives the constraint the median itself is returned.
    """
    _check_sigma(sigma)
    valid = require_valid(values)

    if valid.size == 1:
        return float(valid[0])

    center = median_of_sorted(np.sort(valid))
    kept = valid[np.abs(valid - center) <= max_deviation * sigma]

    if kept.size == 0:
        logger.warning("[constrained_gaussian_weighted] No value within constraint, using median")
        return center

    return gaussian_weighted(kept, sigma)


def gaussian_pdf(x: float, mu: float = 0.0, sigma: float = 1.0) -> float:
    """Normal probability density at x."""
    _check_sigma(sigma)
    coefficient = 1 / (sigma * math.sqrt(2 * math.pi))
    return coefficient * math.exp(-0.5 * ((x - mu) / sigma) ** 2)
