"""
Tests for Wind Direction Consensus

These tests verify that:
1. Angles wrap into [0, 360) and differences into (-180, 180]
2. Directions straddling north average near 0, not 180
3. Outlying directions are down-weighted by the gaussian kernel
4. Empty / invalid input raises ValueError; a bad sigma falls back to 30

Run with: python -m pytest tests/test_wind.py -v
"""

import logging
import math
import sys
from pathlib import Path

import pytest

# Configure test logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

sys.path.insert(0, str(Path(__file__).parent.parent))

from nwp_consensus.wind import (
    aggregate_wind_direction_gaussian,
    angular_difference_deg,
    mean_vector,
    normalize_deg,
)


class TestAngles:
    """normalize_deg / angular_difference_deg / mean_vector"""

    @pytest.mark.parametrize("deg,expected", [(-10, 350), (720, 0), (360, 0), (45.5, 45.5), (-370, 350)])
    def test_normalize(self, deg, expected):
        assert normalize_deg(deg) == pytest.approx(expected)

    @pytest.mark.parametrize("a,b,expected", [
        (350, 10, -20), (10, 350, 20), (180, 0, 180), (0, 180, 180), (90, 90, 0),
    ])
    def test_difference(self, a, b, expected):
        assert angular_difference_deg(a, b) == pytest.approx(expected)

    def test_mean_vector(self):
        deg, resultant = mean_vector([0, 90])
        assert deg == pytest.approx(45.0)
        assert resultant == pytest.approx(math.sqrt(2) / 2)

    def test_mean_vector_empty(self):
        with pytest.raises(ValueError):
            mean_vector([])


class TestDirectionConsensus:
    """aggregate_wind_direction_gaussian"""

    def test_wraps_through_north(self):
        logger.info("[TEST] Testing 350/10 average...")
        result = aggregate_wind_direction_gaussian([350, 10])
        logger.info(f"[TEST] Result: {result}")
        assert abs(angular_difference_deg(result, 0)) < 1e-6, f"Expected ~0, got {result}"
        assert 0 <= result < 360
        logger.info("[TEST] North wrap PASSED")

    def test_single_direction(self):
        assert aggregate_wind_direction_gaussian([370]) == pytest.approx(10.0)

    def test_outlier_downweighted(self):
        result = aggregate_wind_direction_gaussian([10, 12, 14, 200], sigma_deg=30)
        plain, _ = mean_vector([10, 12, 14, 200])
        assert abs(angular_difference_deg(result, 12)) < 1.0
        assert abs(angular_difference_deg(plain, 12)) > abs(angular_difference_deg(result, 12))

    def test_invalid_entries_ignored(self):
        assert aggregate_wind_direction_gaussian([None, 90, float("nan")]) == pytest.approx(90.0)

    @pytest.mark.parametrize("directions", [[], [None], None])
    def test_no_valid_direction_raises(self, directions):
        with pytest.raises(ValueError):
            aggregate_wind_direction_gaussian(directions)

    @pytest.mark.parametrize("sigma", [0, -5, None])
    def test_bad_sigma_uses_default(self, sigma):
        directions = [20, 40, 100]
        assert aggregate_wind_direction_gaussian(directions, sigma) == pytest.approx(
            aggregate_wind_direction_gaussian(directions, 30.0)
        )

    def test_result_in_range(self):
        for directions in ([359, 1, 358], [180, 181, 179], [0, 120, 240, 10], [90, 270, 91]):
            result = aggregate_wind_direction_gaussian(directions)
            assert 0 <= result < 360
