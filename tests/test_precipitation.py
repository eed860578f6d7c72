"""
Tests for Precipitation Consensus

These tests verify that:
1. Only wet models (mm above the threshold) feed the amount
2. All-dry hours give mm_agg=0, CI=0, IQR=0 and an empty wet list
3. CI and IQR are computed on the raw wet amounts
4. PoP always lands in [0, 100] and decays with the forecast day

Run with: python -m pytest tests/test_precipitation.py -v
"""

import logging
import sys
from pathlib import Path

import pytest

# Configure test logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

sys.path.insert(0, str(Path(__file__).parent.parent))

from nwp_consensus.config import PrecipitationConfig
from nwp_consensus.precipitation import aggregate_precip_mm, compute_pop
from nwp_consensus.weighted import ModelSample


def samples(*amounts):
    return [{"model": f"m{i}", "mm": mm} for i, mm in enumerate(amounts)]


class TestPrecipAmount:
    """aggregate_precip_mm"""

    def test_all_dry(self):
        logger.info("[TEST] Testing all-dry hour...")
        result = aggregate_precip_mm(samples(0, 0.0, None))
        assert result.mm_agg == 0.0
        assert result.ci == 0
        assert result.iqr == 0.0
        assert result.wet_models == []
        assert result.to_dict() == {"mm_agg": 0.0, "mouillant": [], "CI": 0, "IQR": 0.0}
        logger.info("[TEST] All-dry PASSED")

    def test_none_input_rejected(self):
        with pytest.raises(ValueError):
            aggregate_precip_mm(None)

    def test_agreeing_models(self):
        result = aggregate_precip_mm(samples(1.0, 1.0, 1.0))
        assert result.mm_agg == pytest.approx(1.0)
        assert result.ci == 100
        assert result.iqr == 0.0
        assert result.wet_count == 3

    def test_ci_and_iqr_from_raw_amounts(self):
        # median 1.0, band [0.8, 1.2] holds 3 of 4
        result = aggregate_precip_mm(samples(1.0, 1.0, 1.0, 2.0, 0.0))
        assert result.ci == 75
        assert result.iqr == pytest.approx(0.25)
        assert result.mm_agg == pytest.approx(1.0, abs=1e-4), "the 2.0 outlier is nearly ignored"

    def test_log_transform(self):
        config = PrecipitationConfig(use_log_transform=True)
        result = aggregate_precip_mm(samples(2.0, 2.0), config)
        assert result.mm_agg == pytest.approx(2.0)

    def test_wet_threshold(self):
        config = PrecipitationConfig(wet_threshold_mm=0.5)
        result = aggregate_precip_mm(samples(0.4, 1.0), config)
        assert [w["mm"] for w in result.wet_models] == [1.0]

    def test_model_labels(self):
        result = aggregate_precip_mm([
            {"short": "AROME", "model": "meteofrance_arome_france", "mm": 0.6},
            ModelSample("gfs_global", 0.8),
        ])
        assert [w["model"] for w in result.wet_models] == ["AROME", "gfs_global"]

    @pytest.mark.parametrize("log", [False, True])
    def test_never_negative(self, log):
        config = PrecipitationConfig(use_log_transform=log)
        for amounts in [(0.01, 0.02), (0.1, 5.0, 0.3), (12.0,), (0.001, 0.001)]:
            assert aggregate_precip_mm(samples(*amounts), config).mm_agg >= 0.0


class TestPop:
    """compute_pop"""

    def test_dry_hour_is_zero(self):
        assert compute_pop(10, 0, 0.0, 0) == 0

    def test_no_models(self):
        assert compute_pop(0, 0, 0.0, 0) == 0

    def test_all_wet_heavy_rain(self):
        assert compute_pop(10, 10, 5.0, 0) == 100

    def test_decays_with_forecast_day(self):
        near = compute_pop(10, 5, 0.3, 0)
        far = compute_pop(10, 5, 0.3, 240)
        logger.info(f"[TEST] PoP day 0: {near}, day 10: {far}")
        assert near == 40
        assert far < near

    def test_always_in_range(self):
        for total in (0, 1, 5, 10):
            for wet in range(0, total + 1):
                for mm in (0.0, 0.05, 0.3, 1.0, 3.0, 50.0):
                    for hour in (0, 23, 24, 200, 2000, 10_000):
                        pop = compute_pop(total, wet, mm, hour)
                        assert 0 <= pop <= 100, f"PoP {pop} out of range for {total}/{wet}/{mm}/{hour}"
