"""
Tests for Configuration Loading and Failure Isolation

These tests verify that:
1. The shipped config directory loads into one ParameterConfig per parameter
2. Malformed configs (unknown algorithm, overlapping groups, bad JSON) raise ConfigError
3. NWP_CONSENSUS_CONFIG_DIR selects the config directory
4. Failed aggregation calls are categorized and replaced by their fallback
5. Configuration errors are never swallowed by the isolation layer

Run with: python -m pytest tests/test_config.py -v
"""

import json
import logging
import sys
from pathlib import Path

import pytest

# Configure test logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

sys.path.insert(0, str(Path(__file__).parent.parent))

from nwp_consensus.config import (
    ConfigError,
    ModelConfig,
    ParameterFamily,
    ScalarAlgorithm,
    SeverityGroup,
    WindConfig,
    WmoAlgorithm,
    WmoConfig,
    get_config_dir,
    load_config_dir,
    load_parameter_config,
    parse_parameter_config,
)
from nwp_consensus.isolation import (
    ErrorType,
    categorize_error,
    run_isolated,
    with_fallback,
)

CONFIG_DIR = Path(__file__).parent.parent / "config"


class TestShippedConfigs:
    """The JSON files under config/."""

    def test_all_parameters_load(self):
        logger.info(f"[TEST] Loading {CONFIG_DIR}...")
        configs = load_config_dir(CONFIG_DIR)
        assert set(configs) == {
            "weather_code", "precipitation", "wind",
            "temperature", "temperature_apparent", "humidity",
        }
        logger.info("[TEST] Shipped configs PASSED")

    def test_weather_code_config(self):
        cfg = load_config_dir(CONFIG_DIR)["weather_code"]
        assert cfg.family is ParameterFamily.WEATHER_CODE
        assert cfg.wmo.algorithm is WmoAlgorithm.SMART_BARY
        assert len(cfg.wmo.severity_groups) == 9

    def test_disabled_model_filtered(self):
        cfg = load_config_dir(CONFIG_DIR)["precipitation"]
        keys = [m.key for m in cfg.enabled_models]
        assert "dmi_harmonie_arome_europe" not in keys
        assert len(keys) == len(cfg.models) - 1
        assert cfg.precipitation.use_log_transform

    def test_wind_api_parameters(self):
        cfg = load_config_dir(CONFIG_DIR)["wind"]
        assert cfg.wind_api_parameters["direction"] == "wind_direction_10m"
        assert cfg.wind.sigma_direction_deg == 30


class TestParsing:
    """parse_parameter_config / load_parameter_config"""

    @pytest.fixture
    def raw_wmo(self):
        return {
            "parameter": "weather_code",
            "family": "weather_code",
            "algorithm": "smart_bary",
            "algorithm_params": {"dynamicThresholdBase": 60},
            "models": {"gfs_global": {"forecast_hours": [0, 240], "short": "GFS"}},
        }

    def test_alias_and_defaults(self, raw_wmo):
        cfg = parse_parameter_config(raw_wmo)
        assert cfg.wmo.algorithm is WmoAlgorithm.SMART_BARY
        assert cfg.wmo.dynamic_threshold_base == 60.0
        assert cfg.api_parameter == "weather_code"
        assert cfg.models[0].label == "GFS"

    def test_unknown_algorithm(self, raw_wmo):
        raw_wmo["algorithm"] = "bogus"
        with pytest.raises(ConfigError, match="Unknown WMO algorithm"):
            parse_parameter_config(raw_wmo)

    def test_overlapping_groups(self, raw_wmo):
        raw_wmo["algorithm_params"]["severityGroups"] = {
            "a": {"codes": [0, 1], "severity": 1},
            "b": {"codes": [1, 2], "severity": 2},
        }
        with pytest.raises(ConfigError, match="appears in both"):
            parse_parameter_config(raw_wmo)

    def test_empty_group_rejected(self):
        with pytest.raises(ConfigError):
            WmoConfig(severity_groups=(SeverityGroup("a", (), 1),))

    def test_missing_parameter(self, raw_wmo):
        del raw_wmo["parameter"]
        with pytest.raises(ConfigError):
            parse_parameter_config(raw_wmo)

    def test_wind_requires_api_parameters(self):
        with pytest.raises(ConfigError, match="api_parameters"):
            parse_parameter_config({"parameter": "wind", "family": "wind", "api_parameters": {"speed": "x"}})

    def test_bad_sigma(self):
        with pytest.raises(ConfigError):
            WindConfig(sigma_direction_deg=0)

    def test_scalar_algorithm(self):
        cfg = parse_parameter_config({
            "parameter": "humidity",
            "api_parameter": "relative_humidity_2m",
            "algorithm": "mean_trimmed",
            "algorithm_params": {"trimPercent": 0.1},
        })
        assert cfg.family is ParameterFamily.SCALAR
        assert cfg.scalar.algorithm is ScalarAlgorithm.TRIMMED
        assert cfg.scalar.trim_percent == 0.1

        with pytest.raises(ConfigError):
            parse_parameter_config({"parameter": "x", "algorithm": "nope"})

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="invalid JSON"):
            load_parameter_config(path)

    def test_duplicate_parameter(self, tmp_path, raw_wmo):
        for name in ("a.json", "b.json"):
            (tmp_path / name).write_text(json.dumps(raw_wmo), encoding="utf-8")
        with pytest.raises(ConfigError, match="defined twice"):
            load_config_dir(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config_dir(tmp_path / "nope")

    def test_config_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NWP_CONSENSUS_CONFIG_DIR", str(tmp_path))
        assert get_config_dir() == tmp_path

    def test_model_coverage(self):
        model = ModelConfig("icon_d2", forecast_hours=(0, 48))
        assert model.covers(0)
        assert model.covers(48)
        assert not model.covers(49)
        assert model.label == "icon_d2"


class TestIsolation:
    """run_isolated / with_fallback / categorize_error"""

    @pytest.mark.parametrize("error,expected", [
        (ConfigError("bad"), ErrorType.CONFIG_ERROR),
        (ValueError("no valid value found in input"), ErrorType.DEGENERATE),
        (ValueError("weights sum to zero"), ErrorType.DEGENERATE),
        (ZeroDivisionError("division by zero"), ErrorType.DEGENERATE),
        (ValueError("sigma must be a positive number"), ErrorType.INPUT_ERROR),
        (KeyError("x"), ErrorType.INPUT_ERROR),
        (RuntimeError("boom"), ErrorType.UNKNOWN),
    ])
    def test_categorize(self, error, expected):
        error_type, _ = categorize_error(error)
        assert error_type is expected

    def test_fallback_used(self):
        def broken(values):
            raise ValueError("no valid value found in input")

        outcome = run_isolated(broken, [1, 2], fallback=lambda values: -1, label="Test")
        assert outcome.value == -1
        assert outcome.fallback_used
        assert outcome.error_type is ErrorType.DEGENERATE

    def test_success_passes_through(self):
        outcome = run_isolated(sum, [1, 2])
        assert outcome.value == 3
        assert not outcome.fallback_used
        assert outcome.error is None

    def test_fallback_failure_gives_none(self, caplog):
        def broken(values):
            raise ValueError("bad")

        with caplog.at_level(logging.ERROR):
            outcome = run_isolated(broken, [1], fallback=broken)
        assert outcome.value is None
        assert "Fallback failed" in caplog.text

    def test_config_error_propagates(self):
        def misconfigured():
            raise ConfigError("unknown algorithm")

        with pytest.raises(ConfigError):
            run_isolated(misconfigured, fallback=lambda: 0)

    def test_decorator(self):
        @with_fallback(fallback=lambda values: 0.0, label="Test")
        def aggregate(values):
            return 1 / len(values)

        assert aggregate([1, 2]) == 0.5
        assert aggregate([]) == 0.0
        assert aggregate.__name__ == "aggregate"
