"""Tests for run configuration loading and validation."""

import json
import os
import tempfile

import pytest

from ratelimit_probe.loader import build_config, load_config
from ratelimit_probe.models import ConfigurationError, LoadStage, ThresholdSpec


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "..", "fixtures")


def _write_json(data):
    f = tempfile.NamedTemporaryFile(suffix=".json", mode="w", delete=False)
    json.dump(data, f)
    f.close()
    return f.name


class TestLoadConfig:
    def test_load_valid_yaml(self):
        config = load_config(os.path.join(FIXTURES_DIR, "run-config.yaml"))
        assert config.tier == "STANDARD"
        assert config.tiers["ENTERPRISE"] == 5000
        assert config.tiers["BASIC"] == 60
        assert config.extra_requests == 20
        assert config.tolerance.success == 3
        assert config.tolerance.rejection_min == 10
        assert config.tolerance.max_unexpected_errors == 2
        assert config.accuracy_threshold == 98.5
        assert config.retry_header == "X-Retry-After"
        assert config.thresholds == [
            ThresholdSpec("false_admit", "==", 0.0),
            ThresholdSpec("unexpected_errors", "<=", 1.0),
        ]

    def test_load_valid_json(self):
        config = load_config(os.path.join(FIXTURES_DIR, "run-config.json"))
        assert config.tier == "BASIC"
        assert config.extra_requests == 10
        assert config.tolerance.success == 5
        assert config.stages == []

    def test_load_spike_profile(self):
        config = load_config(os.path.join(FIXTURES_DIR, "spike-profile.yaml"))
        assert config.stages[1] == LoadStage(30.0, 500, "spike")
        assert len(config.thresholds) == 2

    def test_empty_yaml_gives_defaults(self):
        with tempfile.NamedTemporaryFile(suffix=".yaml", mode="w", delete=False) as f:
            f.write("")
        try:
            config = load_config(f.name)
            assert config.tier == "BASIC"
            assert config.accuracy_threshold == 99.0
            assert config.retry_header == "Retry-After"
        finally:
            os.unlink(f.name)


class TestConfigValidation:
    def test_missing_file(self):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config("/nonexistent/config.yaml")

    def test_unsupported_extension(self):
        with tempfile.NamedTemporaryFile(suffix=".txt", delete=False) as f:
            f.write(b"tier: BASIC")
        try:
            with pytest.raises(ConfigurationError, match="unsupported"):
                load_config(f.name)
        finally:
            os.unlink(f.name)

    def test_invalid_json_content(self):
        with tempfile.NamedTemporaryFile(suffix=".json", mode="w", delete=False) as f:
            f.write("{bad json")
        try:
            with pytest.raises(ConfigurationError, match="parse"):
                load_config(f.name)
        finally:
            os.unlink(f.name)

    def test_non_mapping_top_level(self):
        path = _write_json([1, 2, 3])
        try:
            with pytest.raises(ConfigurationError, match="mapping"):
                load_config(path)
        finally:
            os.unlink(path)

    def test_unknown_tier(self):
        with pytest.raises(ConfigurationError, match="unknown tier"):
            build_config({"tier": "GOLD"})

    def test_non_positive_quota(self):
        with pytest.raises(ConfigurationError, match="positive integer quota"):
            build_config({"tiers": {"BASIC": 0}})

    def test_zero_duration_stage(self):
        with pytest.raises(ConfigurationError, match="duration must be positive"):
            build_config({"stages": [{"duration": 0, "target": 10}]})

    def test_malformed_threshold(self):
        with pytest.raises(ConfigurationError, match="thresholds\\[1\\]"):
            build_config({"thresholds": ["errors < 0.01", "errors <<< 1"]})

    def test_extra_requests_below_rejection_min(self):
        with pytest.raises(ConfigurationError, match="rejection_min"):
            build_config({"extra_requests": 3})

    def test_extra_requests_equal_to_rejection_min(self):
        config = build_config({"extra_requests": 4, "tolerance": {"rejection_min": 4}})
        assert config.extra_requests == 4

    def test_errors_are_collected(self):
        with pytest.raises(ConfigurationError) as excinfo:
            build_config({
                "extra_requests": 0,
                "accuracy_threshold": "high",
                "tolerance": {"success": -1},
            })
        message = str(excinfo.value)
        assert "extra_requests" in message
        assert "accuracy_threshold" in message
        assert "tolerance.success" in message
