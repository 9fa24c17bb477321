"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from engine_orchestration.config import (
    CacheConfig,
    ConsensusConfig,
    ConsensusWeighting,
    OrchestrationConfig,
    Settings,
)


class TestSettings:
    def test_defaults(self, sample_settings):
        assert sample_settings.environment == "dev"
        assert sample_settings.log_format == "json"
        assert sample_settings.orchestration.default_timeout_ms == 30000
        assert sample_settings.consensus.confidence_threshold == 85.0
        assert sample_settings.consensus.agreement_threshold == 0.8
        assert sample_settings.consensus.regression_threshold == 95.0
        assert sample_settings.consensus.weighting == ConsensusWeighting.MEAN_RELIABILITY
        assert sample_settings.cache.ttl_seconds == 3600
        assert sample_settings.cache.max_entries == 200
        assert sample_settings.aggregation.theme_min_engines == 2

    def test_environment_overrides(self, sample_settings, monkeypatch):
        monkeypatch.setenv("ENGINE_ORCH_ENVIRONMENT", "production")
        monkeypatch.setenv("ENGINE_ORCH_CONSENSUS__CONFIDENCE_THRESHOLD", "90")
        monkeypatch.setenv("ENGINE_ORCH_ORCHESTRATION__MAX_RETRIES", "2")

        settings = Settings()

        assert settings.environment == "production"
        assert settings.consensus.confidence_threshold == 90.0
        assert settings.orchestration.max_retries == 2

    def test_yaml_file(self, sample_settings, tmp_path):
        config_file = tmp_path / "engine-orch.yaml"
        config_file.write_text(
            "log_level: DEBUG\n"
            "consensus:\n"
            "  weighting: agreement_weighted\n"
            "cache:\n"
            "  ttl_seconds: 60\n",
            encoding="utf-8",
        )

        settings = Settings(_config_file=str(config_file))

        assert settings.log_level == "DEBUG"
        assert settings.consensus.weighting == ConsensusWeighting.AGREEMENT_WEIGHTED
        assert settings.cache.ttl_seconds == 60
        assert settings.cache.max_entries == 200

    def test_explicit_values_override_file(self, sample_settings, tmp_path):
        config_file = tmp_path / "engine-orch.yaml"
        config_file.write_text("environment: staging\n", encoding="utf-8")

        settings = Settings(_config_file=str(config_file), environment="test")

        assert settings.environment == "test"

    def test_missing_file_is_ignored(self, sample_settings, tmp_path):
        settings = Settings(_config_file=str(tmp_path / "absent.yaml"))
        assert settings.environment == "dev"


class TestConfigModels:
    def test_bounds(self):
        with pytest.raises(ValidationError):
            OrchestrationConfig(max_concurrent_engines=0)
        with pytest.raises(ValidationError):
            ConsensusConfig(agreement_threshold=1.5)
        with pytest.raises(ValidationError):
            CacheConfig(separator="")
