from __future__ import annotations

import os

import pytest

from engine_orchestration.config import OrchestrationConfig, Settings
from engine_orchestration.models import Contribution

from tests.helpers.factories import SampleInput, make_input


@pytest.fixture
def sample_input() -> SampleInput:
    """Input without the optional question field."""
    return make_input()


@pytest.fixture
def sample_input_with_question() -> SampleInput:
    return make_input(question="Will it rain?")


@pytest.fixture
def fast_config() -> OrchestrationConfig:
    """Orchestration config with short timeouts and no retry backoff."""
    return OrchestrationConfig(
        default_timeout_ms=1000,
        retry_backoff_base_seconds=0.0,
    )


@pytest.fixture
def sample_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    for key in list(os.environ):
        if key.startswith("ENGINE_ORCH_"):
            monkeypatch.delenv(key, raising=False)
    return Settings()


@pytest.fixture
def growth_contribution() -> Contribution:
    return Contribution(category="growth", message="steady progress", weight=1.0)
