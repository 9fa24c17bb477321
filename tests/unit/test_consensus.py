"""Tests for consensus validation."""

from unittest.mock import Mock

import pytest

from engine_orchestration.config import ConsensusConfig, ConsensusWeighting
from engine_orchestration.consensus import (
    DISCREPANCY_RECOMMENDATION,
    HIGH_CONFIDENCE_RECOMMENDATION,
    RECOMMENDATION_TIERS,
    ConsensusValidator,
    ValidationVariant,
    build_recommendations,
)
from engine_orchestration.errors import InvalidRequestError
from engine_orchestration.metrics import OrchestrationMetricsCollector
from engine_orchestration.models import DiscrepancyKind, RegressionCase, ValidationSource

from tests.helpers.factories import make_sources


def _four_of_five():
    agreeing = [
        ValidationSource(name=f"agree-{i}", reliability=0.225, value="X") for i in range(4)
    ]
    return agreeing + [ValidationSource(name="dissent", reliability=0.1, value="Y")]


class _Variant(ValidationVariant):
    def __init__(self, name, value=None, reliability=0.9, exc=None):
        self.name = name
        self._value = value
        self._reliability = reliability
        self._exc = exc

    def compute(self, value_input):
        if self._exc is not None:
            raise self._exc
        return self._value, self._reliability


class TestValidate:
    def test_unanimous_high_reliability_is_valid(self):
        report = ConsensusValidator().validate(make_sources(["X"] * 5, reliability=1.0))

        assert report.confidence == pytest.approx(100.0)
        assert report.is_valid is True
        assert report.consensus_value == "X"
        assert report.consensus_ratio == 1.0
        assert report.discrepancies == []
        assert report.recommendations == [HIGH_CONFIDENCE_RECOMMENDATION]

    def test_mean_reliability_formula(self):
        sources = make_sources(["X", "X", "X", "X", "Y"], reliability=0.9)

        report = ConsensusValidator().validate(sources)

        assert report.confidence == pytest.approx(0.9 * 0.8 * 100)
        assert report.is_valid is False
        # 0.8 is not below the agreement threshold
        assert report.discrepancies == []

    def test_four_of_five_agreement_weighted_is_valid(self):
        config = ConsensusConfig(weighting=ConsensusWeighting.AGREEMENT_WEIGHTED)

        report = ConsensusValidator(config).validate(_four_of_five())

        assert report.confidence >= 85
        assert report.confidence == pytest.approx(90.0)
        assert report.is_valid is True
        assert report.consensus_value == "X"

    def test_four_of_five_mean_reliability_is_scaled_by_source_count(self):
        report = ConsensusValidator().validate(_four_of_five())

        assert report.confidence == pytest.approx(0.2 * 0.8 * 100)
        assert report.is_valid is False

    @pytest.mark.parametrize("weighting", list(ConsensusWeighting))
    def test_three_two_split_reports_discrepancy(self, weighting):
        sources = make_sources(["X", "X", "X", "Y", "Y"], reliability=0.9)

        report = ConsensusValidator(ConsensusConfig(weighting=weighting)).validate(sources)

        assert report.confidence < 85
        assert report.is_valid is False
        assert len(report.discrepancies) == 1
        discrepancy = report.discrepancies[0]
        assert discrepancy.kind == DiscrepancyKind.LOW_AGREEMENT
        assert "60.0%" in discrepancy.description
        assert discrepancy.sources == ["source-3", "source-4"]
        assert DISCREPANCY_RECOMMENDATION in report.recommendations

    def test_mode_tie_goes_to_first_value(self):
        report = ConsensusValidator().validate(make_sources(["Y", "X", "X", "Y"]))
        assert report.consensus_value == "Y"

    def test_unhashable_values(self):
        report = ConsensusValidator().validate(
            make_sources([{"star": 3}, [1, 2], {"star": 3}])
        )
        assert report.consensus_value == {"star": 3}
        assert report.consensus_ratio == pytest.approx(2 / 3)

    def test_thresholds_are_configurable(self):
        config = ConsensusConfig(confidence_threshold=50.0)
        report = ConsensusValidator(config).validate(make_sources(["X"] * 3, reliability=0.6))
        assert report.is_valid is True

    def test_confidence_is_reported_as_whole_percentage(self):
        report = ConsensusValidator().validate(make_sources(["X"], reliability=0.873))

        assert report.confidence == 87.0
        assert report.is_valid is True

    def test_confidence_rounds_half_up(self):
        report = ConsensusValidator().validate(make_sources(["X"], reliability=0.125))
        assert report.confidence == 13.0

    def test_validity_uses_unrounded_score(self):
        report = ConsensusValidator().validate(make_sources(["X"], reliability=0.846))

        # 84.6 reports as 85 but stays below the 85 threshold
        assert report.confidence == 85.0
        assert report.is_valid is False
        assert report.recommendations == [RECOMMENDATION_TIERS[1][1]]

    def test_empty_sources_raise(self):
        with pytest.raises(InvalidRequestError):
            ConsensusValidator().validate([])

    def test_sources_are_listed(self):
        report = ConsensusValidator().validate(make_sources(["X", "X"]))
        assert report.sources == ["source-0", "source-1"]

    def test_metrics_recorded(self):
        metrics = Mock(spec=OrchestrationMetricsCollector)
        ConsensusValidator(metrics=metrics).validate(make_sources(["X"], reliability=1.0))
        metrics.record_consensus.assert_called_once_with(pytest.approx(100.0), True)


class TestRecommendations:
    @pytest.mark.parametrize(
        "confidence,expected_prefix",
        [
            (10.0, "Fundamental review"),
            (69.9, "Fundamental review"),
            (70.0, "Consider adjusting"),
            (84.9, "Consider adjusting"),
            (85.0, "Improve precision"),
            (95.0, "Maintain"),
        ],
    )
    def test_tiers(self, confidence, expected_prefix):
        recommendations = build_recommendations(confidence, False)
        assert len(recommendations) == 1
        assert recommendations[0].startswith(expected_prefix)

    def test_discrepancies_add_recommendation(self):
        assert build_recommendations(99.0, True)[-1] == DISCREPANCY_RECOMMENDATION


class TestRegression:
    def test_all_cases_pass(self):
        cases = [RegressionCase(name=f"case-{i}", input=i, expected=i * 2) for i in range(5)]

        report = ConsensusValidator().run_regression_tests(cases, lambda x: x * 2)

        assert report.confidence == 100.0
        assert report.is_valid is True
        assert report.discrepancies == []

    def test_mismatch_carries_expected_and_actual(self):
        cases = [RegressionCase(name=f"case-{i}", input=i, expected=i) for i in range(20)]

        report = ConsensusValidator().run_regression_tests(
            cases, lambda x: -1 if x == 7 else x
        )

        assert report.confidence == pytest.approx(95.0)
        assert report.is_valid is True
        assert len(report.discrepancies) == 1
        discrepancy = report.discrepancies[0]
        assert discrepancy.kind == DiscrepancyKind.REGRESSION_MISMATCH
        assert discrepancy.expected == 7
        assert discrepancy.actual == -1
        assert discrepancy.sources == ["case-7"]

    def test_below_threshold_is_invalid(self):
        cases = [RegressionCase(name=f"case-{i}", input=i, expected=i) for i in range(10)]

        report = ConsensusValidator().run_regression_tests(cases, lambda x: 0)

        assert report.confidence == pytest.approx(10.0)
        assert report.is_valid is False
        assert len(report.discrepancies) == 9

    def test_implementation_error_is_a_mismatch(self):
        def explode(_):
            raise ValueError("no table entry")

        report = ConsensusValidator().run_regression_tests(
            [RegressionCase(name="only", input=1, expected=1)], explode
        )

        assert report.confidence == 0.0
        assert report.discrepancies[0].actual is None
        assert "ValueError" in report.discrepancies[0].description

    def test_empty_cases_raise(self):
        with pytest.raises(InvalidRequestError):
            ConsensusValidator().run_regression_tests([], lambda x: x)


class TestCrossValidate:
    def test_variants_become_sources(self):
        variants = [_Variant("a", 5, 1.0), _Variant("b", 5, 1.0), _Variant("c", 5, 1.0)]

        report = ConsensusValidator().cross_validate({"year": 1990}, variants)

        assert report.sources == ["a", "b", "c"]
        assert report.consensus_value == 5
        assert report.is_valid is True

    def test_failing_variant_is_reported(self):
        variants = [
            _Variant("a", 5, 1.0),
            _Variant("b", 5, 1.0),
            _Variant("broken", exc=RuntimeError("table missing")),
        ]

        report = ConsensusValidator().cross_validate(None, variants)

        assert report.sources == ["a", "b"]
        kinds = [d.kind for d in report.discrepancies]
        assert kinds == [DiscrepancyKind.SOURCE_FAILED]
        assert report.discrepancies[0].sources == ["broken"]

    def test_out_of_range_reliability_counts_as_failure(self):
        variants = [_Variant("a", 5, 1.0), _Variant("overconfident", 5, 1.5)]

        report = ConsensusValidator().cross_validate(None, variants)

        assert report.sources == ["a"]
        assert report.discrepancies[0].kind == DiscrepancyKind.SOURCE_FAILED

    def test_all_variants_failing(self):
        variants = [_Variant("x", exc=RuntimeError()), _Variant("y", exc=KeyError("k"))]

        report = ConsensusValidator().cross_validate(None, variants)

        assert report.confidence == 0.0
        assert report.is_valid is False
        assert len(report.discrepancies) == 2

    def test_no_variants_raise(self):
        with pytest.raises(InvalidRequestError):
            ConsensusValidator().cross_validate(None, [])
