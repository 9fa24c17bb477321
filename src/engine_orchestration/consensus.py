"""Multi-source consensus validation.

Several independent algorithm variants ("sources") compute the same value.
The validator finds the most common answer, weighs the sources' reliability
into a 0-100 confidence score and reports disagreements as informational
discrepancies. A regression mode checks one deterministic implementation
against a table of known cases.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .config import ConsensusConfig, ConsensusWeighting
from .errors import InvalidRequestError
from .logging import get_logger
from .metrics import OrchestrationMetricsCollector
from .models import (
    ConsensusReport,
    Discrepancy,
    DiscrepancyKind,
    RegressionCase,
    ValidationSource,
)

logger = get_logger(__name__)

# (upper bound, recommendation); the last tier applies at or above 95
RECOMMENDATION_TIERS: Tuple[Tuple[float, str], ...] = (
    (70.0, "Fundamental review of the calculation algorithm is required"),
    (85.0, "Consider adjusting parts of the calculation"),
    (95.0, "Improve precision of boundary and edge-case inputs"),
)
HIGH_CONFIDENCE_RECOMMENDATION = "Maintain the current high-precision calculation"
DISCREPANCY_RECOMMENDATION = "Verify each discrepant item individually"


class ValidationVariant(ABC):
    """One algorithm variant taking part in cross-validation."""

    name: str = ""
    algorithm: Optional[str] = None

    @abstractmethod
    def compute(self, value_input: Any) -> Tuple[Any, float]:
        """Return ``(value, reliability)`` for ``value_input``; may raise."""


def _mode(values: Sequence[Any]) -> Tuple[Any, int]:
    """Most common value by equality; ties go to the value seen first.

    Values need not be hashable, so grouping is a linear scan.
    """

    groups: List[List[Any]] = []
    for value in values:
        for group in groups:
            if group[0] == value:
                group.append(value)
                break
        else:
            groups.append([value])
    best = groups[0]
    for group in groups[1:]:
        if len(group) > len(best):
            best = group
    return best[0], len(best)


def build_recommendations(confidence: float, has_discrepancies: bool) -> List[str]:
    recommendations: List[str] = []
    for upper, text in RECOMMENDATION_TIERS:
        if confidence < upper:
            recommendations.append(text)
            break
    else:
        recommendations.append(HIGH_CONFIDENCE_RECOMMENDATION)
    if has_discrepancies:
        recommendations.append(DISCREPANCY_RECOMMENDATION)
    return recommendations


class ConsensusValidator:
    """Weigh several sources' answers into a confidence score.

    Consensus confidence is reported rounded half-up to a whole percentage;
    ``is_valid`` and the recommendations are decided on the unrounded score.
    Regression confidence is reported as computed.

    The validator is stateless apart from its configuration and may be shared
    across threads.
    """

    def __init__(
        self,
        config: ConsensusConfig | None = None,
        metrics: OrchestrationMetricsCollector | None = None,
    ):
        self.config = config or ConsensusConfig()
        self.metrics = metrics

    def validate(self, sources: Sequence[ValidationSource]) -> ConsensusReport:
        """Compute consensus over ``sources``; raise ``InvalidRequestError`` if empty."""

        if not sources:
            raise InvalidRequestError("at least one validation source is required")
        return self._consensus(list(sources), [])

    def run_regression_tests(
        self,
        cases: Sequence[RegressionCase],
        implementation: Callable[[Any], Any],
    ) -> ConsensusReport:
        """Check ``implementation`` against known cases; confidence is the pass rate."""

        if not cases:
            raise InvalidRequestError("at least one regression case is required")

        discrepancies: List[Discrepancy] = []
        passed = 0
        for case in cases:
            try:
                actual = implementation(case.input)
            except Exception as exc:  # noqa: BLE001
                discrepancies.append(
                    Discrepancy(
                        kind=DiscrepancyKind.REGRESSION_MISMATCH,
                        description=f"{case.name}: implementation raised {type(exc).__name__}",
                        expected=case.expected,
                        actual=None,
                        sources=[case.name],
                    )
                )
                continue
            if actual == case.expected:
                passed += 1
            else:
                discrepancies.append(
                    Discrepancy(
                        kind=DiscrepancyKind.REGRESSION_MISMATCH,
                        description=f"{case.name}: expected {case.expected!r}, got {actual!r}",
                        expected=case.expected,
                        actual=actual,
                        sources=[case.name],
                    )
                )

        pass_rate = passed / len(cases)
        confidence = passed * 100 / len(cases)
        is_valid = confidence >= self.config.regression_threshold
        logger.info(
            "Regression tests completed",
            cases=len(cases),
            passed=passed,
            confidence=confidence,
            is_valid=is_valid,
        )
        if self.metrics:
            self.metrics.record_consensus(confidence, is_valid)
        return ConsensusReport(
            confidence=confidence,
            is_valid=is_valid,
            sources=[case.name for case in cases],
            discrepancies=discrepancies,
            recommendations=build_recommendations(confidence, bool(discrepancies)),
            consensus_ratio=pass_rate,
        )

    def cross_validate(
        self, value_input: Any, variants: Sequence[ValidationVariant]
    ) -> ConsensusReport:
        """Run every variant on ``value_input`` and validate the answers.

        A variant that raises, or reports an out-of-range reliability, is left
        out of the consensus and reported as a discrepancy instead.
        """

        if not variants:
            raise InvalidRequestError("at least one validation variant is required")

        sources: List[ValidationSource] = []
        failures: List[Discrepancy] = []
        for variant in variants:
            name = variant.name or type(variant).__name__
            try:
                value, reliability = variant.compute(value_input)
                sources.append(
                    ValidationSource(
                        name=name,
                        reliability=reliability,
                        value=value,
                        algorithm=variant.algorithm,
                    )
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Validation variant failed", variant=name, exception=type(exc).__name__
                )
                failures.append(
                    Discrepancy(
                        kind=DiscrepancyKind.SOURCE_FAILED,
                        description=f"{name} failed: {type(exc).__name__}",
                        sources=[name],
                    )
                )

        if not sources:
            if self.metrics:
                self.metrics.record_consensus(0.0, False)
            return ConsensusReport(
                confidence=0.0,
                is_valid=False,
                discrepancies=failures,
                recommendations=build_recommendations(0.0, True),
            )
        return self._consensus(sources, failures)

    def _consensus(
        self, sources: List[ValidationSource], extra: List[Discrepancy]
    ) -> ConsensusReport:
        values = [source.value for source in sources]
        consensus_value, agreeing = _mode(values)
        n = len(sources)
        ratio = agreeing / n
        score = self._confidence(sources, consensus_value, ratio)
        # Reported as a whole percentage; validity and advice use the exact score
        confidence = float(math.floor(score + 0.5))

        discrepancies = list(extra)
        if ratio < self.config.agreement_threshold:
            dissenting = [s.name for s in sources if s.value != consensus_value]
            discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.LOW_AGREEMENT,
                    description=(
                        f"agreement rate {ratio * 100:.1f}% is below "
                        f"{self.config.agreement_threshold * 100:.1f}%"
                    ),
                    expected=consensus_value,
                    actual=[s.value for s in sources if s.value != consensus_value],
                    sources=dissenting,
                )
            )

        is_valid = score >= self.config.confidence_threshold
        logger.info(
            "Consensus computed",
            source_count=n,
            consensus_ratio=ratio,
            confidence=score,
            is_valid=is_valid,
            discrepancy_count=len(discrepancies),
        )
        if self.metrics:
            self.metrics.record_consensus(confidence, is_valid)
        return ConsensusReport(
            confidence=confidence,
            is_valid=is_valid,
            sources=[s.name for s in sources],
            discrepancies=discrepancies,
            recommendations=build_recommendations(score, bool(discrepancies)),
            consensus_value=consensus_value,
            consensus_ratio=ratio,
        )

    def _confidence(
        self, sources: List[ValidationSource], consensus_value: Any, ratio: float
    ) -> float:
        total_reliability = sum(s.reliability for s in sources)
        if self.config.weighting == ConsensusWeighting.AGREEMENT_WEIGHTED:
            agreeing = sum(s.reliability for s in sources if s.value == consensus_value)
            confidence = agreeing / total_reliability * 100
        else:
            confidence = total_reliability / len(sources) * ratio * 100
        # Float summation can overshoot 100 by an ulp
        return min(100.0, max(0.0, confidence))
