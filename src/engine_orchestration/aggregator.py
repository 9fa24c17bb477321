"""Result aggregation module for combining engine outcomes.

This module merges the outcomes of one orchestrator run into the
caller-facing ``AggregatedResult``, including cross-engine synthesis (shared
themes and contradictions) built from the engines' contributions.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Union

from .config import AggregationConfig
from .errors import InvalidRequestError
from .metrics import OrchestrationMetricsCollector
from .models import (
    AggregatedResult,
    Contradiction,
    EngineOutcome,
    EngineStatus,
    OrchestrationRun,
    Theme,
)


@dataclass
class _CategoryTally:
    """Per-category contribution totals, keyed by engine."""

    weights: Dict[str, float] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)


class ResultAggregator:
    """Combine engine outcomes into a single immutable result.

    Contract rules:
    - Only successful outcomes feed synthesis.
    - Skipped and failed outcomes are carried through verbatim.
    - Output is a pure function of the outcomes and the injected timestamp.
    """

    # pylint: disable=too-few-public-methods

    def __init__(
        self,
        config: AggregationConfig | None = None,
        metrics: OrchestrationMetricsCollector | None = None,
    ):
        self.config = config or AggregationConfig()
        self.metrics = metrics

    def aggregate(
        self,
        outcomes: Union[OrchestrationRun, Mapping[str, EngineOutcome]],
        *,
        generated_at: Optional[datetime] = None,
    ) -> AggregatedResult:
        """Aggregate engine outcomes into an ``AggregatedResult``."""

        by_engine = self._outcome_map(outcomes)
        successes = [by_engine[name] for name in sorted(by_engine) if by_engine[name].succeeded]
        tallies = self._tally_contributions(successes)

        result = AggregatedResult(
            outcomes=by_engine,
            themes=self._build_themes(tallies),
            contradictions=self._build_contradictions(tallies),
            contributing_engines=[outcome.engine for outcome in successes],
            skipped_engines=self._names_with_status(by_engine, EngineStatus.SKIPPED),
            failed_engines=self._names_with_status(by_engine, EngineStatus.FAILED),
            coverage=len(successes) / len(by_engine),
            generated_at=generated_at,
        )
        if self.metrics:
            self.metrics.record_coverage(result.coverage)
        return result

    @staticmethod
    def _outcome_map(
        outcomes: Union[OrchestrationRun, Mapping[str, EngineOutcome]],
    ) -> Dict[str, EngineOutcome]:
        """Validate and copy the outcome mapping."""

        if isinstance(outcomes, OrchestrationRun):
            outcomes = outcomes.outcomes
        if not outcomes:
            raise InvalidRequestError("cannot aggregate an empty outcome map")
        by_engine: Dict[str, EngineOutcome] = {}
        for name, outcome in outcomes.items():
            if not isinstance(outcome, EngineOutcome):
                raise InvalidRequestError(
                    f"outcome for {name} is not an EngineOutcome",
                    details={"engine": name},
                )
            if outcome.engine != name:
                raise InvalidRequestError(
                    f"outcome keyed as {name} belongs to {outcome.engine}",
                    details={"engine": name},
                )
            by_engine[name] = outcome
        return by_engine

    @staticmethod
    def _names_with_status(
        by_engine: Mapping[str, EngineOutcome], status: EngineStatus
    ) -> List[str]:
        return sorted(name for name, outcome in by_engine.items() if outcome.status == status)

    @staticmethod
    def _tally_contributions(successes: List[EngineOutcome]) -> Dict[str, _CategoryTally]:
        """Sum contribution weights per category and engine, in engine-name order."""

        tallies: Dict[str, _CategoryTally] = defaultdict(_CategoryTally)
        for outcome in successes:
            assert outcome.result is not None
            for contribution in outcome.result.contributions:
                tally = tallies[contribution.category]
                tally.weights[outcome.engine] = (
                    tally.weights.get(outcome.engine, 0.0) + contribution.weight
                )
                if contribution.message and contribution.message not in tally.messages:
                    tally.messages.append(contribution.message)
        return tallies

    def _build_themes(self, tallies: Mapping[str, _CategoryTally]) -> List[Theme]:
        """Categories reported by at least ``theme_min_engines`` distinct engines."""

        themes = [
            Theme(
                category=category,
                engines=sorted(tally.weights),
                total_weight=sum(tally.weights.values()),
                messages=list(tally.messages),
            )
            for category, tally in tallies.items()
            if len(tally.weights) >= self.config.theme_min_engines
        ]
        themes.sort(key=lambda theme: (-len(theme.engines), theme.category))
        return themes

    @staticmethod
    def _build_contradictions(tallies: Mapping[str, _CategoryTally]) -> List[Contradiction]:
        """Categories where some engines weigh in positively and others negatively."""

        contradictions: List[Contradiction] = []
        for category in sorted(tallies):
            weights = tallies[category].weights
            supporting = sorted(name for name, weight in weights.items() if weight > 0)
            opposing = sorted(name for name, weight in weights.items() if weight < 0)
            if supporting and opposing:
                contradictions.append(
                    Contradiction(category=category, supporting=supporting, opposing=opposing)
                )
        return contradictions
