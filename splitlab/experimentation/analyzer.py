"""Experiment results analysis.

Aggregates assignments and outcome events per variant and runs the
significance tests from ``statistical``.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from splitlab.config import get_settings
from splitlab.experimentation.errors import NotFoundError
from splitlab.experimentation.events import EventStore
from splitlab.experimentation.models import (
    Aggregation,
    Experiment,
    ExperimentMetric,
    Variant,
)
from splitlab.experimentation.report import render_report
from splitlab.experimentation.statistical import (
    ConfidenceInterval,
    MetricTestResult,
    SignificanceResult,
    calculate_confidence_interval,
    calculate_required_sample_size,
    run_metric_test,
    run_two_proportion_test,
)
from splitlab.experimentation.stores import AssignmentStore, ExperimentStore


@dataclass
class MetricData:
    """Raw aggregation of matching events for one variant."""

    count: int = 0
    sum: float = 0.0


@dataclass
class VariantResults:
    """Primary-metric results for one variant."""

    variant_id: str
    variant_name: str
    users: int
    conversions: int
    conversion_rate: float
    revenue: float
    average_revenue_per_user: float
    confidence_interval: ConfidenceInterval
    is_control: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "is_control": self.is_control,
            "users": self.users,
            "conversions": self.conversions,
            "conversion_rate": self.conversion_rate,
            "revenue": self.revenue,
            "average_revenue_per_user": self.average_revenue_per_user,
            "confidence_interval": self.confidence_interval.to_dict(),
        }


@dataclass
class MetricVariantValue:
    """Aggregated value of one metric for one variant."""

    variant_id: str
    value: float
    sample_size: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "variant_id": self.variant_id,
            "value": self.value,
            "sample_size": self.sample_size,
        }


@dataclass
class MetricResults:
    """Per-metric values and test result."""

    metric_id: str
    metric_name: str
    type: str
    variants: list[MetricVariantValue]
    statistical_test: MetricTestResult

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "metric_id": self.metric_id,
            "metric_name": self.metric_name,
            "type": self.type,
            "variants": [v.to_dict() for v in self.variants],
            "statistical_test": self.statistical_test.to_dict(),
        }


@dataclass
class ExperimentResults:
    """Full analysis of an experiment."""

    experiment_id: str
    experiment_name: str
    status: str
    start_date: datetime | None
    end_date: datetime | None
    total_users: int
    variants: list[VariantResults]
    statistical_significance: SignificanceResult
    metrics: list[MetricResults] = field(default_factory=list)

    def get_variant(self, variant_id: str) -> VariantResults | None:
        """Get variant results by id."""
        return next((v for v in self.variants if v.variant_id == variant_id), None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "experiment_id": self.experiment_id,
            "experiment_name": self.experiment_name,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "total_users": self.total_users,
            "variants": [v.to_dict() for v in self.variants],
            "statistical_significance": self.statistical_significance.to_dict(),
            "metrics": [m.to_dict() for m in self.metrics],
        }


def aggregate_events(events: list, aggregation: Aggregation) -> MetricData:
    """Reduce matching events according to a metric's aggregation.

    ``count`` counts events, ``unique`` counts distinct subjects, ``sum``
    and ``average`` add up event values and keep the event count. Only
    the last two carry a value sum, so a count-based primary metric
    reports zero revenue.
    """
    if aggregation == Aggregation.COUNT:
        return MetricData(count=len(events))
    if aggregation == Aggregation.UNIQUE:
        return MetricData(count=len({e.subject_id for e in events}))
    return MetricData(
        count=len(events),
        sum=float(sum(e.value or 0.0 for e in events)),
    )


def metric_value(data: MetricData, aggregation: Aggregation) -> float:
    """Headline value of a metric for reporting."""
    if aggregation in (Aggregation.COUNT, Aggregation.UNIQUE):
        return float(data.count)
    if aggregation == Aggregation.SUM:
        return data.sum
    return data.sum / data.count if data.count > 0 else 0.0


class ExperimentResultsAnalyzer:
    """Analyzes experiment outcomes per variant.

    The control variant is the one flagged ``is_control``; the treatment
    is the first other variant in stored order. Without a flagged control
    the first two variants are used.
    """

    def __init__(
        self,
        experiment_store: ExperimentStore,
        assignment_store: AssignmentStore,
        event_store: EventStore,
    ):
        """Initialize analyzer.

        Args:
            experiment_store: Source of experiment definitions.
            assignment_store: Source of subject assignments.
            event_store: Source of outcome events.
        """
        self.experiment_store = experiment_store
        self.assignment_store = assignment_store
        self.event_store = event_store
        self.settings = get_settings()

    def analyze_experiment(self, experiment_id: str) -> ExperimentResults:
        """Compute per-variant results, significance and metric tests.

        Raises:
            NotFoundError: If the experiment does not exist.
        """
        logger.info(f"Analyzing experiment: {experiment_id}")

        experiment = self.experiment_store.get(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment '{experiment_id}' not found")

        assignments = self.assignment_store.list_by_experiment(experiment_id)
        subjects: dict[str, list[str]] = defaultdict(list)
        for assignment in assignments:
            subjects[assignment.variant_id].append(assignment.subject_id)

        # Event queries are cached for the duration of one analysis only
        cache: dict[tuple[str, str], MetricData] = {}

        def data_for(variant: Variant, metric: ExperimentMetric) -> MetricData:
            key = (variant.id, metric.id)
            if key not in cache:
                cache[key] = self._get_metric_data(subjects[variant.id], metric)
            return cache[key]

        variant_results = [
            self._variant_results(experiment, variant, subjects[variant.id], data_for)
            for variant in experiment.variants
        ]

        significance = self._significance(experiment, variant_results)

        metric_results = [
            self._metric_results(experiment, metric, data_for)
            for metric in experiment.metrics
        ]

        return ExperimentResults(
            experiment_id=experiment.id,
            experiment_name=experiment.name,
            status=experiment.status.value,
            start_date=experiment.start_date,
            end_date=experiment.end_date,
            total_users=len(assignments),
            variants=variant_results,
            statistical_significance=significance,
            metrics=metric_results,
        )

    def generate_report(self, experiment_id: str) -> str:
        """Analyze an experiment and render the results as Markdown."""
        return render_report(self.analyze_experiment(experiment_id))

    @staticmethod
    def calculate_required_sample_size(
        baseline_rate: float,
        minimum_detectable_effect: float,
        confidence: float = 0.95,
        power: float = 0.8,
    ) -> int:
        """Subjects needed per variant; see ``statistical``."""
        return calculate_required_sample_size(
            baseline_rate, minimum_detectable_effect, confidence, power
        )

    def _variant_results(
        self,
        experiment: Experiment,
        variant: Variant,
        subject_ids: list[str],
        data_for,
    ) -> VariantResults:
        users = len(subject_ids)
        conversions = 0
        revenue = 0.0

        primary = experiment.primary_metric
        if primary is not None:
            data = data_for(variant, primary)
            conversions = data.count
            revenue = data.sum

        conversion_rate = conversions / users if users > 0 else 0.0
        arpu = revenue / users if users > 0 else 0.0

        return VariantResults(
            variant_id=variant.id,
            variant_name=variant.name,
            is_control=variant.is_control,
            users=users,
            conversions=conversions,
            conversion_rate=conversion_rate,
            revenue=revenue,
            average_revenue_per_user=arpu,
            confidence_interval=calculate_confidence_interval(
                conversion_rate, users, experiment.confidence_level
            ),
        )

    def _significance(
        self,
        experiment: Experiment,
        variants: list[VariantResults],
    ) -> SignificanceResult:
        pair = self._control_and_treatment(variants)
        if pair is None:
            return SignificanceResult(
                is_significant=False,
                p_value=1.0,
                confidence_level=experiment.confidence_level,
                improvement=0.0,
            )

        control, treatment = pair
        return run_two_proportion_test(
            control_conversions=control.conversions,
            control_n=control.users,
            treatment_conversions=treatment.conversions,
            treatment_n=treatment.users,
            confidence_level=experiment.confidence_level,
            treatment_id=treatment.variant_id,
        )

    def _metric_results(
        self,
        experiment: Experiment,
        metric: ExperimentMetric,
        data_for,
    ) -> MetricResults:
        values = []
        for variant in experiment.variants:
            data = data_for(variant, metric)
            values.append(
                MetricVariantValue(
                    variant_id=variant.id,
                    value=metric_value(data, metric.aggregation),
                    sample_size=data.count,
                )
            )

        if len(values) == 2:
            control_id = getattr(experiment.control_variant, "id", values[0].variant_id)
            ordered = sorted(values, key=lambda v: v.variant_id != control_id)
            samples = [(v.value, v.sample_size) for v in ordered]
        else:
            samples = [(v.value, v.sample_size) for v in values]

        return MetricResults(
            metric_id=metric.id,
            metric_name=metric.name,
            type=metric.role.value,
            variants=values,
            statistical_test=run_metric_test(
                samples, alpha=self.settings.metric_significance_threshold
            ),
        )

    def _get_metric_data(
        self,
        subject_ids: list[str],
        metric: ExperimentMetric,
    ) -> MetricData:
        if not subject_ids or not metric.event_name:
            return MetricData()

        events = self.event_store.query(subject_ids, metric.event_name)
        return aggregate_events(events, metric.aggregation)

    @staticmethod
    def _control_and_treatment(
        variants: list[VariantResults],
    ) -> tuple[VariantResults, VariantResults] | None:
        if len(variants) < 2:
            return None

        control = next((v for v in variants if v.is_control), variants[0])
        treatment = next(v for v in variants if v is not control)
        return control, treatment
