"""Experimentation module for A/B tests.

Components:
- ExperimentConfigManager: Experiment definitions and lifecycle
- VariantAssignmentEngine: Deterministic subject-to-variant assignment
- ExperimentResultsAnalyzer: Significance testing and reporting
"""

from splitlab.experimentation.ab_testing import (
    VariantAssignmentEngine,
    compute_bucket,
    select_variant,
)
from splitlab.experimentation.analyzer import (
    ExperimentResults,
    ExperimentResultsAnalyzer,
    MetricResults,
    VariantResults,
)
from splitlab.experimentation.config_manager import ExperimentConfigManager
from splitlab.experimentation.errors import (
    ExperimentError,
    IneligibleError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from splitlab.experimentation.events import (
    EventStore,
    EventStoreAssignmentRecorder,
    InMemoryEventStore,
    OutcomeEvent,
)
from splitlab.experimentation.models import (
    Aggregation,
    Experiment,
    ExperimentMetric,
    ExperimentStatus,
    ExperimentType,
    MetricKind,
    MetricRole,
    RuleOperator,
    RuleType,
    TargetingRule,
    Variant,
    VariantAssignment,
)
from splitlab.experimentation.statistical import (
    calculate_confidence_interval,
    calculate_required_sample_size,
    normal_cdf,
    run_two_proportion_test,
)
from splitlab.experimentation.stores import (
    AssignmentStore,
    ExperimentStore,
    InMemoryAssignmentStore,
    InMemoryExperimentStore,
)

__all__ = [
    "ExperimentConfigManager",
    "VariantAssignmentEngine",
    "ExperimentResultsAnalyzer",
    "ExperimentResults",
    "VariantResults",
    "MetricResults",
    "compute_bucket",
    "select_variant",
    "ExperimentError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "IneligibleError",
    "EventStore",
    "InMemoryEventStore",
    "OutcomeEvent",
    "EventStoreAssignmentRecorder",
    "Aggregation",
    "Experiment",
    "ExperimentMetric",
    "ExperimentStatus",
    "ExperimentType",
    "MetricKind",
    "MetricRole",
    "RuleOperator",
    "RuleType",
    "TargetingRule",
    "Variant",
    "VariantAssignment",
    "calculate_confidence_interval",
    "calculate_required_sample_size",
    "normal_cdf",
    "run_two_proportion_test",
    "ExperimentStore",
    "AssignmentStore",
    "InMemoryExperimentStore",
    "InMemoryAssignmentStore",
]
