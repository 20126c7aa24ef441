"""Pytest fixtures for tests."""

import pytest

from splitlab.experimentation import (
    Aggregation,
    ExperimentConfigManager,
    ExperimentMetric,
    ExperimentResultsAnalyzer,
    InMemoryAssignmentStore,
    InMemoryEventStore,
    InMemoryExperimentStore,
    MetricKind,
    MetricRole,
    Variant,
    VariantAssignmentEngine,
)


@pytest.fixture
def variants() -> list[Variant]:
    """Two-way 50/50 split with a control."""
    return [
        Variant(id="A", name="Control", traffic_allocation=50, is_control=True),
        Variant(id="B", name="Treatment", traffic_allocation=50, config={"color": "green"}),
    ]


@pytest.fixture
def metrics() -> list[ExperimentMetric]:
    """Primary conversion metric plus a secondary revenue metric."""
    return [
        ExperimentMetric(
            id="purchases",
            name="Purchases",
            role=MetricRole.PRIMARY,
            kind=MetricKind.CONVERSION,
            event_name="purchase",
            aggregation=Aggregation.UNIQUE,
        ),
        ExperimentMetric(
            id="revenue",
            name="Revenue",
            role=MetricRole.SECONDARY,
            kind=MetricKind.REVENUE,
            event_name="purchase",
            aggregation=Aggregation.SUM,
        ),
    ]


@pytest.fixture
def experiment_store() -> InMemoryExperimentStore:
    return InMemoryExperimentStore()


@pytest.fixture
def assignment_store() -> InMemoryAssignmentStore:
    return InMemoryAssignmentStore()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def manager(experiment_store) -> ExperimentConfigManager:
    return ExperimentConfigManager(experiment_store)


@pytest.fixture
def engine(experiment_store, assignment_store) -> VariantAssignmentEngine:
    return VariantAssignmentEngine(experiment_store, assignment_store)


@pytest.fixture
def analyzer(experiment_store, assignment_store, event_store) -> ExperimentResultsAnalyzer:
    return ExperimentResultsAnalyzer(experiment_store, assignment_store, event_store)


@pytest.fixture
def draft_experiment(manager, variants, metrics):
    """Experiment in draft status."""
    return manager.create_experiment(
        name="checkout_button",
        hypothesis="Green button converts better",
        variants=variants,
        metrics=metrics,
        created_by="alice",
    )


@pytest.fixture
def running_experiment(manager, draft_experiment):
    """Experiment in running status."""
    return manager.start_experiment(draft_experiment.id)
