"""Experiment service wiring stores to the experimentation core."""

from loguru import logger

from splitlab.config import get_settings
from splitlab.experimentation import (
    EventStoreAssignmentRecorder,
    ExperimentConfigManager,
    ExperimentResultsAnalyzer,
    InMemoryAssignmentStore,
    InMemoryEventStore,
    InMemoryExperimentStore,
    VariantAssignmentEngine,
)


class ExperimentService:
    """Holds the stores and the three core components for the API."""

    def __init__(self):
        """Initialize service with in-memory stores."""
        settings = get_settings()

        self.experiment_store = InMemoryExperimentStore()
        self.assignment_store = InMemoryAssignmentStore()
        self.event_store = InMemoryEventStore()

        self.config_manager = ExperimentConfigManager(self.experiment_store)
        self.assignment_engine = VariantAssignmentEngine(
            self.experiment_store,
            self.assignment_store,
            listeners=[
                EventStoreAssignmentRecorder(
                    self.event_store, settings.assignment_event_name
                )
            ],
        )
        self.analyzer = ExperimentResultsAnalyzer(
            self.experiment_store, self.assignment_store, self.event_store
        )

    def reset(self) -> None:
        """Drop all experiments, assignments and events."""
        self.experiment_store.clear()
        self.assignment_store.clear()
        self.event_store.clear()
        logger.info("Experiment service state cleared")


experiment_service = ExperimentService()
