"""Persistence interfaces for experiments and assignments.

The core only talks to these abstract stores. In-memory implementations
are provided for development, tests and the demo API.
"""

import copy
import threading
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any

from loguru import logger

from splitlab.experimentation.errors import NotFoundError
from splitlab.experimentation.models import (
    Experiment,
    ExperimentStatus,
    ExperimentType,
    VariantAssignment,
)


class ExperimentStore(ABC):
    """Abstract experiment storage keyed by experiment id."""

    @abstractmethod
    def get(self, experiment_id: str) -> Experiment | None:
        """Get experiment by id."""
        pass

    @abstractmethod
    def create(self, experiment: Experiment) -> Experiment:
        """Persist a new experiment."""
        pass

    @abstractmethod
    def update(self, experiment_id: str, changes: dict[str, Any]) -> Experiment:
        """Apply a partial update and return the stored experiment."""
        pass

    @abstractmethod
    def list(
        self,
        status: ExperimentStatus | None = None,
        type: ExperimentType | None = None,
        created_by: str | None = None,
    ) -> list[Experiment]:
        """List experiments matching all given filters."""
        pass


class AssignmentStore(ABC):
    """Abstract assignment storage keyed by (experiment id, subject id)."""

    @abstractmethod
    def get(self, experiment_id: str, subject_id: str) -> VariantAssignment | None:
        """Get assignment for a subject."""
        pass

    @abstractmethod
    def create_if_absent(
        self, assignment: VariantAssignment
    ) -> tuple[VariantAssignment, bool]:
        """Store assignment unless one exists for the same key.

        Returns:
            The stored assignment and whether it was created by this call.
        """
        pass

    @abstractmethod
    def replace(self, assignment: VariantAssignment) -> VariantAssignment:
        """Store assignment, overwriting any record with the same key."""
        pass

    @abstractmethod
    def delete(self, experiment_id: str, subject_id: str) -> bool:
        """Delete an assignment. Returns True if one existed."""
        pass

    @abstractmethod
    def list_by_experiment(
        self, experiment_id: str, variant_id: str | None = None
    ) -> list[VariantAssignment]:
        """List assignments of an experiment, optionally for one variant."""
        pass

    @abstractmethod
    def list_by_subject(self, subject_id: str) -> list[VariantAssignment]:
        """List assignments of a subject across experiments."""
        pass

    def count_by_variant(self, experiment_id: str) -> dict[str, int]:
        """Count assignments per variant id."""
        counts = Counter(a.variant_id for a in self.list_by_experiment(experiment_id))
        return dict(counts)


class InMemoryExperimentStore(ExperimentStore):
    """In-memory experiment storage for development/testing."""

    def __init__(self):
        self._experiments: dict[str, Experiment] = {}
        self._lock = threading.RLock()

    def get(self, experiment_id: str) -> Experiment | None:
        with self._lock:
            experiment = self._experiments.get(experiment_id)
            return copy.deepcopy(experiment) if experiment else None

    def create(self, experiment: Experiment) -> Experiment:
        with self._lock:
            if experiment.id in self._experiments:
                raise ValueError(f"Experiment '{experiment.id}' already exists")
            self._experiments[experiment.id] = copy.deepcopy(experiment)
            return copy.deepcopy(experiment)

    def update(self, experiment_id: str, changes: dict[str, Any]) -> Experiment:
        with self._lock:
            experiment = self._experiments.get(experiment_id)
            if experiment is None:
                raise NotFoundError(f"Experiment '{experiment_id}' not found")

            for name, value in changes.items():
                if not hasattr(experiment, name):
                    raise AttributeError(f"Unknown experiment field: {name}")
                setattr(experiment, name, copy.deepcopy(value))

            return copy.deepcopy(experiment)

    def list(
        self,
        status: ExperimentStatus | None = None,
        type: ExperimentType | None = None,
        created_by: str | None = None,
    ) -> list[Experiment]:
        with self._lock:
            results = []
            for experiment in self._experiments.values():
                if status and experiment.status != status:
                    continue
                if type and experiment.type != type:
                    continue
                if created_by and experiment.created_by != created_by:
                    continue
                results.append(copy.deepcopy(experiment))
            return results

    def clear(self) -> None:
        """Clear all experiments."""
        with self._lock:
            self._experiments.clear()


class InMemoryAssignmentStore(AssignmentStore):
    """In-memory assignment storage for development/testing.

    ``create_if_absent`` runs under a lock, giving the same single-row
    guarantee a unique index on (experiment_id, subject_id) would.
    """

    def __init__(self):
        self._assignments: dict[tuple[str, str], VariantAssignment] = {}
        self._lock = threading.Lock()

    def get(self, experiment_id: str, subject_id: str) -> VariantAssignment | None:
        with self._lock:
            assignment = self._assignments.get((experiment_id, subject_id))
            return copy.copy(assignment) if assignment else None

    def create_if_absent(
        self, assignment: VariantAssignment
    ) -> tuple[VariantAssignment, bool]:
        key = (assignment.experiment_id, assignment.subject_id)
        with self._lock:
            existing = self._assignments.get(key)
            if existing is not None:
                logger.debug(
                    f"Assignment already exists for {key[1]} in {key[0]}"
                )
                return copy.copy(existing), False
            self._assignments[key] = copy.copy(assignment)
            return copy.copy(assignment), True

    def replace(self, assignment: VariantAssignment) -> VariantAssignment:
        key = (assignment.experiment_id, assignment.subject_id)
        with self._lock:
            self._assignments[key] = copy.copy(assignment)
            return copy.copy(assignment)

    def delete(self, experiment_id: str, subject_id: str) -> bool:
        with self._lock:
            return self._assignments.pop((experiment_id, subject_id), None) is not None

    def list_by_experiment(
        self, experiment_id: str, variant_id: str | None = None
    ) -> list[VariantAssignment]:
        with self._lock:
            return [
                copy.copy(a)
                for (exp_id, _), a in self._assignments.items()
                if exp_id == experiment_id
                and (variant_id is None or a.variant_id == variant_id)
            ]

    def list_by_subject(self, subject_id: str) -> list[VariantAssignment]:
        with self._lock:
            return [
                copy.copy(a)
                for (_, subj), a in self._assignments.items()
                if subj == subject_id
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._assignments)

    def clear(self) -> None:
        """Clear all assignments."""
        with self._lock:
            self._assignments.clear()
