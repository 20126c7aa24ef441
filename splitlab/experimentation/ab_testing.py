"""Variant assignment engine.

Provides consistent subject-to-variant assignment for running experiments,
with targeting rules and persisted assignment records.
"""

import hashlib

from loguru import logger

from splitlab.experimentation.errors import (
    IneligibleError,
    InvalidStateError,
    NotFoundError,
)
from splitlab.experimentation.events import AssignmentListener
from splitlab.experimentation.models import (
    Experiment,
    ExperimentStatus,
    Variant,
    VariantAssignment,
)
from splitlab.experimentation.stores import (
    AssignmentStore,
    ExperimentStore,
    InMemoryAssignmentStore,
)
from splitlab.experimentation.targeting import evaluate_rules

BUCKET_RESOLUTION = 10000


def compute_bucket(experiment_id: str, subject_id: str) -> float:
    """Map an experiment/subject pair to a bucket in [0, 100).

    The first 32 bits of the MD5 digest are reduced modulo 10000, giving
    two-decimal resolution.
    """
    hash_input = f"{experiment_id}:{subject_id}"
    digest = hashlib.md5(hash_input.encode("utf-8")).hexdigest()
    hash_int = int(digest[:8], 16)
    return (hash_int % BUCKET_RESOLUTION) / 100


def select_variant(variants: list[Variant], bucket: float) -> Variant:
    """Select the variant whose cumulative allocation first exceeds ``bucket``.

    Falls back to the control variant, or the first variant when none is
    flagged, if rounding leaves the bucket past the last boundary.
    """
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.traffic_allocation
        if bucket < cumulative:
            return variant

    return next((v for v in variants if v.is_control), variants[0])


class VariantAssignmentEngine:
    """Assigns subjects to experiment variants.

    Features:
    - Deterministic MD5 bucketing, independent of call order
    - Targeting rules with AND semantics
    - At most one assignment record per (experiment, subject)
    - Listener callbacks for new assignments

    Usage:
        engine = VariantAssignmentEngine(experiment_store)
        engine.add_listener(EventStoreAssignmentRecorder(event_store))

        assignment = engine.assign_variant(
            experiment_id, "user-42", subject_attributes={"country": "US"}
        )
        show(assignment.variant_id)
    """

    def __init__(
        self,
        experiment_store: ExperimentStore,
        assignment_store: AssignmentStore | None = None,
        listeners: list[AssignmentListener] | None = None,
    ):
        """Initialize engine.

        Args:
            experiment_store: Source of experiment definitions.
            assignment_store: Assignment storage. Defaults to in-memory.
            listeners: Callbacks notified of every new assignment.
        """
        self.experiment_store = experiment_store
        self.assignment_store = (
            assignment_store if assignment_store is not None else InMemoryAssignmentStore()
        )
        self._listeners: list[AssignmentListener] = list(listeners or [])

    def add_listener(self, listener: AssignmentListener) -> None:
        """Register a callback for new assignments."""
        self._listeners.append(listener)

    def assign_variant(
        self,
        experiment_id: str,
        subject_id: str,
        subject_attributes: dict | None = None,
        session_id: str | None = None,
    ) -> VariantAssignment:
        """Get or create the assignment of a subject.

        An existing assignment is returned as-is, without re-checking the
        experiment status or targeting.

        Args:
            experiment_id: Experiment id.
            subject_id: Subject (user or session) id.
            subject_attributes: Attributes checked against targeting rules.
                Targeting is skipped when not supplied.
            session_id: Optional session id stored on the record.

        Raises:
            NotFoundError: If the experiment does not exist.
            InvalidStateError: If the experiment is not running.
            IneligibleError: If the subject fails a targeting rule.
        """
        existing = self.assignment_store.get(experiment_id, subject_id)
        if existing:
            logger.debug(
                f"Returning existing assignment for {subject_id} in "
                f"{experiment_id}: {existing.variant_id}"
            )
            return existing

        experiment = self._get_experiment(experiment_id)

        if experiment.status != ExperimentStatus.RUNNING:
            raise InvalidStateError(
                f"Experiment '{experiment_id}' is not running "
                f"(status: {experiment.status.value})"
            )

        if experiment.targeting_rules and subject_attributes is not None:
            if not evaluate_rules(experiment.targeting_rules, subject_attributes):
                logger.info(
                    f"Subject {subject_id} not eligible for experiment {experiment_id}"
                )
                raise IneligibleError(
                    f"Subject '{subject_id}' is not eligible for experiment "
                    f"'{experiment_id}'"
                )

        bucket = compute_bucket(experiment_id, subject_id)
        variant = select_variant(experiment.variants, bucket)

        assignment, created = self.assignment_store.create_if_absent(
            VariantAssignment(
                experiment_id=experiment_id,
                subject_id=subject_id,
                variant_id=variant.id,
                variant_name=variant.name,
                session_id=session_id,
            )
        )

        if created:
            logger.info(
                f"Assigned {subject_id} to {variant.id} in {experiment_id} "
                f"(bucket {bucket:.2f})"
            )
            self._notify(assignment)

        return assignment

    def force_assign_variant(
        self,
        experiment_id: str,
        subject_id: str,
        variant_id: str,
    ) -> VariantAssignment:
        """Replace a subject's assignment with the given variant.

        Raises:
            NotFoundError: If the experiment or variant does not exist.
        """
        logger.info(
            f"Force assigning {subject_id} to {variant_id} in {experiment_id}"
        )
        experiment = self._get_experiment(experiment_id)

        variant = experiment.get_variant(variant_id)
        if variant is None:
            raise NotFoundError(
                f"Variant '{variant_id}' not found in experiment '{experiment_id}'"
            )

        assignment = self.assignment_store.replace(
            VariantAssignment(
                experiment_id=experiment_id,
                subject_id=subject_id,
                variant_id=variant.id,
                variant_name=variant.name,
            )
        )
        self._notify(assignment)

        return assignment

    def remove_assignment(self, experiment_id: str, subject_id: str) -> bool:
        """Remove a subject from an experiment (opt-out).

        Returns:
            True if an assignment was removed.
        """
        logger.info(f"Removing {subject_id} from experiment {experiment_id}")
        return self.assignment_store.delete(experiment_id, subject_id)

    def get_assignment(
        self, experiment_id: str, subject_id: str
    ) -> VariantAssignment | None:
        """Get a subject's assignment without creating one."""
        return self.assignment_store.get(experiment_id, subject_id)

    def list_assignments(
        self, experiment_id: str, variant_id: str | None = None
    ) -> list[VariantAssignment]:
        """List assignments of an experiment, optionally for one variant."""
        return self.assignment_store.list_by_experiment(experiment_id, variant_id)

    def get_assignments_by_subject(self, subject_id: str) -> list[VariantAssignment]:
        """All assignments of a subject across experiments."""
        return self.assignment_store.list_by_subject(subject_id)

    def get_assignment_counts_by_variant(self, experiment_id: str) -> dict[str, int]:
        """Number of assigned subjects per variant id.

        Variants of a known experiment with no subjects are reported as 0.
        """
        counts = self.assignment_store.count_by_variant(experiment_id)

        experiment = self.experiment_store.get(experiment_id)
        if experiment is None:
            return counts

        result = {v.id: counts.pop(v.id, 0) for v in experiment.variants}
        # Assignments to variants removed from the definition while paused
        result.update(counts)
        return result

    def _get_experiment(self, experiment_id: str) -> Experiment:
        experiment = self.experiment_store.get(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment '{experiment_id}' not found")
        return experiment

    def _notify(self, assignment: VariantAssignment) -> None:
        for listener in self._listeners:
            try:
                listener(assignment)
            except Exception:
                logger.exception(
                    f"Assignment listener {listener!r} failed for "
                    f"{assignment.subject_id} in {assignment.experiment_id}"
                )
