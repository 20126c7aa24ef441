"""Experiment configuration management.

Owns experiment definitions and their lifecycle. Structural rules are
checked before anything is persisted and every violation is reported in
a single ValidationError.
"""

import copy
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from splitlab.config import get_settings
from splitlab.experimentation.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from splitlab.experimentation.models import (
    Experiment,
    ExperimentMetric,
    ExperimentStatus,
    ExperimentType,
    MetricRole,
    TargetingRule,
    Variant,
)
from splitlab.experimentation.stores import ExperimentStore, InMemoryExperimentStore

# Allowed lifecycle transitions. Archived is terminal.
TRANSITIONS: dict[ExperimentStatus, frozenset[ExperimentStatus]] = {
    ExperimentStatus.DRAFT: frozenset({ExperimentStatus.RUNNING}),
    ExperimentStatus.RUNNING: frozenset(
        {ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED}
    ),
    ExperimentStatus.PAUSED: frozenset(
        {ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED}
    ),
    ExperimentStatus.COMPLETED: frozenset({ExperimentStatus.ARCHIVED}),
    ExperimentStatus.ARCHIVED: frozenset(),
}

# Fields that cannot change while an experiment is running.
CORE_FIELDS = frozenset({"variants", "targeting_rules", "metrics", "type"})

UPDATABLE_FIELDS = CORE_FIELDS | frozenset(
    {
        "name",
        "description",
        "hypothesis",
        "status",
        "start_date",
        "end_date",
        "sample_size",
        "confidence_level",
    }
)


def validate_structure(
    variants: list[Variant],
    metrics: list[ExperimentMetric],
    confidence_level: float | None = None,
    tolerance: float = 0.01,
) -> list[str]:
    """Check structural invariants of an experiment definition.

    Returns:
        Every violated rule, empty if the definition is valid.
    """
    errors = []

    if not variants:
        errors.append("Experiment must have at least one variant")
    else:
        duplicates = sorted(
            vid for vid, count in Counter(v.id for v in variants).items() if count > 1
        )
        if duplicates:
            errors.append(f"Variant ids must be unique: {', '.join(duplicates)}")

        negative = [v.id for v in variants if v.traffic_allocation < 0]
        if negative:
            errors.append(
                f"Traffic allocation cannot be negative: {', '.join(negative)}"
            )

        total = sum(v.traffic_allocation for v in variants)
        if abs(total - 100.0) > tolerance:
            errors.append(
                f"Traffic allocation must sum to 100%. Current total: {total:g}%"
            )

        if not any(v.is_control for v in variants):
            errors.append("Experiment must have at least one control variant")

    if not any(m.role == MetricRole.PRIMARY for m in metrics):
        errors.append("Experiment must have at least one primary metric")

    if confidence_level is not None and not 0 < confidence_level < 100:
        errors.append(
            f"Confidence level must be between 0 and 100, got {confidence_level:g}"
        )

    return errors


def _parse_enum(enum_cls, value: Any, field_name: str):
    """Coerce a value to an enum member, ValidationError if it is not one."""
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            [f"Invalid {field_name} '{value}'. Expected one of: {allowed}"]
        ) from e


def _as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken as local time."""
    return value.astimezone(timezone.utc)


class ExperimentConfigManager:
    """Creates experiments and drives their lifecycle.

    Usage:
        manager = ExperimentConfigManager()

        experiment = manager.create_experiment(
            name="checkout_button",
            variants=[
                Variant("a", "Control", 50, is_control=True),
                Variant("b", "Green button", 50),
            ],
            metrics=[
                ExperimentMetric("m1", "Purchases", MetricRole.PRIMARY,
                                 event_name="purchase"),
            ],
        )
        manager.start_experiment(experiment.id)
    """

    def __init__(self, store: ExperimentStore | None = None):
        """Initialize manager.

        Args:
            store: Experiment storage. Defaults to in-memory.
        """
        self.store = store if store is not None else InMemoryExperimentStore()
        self.settings = get_settings()

    def create_experiment(
        self,
        name: str,
        variants: list[Variant],
        metrics: list[ExperimentMetric],
        description: str = "",
        hypothesis: str = "",
        type: ExperimentType = ExperimentType.AB,
        targeting_rules: list[TargetingRule] | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        sample_size: int | None = None,
        confidence_level: float | None = None,
        created_by: str = "",
    ) -> Experiment:
        """Validate and persist a new experiment in draft status.

        Raises:
            ValidationError: If any structural rule is violated.
        """
        logger.info(f"Creating new experiment: {name}")

        if confidence_level is None:
            confidence_level = self.settings.default_confidence_level

        errors = validate_structure(
            variants,
            metrics,
            confidence_level,
            tolerance=self.settings.allocation_tolerance,
        )
        if errors:
            raise ValidationError(errors)

        now = datetime.now()
        experiment = Experiment(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            hypothesis=hypothesis,
            type=_parse_enum(ExperimentType, type, "type"),
            status=ExperimentStatus.DRAFT,
            variants=copy.deepcopy(variants),
            targeting_rules=copy.deepcopy(targeting_rules or []),
            metrics=copy.deepcopy(metrics),
            start_date=start_date,
            end_date=end_date,
            sample_size=sample_size,
            confidence_level=confidence_level,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

        return self.store.create(experiment)

    def update_experiment(
        self,
        experiment_id: str,
        changes: dict[str, Any],
    ) -> Experiment:
        """Apply a partial update.

        Core fields (variants, targeting rules, metrics, type) are locked
        while the experiment is running, unless the same update pauses it.

        Raises:
            NotFoundError: If the experiment does not exist.
            InvalidStateError: If the edit or status change is not allowed.
            ValidationError: If the result violates a structural rule.
        """
        logger.info(f"Updating experiment: {experiment_id}")

        experiment = self._require(experiment_id)

        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError([f"Field cannot be updated: {f}" for f in unknown])

        updates = dict(changes)
        new_status = None
        if "status" in updates:
            new_status = _parse_enum(ExperimentStatus, updates["status"], "status")
            updates["status"] = new_status
        if "type" in updates:
            updates["type"] = _parse_enum(ExperimentType, updates["type"], "type")

        pausing = new_status == ExperimentStatus.PAUSED
        touched_core = CORE_FIELDS & updates.keys()
        if experiment.status == ExperimentStatus.RUNNING and touched_core and not pausing:
            raise InvalidStateError(
                f"Cannot change {', '.join(sorted(touched_core))} of running "
                f"experiment '{experiment_id}'. Pause it first."
            )

        if new_status is not None and new_status != experiment.status:
            self._check_transition(experiment, new_status)

        if touched_core & {"variants", "metrics"} or "confidence_level" in updates:
            errors = validate_structure(
                updates.get("variants", experiment.variants),
                updates.get("metrics", experiment.metrics),
                updates.get("confidence_level"),
                tolerance=self.settings.allocation_tolerance,
            )
            if errors:
                raise ValidationError(errors)

        now = datetime.now()
        if new_status == ExperimentStatus.RUNNING and experiment.start_date is None:
            updates.setdefault("start_date", now)
        if new_status == ExperimentStatus.COMPLETED:
            updates.setdefault("end_date", now)
        updates["updated_at"] = now

        return self.store.update(experiment_id, updates)

    def get_experiment(self, experiment_id: str) -> Experiment | None:
        """Get experiment by id, None if unknown."""
        return self.store.get(experiment_id)

    def list_experiments(
        self,
        status: ExperimentStatus | None = None,
        type: ExperimentType | None = None,
        created_by: str | None = None,
    ) -> list[Experiment]:
        """List experiments, newest first.

        Args:
            status: Filter by status.
            type: Filter by experiment type.
            created_by: Filter by creator id.
        """
        experiments = self.store.list(status=status, type=type, created_by=created_by)
        return sorted(experiments, key=lambda e: e.created_at, reverse=True)

    def get_active_experiments(self, now: datetime | None = None) -> list[Experiment]:
        """Running experiments whose end date is unset or not yet reached.

        End dates may be naive (local time) or timezone-aware; both are
        compared in UTC.
        """
        reference = _as_utc(now if now is not None else datetime.now())
        return [
            e
            for e in self.list_experiments(status=ExperimentStatus.RUNNING)
            if e.end_date is None or _as_utc(e.end_date) >= reference
        ]

    def start_experiment(self, experiment_id: str) -> Experiment:
        """Move a draft experiment to running and record its start time."""
        logger.info(f"Starting experiment: {experiment_id}")
        experiment = self._require(experiment_id)
        self._check_transition(experiment, ExperimentStatus.RUNNING, allowed_from={
            ExperimentStatus.DRAFT,
        })

        now = datetime.now()
        return self.store.update(
            experiment_id,
            {"status": ExperimentStatus.RUNNING, "start_date": now, "updated_at": now},
        )

    def pause_experiment(self, experiment_id: str) -> Experiment:
        """Pause a running experiment."""
        logger.info(f"Pausing experiment: {experiment_id}")
        return self._transition(experiment_id, ExperimentStatus.PAUSED)

    def resume_experiment(self, experiment_id: str) -> Experiment:
        """Resume a paused experiment."""
        logger.info(f"Resuming experiment: {experiment_id}")
        experiment = self._require(experiment_id)
        self._check_transition(experiment, ExperimentStatus.RUNNING, allowed_from={
            ExperimentStatus.PAUSED,
        })
        return self.store.update(
            experiment_id,
            {"status": ExperimentStatus.RUNNING, "updated_at": datetime.now()},
        )

    def complete_experiment(
        self,
        experiment_id: str,
        winning_variant_id: str | None = None,
    ) -> Experiment:
        """Complete an experiment, optionally recording the winner.

        Raises:
            InvalidStateError: If the experiment is archived or was never started.
            ValidationError: If the winner is not one of the variants.
        """
        logger.info(
            f"Completing experiment: {experiment_id} (winner: {winning_variant_id})"
        )
        experiment = self._require(experiment_id)

        if experiment.status == ExperimentStatus.ARCHIVED:
            raise InvalidStateError(
                f"Experiment '{experiment_id}' is archived and cannot be completed"
            )
        self._check_transition(experiment, ExperimentStatus.COMPLETED)

        if winning_variant_id is not None and experiment.get_variant(winning_variant_id) is None:
            raise ValidationError(
                [f"Winning variant '{winning_variant_id}' is not part of the experiment"]
            )

        now = datetime.now()
        return self.store.update(
            experiment_id,
            {
                "status": ExperimentStatus.COMPLETED,
                "end_date": now,
                "winning_variant_id": winning_variant_id,
                "updated_at": now,
            },
        )

    def archive_experiment(self, experiment_id: str) -> Experiment:
        """Archive a completed experiment. No transition leaves archived."""
        logger.info(f"Archiving experiment: {experiment_id}")
        return self._transition(experiment_id, ExperimentStatus.ARCHIVED)

    def clone_experiment(
        self,
        experiment_id: str,
        new_name: str,
        created_by: str,
    ) -> Experiment:
        """Copy an experiment's structure into a new draft.

        Assignments, timestamps and the winner are not copied.
        """
        original = self._require(experiment_id)
        logger.info(f"Cloning experiment {experiment_id} as '{new_name}'")

        return self.create_experiment(
            name=new_name,
            description=f"Cloned from: {original.name}",
            hypothesis=original.hypothesis,
            type=original.type,
            variants=original.variants,
            targeting_rules=original.targeting_rules,
            metrics=original.metrics,
            sample_size=original.sample_size,
            confidence_level=original.confidence_level,
            created_by=created_by,
        )

    def _require(self, experiment_id: str) -> Experiment:
        """Get experiment or raise error."""
        experiment = self.store.get(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment '{experiment_id}' not found")
        return experiment

    def _transition(self, experiment_id: str, target: ExperimentStatus) -> Experiment:
        experiment = self._require(experiment_id)
        self._check_transition(experiment, target)
        return self.store.update(
            experiment_id, {"status": target, "updated_at": datetime.now()}
        )

    @staticmethod
    def _check_transition(
        experiment: Experiment,
        target: ExperimentStatus,
        allowed_from: set[ExperimentStatus] | None = None,
    ) -> None:
        current = experiment.status
        allowed = target in TRANSITIONS[current]
        if allowed_from is not None:
            allowed = allowed and current in allowed_from
        if not allowed:
            raise InvalidStateError(
                f"Cannot move experiment '{experiment.id}' from "
                f"{current.value} to {target.value}"
            )
