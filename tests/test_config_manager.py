"""Tests for experiment configuration and lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from splitlab.experimentation import (
    ExperimentConfigManager,
    ExperimentMetric,
    ExperimentStatus,
    ExperimentType,
    InMemoryExperimentStore,
    InvalidStateError,
    MetricRole,
    NotFoundError,
    TargetingRule,
    RuleOperator,
    ValidationError,
    Variant,
)


class TestCreateExperiment:
    """Tests for experiment creation and validation."""

    def test_create_valid(self, manager, variants, metrics):
        """Test a valid definition is stored as draft."""
        experiment = manager.create_experiment(
            name="exp", variants=variants, metrics=metrics, created_by="bob"
        )

        assert experiment.status == ExperimentStatus.DRAFT
        assert experiment.id
        assert experiment.created_by == "bob"
        assert experiment.created_at == experiment.updated_at
        assert experiment.confidence_level == 95
        assert manager.get_experiment(experiment.id) == experiment

    def test_allocation_within_tolerance(self, manager, metrics):
        """Test allocations summing to 100 within 0.01 are accepted."""
        variants = [
            Variant("a", "A", 33.33, is_control=True),
            Variant("b", "B", 33.33),
            Variant("c", "C", 33.335),
        ]
        experiment = manager.create_experiment(name="exp", variants=variants, metrics=metrics)
        assert len(experiment.variants) == 3

    def test_allocation_sum_rejected(self, manager, metrics):
        """Test allocations not summing to 100 are rejected."""
        variants = [
            Variant("a", "A", 50, is_control=True),
            Variant("b", "B", 40),
        ]
        with pytest.raises(ValidationError) as exc_info:
            manager.create_experiment(name="exp", variants=variants, metrics=metrics)

        assert len(exc_info.value.errors) == 1
        assert "sum to 100%" in exc_info.value.errors[0]

    def test_negative_allocation_rejected(self, manager, metrics):
        """Test negative allocations are rejected even if the sum is 100."""
        variants = [
            Variant("a", "A", 110, is_control=True),
            Variant("b", "B", -10),
        ]
        with pytest.raises(ValidationError) as exc_info:
            manager.create_experiment(name="exp", variants=variants, metrics=metrics)

        assert any("negative" in e for e in exc_info.value.errors)

    def test_all_violations_reported(self, manager):
        """Test every violated rule is listed in one error."""
        variants = [Variant("a", "A", 30), Variant("a", "B", 30)]
        metrics = [ExperimentMetric("m", "M", MetricRole.SECONDARY, event_name="x")]

        with pytest.raises(ValidationError) as exc_info:
            manager.create_experiment(name="exp", variants=variants, metrics=metrics)

        errors = exc_info.value.errors
        assert len(errors) == 4
        assert any("unique" in e for e in errors)
        assert any("sum to 100%" in e for e in errors)
        assert any("control" in e for e in errors)
        assert any("primary metric" in e for e in errors)

    def test_empty_variants_rejected(self, manager, metrics):
        """Test an experiment needs at least one variant."""
        with pytest.raises(ValidationError) as exc_info:
            manager.create_experiment(name="exp", variants=[], metrics=metrics)
        assert "at least one variant" in str(exc_info.value)

    def test_unknown_type_rejected(self, manager, variants, metrics):
        """Test an unknown experiment type is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            manager.create_experiment(
                name="exp", variants=variants, metrics=metrics, type="bogus"
            )
        assert "Expected one of: ab, multivariate, feature_flag" in str(exc_info.value)
        assert manager.list_experiments() == []

    def test_uses_given_empty_store(self, variants, metrics):
        """Test an empty store passed in is the one written to."""
        store = InMemoryExperimentStore()
        manager = ExperimentConfigManager(store)

        assert manager.store is store

        experiment = manager.create_experiment(name="exp", variants=variants, metrics=metrics)
        assert store.get(experiment.id) is not None

    def test_definition_is_copied(self, manager, variants, metrics):
        """Test later mutation of the input does not change the stored experiment."""
        experiment = manager.create_experiment(name="exp", variants=variants, metrics=metrics)
        variants[0].traffic_allocation = 99

        stored = manager.get_experiment(experiment.id)
        assert stored.variants[0].traffic_allocation == 50


class TestUpdateExperiment:
    """Tests for partial updates."""

    def test_update_not_found(self, manager):
        """Test updating an unknown experiment fails."""
        with pytest.raises(NotFoundError):
            manager.update_experiment("missing", {"name": "x"})

    def test_update_draft_fields(self, manager, draft_experiment):
        """Test draft experiments accept any field."""
        updated = manager.update_experiment(
            draft_experiment.id,
            {
                "name": "renamed",
                "targeting_rules": [TargetingRule("country", RuleOperator.EQUALS, "US")],
                "type": "multivariate",
            },
        )

        assert updated.name == "renamed"
        assert updated.type == ExperimentType.MULTIVARIATE
        assert len(updated.targeting_rules) == 1
        assert updated.updated_at >= draft_experiment.updated_at

    def test_update_running_core_field_rejected(self, manager, running_experiment):
        """Test variants cannot change while running."""
        variants = [
            Variant("A", "Control", 90, is_control=True),
            Variant("B", "Treatment", 10),
        ]
        with pytest.raises(InvalidStateError):
            manager.update_experiment(running_experiment.id, {"variants": variants})

        stored = manager.get_experiment(running_experiment.id)
        assert stored.variants[0].traffic_allocation == 50

    def test_update_running_descriptive_field(self, manager, running_experiment):
        """Test descriptive fields can change while running."""
        updated = manager.update_experiment(
            running_experiment.id, {"description": "now with notes"}
        )
        assert updated.description == "now with notes"
        assert updated.status == ExperimentStatus.RUNNING

    def test_update_pausing_allows_core_change(self, manager, running_experiment):
        """Test an update that pauses may also edit core fields."""
        variants = [
            Variant("A", "Control", 80, is_control=True),
            Variant("B", "Treatment", 20),
        ]
        updated = manager.update_experiment(
            running_experiment.id, {"status": "paused", "variants": variants}
        )

        assert updated.status == ExperimentStatus.PAUSED
        assert updated.variants[0].traffic_allocation == 80

    def test_update_revalidates_variants(self, manager, draft_experiment):
        """Test new variants are validated."""
        with pytest.raises(ValidationError):
            manager.update_experiment(
                draft_experiment.id, {"variants": [Variant("A", "A", 60, is_control=True)]}
            )

    def test_update_invalid_status_transition(self, manager, draft_experiment):
        """Test status changes follow the lifecycle graph."""
        with pytest.raises(InvalidStateError):
            manager.update_experiment(draft_experiment.id, {"status": "completed"})

    def test_update_unknown_field(self, manager, draft_experiment):
        """Test identity fields cannot be updated."""
        with pytest.raises(ValidationError):
            manager.update_experiment(draft_experiment.id, {"id": "other"})

    @pytest.mark.parametrize("field_name", ["status", "type"])
    def test_update_unknown_enum_value(self, manager, draft_experiment, field_name):
        """Test unknown status and type values are validation errors."""
        with pytest.raises(ValidationError) as exc_info:
            manager.update_experiment(draft_experiment.id, {field_name: "bogus"})

        assert f"Invalid {field_name} 'bogus'" in exc_info.value.errors[0]
        assert manager.get_experiment(draft_experiment.id).status == ExperimentStatus.DRAFT

    def test_update_resume_via_status(self, manager, running_experiment):
        """Test a paused experiment can be set back to running."""
        manager.pause_experiment(running_experiment.id)
        updated = manager.update_experiment(running_experiment.id, {"status": "running"})
        assert updated.status == ExperimentStatus.RUNNING
        assert updated.start_date == running_experiment.start_date


class TestLifecycle:
    """Tests for lifecycle transitions."""

    def test_start(self, manager, draft_experiment):
        """Test start sets running and start date."""
        started = manager.start_experiment(draft_experiment.id)
        assert started.status == ExperimentStatus.RUNNING
        assert started.start_date is not None

    def test_start_twice_rejected(self, manager, running_experiment):
        """Test a running experiment cannot be started again."""
        with pytest.raises(InvalidStateError):
            manager.start_experiment(running_experiment.id)

    def test_pause_resume(self, manager, running_experiment):
        """Test pause and resume toggle status."""
        paused = manager.pause_experiment(running_experiment.id)
        assert paused.status == ExperimentStatus.PAUSED

        resumed = manager.resume_experiment(running_experiment.id)
        assert resumed.status == ExperimentStatus.RUNNING

    def test_pause_draft_rejected(self, manager, draft_experiment):
        """Test a draft cannot be paused."""
        with pytest.raises(InvalidStateError):
            manager.pause_experiment(draft_experiment.id)

    def test_resume_running_rejected(self, manager, running_experiment):
        """Test only paused experiments can be resumed."""
        with pytest.raises(InvalidStateError):
            manager.resume_experiment(running_experiment.id)

    def test_complete_with_winner(self, manager, running_experiment):
        """Test completion records end date and winner."""
        completed = manager.complete_experiment(running_experiment.id, "B")
        assert completed.status == ExperimentStatus.COMPLETED
        assert completed.end_date is not None
        assert completed.winning_variant_id == "B"

    def test_complete_from_paused(self, manager, running_experiment):
        """Test paused experiments can be completed."""
        manager.pause_experiment(running_experiment.id)
        completed = manager.complete_experiment(running_experiment.id)
        assert completed.status == ExperimentStatus.COMPLETED
        assert completed.winning_variant_id is None

    def test_complete_unknown_winner(self, manager, running_experiment):
        """Test the winner must be one of the variants."""
        with pytest.raises(ValidationError):
            manager.complete_experiment(running_experiment.id, "Z")

        assert manager.get_experiment(running_experiment.id).status == ExperimentStatus.RUNNING

    def test_complete_draft_rejected(self, manager, draft_experiment):
        """Test an experiment that never ran cannot be completed."""
        with pytest.raises(InvalidStateError):
            manager.complete_experiment(draft_experiment.id)

    def test_archive_is_terminal(self, manager, running_experiment):
        """Test no transition leaves archived."""
        manager.complete_experiment(running_experiment.id)
        archived = manager.archive_experiment(running_experiment.id)
        assert archived.status == ExperimentStatus.ARCHIVED

        with pytest.raises(InvalidStateError):
            manager.complete_experiment(running_experiment.id)
        with pytest.raises(InvalidStateError):
            manager.start_experiment(running_experiment.id)
        with pytest.raises(InvalidStateError):
            manager.update_experiment(running_experiment.id, {"status": "running"})

    def test_archive_running_rejected(self, manager, running_experiment):
        """Test running experiments must be completed before archiving."""
        with pytest.raises(InvalidStateError):
            manager.archive_experiment(running_experiment.id)

    def test_transition_unknown_experiment(self, manager):
        """Test transitions on unknown experiments fail."""
        with pytest.raises(NotFoundError):
            manager.start_experiment("missing")


class TestCloneAndList:
    """Tests for cloning and listing."""

    def test_clone(self, manager, running_experiment):
        """Test clone copies structure into a new draft."""
        manager.complete_experiment(running_experiment.id, "B")

        clone = manager.clone_experiment(running_experiment.id, "checkout_v2", "carol")

        assert clone.id != running_experiment.id
        assert clone.name == "checkout_v2"
        assert clone.status == ExperimentStatus.DRAFT
        assert clone.created_by == "carol"
        assert clone.description == "Cloned from: checkout_button"
        assert clone.variants == running_experiment.variants
        assert clone.metrics == running_experiment.metrics
        assert clone.start_date is None
        assert clone.end_date is None
        assert clone.winning_variant_id is None

    def test_clone_not_found(self, manager):
        """Test cloning an unknown experiment fails."""
        with pytest.raises(NotFoundError):
            manager.clone_experiment("missing", "x", "y")

    def test_list_filters(self, manager, variants, metrics):
        """Test list filters by status, type and creator."""
        a = manager.create_experiment(name="a", variants=variants, metrics=metrics, created_by="u1")
        b = manager.create_experiment(
            name="b",
            variants=variants,
            metrics=metrics,
            created_by="u2",
            type=ExperimentType.FEATURE_FLAG,
        )
        manager.start_experiment(b.id)

        assert {e.id for e in manager.list_experiments()} == {a.id, b.id}
        assert [e.id for e in manager.list_experiments(status=ExperimentStatus.RUNNING)] == [b.id]
        assert [e.id for e in manager.list_experiments(type=ExperimentType.AB)] == [a.id]
        assert [e.id for e in manager.list_experiments(created_by="u1")] == [a.id]

    def test_active_experiments(self, manager, variants, metrics):
        """Test active experiments exclude those past their end date."""
        past = datetime.now() - timedelta(days=1)
        future = datetime.now() + timedelta(days=1)

        open_ended = manager.create_experiment(name="a", variants=variants, metrics=metrics)
        ending = manager.create_experiment(
            name="b", variants=variants, metrics=metrics, end_date=future
        )
        expired = manager.create_experiment(
            name="c", variants=variants, metrics=metrics, end_date=past
        )
        manager.create_experiment(name="d", variants=variants, metrics=metrics)

        for experiment in (open_ended, ending, expired):
            manager.start_experiment(experiment.id)

        active = {e.id for e in manager.get_active_experiments()}
        assert active == {open_ended.id, ending.id}

    def test_active_experiments_with_aware_end_dates(self, manager, variants, metrics):
        """Test timezone-aware and naive end dates can be compared together."""
        now = datetime.now(timezone.utc)

        aware_future = manager.create_experiment(
            name="a", variants=variants, metrics=metrics, end_date=now + timedelta(days=1)
        )
        aware_past = manager.create_experiment(
            name="b", variants=variants, metrics=metrics, end_date=now - timedelta(days=1)
        )
        naive_future = manager.create_experiment(
            name="c", variants=variants, metrics=metrics,
            end_date=datetime.now() + timedelta(days=1),
        )
        for experiment in (aware_future, aware_past, naive_future):
            manager.start_experiment(experiment.id)

        active = {e.id for e in manager.get_active_experiments()}
        assert active == {aware_future.id, naive_future.id}

        active = {e.id for e in manager.get_active_experiments(now=now + timedelta(days=2))}
        assert active == set()
