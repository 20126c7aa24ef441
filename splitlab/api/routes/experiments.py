"""API routes for experiment management.

Provides endpoints for creating, managing, assigning and analyzing
experiments. Core errors are translated to HTTP responses by the
handlers registered in ``splitlab.api.main``.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse

from splitlab.api.schemas.experiments import (
    AssignRequest,
    CloneRequest,
    CompleteRequest,
    ExperimentCreate,
    ExperimentUpdate,
    ForceAssignRequest,
)
from splitlab.api.services.experiment_service import experiment_service
from splitlab.experimentation import ExperimentStatus, ExperimentType

router = APIRouter(prefix="/experiments", tags=["experiments"])


@router.get("")
async def list_experiments(
    status: ExperimentStatus | None = None,
    type: ExperimentType | None = None,
    created_by: str | None = None,
) -> list[dict[str, Any]]:
    """List experiments, newest first.

    Args:
        status: Optional filter by status.
        type: Optional filter by experiment type.
        created_by: Optional filter by creator.
    """
    experiments = experiment_service.config_manager.list_experiments(
        status=status, type=type, created_by=created_by
    )
    return [e.to_dict() for e in experiments]


@router.post("", status_code=201)
async def create_experiment(request: ExperimentCreate) -> dict[str, Any]:
    """Create a new experiment in draft status."""
    experiment = experiment_service.config_manager.create_experiment(
        **request.to_kwargs()
    )
    return experiment.to_dict()


@router.get("/active")
async def list_active_experiments() -> list[dict[str, Any]]:
    """Running experiments that have not passed their end date."""
    return [
        e.to_dict() for e in experiment_service.config_manager.get_active_experiments()
    ]


@router.get("/sample-size")
async def required_sample_size(
    baseline_rate: float = Query(..., gt=0, lt=1),
    minimum_detectable_effect: float = Query(..., description="Relative lift, e.g. 0.1"),
    confidence: float = 0.95,
    power: float = 0.8,
) -> dict[str, Any]:
    """Subjects needed per variant to detect the given relative lift."""
    try:
        per_variant = experiment_service.analyzer.calculate_required_sample_size(
            baseline_rate, minimum_detectable_effect, confidence, power
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "baseline_rate": baseline_rate,
        "minimum_detectable_effect": minimum_detectable_effect,
        "confidence": confidence,
        "power": power,
        "required_sample_size": per_variant,
    }


@router.get("/{experiment_id}")
async def get_experiment(experiment_id: str) -> dict[str, Any]:
    """Get experiment details."""
    experiment = experiment_service.config_manager.get_experiment(experiment_id)
    if experiment is None:
        raise HTTPException(
            status_code=404,
            detail=f"Experiment '{experiment_id}' not found",
        )
    return experiment.to_dict()


@router.patch("/{experiment_id}")
async def update_experiment(
    experiment_id: str, request: ExperimentUpdate
) -> dict[str, Any]:
    """Apply a partial update to an experiment."""
    experiment = experiment_service.config_manager.update_experiment(
        experiment_id, request.to_changes()
    )
    return experiment.to_dict()


@router.post("/{experiment_id}/start")
async def start_experiment(experiment_id: str) -> dict[str, Any]:
    """Start a draft experiment."""
    return experiment_service.config_manager.start_experiment(experiment_id).to_dict()


@router.post("/{experiment_id}/pause")
async def pause_experiment(experiment_id: str) -> dict[str, Any]:
    """Pause a running experiment."""
    return experiment_service.config_manager.pause_experiment(experiment_id).to_dict()


@router.post("/{experiment_id}/resume")
async def resume_experiment(experiment_id: str) -> dict[str, Any]:
    """Resume a paused experiment."""
    return experiment_service.config_manager.resume_experiment(experiment_id).to_dict()


@router.post("/{experiment_id}/complete")
async def complete_experiment(
    experiment_id: str, request: CompleteRequest | None = None
) -> dict[str, Any]:
    """Complete an experiment, optionally naming the winner."""
    winner = request.winning_variant_id if request else None
    return experiment_service.config_manager.complete_experiment(
        experiment_id, winner
    ).to_dict()


@router.post("/{experiment_id}/archive")
async def archive_experiment(experiment_id: str) -> dict[str, Any]:
    """Archive a completed experiment."""
    return experiment_service.config_manager.archive_experiment(experiment_id).to_dict()


@router.post("/{experiment_id}/clone", status_code=201)
async def clone_experiment(experiment_id: str, request: CloneRequest) -> dict[str, Any]:
    """Copy an experiment's structure into a new draft."""
    return experiment_service.config_manager.clone_experiment(
        experiment_id, request.name, request.created_by
    ).to_dict()


@router.post("/{experiment_id}/assignments")
async def assign_variant(experiment_id: str, request: AssignRequest) -> dict[str, Any]:
    """Get or create a subject's variant assignment."""
    assignment = experiment_service.assignment_engine.assign_variant(
        experiment_id,
        request.subject_id,
        subject_attributes=request.attributes,
        session_id=request.session_id,
    )
    return assignment.to_dict()


@router.get("/{experiment_id}/assignments/counts")
async def assignment_counts(experiment_id: str) -> dict[str, Any]:
    """Number of assigned subjects per variant."""
    counts = experiment_service.assignment_engine.get_assignment_counts_by_variant(
        experiment_id
    )
    return {
        "experiment_id": experiment_id,
        "total": sum(counts.values()),
        "variants": [{"variant_id": k, "count": v} for k, v in counts.items()],
    }


@router.get("/{experiment_id}/assignments/{subject_id}")
async def get_assignment(experiment_id: str, subject_id: str) -> dict[str, Any]:
    """Get an existing assignment without creating one."""
    assignment = experiment_service.assignment_engine.get_assignment(
        experiment_id, subject_id
    )
    if assignment is None:
        raise HTTPException(
            status_code=404,
            detail=f"No assignment for '{subject_id}' in experiment '{experiment_id}'",
        )
    return assignment.to_dict()


@router.put("/{experiment_id}/assignments/{subject_id}")
async def force_assign_variant(
    experiment_id: str, subject_id: str, request: ForceAssignRequest
) -> dict[str, Any]:
    """Replace a subject's assignment with the given variant."""
    assignment = experiment_service.assignment_engine.force_assign_variant(
        experiment_id, subject_id, request.variant_id
    )
    return assignment.to_dict()


@router.delete("/{experiment_id}/assignments/{subject_id}")
async def remove_assignment(experiment_id: str, subject_id: str) -> dict[str, Any]:
    """Remove a subject from an experiment."""
    removed = experiment_service.assignment_engine.remove_assignment(
        experiment_id, subject_id
    )
    if not removed:
        raise HTTPException(
            status_code=404,
            detail=f"No assignment for '{subject_id}' in experiment '{experiment_id}'",
        )
    return {"status": "removed", "experiment_id": experiment_id, "subject_id": subject_id}


@router.get("/{experiment_id}/results")
async def get_results(experiment_id: str) -> dict[str, Any]:
    """Per-variant results, significance and metric tests."""
    return experiment_service.analyzer.analyze_experiment(experiment_id).to_dict()


@router.get("/{experiment_id}/report", response_class=PlainTextResponse)
async def get_report(experiment_id: str) -> str:
    """Markdown report of the experiment results."""
    return experiment_service.analyzer.generate_report(experiment_id)
