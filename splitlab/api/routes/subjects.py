"""Subject-centric assignment endpoints."""

from typing import Any

from fastapi import APIRouter

from splitlab.api.services.experiment_service import experiment_service

router = APIRouter(prefix="/subjects", tags=["assignments"])


@router.get("/{subject_id}/assignments")
async def get_subject_assignments(subject_id: str) -> list[dict[str, Any]]:
    """All assignments of a subject across experiments."""
    assignments = experiment_service.assignment_engine.get_assignments_by_subject(
        subject_id
    )
    return [a.to_dict() for a in assignments]
