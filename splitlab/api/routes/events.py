"""Outcome event endpoints."""

from fastapi import APIRouter

from splitlab.api.schemas.events import EventCreate, EventResponse
from splitlab.api.services.experiment_service import experiment_service
from splitlab.experimentation import OutcomeEvent

router = APIRouter(prefix="/events", tags=["events"])


@router.post("/", response_model=EventResponse, status_code=201)
async def create_event(event: EventCreate) -> EventResponse:
    """Record an outcome event.

    Events are matched to experiment metrics by name and to variants
    through the subject's assignment at analysis time.

    Args:
        event: Event data to record.

    Returns:
        Recorded event with timestamp.
    """
    record = OutcomeEvent(
        subject_id=event.subject_id,
        event_name=event.event_name,
        value=event.value,
        properties=event.properties,
    )
    experiment_service.event_store.record(record)

    return EventResponse(**record.to_dict())


@router.get("/count")
async def get_event_count() -> dict[str, int]:
    """Get total count of recorded events."""
    return {"count": len(experiment_service.event_store)}
