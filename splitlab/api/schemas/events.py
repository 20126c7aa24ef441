"""Event schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    """Outcome event ingestion request."""

    subject_id: str = Field(..., description="Subject (user/session) ID")
    event_name: str = Field(..., description="Event name matched by metrics")
    value: float = Field(0.0, description="Numeric payload, e.g. order value")
    properties: dict[str, Any] = {}

    model_config = {"json_schema_extra": {
        "example": {
            "subject_id": "user-257597",
            "event_name": "purchase",
            "value": 49.90,
        }
    }}


class EventResponse(BaseModel):
    """Event response."""

    subject_id: str
    event_name: str
    value: float
    timestamp: datetime
    properties: dict[str, Any] = {}
