"""Experiment request schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from splitlab.experimentation import (
    Aggregation,
    ExperimentMetric,
    ExperimentStatus,
    ExperimentType,
    MetricKind,
    MetricRole,
    RuleOperator,
    RuleType,
    TargetingRule,
    Variant,
)


# Update fields that may be explicitly cleared with null
NULLABLE_FIELDS = frozenset({"start_date", "end_date", "sample_size"})


class VariantRequest(BaseModel):
    """Variant configuration."""

    id: str
    name: str
    traffic_allocation: float = Field(..., description="Traffic percentage (0-100)")
    config: dict[str, Any] = {}
    is_control: bool = False
    description: str = ""

    def to_variant(self) -> Variant:
        return Variant(**self.model_dump())


class TargetingRuleRequest(BaseModel):
    """Targeting rule."""

    type: RuleType = RuleType.USER_ATTRIBUTE
    attribute: str
    operator: RuleOperator
    value: Any = None

    def to_rule(self) -> TargetingRule:
        return TargetingRule(
            attribute=self.attribute,
            operator=self.operator,
            value=self.value,
            type=self.type,
        )


class MetricRequest(BaseModel):
    """Experiment metric."""

    id: str
    name: str
    type: MetricRole
    metric_type: MetricKind = MetricKind.CONVERSION
    event_name: str | None = None
    aggregation: Aggregation = Aggregation.COUNT
    goal: float | None = None

    def to_metric(self) -> ExperimentMetric:
        return ExperimentMetric(
            id=self.id,
            name=self.name,
            role=self.type,
            kind=self.metric_type,
            event_name=self.event_name,
            aggregation=self.aggregation,
            goal=self.goal,
        )


class ExperimentCreate(BaseModel):
    """Experiment creation request."""

    name: str
    description: str = ""
    hypothesis: str = ""
    type: ExperimentType = ExperimentType.AB
    variants: list[VariantRequest]
    targeting_rules: list[TargetingRuleRequest] = []
    metrics: list[MetricRequest]
    start_date: datetime | None = None
    end_date: datetime | None = None
    sample_size: int | None = None
    confidence_level: float | None = None
    created_by: str = ""

    model_config = {"json_schema_extra": {
        "example": {
            "name": "checkout_button_color",
            "hypothesis": "A green button increases purchases",
            "variants": [
                {"id": "control", "name": "Blue", "traffic_allocation": 50, "is_control": True},
                {"id": "green", "name": "Green", "traffic_allocation": 50},
            ],
            "metrics": [
                {"id": "purchases", "name": "Purchases", "type": "primary",
                 "event_name": "purchase", "aggregation": "unique"},
            ],
            "confidence_level": 95,
        }
    }}

    def to_kwargs(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "hypothesis": self.hypothesis,
            "type": self.type,
            "variants": [v.to_variant() for v in self.variants],
            "targeting_rules": [r.to_rule() for r in self.targeting_rules],
            "metrics": [m.to_metric() for m in self.metrics],
            "start_date": self.start_date,
            "end_date": self.end_date,
            "sample_size": self.sample_size,
            "confidence_level": self.confidence_level,
            "created_by": self.created_by,
        }


class ExperimentUpdate(BaseModel):
    """Partial experiment update. Only fields that are sent are applied."""

    name: str | None = None
    description: str | None = None
    hypothesis: str | None = None
    type: ExperimentType | None = None
    status: ExperimentStatus | None = None
    variants: list[VariantRequest] | None = None
    targeting_rules: list[TargetingRuleRequest] | None = None
    metrics: list[MetricRequest] | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    sample_size: int | None = None
    confidence_level: float | None = None

    def to_changes(self) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None and name not in NULLABLE_FIELDS:
                continue
            if name == "variants" and value is not None:
                value = [v.to_variant() for v in value]
            elif name == "targeting_rules" and value is not None:
                value = [r.to_rule() for r in value]
            elif name == "metrics" and value is not None:
                value = [m.to_metric() for m in value]
            changes[name] = value
        return changes


class CompleteRequest(BaseModel):
    """Experiment completion request."""

    winning_variant_id: str | None = None


class CloneRequest(BaseModel):
    """Experiment clone request."""

    name: str
    created_by: str = ""


class AssignRequest(BaseModel):
    """Variant assignment request."""

    subject_id: str
    attributes: dict[str, Any] | None = None
    session_id: str | None = None


class ForceAssignRequest(BaseModel):
    """Administrative reassignment request."""

    variant_id: str
