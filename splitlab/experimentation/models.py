"""Experiment data model.

Dataclasses for experiments, variants, targeting rules, metrics and
assignments, with dictionary conversion for storage and transport.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ExperimentStatus(Enum):
    """Experiment status enum."""

    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ExperimentType(Enum):
    """Experiment type enum."""

    AB = "ab"
    MULTIVARIATE = "multivariate"
    FEATURE_FLAG = "feature_flag"


class RuleType(Enum):
    """Targeting rule type."""

    USER_ATTRIBUTE = "user_attribute"
    SEGMENT = "segment"
    LOCATION = "location"
    DEVICE = "device"
    CUSTOM = "custom"


class RuleOperator(Enum):
    """Targeting rule comparison operator."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class MetricRole(Enum):
    """Metric classification."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    GUARDRAIL = "guardrail"


class MetricKind(Enum):
    """What a metric measures."""

    CONVERSION = "conversion"
    REVENUE = "revenue"
    ENGAGEMENT = "engagement"
    RETENTION = "retention"
    CUSTOM = "custom"


class Aggregation(Enum):
    """How matching events are aggregated."""

    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    UNIQUE = "unique"


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class Variant:
    """Variant configuration for an experiment."""

    id: str
    name: str
    traffic_allocation: float  # Percentage (0-100)
    config: dict[str, Any] = field(default_factory=dict)
    is_control: bool = False
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "traffic_allocation": self.traffic_allocation,
            "config": self.config,
            "is_control": self.is_control,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Variant":
        return cls(
            id=data["id"],
            name=data["name"],
            traffic_allocation=float(data["traffic_allocation"]),
            config=dict(data.get("config") or {}),
            is_control=bool(data.get("is_control", False)),
            description=data.get("description") or "",
        )


@dataclass
class TargetingRule:
    """Eligibility rule evaluated against subject attributes.

    ``value`` is whatever the rule compares against: a scalar for
    equality and ordering operators, a collection for ``in``/``not_in``.
    Use the typed accessors instead of reading it directly.
    """

    attribute: str
    operator: RuleOperator
    value: Any
    type: RuleType = RuleType.USER_ATTRIBUTE

    def value_list(self) -> list[Any] | None:
        """Comparison value as a list, or None if it is not a collection."""
        if isinstance(self.value, (list, tuple, set, frozenset)):
            return list(self.value)
        return None

    def value_number(self) -> float | None:
        """Comparison value as a number, or None if not numeric."""
        return to_number(self.value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "attribute": self.attribute,
            "operator": self.operator.value,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetingRule":
        return cls(
            attribute=data["attribute"],
            operator=RuleOperator(data["operator"]),
            value=data.get("value"),
            type=RuleType(data.get("type", RuleType.USER_ATTRIBUTE.value)),
        )


@dataclass
class ExperimentMetric:
    """Metric tracked by an experiment."""

    id: str
    name: str
    role: MetricRole
    kind: MetricKind = MetricKind.CONVERSION
    event_name: str | None = None
    aggregation: Aggregation = Aggregation.COUNT
    goal: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.role.value,
            "metric_type": self.kind.value,
            "event_name": self.event_name,
            "aggregation": self.aggregation.value,
            "goal": self.goal,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExperimentMetric":
        goal = data.get("goal")
        return cls(
            id=data["id"],
            name=data["name"],
            role=MetricRole(data["type"]),
            kind=MetricKind(data.get("metric_type", MetricKind.CONVERSION.value)),
            event_name=data.get("event_name"),
            aggregation=Aggregation(data.get("aggregation", Aggregation.COUNT.value)),
            goal=float(goal) if goal is not None else None,
        )


@dataclass
class Experiment:
    """Experiment configuration."""

    id: str
    name: str
    variants: list[Variant]
    metrics: list[ExperimentMetric]
    description: str = ""
    hypothesis: str = ""
    type: ExperimentType = ExperimentType.AB
    status: ExperimentStatus = ExperimentStatus.DRAFT
    targeting_rules: list[TargetingRule] = field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    sample_size: int | None = None
    confidence_level: float = 95.0
    created_by: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    winning_variant_id: str | None = None

    def get_variant(self, variant_id: str) -> Variant | None:
        """Get variant by id."""
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    @property
    def control_variant(self) -> Variant | None:
        """First variant flagged as control."""
        return next((v for v in self.variants if v.is_control), None)

    @property
    def primary_metric(self) -> ExperimentMetric | None:
        """First metric classified as primary."""
        return next((m for m in self.metrics if m.role == MetricRole.PRIMARY), None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "hypothesis": self.hypothesis,
            "type": self.type.value,
            "status": self.status.value,
            "variants": [v.to_dict() for v in self.variants],
            "targeting_rules": [r.to_dict() for r in self.targeting_rules],
            "metrics": [m.to_dict() for m in self.metrics],
            "start_date": _format_datetime(self.start_date),
            "end_date": _format_datetime(self.end_date),
            "sample_size": self.sample_size,
            "confidence_level": self.confidence_level,
            "created_by": self.created_by,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
            "winning_variant_id": self.winning_variant_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Experiment":
        now = datetime.now()
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description") or "",
            hypothesis=data.get("hypothesis") or "",
            type=ExperimentType(data.get("type", ExperimentType.AB.value)),
            status=ExperimentStatus(data.get("status", ExperimentStatus.DRAFT.value)),
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
            targeting_rules=[
                TargetingRule.from_dict(r) for r in data.get("targeting_rules") or []
            ],
            metrics=[ExperimentMetric.from_dict(m) for m in data.get("metrics", [])],
            start_date=_parse_datetime(data.get("start_date")),
            end_date=_parse_datetime(data.get("end_date")),
            sample_size=data.get("sample_size"),
            confidence_level=float(data.get("confidence_level", 95.0)),
            created_by=str(data.get("created_by", "")),
            created_at=_parse_datetime(data.get("created_at")) or now,
            updated_at=_parse_datetime(data.get("updated_at")) or now,
            winning_variant_id=data.get("winning_variant_id"),
        )


@dataclass
class VariantAssignment:
    """Variant a subject was placed in for one experiment."""

    experiment_id: str
    subject_id: str
    variant_id: str
    variant_name: str
    assigned_at: datetime = field(default_factory=datetime.now)
    session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "experiment_id": self.experiment_id,
            "subject_id": self.subject_id,
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "assigned_at": self.assigned_at.isoformat(),
            "session_id": self.session_id,
        }


def to_number(value: Any) -> float | None:
    """Coerce a dynamic value to float, None when not numeric."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None
