"""
Incident Responder - Schemas
============================

Pydantic models for health samples, workload snapshots, incidents,
resolutions, diagnosis plans and the persisted incident log.
"""

from datetime import datetime, timezone
from typing import Optional
import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from incident_responder.constants import (
    STATUS_ORDER,
    TERMINAL_STATUSES,
    FixKind,
    IncidentClass,
    IncidentStatus,
)
from incident_responder.exceptions import InvalidTransitionError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# WORKLOAD PROBES
# =============================================================================

class HealthSample(BaseModel):
    """One health observation of the managed workload."""

    healthy: bool = Field(..., description="Whether the workload reported healthy")
    timestamp: datetime = Field(default_factory=utc_now)
    message: str = Field(default="")
    status_code: int = Field(default=0, description="HTTP status code, 0 if no response")


class WorkloadStatus(BaseModel):
    """Typed status snapshot exposed by the workload's /status endpoint."""

    running: bool = Field(default=False)
    healthy: bool = Field(default=False)
    config: dict[str, str] = Field(default_factory=dict)
    recent_logs: list[str] = Field(default_factory=list)

    @field_validator("config", mode="before")
    @classmethod
    def _stringify_config(cls, value):
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


class IncidentEvent(BaseModel):
    """Emitted by the health monitor on a healthy -> unhealthy transition."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    detected_at: datetime = Field(default_factory=utc_now)
    sample: HealthSample


# =============================================================================
# REMEDIATION
# =============================================================================

class DiagnosisRequest(BaseModel):
    """Incident context handed to a diagnosis source."""

    incident_class: IncidentClass
    symptoms: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)
    detected_at: datetime


class DiagnosisPlan(BaseModel):
    """
    A validated remediation plan.

    Accepts both ``fix_kind``/``steps`` and the ``fix_type``/``fix_steps``
    spelling some models answer with. Construction fails on an empty
    diagnosis, a fix kind outside restart/config/code, or no steps.
    """

    model_config = ConfigDict(populate_by_name=True)

    diagnosis: str
    fix_kind: FixKind = Field(validation_alias=AliasChoices("fix_kind", "fix_type"))
    steps: list[str] = Field(
        min_length=1,
        validation_alias=AliasChoices("steps", "fix_steps")
    )
    code: Optional[str] = None
    confidence: Optional[float] = None

    @field_validator("diagnosis")
    @classmethod
    def _diagnosis_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("diagnosis must not be empty")
        return value

    @field_validator("steps")
    @classmethod
    def _drop_blank_steps(cls, value: list[str]) -> list[str]:
        steps = [step.strip() for step in value if step and step.strip()]
        if not steps:
            raise ValueError("plan must contain at least one step")
        return steps


class Resolution(BaseModel):
    """How an incident was fixed. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    fix_kind: FixKind
    description: str = Field(default="")
    steps: tuple[str, ...] = Field(default_factory=tuple)
    code: Optional[str] = None
    success: bool = Field(default=False)

    @classmethod
    def from_plan(cls, plan: DiagnosisPlan, success: bool) -> "Resolution":
        return cls(
            fix_kind=plan.fix_kind,
            description=plan.diagnosis,
            steps=tuple(plan.steps),
            code=plan.code,
            success=success,
        )


# =============================================================================
# INCIDENTS
# =============================================================================

class Incident(BaseModel):
    """A detected incident and everything learned while handling it."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    incident_class: Optional[IncidentClass] = Field(
        default=None,
        description="Set by classification"
    )
    status: IncidentStatus = Field(default=IncidentStatus.DETECTED)
    detected_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None
    symptoms: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)
    diagnosis: Optional[str] = None
    resolution: Optional[Resolution] = None
    used_cached_fix: bool = Field(default=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def advance(self, status: IncidentStatus) -> None:
        """
        Move the incident forward in its lifecycle.

        Stages may be skipped (a cached fix goes straight from detected to
        resolved) but never revisited, and terminal states are final.
        Reaching RESOLVED stamps ``resolved_at``.

        Raises:
            InvalidTransitionError: if the move would regress
        """
        status = IncidentStatus(status)
        if self.is_terminal or STATUS_ORDER[status] <= STATUS_ORDER[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, status.value)

        self.status = status
        if status == IncidentStatus.RESOLVED:
            self.resolved_at = utc_now()


class StoreDocument(BaseModel):
    """On-disk layout of the incident log."""

    incidents: dict[str, Incident] = Field(default_factory=dict)
    fixes: dict[IncidentClass, Resolution] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utc_now)


# =============================================================================
# API RESPONSES
# =============================================================================

class IncidentListResponse(BaseModel):
    """Response for listing incidents."""

    incidents: list[Incident]
    total: int


class StoreStats(BaseModel):
    """Aggregate view of the incident log."""

    total_incidents: int = 0
    resolved: int = 0
    failed: int = 0
    learned_fixes: int = 0
    incidents_by_class: dict[str, int] = Field(default_factory=dict)
    available_fix_classes: list[str] = Field(default_factory=list)
