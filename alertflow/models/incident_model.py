from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from alertflow.models.alert_model import AlertSeverity


class IncidentStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


TERMINAL_INCIDENT_STATUSES = frozenset(
    {IncidentStatus.RESOLVED, IncidentStatus.DISMISSED}
)


class Incident(BaseModel):
    id: Optional[str] = None  # PK, lo asigna el store
    tenant_id: str
    title: str
    description: Optional[str] = None
    severity: AlertSeverity
    status: IncidentStatus = IncidentStatus.OPEN
    owner_id: str
    linked_alert_id: str
    created_at: datetime
    acknowledged_at: Optional[datetime] = None
    investigation_started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_summary: Optional[str] = None
    dismissal_justification: Optional[str] = None
    sla_acknowledge_by: datetime
    sla_investigate_by: datetime
    sla_resolve_by: datetime

    class Config:
        extra = "ignore"
        from_attributes = True


class SlaMilestone(str, Enum):
    ACKNOWLEDGE = "acknowledge"
    INVESTIGATE = "investigate"
    RESOLVE = "resolve"


class SlaState(str, Enum):
    OK = "ok"
    WARNING = "warning"
    BREACH = "breach"


class SlaStatus(BaseModel):
    """Lectura derivada del SLA; nunca se persiste."""

    milestone: SlaMilestone
    state: SlaState
    deadline: datetime
    # Negativo cuando el plazo ya venció
    remaining_seconds: float
    completed_at: Optional[datetime] = None
