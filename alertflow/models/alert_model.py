from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class AlertStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    INVESTIGATING = "investigating"
    ESCALATED = "escalated"
    CLOSED_BENIGN = "closed_benign"
    CLOSED_FALSE_POSITIVE = "closed_false_positive"


# Estados finales: no se permite ninguna mutación posterior
TERMINAL_ALERT_STATUSES = frozenset(
    {
        AlertStatus.ESCALATED,
        AlertStatus.CLOSED_BENIGN,
        AlertStatus.CLOSED_FALSE_POSITIVE,
    }
)

# Estados con dueño desde los que se puede escalar o cerrar
OWNED_WORKING_STATUSES = (AlertStatus.ASSIGNED, AlertStatus.INVESTIGATING)


class ResolutionOutcome(str, Enum):
    BENIGN = "benign"
    FALSE_POSITIVE = "false_positive"


class Alert(BaseModel):
    id: Optional[str] = None  # PK, lo asigna el store
    tenant_id: str
    device_id: Optional[str] = None
    source_system: str
    alert_type: str
    classification: Optional[str] = None
    severity: AlertSeverity
    message: str
    status: AlertStatus = AlertStatus.OPEN
    owner_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    # Veces que llegó la misma alerta dentro de la ventana de deduplicación
    seen_count: int = 1
    last_seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    detected_at: Optional[datetime] = None

    class Config:
        extra = "ignore"
        from_attributes = True

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ALERT_STATUSES


class CreateAlertInput(BaseModel):
    """
    Entrada de `createAlert`. `device_id` es opcional: sin él la alerta no
    participa en la detección de tormentas.
    """

    tenant_id: str = Field(min_length=1)
    device_id: Optional[str] = None
    alert_type: str = Field(min_length=1)
    severity: AlertSeverity
    message: str
    source: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = None
    classification: Optional[str] = None
    detected_at: Optional[datetime] = None
