"""
Política de SLA por severidad y lectura derivada del estado del SLA.

La tabla severidad -> offsets es configuración inyectable; DEFAULT_SLA_MINUTES
es solo el valor por defecto cuando no se configura otra.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Union

from alertflow.core.errors import ValidationError
from alertflow.models.alert_model import AlertSeverity
from alertflow.models.incident_model import (
    Incident,
    IncidentStatus,
    SlaMilestone,
    SlaState,
    SlaStatus,
    TERMINAL_INCIDENT_STATUSES,
)

SLA_WARNING_WINDOW = timedelta(minutes=30)

DEFAULT_SLA_MINUTES: Dict[str, Dict[str, int]] = {
    "critical": {"acknowledge_minutes": 15, "investigate_minutes": 60, "resolve_minutes": 240},
    "high": {"acknowledge_minutes": 30, "investigate_minutes": 120, "resolve_minutes": 480},
    "medium": {"acknowledge_minutes": 60, "investigate_minutes": 240, "resolve_minutes": 1440},
    "low": {"acknowledge_minutes": 240, "investigate_minutes": 480, "resolve_minutes": 4320},
    "info": {"acknowledge_minutes": 240, "investigate_minutes": 480, "resolve_minutes": 4320},
}


@dataclass(frozen=True)
class SlaOffsets:
    acknowledge: timedelta
    investigate: timedelta
    resolve: timedelta


@dataclass(frozen=True)
class SlaDeadlines:
    acknowledge_by: datetime
    investigate_by: datetime
    resolve_by: datetime


class SlaPolicy:
    """Tabla severidad -> SlaOffsets."""

    def __init__(self, offsets: Mapping[Union[AlertSeverity, str], SlaOffsets]):
        self._offsets = {AlertSeverity(sev): value for sev, value in offsets.items()}

    @classmethod
    def from_minutes(cls, table: Mapping[str, Mapping[str, Any]]) -> "SlaPolicy":
        """
        Construye la política desde un dict de minutos.

        Args:
            table: {severity: {acknowledge_minutes, investigate_minutes, resolve_minutes}}

        Raises:
            ValidationError: severidad desconocida o fila incompleta
        """
        offsets = {}
        for severity, row in table.items():
            try:
                offsets[AlertSeverity(severity)] = SlaOffsets(
                    acknowledge=timedelta(minutes=float(row["acknowledge_minutes"])),
                    investigate=timedelta(minutes=float(row["investigate_minutes"])),
                    resolve=timedelta(minutes=float(row["resolve_minutes"])),
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ValidationError(f"invalid SLA policy row for {severity!r}: {exc}") from exc
        return cls(offsets)

    @classmethod
    def default(cls) -> "SlaPolicy":
        return cls.from_minutes(DEFAULT_SLA_MINUTES)

    def offsets_for(self, severity: Union[AlertSeverity, str]) -> SlaOffsets:
        try:
            return self._offsets[AlertSeverity(severity)]
        except (KeyError, ValueError) as exc:
            raise ValidationError(f"no SLA policy for severity {severity!r}") from exc

    def deadlines(self, severity: Union[AlertSeverity, str], created_at: datetime) -> SlaDeadlines:
        offsets = self.offsets_for(severity)
        return SlaDeadlines(
            acknowledge_by=created_at + offsets.acknowledge,
            investigate_by=created_at + offsets.investigate,
            resolve_by=created_at + offsets.resolve,
        )


def _deadline(incident: Incident, milestone: SlaMilestone) -> datetime:
    return {
        SlaMilestone.ACKNOWLEDGE: incident.sla_acknowledge_by,
        SlaMilestone.INVESTIGATE: incident.sla_investigate_by,
        SlaMilestone.RESOLVE: incident.sla_resolve_by,
    }[milestone]


def _completed_at(incident: Incident, milestone: SlaMilestone) -> Optional[datetime]:
    return {
        SlaMilestone.ACKNOWLEDGE: incident.acknowledged_at,
        SlaMilestone.INVESTIGATE: incident.investigation_started_at,
        SlaMilestone.RESOLVE: incident.resolved_at,
    }[milestone]


def _classify(deadline: datetime, at: datetime) -> SlaState:
    remaining = deadline - at
    if remaining <= timedelta(0):
        return SlaState.BREACH
    if remaining <= SLA_WARNING_WINDOW:
        return SlaState.WARNING
    return SlaState.OK


def evaluate_milestone(incident: Incident, milestone: SlaMilestone, now: datetime) -> SlaStatus:
    """
    Estado de un hito concreto.

    Un hito cumplido se juzga por cuándo se cumplió (breach si fue tarde,
    ok si no); uno pendiente se clasifica contra `now`.
    """
    deadline = _deadline(incident, milestone)
    completed_at = _completed_at(incident, milestone)
    if completed_at is not None:
        state = SlaState.BREACH if completed_at > deadline else SlaState.OK
        return SlaStatus(
            milestone=milestone,
            state=state,
            deadline=deadline,
            remaining_seconds=(deadline - completed_at).total_seconds(),
            completed_at=completed_at,
        )
    return SlaStatus(
        milestone=milestone,
        state=_classify(deadline, now),
        deadline=deadline,
        remaining_seconds=(deadline - now).total_seconds(),
    )


def active_milestone(incident: Incident, now: datetime) -> SlaMilestone:
    if incident.status == IncidentStatus.OPEN and incident.acknowledged_at is None:
        return SlaMilestone.ACKNOWLEDGE
    if incident.status == IncidentStatus.IN_PROGRESS and now < incident.sla_investigate_by:
        return SlaMilestone.INVESTIGATE
    return SlaMilestone.RESOLVE


def derive_sla_status(incident: Incident, now: datetime) -> SlaStatus:
    """
    Estado del hito activo. Lectura pura, se recalcula en cada llamada.

    Para incidentes cerrados el reloj se detiene en `resolved_at`.
    """
    milestone = active_milestone(incident, now)
    if incident.status in TERMINAL_INCIDENT_STATUSES and incident.resolved_at is not None:
        return evaluate_milestone(incident, SlaMilestone.RESOLVE, now)

    deadline = _deadline(incident, milestone)
    return SlaStatus(
        milestone=milestone,
        state=_classify(deadline, now),
        deadline=deadline,
        remaining_seconds=(deadline - now).total_seconds(),
    )


def sla_report(incident: Incident, now: datetime) -> Dict[str, SlaStatus]:
    return {
        milestone.value: evaluate_milestone(incident, milestone, now)
        for milestone in SlaMilestone
    }
