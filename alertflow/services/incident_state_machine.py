import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Union

from alertflow.core.clock import Clock, utcnow
from alertflow.core.errors import ConflictError, NotFoundError, ValidationError
from alertflow.models.alert_model import Alert as AlertModel
from alertflow.models.incident_model import Incident as IncidentModel
from alertflow.models.incident_model import IncidentStatus, SlaMilestone, SlaStatus
from alertflow.repositories.base_repo import BaseRepository
from alertflow.services.audit_service import AuditService
from alertflow.services.sla import SlaPolicy, derive_sla_status, evaluate_milestone

logger = logging.getLogger(__name__)


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


class IncidentStateMachine:
    """
    Ciclo de vida de un incidente: open -> in_progress -> resolved | dismissed.

    Los incidentes solo nacen al escalar una alerta (`create_from_alert`).
    Cada transición es una única escritura condicional sobre el status actual;
    si se pierde la carrera el resultado es ConflictError, sin reintentos.
    """

    def __init__(
        self,
        incident_repository: BaseRepository[IncidentModel],
        sla_policy: SlaPolicy,
        audit_service: Optional[AuditService] = None,
        clock: Clock = utcnow,
    ):
        self.incident_repository = incident_repository
        self.sla_policy = sla_policy
        self.audit_service = audit_service
        self.clock = clock

    # ---------- Creación (solo vía escalado) ----------

    def create_from_alert(
        self,
        alert: AlertModel,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> IncidentModel:
        """
        Crea el incidente vinculado a una alerta escalada.

        El dueño del incidente es el dueño de la alerta y los plazos de SLA
        se calculan desde `created_at` según la severidad.
        """
        now = self.clock()
        deadlines = self.sla_policy.deadlines(alert.severity, now)
        incident = self.incident_repository.persist(
            IncidentModel(
                tenant_id=alert.tenant_id,
                title=(title or "").strip() or f"Security Incident: {alert.alert_type}",
                description=(description or "").strip() or alert.message,
                severity=alert.severity,
                status=IncidentStatus.OPEN,
                owner_id=alert.owner_id,
                linked_alert_id=alert.id,
                created_at=now,
                sla_acknowledge_by=deadlines.acknowledge_by,
                sla_investigate_by=deadlines.investigate_by,
                sla_resolve_by=deadlines.resolve_by,
            )
        )
        logger.info(
            "Incident created: id=%s linked_alert_id=%s severity=%s",
            incident.id,
            alert.id,
            incident.severity.value,
            extra={"tenant_id": incident.tenant_id, "incident_id": incident.id},
        )
        self._audit(incident, "created", incident.owner_id, None, IncidentStatus.OPEN)
        return incident

    # ---------- Transiciones ----------

    def start_work(
        self, tenant_id: str, incident_id: str, analyst_id: Optional[str] = None
    ) -> IncidentModel:
        """
        open -> in_progress. Marca acknowledged_at e investigation_started_at.

        Se permite aunque ya haya vencido el plazo de acknowledge; el retraso
        lo refleja la lectura del SLA, no bloquea la transición.
        """
        now = self.clock()
        incident = self._transition(
            tenant_id,
            incident_id,
            (IncidentStatus.OPEN,),
            {
                "status": IncidentStatus.IN_PROGRESS,
                "acknowledged_at": now,
                "investigation_started_at": now,
            },
            analyst_id,
            "start_work",
        )
        self._audit(incident, "work_started", analyst_id, IncidentStatus.OPEN, incident.status)
        return incident

    def resolve(
        self,
        tenant_id: str,
        incident_id: str,
        summary: Optional[str],
        analyst_id: Optional[str] = None,
    ) -> IncidentModel:
        summary = _require_text(summary, "summary")
        incident = self._transition(
            tenant_id,
            incident_id,
            (IncidentStatus.IN_PROGRESS,),
            {
                "status": IncidentStatus.RESOLVED,
                "resolved_at": self.clock(),
                "resolution_summary": summary,
            },
            analyst_id,
            "resolve",
        )
        self._audit(incident, "resolved", analyst_id, IncidentStatus.IN_PROGRESS, incident.status)
        return incident

    def dismiss(
        self,
        tenant_id: str,
        incident_id: str,
        justification: Optional[str],
        analyst_id: Optional[str] = None,
    ) -> IncidentModel:
        justification = _require_text(justification, "justification")
        incident = self._transition(
            tenant_id,
            incident_id,
            (IncidentStatus.IN_PROGRESS,),
            {
                "status": IncidentStatus.DISMISSED,
                "resolved_at": self.clock(),
                "dismissal_justification": justification,
            },
            analyst_id,
            "dismiss",
        )
        self._audit(incident, "dismissed", analyst_id, IncidentStatus.IN_PROGRESS, incident.status)
        return incident

    # ---------- Lecturas ----------

    def get_incident(self, tenant_id: str, incident_id: str) -> IncidentModel:
        incident = self.incident_repository.get_by_id(tenant_id, incident_id)
        if incident is None:
            raise NotFoundError(f"Incident with ID '{incident_id}' not found")
        return incident

    def sla_status(
        self,
        tenant_id: str,
        incident_id: str,
        milestone: Optional[Union[SlaMilestone, str]] = None,
        now: Optional[datetime] = None,
    ) -> SlaStatus:
        """Estado del hito indicado o, sin hito, del hito activo."""
        incident = self.get_incident(tenant_id, incident_id)
        now = now or self.clock()
        if milestone is None:
            return derive_sla_status(incident, now)
        try:
            milestone = SlaMilestone(milestone)
        except ValueError as exc:
            raise ValidationError(f"invalid SLA milestone {milestone!r}") from exc
        return evaluate_milestone(incident, milestone, now)

    # ---------- Helpers ----------

    def _transition(
        self,
        tenant_id: str,
        incident_id: str,
        expected: Sequence[IncidentStatus],
        patch: Dict[str, Any],
        analyst_id: Optional[str],
        operation: str,
    ) -> IncidentModel:
        current = self.get_incident(tenant_id, incident_id)
        if current.status not in expected:
            raise ConflictError(
                f"Cannot {operation} incident '{incident_id}' in status '{current.status.value}'"
            )
        if analyst_id is not None and current.owner_id != analyst_id:
            raise ConflictError(f"Incident '{incident_id}' is not owned by '{analyst_id}'")

        updated = self.incident_repository.conditional_update(
            tenant_id, incident_id, expected, patch, expected_owner=analyst_id
        )
        if updated is None:
            raise ConflictError(
                f"Incident '{incident_id}' was modified concurrently; {operation} not applied"
            )
        logger.info(
            "Incident %s: id=%s status=%s",
            operation,
            incident_id,
            updated.status.value,
            extra={"tenant_id": tenant_id, "incident_id": incident_id},
        )
        return updated

    def _audit(
        self,
        incident: IncidentModel,
        action: str,
        actor_id: Optional[str],
        previous: Optional[IncidentStatus],
        new: IncidentStatus,
    ) -> None:
        if self.audit_service is None:
            return
        self.audit_service.record(
            incident.tenant_id,
            "incident",
            incident.id,
            action,
            actor_id=actor_id,
            previous_status=previous.value if previous else None,
            new_status=new.value,
            details={"linked_alert_id": incident.linked_alert_id},
        )
