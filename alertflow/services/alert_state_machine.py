import logging
from typing import Any, Dict, Optional, Sequence, Union

from alertflow.core.clock import Clock, utcnow
from alertflow.core.errors import ConflictError, NotFoundError, ValidationError
from alertflow.models.alert_model import Alert as AlertModel
from alertflow.models.alert_model import (
    AlertStatus,
    OWNED_WORKING_STATUSES,
    ResolutionOutcome,
)
from alertflow.models.incident_model import Incident as IncidentModel
from alertflow.repositories.base_repo import BaseRepository
from alertflow.services.audit_service import AuditService
from alertflow.services.incident_state_machine import IncidentStateMachine

logger = logging.getLogger(__name__)

OUTCOME_STATUS = {
    ResolutionOutcome.BENIGN: AlertStatus.CLOSED_BENIGN,
    ResolutionOutcome.FALSE_POSITIVE: AlertStatus.CLOSED_FALSE_POSITIVE,
}


def _require_analyst(analyst_id: Optional[str]) -> str:
    if analyst_id is None or not analyst_id.strip():
        raise ValidationError("analyst_id is required")
    return analyst_id


class AlertStateMachine:
    """
    Ciclo de vida de propiedad y resolución de una alerta.

    open -> assigned (claim) -> investigating (opcional)
         -> escalated | closed_benign | closed_false_positive

    Cada transición es una escritura condicional (compare-and-set sobre el
    status y, donde aplica, el dueño). De N llamadas concurrentes gana una;
    el resto recibe ConflictError y el registro no cambia.
    """

    def __init__(
        self,
        alert_repository: BaseRepository[AlertModel],
        incident_state_machine: IncidentStateMachine,
        audit_service: Optional[AuditService] = None,
        clock: Clock = utcnow,
    ):
        self.alert_repository = alert_repository
        self.incident_state_machine = incident_state_machine
        self.audit_service = audit_service
        self.clock = clock

    def get_alert(self, tenant_id: str, alert_id: str) -> AlertModel:
        """
        Obtiene una alerta del tenant.

        Raises:
            NotFoundError: si no existe o es de otro tenant
        """
        alert = self.alert_repository.get_by_id(tenant_id, alert_id)
        if alert is None:
            raise NotFoundError(f"Alert with ID '{alert_id}' not found")
        return alert

    def claim(self, tenant_id: str, alert_id: str, analyst_id: str) -> AlertModel:
        analyst_id = _require_analyst(analyst_id)
        alert = self._transition(
            tenant_id,
            alert_id,
            (AlertStatus.OPEN,),
            {
                "status": AlertStatus.ASSIGNED,
                "owner_id": analyst_id,
                "assigned_at": self.clock(),
            },
            expected_owner=None,
            operation="claim",
        )
        self._audit(alert, "claimed", analyst_id, AlertStatus.OPEN)
        return alert

    def start_investigation(
        self, tenant_id: str, alert_id: str, analyst_id: str
    ) -> AlertModel:
        analyst_id = _require_analyst(analyst_id)
        alert = self._transition(
            tenant_id,
            alert_id,
            (AlertStatus.ASSIGNED,),
            {"status": AlertStatus.INVESTIGATING},
            expected_owner=analyst_id,
            operation="start_investigation",
        )
        self._audit(alert, "investigation_started", analyst_id, AlertStatus.ASSIGNED)
        return alert

    def escalate(
        self,
        tenant_id: str,
        alert_id: str,
        analyst_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> IncidentModel:
        """
        Escala la alerta y crea exactamente un incidente vinculado.

        Primero gana la escritura condicional a `escalated`; solo el ganador
        crea el incidente. Un reintento sobre una alerta ya escalada falla con
        ConflictError sin duplicar el incidente. Si la creación del incidente
        falla, la alerta vuelve a su status anterior y el error sube.
        """
        analyst_id = _require_analyst(analyst_id)
        previous = self.get_alert(tenant_id, alert_id)
        escalated = self._transition(
            tenant_id,
            alert_id,
            OWNED_WORKING_STATUSES,
            {"status": AlertStatus.ESCALATED},
            expected_owner=analyst_id,
            operation="escalate",
            current=previous,
        )

        try:
            incident = self.incident_state_machine.create_from_alert(
                escalated, title=title, description=description
            )
        except Exception:
            logger.error(
                "Incident creation failed, reverting escalation of alert id=%s",
                alert_id,
                extra={"tenant_id": tenant_id, "alert_id": alert_id},
            )
            self.alert_repository.conditional_update(
                tenant_id,
                alert_id,
                (AlertStatus.ESCALATED,),
                {"status": previous.status},
                expected_owner=analyst_id,
            )
            raise

        self._audit(
            escalated,
            "escalated",
            analyst_id,
            previous.status,
            details={"incident_id": incident.id},
        )
        return incident

    def resolve(
        self,
        tenant_id: str,
        alert_id: str,
        analyst_id: str,
        outcome: Union[ResolutionOutcome, str],
        notes: Optional[str],
    ) -> AlertModel:
        analyst_id = _require_analyst(analyst_id)
        try:
            outcome = ResolutionOutcome(outcome)
        except ValueError as exc:
            raise ValidationError(
                'Invalid outcome. Must be "benign" or "false_positive"'
            ) from exc
        if notes is None or not notes.strip():
            raise ValidationError("Analyst notes are required when resolving an alert")

        previous = self.get_alert(tenant_id, alert_id)
        alert = self._transition(
            tenant_id,
            alert_id,
            OWNED_WORKING_STATUSES,
            {
                "status": OUTCOME_STATUS[outcome],
                "resolution_notes": notes.strip(),
                "resolved_at": self.clock(),
            },
            expected_owner=analyst_id,
            operation="resolve",
            current=previous,
        )
        self._audit(
            alert, "resolved", analyst_id, previous.status, details={"outcome": outcome.value}
        )
        return alert

    # ---------- Helpers ----------

    def _transition(
        self,
        tenant_id: str,
        alert_id: str,
        expected: Sequence[AlertStatus],
        patch: Dict[str, Any],
        expected_owner: Optional[str],
        operation: str,
        current: Optional[AlertModel] = None,
    ) -> AlertModel:
        current = current or self.get_alert(tenant_id, alert_id)
        if current.status not in expected:
            raise ConflictError(
                f"Cannot {operation} alert '{alert_id}' in status '{current.status.value}'"
            )
        if expected_owner is not None and current.owner_id != expected_owner:
            raise ConflictError(f"Alert '{alert_id}' is not owned by '{expected_owner}'")

        updated = self.alert_repository.conditional_update(
            tenant_id, alert_id, expected, patch, expected_owner=expected_owner
        )
        if updated is None:
            raise ConflictError(
                f"Alert '{alert_id}' was modified concurrently; {operation} not applied"
            )
        logger.info(
            "Alert %s: id=%s status=%s owner_id=%s",
            operation,
            alert_id,
            updated.status.value,
            updated.owner_id,
            extra={"tenant_id": tenant_id, "alert_id": alert_id},
        )
        return updated

    def _audit(
        self,
        alert: AlertModel,
        action: str,
        actor_id: str,
        previous: AlertStatus,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.audit_service is None:
            return
        self.audit_service.record(
            alert.tenant_id,
            "alert",
            alert.id,
            action,
            actor_id=actor_id,
            previous_status=previous.value,
            new_status=alert.status.value,
            details=details,
        )
