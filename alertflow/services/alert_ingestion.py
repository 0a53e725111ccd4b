import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from alertflow.core.clock import Clock, utcnow
from alertflow.core.errors import DependencyUnavailableError, ValidationError, WorkflowError
from alertflow.models.alert_model import Alert as AlertModel
from alertflow.models.alert_model import AlertStatus, CreateAlertInput
from alertflow.repositories.base_repo import BaseRepository
from alertflow.services.audit_service import AuditService
from alertflow.services.duplicate_checker import DuplicateChecker
from alertflow.services.storm_detector import StormDetector, suppression_key
from alertflow.services.suppression_gate import SuppressionGate

logger = logging.getLogger(__name__)


def parse_create_input(data: Union[CreateAlertInput, Mapping[str, Any]]) -> CreateAlertInput:
    if isinstance(data, CreateAlertInput):
        return data
    try:
        return CreateAlertInput(**data)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"{field}: {first.get('msg')}") from exc


class AlertIngestionPipeline:
    """
    Punto de entrada único para crear alertas.

    Orden: supresión -> duplicados -> persistencia -> marca de duplicado ->
    evaluación de tormenta. La marca de duplicado se escribe solo con la
    alerta ya guardada.
    La alerta queda guardada antes de evaluar la tormenta; la tormenta es una
    observación lateral de la misma llamada, no un veto.

    `suppression_gate`, `storm_detector` y `duplicate_checker` son opcionales:
    sin cache compartido la ingesta sigue funcionando, sin protección.
    """

    def __init__(
        self,
        alert_repository: BaseRepository[AlertModel],
        duplicate_checker: Optional[DuplicateChecker] = None,
        suppression_gate: Optional[SuppressionGate] = None,
        storm_detector: Optional[StormDetector] = None,
        audit_service: Optional[AuditService] = None,
        clock: Clock = utcnow,
    ):
        self.alert_repository = alert_repository
        self.duplicate_checker = duplicate_checker
        self.suppression_gate = suppression_gate
        self.storm_detector = storm_detector
        self.audit_service = audit_service
        self.clock = clock

    def create_alert(
        self, data: Union[CreateAlertInput, Mapping[str, Any]]
    ) -> Optional[str]:
        """
        Crea una alerta.

        Args:
            data: CreateAlertInput o dict equivalente

        Returns:
            El id de la alerta nueva, o None si se descartó por supresión o
            duplicado (ambos son respuestas normales, no errores)
        """
        alert_input = parse_create_input(data)

        if alert_input.device_id and self._is_suppressed(alert_input):
            logger.debug(
                "Alert suppressed due to alert storm: device_id=%s alert_type=%s",
                alert_input.device_id,
                alert_input.alert_type,
                extra={
                    "tenant_id": alert_input.tenant_id,
                    "device_id": alert_input.device_id,
                },
            )
            return None

        existing_id = None
        if self.duplicate_checker is not None:
            existing_id = self.duplicate_checker.find_recent_duplicate(
                alert_input.tenant_id, alert_input.device_id, alert_input.alert_type
            )
        if existing_id is not None:
            self._record_seen(alert_input.tenant_id, existing_id)
            logger.debug(
                "Duplicate alert skipped: existing_id=%s device_id=%s alert_type=%s",
                existing_id,
                alert_input.device_id,
                alert_input.alert_type,
                extra={
                    "tenant_id": alert_input.tenant_id,
                    "device_id": alert_input.device_id,
                },
            )
            return None

        # Fail-closed: un error del store sube al caller
        alert = self.alert_repository.persist(self._build_alert(alert_input))

        if self.duplicate_checker is not None:
            self.duplicate_checker.mark(
                alert.tenant_id, alert.device_id, alert.alert_type, alert.id
            )

        logger.info(
            "Alert created: id=%s severity=%s",
            alert.id,
            alert.severity.value,
            extra={
                "tenant_id": alert.tenant_id,
                "device_id": alert.device_id,
                "alert_id": alert.id,
            },
        )
        if self.audit_service is not None:
            self.audit_service.record(
                alert.tenant_id,
                "alert",
                alert.id,
                "created",
                new_status=AlertStatus.OPEN.value,
                details={"alert_type": alert.alert_type, "source": alert.source_system},
            )

        if alert_input.device_id and self.storm_detector is not None:
            self.storm_detector.on_alert_persisted(
                alert_input.tenant_id, alert_input.device_id
            )

        return alert.id

    def _record_seen(self, tenant_id: str, alert_id: str) -> None:
        """Suma una aparición a la alerta original (best-effort)."""
        try:
            existing = self.alert_repository.get_by_id(tenant_id, alert_id)
            if existing is None:
                return
            self.alert_repository.conditional_update(
                tenant_id,
                alert_id,
                (existing.status,),
                {"seen_count": existing.seen_count + 1, "last_seen_at": self.clock()},
            )
        except WorkflowError as exc:
            logger.warning(
                "Failed to update seen count for alert id=%s: %s",
                alert_id,
                exc,
                extra={"tenant_id": tenant_id, "alert_id": alert_id},
            )

    def _is_suppressed(self, alert_input: CreateAlertInput) -> bool:
        if self.suppression_gate is None:
            return False
        key = suppression_key(alert_input.tenant_id, alert_input.device_id)
        try:
            return self.suppression_gate.is_active(key)
        except DependencyUnavailableError as exc:
            # Fail-open: sin cache no hay supresión
            logger.warning(
                "Suppression check unavailable for device_id=%s: %s",
                alert_input.device_id,
                exc,
                extra={
                    "tenant_id": alert_input.tenant_id,
                    "device_id": alert_input.device_id,
                },
            )
            return False

    def _build_alert(self, alert_input: CreateAlertInput) -> AlertModel:
        return AlertModel(
            tenant_id=alert_input.tenant_id,
            device_id=alert_input.device_id,
            source_system=alert_input.source,
            alert_type=alert_input.alert_type,
            classification=alert_input.classification or alert_input.alert_type,
            severity=alert_input.severity,
            message=alert_input.message,
            status=AlertStatus.OPEN,
            metadata=alert_input.metadata or {},
            detected_at=alert_input.detected_at or self.clock(),
            last_seen_at=self.clock(),
        )
