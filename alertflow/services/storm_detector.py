import logging
from dataclasses import dataclass
from typing import Optional

from alertflow.core.clock import Clock, utcnow
from alertflow.models.alert_model import Alert as AlertModel
from alertflow.models.alert_model import AlertSeverity, AlertStatus
from alertflow.repositories.base_repo import BaseRepository
from alertflow.services.rate_counter import RateCounter
from alertflow.services.suppression_gate import SuppressionGate

logger = logging.getLogger(__name__)

STORM_THRESHOLD = 10  # la alerta 11 dentro de la ventana es la que lo cruza
STORM_WINDOW_SECONDS = 300
SUPPRESSION_SECONDS = 900

META_ALERT_TYPE = "alert_storm_detected"
META_ALERT_SEVERITY = AlertSeverity.HIGH
META_ALERT_SOURCE = "storm_detector"

STORM_KEY_PREFIX = "alert:storm:"
SUPPRESSION_KEY_PREFIX = "alert:suppress:"


def storm_counter_key(tenant_id: str, device_id: str) -> str:
    return f"{STORM_KEY_PREFIX}{tenant_id}:{device_id}"


def suppression_key(tenant_id: str, device_id: str) -> str:
    return f"{SUPPRESSION_KEY_PREFIX}{tenant_id}:{device_id}"


@dataclass(frozen=True)
class StormOutcome:
    detected: bool
    alert_count: int = 0
    meta_alert_id: Optional[str] = None

    @classmethod
    def none(cls) -> "StormOutcome":
        return cls(detected=False)


class StormDetector:
    """
    Decide cuándo un dispositivo entra en tormenta de alertas.

    Se invoca una vez por cada alerta con device_id ya persistida. Al superar
    STORM_THRESHOLD crea una meta-alerta y activa la supresión del dispositivo
    durante SUPPRESSION_SECONDS. Es estrictamente best-effort: cualquier error
    se registra y se descarta, nunca llega a la ingesta.
    """

    def __init__(
        self,
        rate_counter: RateCounter,
        suppression_gate: SuppressionGate,
        alert_repository: BaseRepository[AlertModel],
        clock: Clock = utcnow,
    ):
        self.rate_counter = rate_counter
        self.suppression_gate = suppression_gate
        self.alert_repository = alert_repository
        self.clock = clock

    def on_alert_persisted(self, tenant_id: str, device_id: str) -> StormOutcome:
        """
        Cuenta la alerta y, si corresponde, reporta la tormenta.

        Args:
            tenant_id: Tenant de la alerta
            device_id: Dispositivo que la originó

        Returns:
            StormOutcome con detected=True solo para la llamada que emite la meta-alerta
        """
        try:
            count = self.rate_counter.increment(storm_counter_key(tenant_id, device_id))
            if count <= STORM_THRESHOLD:
                return StormOutcome.none()

            key = suppression_key(tenant_id, device_id)
            # Ya se reportó una tormenta para este dispositivo
            if self.suppression_gate.is_active(key):
                return StormOutcome.none()

            meta_alert = self.alert_repository.persist(
                self._build_meta_alert(tenant_id, device_id, count)
            )
            self.suppression_gate.activate(key, SUPPRESSION_SECONDS)

            logger.warning(
                "Alert storm detected: device_id=%s alert_count=%d",
                device_id,
                count,
                extra={
                    "tenant_id": tenant_id,
                    "device_id": device_id,
                    "alert_count": count,
                },
            )
            return StormOutcome(
                detected=True, alert_count=count, meta_alert_id=meta_alert.id
            )
        except Exception as exc:
            logger.error(
                "Alert storm check failed for device_id=%s: %s",
                device_id,
                exc,
                extra={"tenant_id": tenant_id, "device_id": device_id},
            )
            return StormOutcome.none()

    def _build_meta_alert(
        self, tenant_id: str, device_id: str, count: int
    ) -> AlertModel:
        now = self.clock()
        return AlertModel(
            tenant_id=tenant_id,
            device_id=device_id,
            source_system=META_ALERT_SOURCE,
            alert_type=META_ALERT_TYPE,
            classification=META_ALERT_TYPE,
            severity=META_ALERT_SEVERITY,
            message=(
                f"Alert storm detected: {count} alerts in "
                f"{STORM_WINDOW_SECONDS // 60} minutes. Further alerts suppressed "
                f"for {SUPPRESSION_SECONDS // 60} minutes."
            ),
            status=AlertStatus.OPEN,
            metadata={
                "alertCount": count,
                "windowSeconds": STORM_WINDOW_SECONDS,
                "suppressionSeconds": SUPPRESSION_SECONDS,
            },
            detected_at=now,
        )
