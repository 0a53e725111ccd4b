import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Optional

from alertflow.cache.shared_cache import SharedCache
from alertflow.core.errors import DependencyUnavailableError

logger = logging.getLogger(__name__)

DEDUP_WINDOW_SECONDS = 120
DEDUP_KEY_PREFIX = "alert:dedup:"


class DuplicateChecker(ABC):
    @abstractmethod
    def find_recent_duplicate(
        self, tenant_id: str, device_id: Optional[str], alert_type: str
    ) -> Optional[str]:
        """Id de la alerta igual que entró dentro de la ventana reciente, si la hay."""
        pass

    @abstractmethod
    def mark(
        self, tenant_id: str, device_id: Optional[str], alert_type: str, alert_id: str
    ) -> None:
        """Registra una alerta ya persistida para las comprobaciones siguientes."""
        pass

    def exists_recent_duplicate(
        self, tenant_id: str, device_id: Optional[str], alert_type: str
    ) -> bool:
        return self.find_recent_duplicate(tenant_id, device_id, alert_type) is not None


def dedup_key(tenant_id: str, device_id: Optional[str], alert_type: str) -> str:
    components = [tenant_id, device_id or "no-device", alert_type]
    digest = hashlib.sha256(":".join(components).encode()).hexdigest()[:16]
    return f"{DEDUP_KEY_PREFIX}{digest}"


class RedisDuplicateChecker(DuplicateChecker):
    """
    Deduplicación por tenant/dispositivo/tipo con una clave con TTL.

    La clave solo se escribe después de persistir la alerta (`mark`), y guarda
    su id; así un fallo del store no deja marcada una alerta que no existe.
    Si el cache falla se deja pasar la alerta (fail-open).
    """

    def __init__(self, cache: SharedCache, window_seconds: int = DEDUP_WINDOW_SECONDS):
        self.cache = cache
        self.window_seconds = window_seconds

    def find_recent_duplicate(
        self, tenant_id: str, device_id: Optional[str], alert_type: str
    ) -> Optional[str]:
        try:
            return self.cache.get(dedup_key(tenant_id, device_id, alert_type))
        except DependencyUnavailableError as exc:
            logger.warning(
                "Cache unavailable, skipping alert deduplication: %s",
                exc,
                extra={"tenant_id": tenant_id, "device_id": device_id},
            )
            return None

    def mark(
        self, tenant_id: str, device_id: Optional[str], alert_type: str, alert_id: str
    ) -> None:
        try:
            self.cache.set_with_expiry(
                dedup_key(tenant_id, device_id, alert_type), alert_id, self.window_seconds
            )
        except DependencyUnavailableError as exc:
            logger.warning(
                "Failed to set deduplication key for alert id=%s: %s",
                alert_id,
                exc,
                extra={"tenant_id": tenant_id, "device_id": device_id},
            )
