import logging
from typing import Any, Dict, Optional

from alertflow.core.clock import Clock, utcnow
from alertflow.models.audit_model import AuditEntry
from alertflow.repositories.audit_repo import AuditRepository

logger = logging.getLogger(__name__)


class AuditService:
    """
    Registra cada transición ya confirmada en el trail de auditoría.

    Se llama después de la escritura condicional; si el trail falla se loguea
    y la transición sigue siendo válida.
    """

    def __init__(self, audit_repository: AuditRepository, clock: Clock = utcnow):
        self.audit_repository = audit_repository
        self.clock = clock

    def record(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        action: str,
        actor_id: Optional[str] = None,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = AuditEntry(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            previous_status=previous_status,
            new_status=new_status,
            details=details or {},
            created_at=self.clock(),
        )
        try:
            self.audit_repository.append(entry)
        except Exception as exc:
            logger.error(
                "Failed to record audit entry %s for %s=%s: %s",
                action,
                entity_type,
                entity_id,
                exc,
                extra={"tenant_id": tenant_id},
            )
