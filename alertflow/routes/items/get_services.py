import logging
from typing import Optional

from fastapi import Header

from alertflow.cache.shared_cache import RedisSharedCache, SharedCache
from alertflow.core.config import get_redis, get_sla_policy, get_supabase
from alertflow.core.errors import DependencyUnavailableError, ValidationError
from alertflow.repositories.alert_repo import AlertRepository
from alertflow.repositories.audit_repo import AuditRepository
from alertflow.repositories.incident_repo import IncidentRepository
from alertflow.services.alert_ingestion import AlertIngestionPipeline
from alertflow.services.alert_state_machine import AlertStateMachine
from alertflow.services.audit_service import AuditService
from alertflow.services.duplicate_checker import RedisDuplicateChecker
from alertflow.services.incident_state_machine import IncidentStateMachine
from alertflow.services.rate_counter import RateCounter
from alertflow.services.storm_detector import STORM_WINDOW_SECONDS, StormDetector
from alertflow.services.suppression_gate import SuppressionGate

logger = logging.getLogger(__name__)

# Se carga una vez al arrancar: un SLA_POLICY_JSON inválido impide levantar la app
SLA_POLICY = get_sla_policy()


def get_tenant_id(x_tenant_id: Optional[str] = Header(default=None)) -> str:
    if not x_tenant_id or not x_tenant_id.strip():
        raise ValidationError("X-Tenant-ID header is required")
    return x_tenant_id.strip()


def get_analyst_id(x_analyst_id: Optional[str] = Header(default=None)) -> str:
    if not x_analyst_id or not x_analyst_id.strip():
        raise ValidationError("X-Analyst-ID header is required")
    return x_analyst_id.strip()


def get_shared_cache() -> Optional[SharedCache]:
    client = get_redis()
    if client is None:
        logger.warning("REDIS_URL not set; alert storm protection and dedup disabled")
        return None
    return RedisSharedCache(client)


def get_incident_state_machine() -> IncidentStateMachine:
    try:
        supabase = get_supabase()
        return IncidentStateMachine(
            IncidentRepository(supabase),
            SLA_POLICY,
            audit_service=AuditService(AuditRepository(supabase)),
        )
    except Exception as e:
        logging.error(f"Error initializing IncidentStateMachine dependencies: {e}")
        raise DependencyUnavailableError("Database dependency failed.")


def get_alert_state_machine() -> AlertStateMachine:
    try:
        supabase = get_supabase()
        audit_service = AuditService(AuditRepository(supabase))
        incidents = IncidentStateMachine(
            IncidentRepository(supabase), SLA_POLICY, audit_service=audit_service
        )
        return AlertStateMachine(
            AlertRepository(supabase), incidents, audit_service=audit_service
        )
    except Exception as e:
        logging.error(f"Error initializing AlertStateMachine dependencies: {e}")
        raise DependencyUnavailableError("Database dependency failed.")


def get_ingestion_pipeline() -> AlertIngestionPipeline:
    try:
        supabase = get_supabase()
        repo = AlertRepository(supabase)
        audit_service = AuditService(AuditRepository(supabase))
    except Exception as e:
        logging.error(f"Error initializing AlertIngestionPipeline dependencies: {e}")
        raise DependencyUnavailableError("Database dependency failed.")

    cache = get_shared_cache()
    if cache is None:
        return AlertIngestionPipeline(repo, audit_service=audit_service)

    gate = SuppressionGate(cache)
    detector = StormDetector(RateCounter(cache, STORM_WINDOW_SECONDS), gate, repo)
    return AlertIngestionPipeline(
        repo,
        duplicate_checker=RedisDuplicateChecker(cache),
        suppression_gate=gate,
        storm_detector=detector,
        audit_service=audit_service,
    )
