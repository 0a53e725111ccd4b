import threading
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from unittest.mock import Mock

import pytest

from alertflow.cache.shared_cache import SharedCache
from alertflow.core.errors import ConflictError, DependencyUnavailableError
from alertflow.models.alert_model import Alert as AlertModel
from alertflow.models.incident_model import Incident as IncidentModel
from alertflow.repositories.base_repo import BaseRepository
from alertflow.services.alert_ingestion import AlertIngestionPipeline
from alertflow.services.alert_state_machine import AlertStateMachine
from alertflow.services.audit_service import AuditService
from alertflow.services.duplicate_checker import RedisDuplicateChecker
from alertflow.services.incident_state_machine import IncidentStateMachine
from alertflow.services.rate_counter import RateCounter
from alertflow.services.sla import SlaPolicy
from alertflow.services.storm_detector import STORM_WINDOW_SECONDS, StormDetector
from alertflow.services.suppression_gate import SuppressionGate

TENANT = "tenant-a"
START = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def _value(status):
    return status.value if isinstance(status, Enum) else status


class FakeClock:
    """Reloj controlable para los tests."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryRepository(BaseRepository):
    """
    Repositorio en memoria con compare-and-set bajo lock, para simular la
    escritura condicional del store.
    """

    def __init__(self, unique_field=None):
        self.rows = {}
        self.unique_field = unique_field
        self.fail_persist = None
        self._lock = threading.Lock()

    def persist(self, entity):
        if self.fail_persist is not None:
            raise self.fail_persist
        with self._lock:
            if self.unique_field is not None:
                value = getattr(entity, self.unique_field)
                if any(getattr(r, self.unique_field) == value for r in self.rows.values()):
                    raise ConflictError(f"duplicate {self.unique_field}")
            update = {"id": entity.id or str(uuid.uuid4())}
            if "created_at" in type(entity).model_fields and entity.created_at is None:
                update["created_at"] = START
            stored = entity.model_copy(update=update)
            self.rows[stored.id] = stored
            return stored

    def get_by_id(self, tenant_id, entity_id):
        row = self.rows.get(entity_id)
        if row is None or row.tenant_id != tenant_id:
            return None
        return row

    def conditional_update(
        self, tenant_id, entity_id, expected_statuses, patch, expected_owner=None
    ):
        with self._lock:
            row = self.get_by_id(tenant_id, entity_id)
            if row is None:
                return None
            if _value(row.status) not in {_value(s) for s in expected_statuses}:
                return None
            if expected_owner is not None and row.owner_id != expected_owner:
                return None
            updated = type(row)(**{**row.model_dump(), **patch})
            self.rows[entity_id] = updated
            return updated

    def all(self):
        return list(self.rows.values())


class FakeSharedCache(SharedCache):
    """Cache en memoria que registra los TTL y puede simular caídas."""

    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.available = True
        self._lock = threading.Lock()

    def _check(self):
        if not self.available:
            raise DependencyUnavailableError("cache down")

    def increment(self, key, ttl_seconds=None):
        self._check()
        with self._lock:
            self.values[key] = int(self.values.get(key, 0)) + 1
            if ttl_seconds is not None:
                self.ttls[key] = ttl_seconds
            return self.values[key]

    def exists(self, key):
        self._check()
        return key in self.values

    def set_with_expiry(self, key, value, ttl_seconds):
        self._check()
        with self._lock:
            self.values[key] = value
            self.ttls[key] = ttl_seconds

    def get(self, key):
        self._check()
        value = self.values.get(key)
        return None if value is None else str(value)

    def expire(self, key):
        """Simula el vencimiento del TTL de `key`."""
        self.values.pop(key, None)
        self.ttls.pop(key, None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alert_repo():
    return InMemoryRepository()


@pytest.fixture
def incident_repo():
    return InMemoryRepository(unique_field="linked_alert_id")


@pytest.fixture
def audit_repo():
    """Mock del repositorio de auditoría."""
    return Mock()


@pytest.fixture
def audit_service(audit_repo, clock):
    return AuditService(audit_repo, clock=clock)


@pytest.fixture
def cache():
    return FakeSharedCache()


@pytest.fixture
def incident_machine(incident_repo, audit_service, clock):
    return IncidentStateMachine(
        incident_repo, SlaPolicy.default(), audit_service=audit_service, clock=clock
    )


@pytest.fixture
def alert_machine(alert_repo, incident_machine, audit_service, clock):
    return AlertStateMachine(
        alert_repo, incident_machine, audit_service=audit_service, clock=clock
    )


@pytest.fixture
def storm_detector(cache, alert_repo, clock):
    gate = SuppressionGate(cache, clock=clock)
    return StormDetector(
        RateCounter(cache, STORM_WINDOW_SECONDS), gate, alert_repo, clock=clock
    )


@pytest.fixture
def pipeline(alert_repo, cache, storm_detector, audit_service, clock):
    """Pipeline completo sin deduplicación, para contar tormentas."""
    return AlertIngestionPipeline(
        alert_repo,
        suppression_gate=SuppressionGate(cache, clock=clock),
        storm_detector=storm_detector,
        audit_service=audit_service,
        clock=clock,
    )


@pytest.fixture
def dedup_pipeline(alert_repo, cache, storm_detector, audit_service, clock):
    return AlertIngestionPipeline(
        alert_repo,
        duplicate_checker=RedisDuplicateChecker(cache),
        suppression_gate=SuppressionGate(cache, clock=clock),
        storm_detector=storm_detector,
        audit_service=audit_service,
        clock=clock,
    )


@pytest.fixture
def alert_input():
    """Factory de payloads para createAlert."""

    def _build(**overrides):
        data = {
            "tenant_id": TENANT,
            "device_id": "device-1",
            "alert_type": "malware_detected",
            "severity": "high",
            "message": "Malware signature found",
            "source": "edr",
        }
        data.update(overrides)
        return data

    return _build


@pytest.fixture
def open_alert(alert_repo):
    """Alerta `open` ya persistida."""
    return alert_repo.persist(
        AlertModel(
            tenant_id=TENANT,
            device_id="device-1",
            source_system="edr",
            alert_type="malware_detected",
            severity="critical",
            message="Malware signature found",
        )
    )


@pytest.fixture
def make_incident(incident_repo, clock):
    """Factory de incidentes persistidos con plazos de la política por defecto."""

    def _build(severity="high", status="open", owner_id="analyst-1", **overrides):
        deadlines = SlaPolicy.default().deadlines(severity, clock())
        data = dict(
            tenant_id=TENANT,
            title="Security Incident: malware_detected",
            severity=severity,
            status=status,
            owner_id=owner_id,
            linked_alert_id=str(uuid.uuid4()),
            created_at=clock(),
            sla_acknowledge_by=deadlines.acknowledge_by,
            sla_investigate_by=deadlines.investigate_by,
            sla_resolve_by=deadlines.resolve_by,
        )
        data.update(overrides)
        return incident_repo.persist(IncidentModel(**data))

    return _build
