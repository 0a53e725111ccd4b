from datetime import timedelta

import pytest

from alertflow.core.errors import ConflictError, NotFoundError, ValidationError
from alertflow.models.incident_model import IncidentStatus, SlaMilestone, SlaState
from conftest import TENANT


@pytest.mark.service
def test_create_from_alert_sets_deadlines(alert_machine, open_alert, clock):
    """Alerta critical: plazos de 15/60/240 minutos desde la creación."""
    alert_machine.claim(TENANT, open_alert.id, "analyst-1")

    incident = alert_machine.escalate(TENANT, open_alert.id, "analyst-1")

    assert incident.created_at == clock()
    assert incident.sla_acknowledge_by == clock() + timedelta(minutes=15)
    assert incident.sla_investigate_by == clock() + timedelta(minutes=60)
    assert incident.sla_resolve_by == clock() + timedelta(minutes=240)


@pytest.mark.service
def test_start_work_marks_acknowledge_and_investigation(
    incident_machine, make_incident, clock
):
    incident = make_incident()
    clock.advance(minutes=5)

    updated = incident_machine.start_work(TENANT, incident.id, analyst_id="analyst-1")

    assert updated.status == IncidentStatus.IN_PROGRESS
    assert updated.acknowledged_at == clock()
    assert updated.investigation_started_at == clock()


@pytest.mark.service
def test_start_work_twice_conflicts(incident_machine, make_incident):
    incident = make_incident()
    incident_machine.start_work(TENANT, incident.id)

    with pytest.raises(ConflictError):
        incident_machine.start_work(TENANT, incident.id)


@pytest.mark.service
def test_start_work_after_acknowledge_deadline_is_allowed(
    incident_machine, make_incident, clock
):
    incident = make_incident(severity="critical")
    clock.advance(minutes=20)

    updated = incident_machine.start_work(TENANT, incident.id)

    status = incident_machine.sla_status(TENANT, updated.id, SlaMilestone.ACKNOWLEDGE)
    assert updated.status == IncidentStatus.IN_PROGRESS
    assert status.state == SlaState.BREACH


@pytest.mark.service
def test_non_owner_cannot_move_incident(incident_machine, make_incident):
    incident = make_incident(owner_id="analyst-1")

    with pytest.raises(ConflictError):
        incident_machine.start_work(TENANT, incident.id, analyst_id="analyst-2")


@pytest.mark.service
def test_resolve_scenario(incident_machine, make_incident, clock):
    """in_progress -> resolved guarda el resumen y la hora; un dismiss posterior falla."""
    incident = make_incident()
    incident_machine.start_work(TENANT, incident.id)
    clock.advance(hours=1)

    resolved = incident_machine.resolve(TENANT, incident.id, "Host reimaged")

    assert resolved.status == IncidentStatus.RESOLVED
    assert resolved.resolution_summary == "Host reimaged"
    assert resolved.resolved_at == clock()
    with pytest.raises(ConflictError):
        incident_machine.dismiss(TENANT, incident.id, "Not needed")


@pytest.mark.service
def test_dismiss_stores_justification(incident_machine, make_incident):
    incident = make_incident()
    incident_machine.start_work(TENANT, incident.id)

    dismissed = incident_machine.dismiss(TENANT, incident.id, "Authorized pentest")

    assert dismissed.status == IncidentStatus.DISMISSED
    assert dismissed.dismissal_justification == "Authorized pentest"


@pytest.mark.service
def test_resolve_from_open_conflicts(incident_machine, make_incident):
    incident = make_incident()

    with pytest.raises(ConflictError):
        incident_machine.resolve(TENANT, incident.id, "Done")


@pytest.mark.service
@pytest.mark.parametrize("operation", ["resolve", "dismiss"])
@pytest.mark.parametrize("text", [None, "", "   "])
def test_blank_text_is_rejected_without_change(
    incident_machine, incident_repo, make_incident, operation, text
):
    incident = make_incident()
    incident_machine.start_work(TENANT, incident.id)

    with pytest.raises(ValidationError):
        getattr(incident_machine, operation)(TENANT, incident.id, text)

    stored = incident_repo.get_by_id(TENANT, incident.id)
    assert stored.status == IncidentStatus.IN_PROGRESS
    assert stored.resolved_at is None


@pytest.mark.service
def test_get_incident_other_tenant_not_found(incident_machine, make_incident):
    incident = make_incident()

    with pytest.raises(NotFoundError):
        incident_machine.get_incident("tenant-b", incident.id)


@pytest.mark.service
def test_sla_status_rejects_unknown_milestone(incident_machine, make_incident):
    incident = make_incident()

    with pytest.raises(ValidationError):
        incident_machine.sla_status(TENANT, incident.id, "triage")


@pytest.mark.service
def test_sla_status_tracks_active_milestone(incident_machine, make_incident, clock):
    incident = make_incident(severity="high")

    assert incident_machine.sla_status(TENANT, incident.id).milestone == SlaMilestone.ACKNOWLEDGE

    incident_machine.start_work(TENANT, incident.id)
    assert incident_machine.sla_status(TENANT, incident.id).milestone == SlaMilestone.INVESTIGATE

    clock.advance(minutes=121)
    status = incident_machine.sla_status(TENANT, incident.id)
    assert status.milestone == SlaMilestone.RESOLVE
    assert status.state == SlaState.OK
