from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from alertflow.models.incident_model import SlaMilestone
from alertflow.routes.items.get_services import (
    get_analyst_id,
    get_incident_state_machine,
    get_tenant_id,
)
from alertflow.services.incident_state_machine import IncidentStateMachine

router = APIRouter(prefix="/incidents", tags=["incidents"])


class ResolveIncidentRequest(BaseModel):
    summary: str


class DismissIncidentRequest(BaseModel):
    justification: str


@router.get("/{incident_id}")
def get_incident(
    incident_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: IncidentStateMachine = Depends(get_incident_state_machine),
):
    return service.get_incident(tenant_id, incident_id)


@router.post("/{incident_id}/start-work")
def start_work(
    incident_id: str,
    tenant_id: str = Depends(get_tenant_id),
    analyst_id: str = Depends(get_analyst_id),
    service: IncidentStateMachine = Depends(get_incident_state_machine),
):
    return service.start_work(tenant_id, incident_id, analyst_id=analyst_id)


@router.post("/{incident_id}/resolve")
def resolve_incident(
    incident_id: str,
    request: ResolveIncidentRequest,
    tenant_id: str = Depends(get_tenant_id),
    analyst_id: str = Depends(get_analyst_id),
    service: IncidentStateMachine = Depends(get_incident_state_machine),
):
    return service.resolve(tenant_id, incident_id, request.summary, analyst_id=analyst_id)


@router.post("/{incident_id}/dismiss")
def dismiss_incident(
    incident_id: str,
    request: DismissIncidentRequest,
    tenant_id: str = Depends(get_tenant_id),
    analyst_id: str = Depends(get_analyst_id),
    service: IncidentStateMachine = Depends(get_incident_state_machine),
):
    return service.dismiss(
        tenant_id, incident_id, request.justification, analyst_id=analyst_id
    )


@router.get("/{incident_id}/sla")
def get_sla_status(
    incident_id: str,
    milestone: Optional[SlaMilestone] = None,
    tenant_id: str = Depends(get_tenant_id),
    service: IncidentStateMachine = Depends(get_incident_state_machine),
):
    return service.sla_status(tenant_id, incident_id, milestone=milestone)
