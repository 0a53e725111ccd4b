from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from alertflow.models.alert_model import AlertSeverity, ResolutionOutcome
from alertflow.routes.items.get_services import (
    get_alert_state_machine,
    get_analyst_id,
    get_ingestion_pipeline,
    get_tenant_id,
)
from alertflow.services.alert_ingestion import AlertIngestionPipeline
from alertflow.services.alert_state_machine import AlertStateMachine

router = APIRouter(prefix="/alerts", tags=["alerts"])


class CreateAlertRequest(BaseModel):
    device_id: Optional[str] = None
    alert_type: str
    severity: AlertSeverity
    message: str
    source: str
    metadata: Optional[Dict[str, Any]] = None
    classification: Optional[str] = None
    detected_at: Optional[datetime] = None


class EscalateAlertRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class ResolveAlertRequest(BaseModel):
    outcome: ResolutionOutcome
    notes: str


@router.post("")
def create_alert(
    request: CreateAlertRequest,
    tenant_id: str = Depends(get_tenant_id),
    pipeline: AlertIngestionPipeline = Depends(get_ingestion_pipeline),
):
    alert_id = pipeline.create_alert(
        {"tenant_id": tenant_id, **request.model_dump(exclude_none=True)}
    )
    return {"alert_id": alert_id, "created": alert_id is not None}


@router.get("/{alert_id}")
def get_alert(
    alert_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: AlertStateMachine = Depends(get_alert_state_machine),
):
    return service.get_alert(tenant_id, alert_id)


@router.post("/{alert_id}/claim")
def claim_alert(
    alert_id: str,
    tenant_id: str = Depends(get_tenant_id),
    analyst_id: str = Depends(get_analyst_id),
    service: AlertStateMachine = Depends(get_alert_state_machine),
):
    return service.claim(tenant_id, alert_id, analyst_id)


@router.post("/{alert_id}/investigate")
def start_investigation(
    alert_id: str,
    tenant_id: str = Depends(get_tenant_id),
    analyst_id: str = Depends(get_analyst_id),
    service: AlertStateMachine = Depends(get_alert_state_machine),
):
    return service.start_investigation(tenant_id, alert_id, analyst_id)


@router.post("/{alert_id}/escalate")
def escalate_alert(
    alert_id: str,
    request: Optional[EscalateAlertRequest] = Body(default=None),
    tenant_id: str = Depends(get_tenant_id),
    analyst_id: str = Depends(get_analyst_id),
    service: AlertStateMachine = Depends(get_alert_state_machine),
):
    request = request or EscalateAlertRequest()
    return service.escalate(
        tenant_id,
        alert_id,
        analyst_id,
        title=request.title,
        description=request.description,
    )


@router.post("/{alert_id}/resolve")
def resolve_alert(
    alert_id: str,
    request: ResolveAlertRequest,
    tenant_id: str = Depends(get_tenant_id),
    analyst_id: str = Depends(get_analyst_id),
    service: AlertStateMachine = Depends(get_alert_state_machine),
):
    return service.resolve(tenant_id, alert_id, analyst_id, request.outcome, request.notes)
