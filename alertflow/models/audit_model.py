from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuditEntry(BaseModel):
    id: Optional[str] = None
    tenant_id: str
    entity_type: str  # alert | incident
    entity_id: str
    action: str
    actor_id: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
