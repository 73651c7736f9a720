"""Schemas for the audit log."""
from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from wgportal.models.audit_event import AuditEventType


class AuditEventResponse(BaseModel):
    """Response schema for an audit log entry."""
    id: int
    created_at: datetime
    event_type: AuditEventType
    actor_id: Optional[str] = None
    subject_table: str
    subject_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")

    model_config = {"from_attributes": True}


class AuditEventListResponse(BaseModel):
    items: List[AuditEventResponse]
    page: int
    size: int
    total: int
