"""
Admin endpoint for browsing the audit log.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from wgportal.core.auth import AuthContext, require_role
from wgportal.core.database import get_db
from wgportal.core.exceptions import PortalError
from wgportal.models.audit_event import AuditEventType
from wgportal.schemas.audit import AuditEventListResponse, AuditEventResponse
from wgportal.services import audit_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=AuditEventListResponse)
async def list_audit_events(
    event_type: Optional[AuditEventType] = Query(None, description="Filter by event type"),
    date_from: Optional[datetime] = Query(None, alias="from", description="Earliest created_at (inclusive)"),
    date_to: Optional[datetime] = Query(None, alias="to", description="Latest created_at (inclusive)"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    sort: Optional[str] = Query(
        None,
        pattern=r"^(created_at|event_type)(:(asc|desc))?$",
        description="Sort as column:direction, column is created_at or event_type",
    ),
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    List audit events, newest first by default.
    """
    try:
        items, total = audit_service.list_events(
            db,
            event_type=event_type,
            date_from=date_from,
            date_to=date_to,
            page=page,
            size=size,
            sort=sort,
        )
        return AuditEventListResponse(
            items=[AuditEventResponse.model_validate(e) for e in items],
            page=page,
            size=size,
            total=total,
        )
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error fetching audit events: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch audit events"
        )
