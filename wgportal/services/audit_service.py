"""
Audit trail service.

Every state-changing operation records an AuditEvent after its own commit.
Recording is best-effort: a failed audit write is rolled back and reported on
the 'wgportal.audit' logger, and never undoes the business change.
"""
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wgportal.core.exceptions import StorageError, ValidationError
from wgportal.models.audit_event import AuditEvent, AuditEventType

logger = logging.getLogger("wgportal.audit")

MAX_PAGE_SIZE = 100
SORTABLE_COLUMNS = {"created_at", "event_type"}


class SubjectTable:
    """Constants for audited subject tables."""
    PEERS = "peers"
    USERS = "users"
    IMPORT_BATCHES = "import_batches"


class AuditTrail:
    """Emitter for audit events bound to a database session."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        event_type: AuditEventType,
        actor_id: Optional[str],
        subject_table: str,
        subject_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEvent]:
        """
        Append an audit event.

        Returns the stored event, or None if the write failed.
        """
        event = AuditEvent(
            event_type=event_type,
            actor_id=actor_id,
            subject_table=subject_table,
            subject_id=subject_id,
            event_metadata=metadata or {},
        )
        try:
            self.db.add(event)
            self.db.commit()
            self.db.refresh(event)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to record audit event {event_type.value} for {subject_table}/{subject_id} "
                f"(actor={actor_id}): {e}",
                exc_info=True,
            )
            return None

        logger.debug(f"Recorded audit event {event_type.value} for {subject_table}/{subject_id}")
        return event


def parse_sort_param(sort: Optional[str]) -> Tuple[str, bool]:
    """
    Parse 'column:direction' into (column, ascending).

    Unknown columns fall back to created_at descending.
    """
    if not sort:
        return "created_at", False
    column, _, direction = sort.partition(":")
    if column not in SORTABLE_COLUMNS:
        return "created_at", False
    return column, direction == "asc"


def list_events(
    db: Session,
    event_type: Optional[AuditEventType] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    size: int = 20,
    sort: Optional[str] = None,
) -> Tuple[List[AuditEvent], int]:
    """List audit events with filters and pagination (admin view)."""
    if date_from and date_to and date_from > date_to:
        raise ValidationError("Invalid date range: 'from' must be before 'to'")

    page = max(page, 1)
    size = min(max(size, 1), MAX_PAGE_SIZE)
    column, ascending = parse_sort_param(sort)

    try:
        query = db.query(AuditEvent)
        if event_type:
            query = query.filter(AuditEvent.event_type == event_type)
        if date_from:
            query = query.filter(AuditEvent.created_at >= date_from)
        if date_to:
            query = query.filter(AuditEvent.created_at <= date_to)

        total = query.count()

        order_col = getattr(AuditEvent, column)
        order_by = order_col.asc() if ascending else order_col.desc()
        items = query.order_by(order_by, AuditEvent.id.desc()).offset((page - 1) * size).limit(size).all()
    except SQLAlchemyError as e:
        logger.error(f"Database error listing audit events: {e}", exc_info=True)
        raise StorageError()

    return items, total
