"""
Service for portal user management.
"""
import logging
from typing import Optional, List, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wgportal.core.auth import AuthContext
from wgportal.core.config import settings
from wgportal.core.exceptions import (
    EmailExists,
    Forbidden,
    InvalidDomain,
    LimitExceeded,
    StorageError,
    UserNotFound,
    ValidationError,
)
from wgportal.core.roles import Role
from wgportal.models.audit_event import AuditEventType
from wgportal.models.user import User, RoleDefinition, UserStatus
from wgportal.models.user_limit_history import UserLimitHistory
from wgportal.services.audit_service import AuditTrail, SubjectTable
from wgportal.services.domain_service import AcceptedDomainCache
from wgportal.services.peer_service import count_active_for_owner

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SORTABLE_COLUMNS = {"created_at", "email", "peer_limit", "status"}


def ensure_roles_seeded(db: Session) -> None:
    """Create the built-in role rows if missing."""
    existing = {row[0] for row in db.query(RoleDefinition.name).all()}
    missing = [r.value for r in Role if r.value not in existing]
    for name in missing:
        db.add(RoleDefinition(name=name))
    if missing:
        db.commit()
        logger.info(f"Seeded roles: {', '.join(missing)}")


def _role_rows(db: Session, names: List[str]) -> List[RoleDefinition]:
    ensure_roles_seeded(db)
    return db.query(RoleDefinition).filter(RoleDefinition.name.in_(names)).all()


def get_profile(db: Session, user_id: str) -> Optional[User]:
    try:
        return db.get(User, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Database error loading user {user_id}: {e}", exc_info=True)
        raise StorageError()


def list_users(
    db: Session,
    status: Optional[UserStatus] = None,
    domain: Optional[str] = None,
    page: int = 1,
    size: int = 20,
    sort: Optional[str] = None,
) -> Tuple[List[User], int]:
    """List users with optional status/domain filters. Sort is 'column:asc|desc'."""
    page = max(page, 1)
    size = min(max(size, 1), MAX_PAGE_SIZE)

    column, ascending = "created_at", False
    if sort:
        field, _, direction = sort.partition(":")
        if field not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot sort users by '{field}'")
        column, ascending = field, direction == "asc"

    try:
        query = db.query(User)
        if status:
            query = query.filter(User.status == status)
        if domain:
            query = query.filter(User.email.like(f"%@{domain.lower()}"))
        total = query.count()
        order_col = getattr(User, column)
        items = (
            query.order_by(order_col.asc() if ascending else order_col.desc(), User.id.asc())
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error listing users: {e}", exc_info=True)
        raise StorageError()
    return items, total


class UserService:
    """Administrative user operations with audit events."""

    def __init__(self, db: Session, audit: Optional[AuditTrail] = None):
        self.db = db
        self.audit = audit or AuditTrail(db)

    def provision_user(
        self,
        ctx: AuthContext,
        email: str,
        domain_cache: AcceptedDomainCache,
        roles: Optional[List[str]] = None,
        peer_limit: Optional[int] = None,
    ) -> User:
        """
        Create a portal user for an identity known to the identity provider.

        The e-mail domain must be accepted. The very first user becomes admin.
        """
        if not ctx.is_admin:
            raise Forbidden("Admin access required")

        email = email.strip().lower()
        if not domain_cache.is_accepted(self.db, email):
            raise InvalidDomain()
        if self.db.query(User).filter(User.email == email).first():
            raise EmailExists()

        role_names = set(roles or [Role.USER.value])
        if self.db.query(User).count() == 0:
            role_names.add(Role.ADMIN.value)
        role_names.add(Role.USER.value)

        user = User(
            email=email,
            status=UserStatus.ACTIVE,
            peer_limit=settings.DEFAULT_PEER_LIMIT if peer_limit is None else peer_limit,
        )
        user.roles = _role_rows(self.db, sorted(role_names))
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise EmailExists()
        self.db.refresh(user)

        logger.info(f"Provisioned user {user.id} ({email}) with roles {user.role_names}")
        return user

    def update_user(
        self,
        ctx: AuthContext,
        user_id: str,
        peer_limit: Optional[int] = None,
        status: Optional[UserStatus] = None,
    ) -> User:
        """
        Change a user's peer limit and/or status (admin only).

        A limit below the user's current active peer count is rejected.
        """
        if not ctx.is_admin:
            raise Forbidden("Admin access required")

        user = get_profile(self.db, user_id)
        if user is None:
            raise UserNotFound()

        old_limit = user.peer_limit
        old_status = user.status

        if peer_limit is not None:
            if peer_limit < 0:
                raise ValidationError("peer_limit must be a non-negative integer")
            active = count_active_for_owner(self.db, user.id)
            if peer_limit < active:
                raise LimitExceeded(f"User has {active} active peers; limit cannot be set below that")
            if peer_limit != old_limit:
                self.db.add(UserLimitHistory(
                    user_id=user.id,
                    old_limit=old_limit,
                    new_limit=peer_limit,
                    changed_by=ctx.user_id,
                ))
                user.peer_limit = peer_limit

        if status is not None:
            user.status = status

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error updating user {user_id}: {e}", exc_info=True)
            raise StorageError()
        self.db.refresh(user)

        if peer_limit is not None and peer_limit != old_limit:
            self.audit.record(
                AuditEventType.LIMIT_CHANGE,
                actor_id=ctx.user_id,
                subject_table=SubjectTable.USERS,
                subject_id=user.id,
                metadata={"old_limit": old_limit, "new_limit": peer_limit},
            )
        if status == UserStatus.INACTIVE and old_status != UserStatus.INACTIVE:
            self.audit.record(
                AuditEventType.USER_DEACTIVATE,
                actor_id=ctx.user_id,
                subject_table=SubjectTable.USERS,
                subject_id=user.id,
                metadata={"email": user.email},
            )

        logger.info(f"Updated user {user.id}: limit {old_limit}->{user.peer_limit}, status {user.status.value}")
        return user
