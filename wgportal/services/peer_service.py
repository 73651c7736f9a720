"""
Peer directory and allocation engine.

Directory functions read peer rows; PeerAllocationEngine performs the
lifecycle transitions:

    available --claim/assign--> active --revoke--> inactive --assign--> active

Every call takes the caller's AuthContext. Admins see all peers, users only the
peers they own; invisible peers behave exactly like missing ones.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional, List, Tuple, Set, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wgportal.core.auth import AuthContext
from wgportal.core.config import settings
from wgportal.core.exceptions import (
    ConcurrentClaimConflict,
    ConfigError,
    CryptoError,
    DuplicateName,
    Forbidden,
    LimitExceeded,
    NoAvailable,
    NotFound,
    PeerNotAvailable,
    PeerNotFound,
    StorageError,
    UserNotFound,
    ValidationError,
)
from wgportal.models.audit_event import AuditEventType
from wgportal.models.peer import Peer, PeerStatus
from wgportal.models.user import User
from wgportal.services import crypto_service
from wgportal.services.audit_service import AuditTrail, SubjectTable

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
FRIENDLY_NAME_PATTERN = r"^[a-z0-9-]{1,63}$"
_FRIENDLY_NAME_RE = re.compile(FRIENDLY_NAME_PATTERN)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _page_bounds(page: int, size: int) -> Tuple[int, int]:
    page = max(page, 1)
    size = min(max(size, 1), MAX_PAGE_SIZE)
    return page, size


def validate_friendly_name(friendly_name: str) -> str:
    """Reject names outside lowercase letters, digits and hyphens (1-63 chars)."""
    if not isinstance(friendly_name, str) or not _FRIENDLY_NAME_RE.match(friendly_name):
        raise ValidationError(
            "Friendly name must contain only lowercase letters, numbers, and hyphens (1-63 characters)",
            details={"field": "friendly_name", "pattern": FRIENDLY_NAME_PATTERN},
        )
    return friendly_name


def find_by_id(db: Session, ctx: AuthContext, peer_id: str) -> Optional[Peer]:
    """Return the peer if it exists and is visible to the caller, else None."""
    try:
        peer = db.get(Peer, peer_id)
    except SQLAlchemyError as e:
        logger.error(f"Database error loading peer {peer_id}: {e}", exc_info=True)
        raise StorageError()
    if peer is None or not ctx.can_access_owner(peer.owner_id):
        return None
    return peer


def list_for_owner(
    db: Session,
    ctx: AuthContext,
    owner_id: str,
    status: Optional[PeerStatus] = None,
    page: int = 1,
    size: int = 20,
) -> Tuple[List[Peer], int]:
    """List an owner's peers, newest claim first."""
    if not ctx.can_access_owner(owner_id):
        raise Forbidden("Cannot list peers of another user")
    page, size = _page_bounds(page, size)

    try:
        query = db.query(Peer).filter(Peer.owner_id == owner_id)
        if status:
            query = query.filter(Peer.status == status)
        total = query.count()
        items = (
            query.order_by(Peer.claimed_at.desc(), Peer.id.asc())
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error listing peers for owner {owner_id}: {e}", exc_info=True)
        raise StorageError()
    return items, total


def list_all(
    db: Session,
    ctx: AuthContext,
    status: Optional[PeerStatus] = None,
    owner_id: Optional[str] = None,
    page: int = 1,
    size: int = 20,
) -> Tuple[List[Tuple[Peer, Optional[str]]], int]:
    """
    List every peer with its owner's e-mail, newest import first (admin only).

    Returns (rows, total) where each row is (peer, owner_email).
    """
    if not ctx.is_admin:
        raise Forbidden("Admin access required")
    page, size = _page_bounds(page, size)

    try:
        query = db.query(Peer, User.email).outerjoin(User, Peer.owner_id == User.id)
        if status:
            query = query.filter(Peer.status == status)
        if owner_id:
            query = query.filter(Peer.owner_id == owner_id)
        total = query.count()
        rows = (
            query.order_by(Peer.imported_at.desc(), Peer.id.asc())
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error listing peers: {e}", exc_info=True)
        raise StorageError()
    return [(peer, email) for peer, email in rows], total


def count_active_for_owner(db: Session, owner_id: str) -> int:
    """Number of active peers held by an owner."""
    try:
        return (
            db.query(Peer)
            .filter(Peer.owner_id == owner_id, Peer.status == PeerStatus.ACTIVE)
            .count()
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error counting active peers for {owner_id}: {e}", exc_info=True)
        raise StorageError()


def config_filename(peer: Peer) -> str:
    if peer.friendly_name:
        return f"{peer.friendly_name}.conf"
    return f"peer-{peer.id[:8]}.conf"


class PeerAllocationEngine:
    """Claim, assign, revoke, rename and download peers."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditTrail] = None,
        max_claim_attempts: Optional[int] = None,
    ):
        self.db = db
        self.audit = audit or AuditTrail(db)
        self.max_claim_attempts = max_claim_attempts or settings.CLAIM_MAX_ATTEMPTS

    def _get_user(self, user_id: str) -> User:
        try:
            user = self.db.get(User, user_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error loading user {user_id}: {e}", exc_info=True)
            raise StorageError()
        if user is None:
            raise UserNotFound()
        return user

    def _ensure_capacity(self, user: User, message: Optional[str] = None) -> None:
        active = count_active_for_owner(self.db, user.id)
        if active >= user.peer_limit:
            logger.info(f"Peer limit reached for user {user.id}: {active}/{user.peer_limit}")
            raise LimitExceeded(message)

    def _next_available_candidate(self, exclude: Set[str]) -> Optional[str]:
        """Id of the oldest unowned available peer not in exclude."""
        query = self.db.query(Peer.id).filter(
            Peer.status == PeerStatus.AVAILABLE,
            Peer.owner_id.is_(None),
        )
        if exclude:
            query = query.filter(Peer.id.notin_(exclude))
        row = query.order_by(Peer.imported_at.asc(), Peer.id.asc()).first()
        return row[0] if row else None

    def _conditional_update(
        self,
        peer_id: str,
        expected: Iterable[PeerStatus],
        values: dict,
        require_unowned: bool = False,
    ) -> bool:
        """Apply values only if the row is still in an expected status. Returns True on a hit."""
        query = self.db.query(Peer).filter(Peer.id == peer_id, Peer.status.in_(list(expected)))
        if require_unowned:
            query = query.filter(Peer.owner_id.is_(None))
        return query.update(values, synchronize_session=False) == 1

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error during {action}: {e}", exc_info=True)
            raise StorageError()

    def claim_next(self, ctx: AuthContext) -> Peer:
        """
        Claim the oldest available peer for the caller (FIFO by import time).

        The write is guarded by status=available; a lost race moves on to the
        next candidate, up to max_claim_attempts.
        """
        if not ctx.user_id:
            raise Forbidden("Claiming a peer requires a portal user account")

        user = self._get_user(ctx.user_id)
        if not user.is_active:
            raise Forbidden("Account is deactivated")
        self._ensure_capacity(user)

        lost: Set[str] = set()
        claimed_id = None
        try:
            for attempt in range(1, self.max_claim_attempts + 1):
                candidate_id = self._next_available_candidate(lost)
                if candidate_id is None:
                    raise NoAvailable()

                hit = self._conditional_update(
                    candidate_id,
                    expected=[PeerStatus.AVAILABLE],
                    require_unowned=True,
                    values={
                        Peer.owner_id: user.id,
                        Peer.status: PeerStatus.ACTIVE,
                        Peer.claimed_at: utcnow(),
                    },
                )
                if hit:
                    claimed_id = candidate_id
                    break

                logger.warning(
                    f"Claim race lost for peer {candidate_id} by user {user.id} "
                    f"(attempt {attempt}/{self.max_claim_attempts})"
                )
                lost.add(candidate_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error claiming peer for {user.id}: {e}", exc_info=True)
            raise StorageError()

        if claimed_id is None:
            self.db.rollback()
            raise ConcurrentClaimConflict()

        self._commit("claim")
        peer = self.db.get(Peer, claimed_id)
        logger.info(f"User {user.id} claimed peer {peer.id}")

        self.audit.record(
            AuditEventType.PEER_CLAIM,
            actor_id=user.id,
            subject_table=SubjectTable.PEERS,
            subject_id=peer.id,
            metadata={"peer_id": peer.id, "public_key": peer.public_key},
        )
        return peer

    def assign(self, ctx: AuthContext, peer_id: str, target_user_id: str) -> Peer:
        """Assign a specific available or revoked peer to a user (admin only)."""
        if not ctx.is_admin:
            raise Forbidden("Admin access required")

        target = self._get_user(target_user_id)
        self._ensure_capacity(target, "Target user has reached peer limit")

        peer = find_by_id(self.db, ctx, peer_id)
        if peer is None:
            raise PeerNotFound()
        previous_status = peer.status
        if previous_status not in (PeerStatus.AVAILABLE, PeerStatus.INACTIVE):
            raise PeerNotAvailable()

        try:
            hit = self._conditional_update(
                peer.id,
                expected=[previous_status],
                values={
                    Peer.owner_id: target.id,
                    Peer.status: PeerStatus.ACTIVE,
                    Peer.claimed_at: utcnow(),
                    Peer.revoked_at: None,
                },
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error assigning peer {peer_id}: {e}", exc_info=True)
            raise StorageError()
        if not hit:
            self.db.rollback()
            raise PeerNotAvailable()

        self._commit("assign")
        self.db.refresh(peer)
        logger.info(f"Peer {peer.id} assigned to user {target.id} by {ctx.user_id or ctx.source}")

        self.audit.record(
            AuditEventType.PEER_ASSIGN,
            actor_id=ctx.user_id,
            subject_table=SubjectTable.PEERS,
            subject_id=peer.id,
            metadata={
                "peer_id": peer.id,
                "user_id": target.id,
                "actor_id": ctx.user_id,
                "previous_status": previous_status.value,
            },
        )
        return peer

    def revoke(self, ctx: AuthContext, peer_id: str) -> None:
        """
        Revoke an active peer. owner_id is kept for history.

        Revoking an already inactive peer is a no-op.
        """
        peer = find_by_id(self.db, ctx, peer_id)
        if peer is None:
            raise NotFound()
        if peer.status == PeerStatus.INACTIVE:
            logger.info(f"Peer {peer.id} already revoked")
            return
        if peer.status != PeerStatus.ACTIVE:
            raise PeerNotAvailable("Peer is not assigned")

        try:
            hit = self._conditional_update(
                peer.id,
                expected=[PeerStatus.ACTIVE],
                values={Peer.status: PeerStatus.INACTIVE, Peer.revoked_at: utcnow()},
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error revoking peer {peer_id}: {e}", exc_info=True)
            raise StorageError()
        if not hit:
            # Revoked concurrently
            self.db.rollback()
            return

        self._commit("revoke")
        self.db.refresh(peer)
        logger.info(f"Peer {peer.id} revoked by {ctx.user_id or ctx.source}")

        self.audit.record(
            AuditEventType.PEER_REVOKE,
            actor_id=ctx.user_id,
            subject_table=SubjectTable.PEERS,
            subject_id=peer.id,
            metadata={"peer_id": peer.id, "public_key": peer.public_key, "owner_id": peer.owner_id},
        )

    def rename(self, ctx: AuthContext, peer_id: str, friendly_name: str) -> Peer:
        """Set a peer's friendly name; names are unique across peers."""
        validate_friendly_name(friendly_name)

        peer = find_by_id(self.db, ctx, peer_id)
        if peer is None:
            raise NotFound()

        peer.friendly_name = friendly_name
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateName()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error renaming peer {peer_id}: {e}", exc_info=True)
            raise StorageError()

        self.db.refresh(peer)
        return peer

    def download(self, ctx: AuthContext, peer_id: str) -> Tuple[str, str]:
        """
        Decrypt a peer's configuration.

        Returns (filename, config text). Owners may only download active peers.
        """
        peer = find_by_id(self.db, ctx, peer_id)
        if peer is None:
            raise NotFound()
        if not ctx.is_admin and peer.status != PeerStatus.ACTIVE:
            raise PeerNotAvailable("Peer has been revoked")
        if not settings.is_encryption_configured():
            raise ConfigError("ENCRYPTION_KEY not configured")

        try:
            content = crypto_service.decrypt(peer.config_ciphertext, settings.ENCRYPTION_KEY)
        except CryptoError as e:
            logger.error(f"Failed to decrypt config for peer {peer.id}: {type(e).__name__}: {e}")
            raise

        self.audit.record(
            AuditEventType.PEER_DOWNLOAD,
            actor_id=ctx.user_id,
            subject_table=SubjectTable.PEERS,
            subject_id=peer.id,
            metadata={"peer_id": peer.id, "public_key": peer.public_key},
        )
        return config_filename(peer), content
