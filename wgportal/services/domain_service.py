"""
Accepted e-mail domains.

ACCEPTED_DOMAINS is synced into the database on startup. Lookups go through an
AcceptedDomainCache instance owned by the application and injected per request.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wgportal.core.exceptions import StorageError
from wgportal.models.accepted_domain import AcceptedDomain

logger = logging.getLogger(__name__)


class AcceptedDomainCache:
    """In-memory copy of the accepted domain list with an explicit TTL."""

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._domains: Optional[List[str]] = None
        self._loaded_at = 0.0
        self._lock = threading.Lock()

    def get(self, db: Session) -> List[str]:
        """Return cached domains, reloading from the database once the TTL expires."""
        with self._lock:
            now = self._clock()
            if self._domains is not None and now - self._loaded_at < self.ttl_seconds:
                return list(self._domains)

            self._domains = get_accepted_domains(db)
            self._loaded_at = now
            return list(self._domains)

    def invalidate(self) -> None:
        with self._lock:
            self._domains = None
            self._loaded_at = 0.0

    def is_accepted(self, db: Session, email: str) -> bool:
        _, sep, domain = email.rpartition("@")
        if not sep or not domain:
            return False
        return domain.lower() in self.get(db)


def get_accepted_domains(db: Session) -> List[str]:
    """All accepted domains, sorted."""
    try:
        return [row[0] for row in db.query(AcceptedDomain.domain).order_by(AcceptedDomain.domain).all()]
    except SQLAlchemyError as e:
        logger.error(f"Error fetching accepted domains: {e}", exc_info=True)
        raise StorageError()


def sync_accepted_domains(db: Session, domains: List[str], cache: Optional[AcceptedDomainCache] = None) -> int:
    """
    Insert any missing domains. Idempotent.

    Returns the number of domains added.
    """
    if not domains:
        logger.info("ACCEPTED_DOMAINS not set, skipping domain sync")
        return 0

    existing = set(get_accepted_domains(db))
    added = 0
    for domain in domains:
        if domain in existing:
            logger.debug(f"Domain {domain} already exists, skipping")
            continue
        db.add(AcceptedDomain(domain=domain))
        existing.add(domain)
        added += 1

    db.commit()
    if cache is not None:
        cache.invalidate()
    logger.info(f"Domain synchronization completed ({added} added, {len(domains)} configured)")
    return added
