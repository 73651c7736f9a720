"""
Service for the system configuration key/value store.
"""
import logging
from typing import Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wgportal.core.config import Settings
from wgportal.core.exceptions import StorageError
from wgportal.models.config_entry import ConfigEntry

logger = logging.getLogger(__name__)


def default_config(settings: Settings) -> Dict[str, str]:
    """Configuration entries derived from settings, written on first start."""
    return {
        "default_peer_limit": str(settings.DEFAULT_PEER_LIMIT),
        "claim_max_attempts": str(settings.CLAIM_MAX_ATTEMPTS),
        "import_dir": settings.IMPORT_DIR or "",
        "accepted_domains_cache_ttl": str(settings.ACCEPTED_DOMAINS_CACHE_TTL),
    }


def ensure_config_seeded(db: Session, settings: Settings) -> int:
    """
    Insert default entries that are not present yet. Existing values are kept.

    Returns the number of entries written.
    """
    existing = {row[0] for row in db.query(ConfigEntry.key).all()}
    written = 0
    for key, value in default_config(settings).items():
        if key in existing:
            continue
        db.add(ConfigEntry(key=key, value=value))
        written += 1
    if written:
        db.commit()
        logger.info(f"Seeded {written} configuration entries")
    else:
        logger.info("Configuration entries already present. Skipping seed.")
    return written


def get_all_config(db: Session) -> Dict[str, str]:
    """All configuration entries as a {key: value} map."""
    try:
        return {entry.key: entry.value for entry in db.query(ConfigEntry).order_by(ConfigEntry.key).all()}
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch config: {e}", exc_info=True)
        raise StorageError()
