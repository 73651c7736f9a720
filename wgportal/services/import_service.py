"""
Service for importing WireGuard peer configuration files.

Peer files share the server's PublicKey, so the Address of the [Interface]
section is used as each peer's unique key.
"""
import logging
import re
from pathlib import Path
from typing import List, Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wgportal.core.auth import AuthContext
from wgportal.core.config import settings
from wgportal.core.exceptions import ConfigError, ImportDirectoryError, StorageError
from wgportal.models.audit_event import AuditEventType
from wgportal.models.import_batch import ImportBatch
from wgportal.models.peer import Peer, PeerStatus
from wgportal.services import crypto_service
from wgportal.services.audit_service import AuditTrail, SubjectTable
from wgportal.services.peer_service import utcnow

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}(/\d{1,2})?$")


def parse_peer_address(content: str) -> Optional[str]:
    """
    Extract the Address of the [Interface] section.

    Returns None if missing, still templated ($VAR) or not an IPv4[/CIDR] value.
    """
    in_interface = False
    for line in content.splitlines():
        stripped = line.strip()
        if stripped == "[Interface]":
            in_interface = True
            continue
        if stripped.startswith("["):
            in_interface = False
            continue
        if not in_interface or not stripped.startswith("Address"):
            continue

        key, sep, value = stripped.partition("=")
        if not sep or key.strip() != "Address":
            continue
        address = value.strip()
        if "$" in address:
            logger.warning(f"Address contains unresolved variables: {address}")
            return None
        if not ADDRESS_PATTERN.match(address):
            logger.warning(f"Address doesn't match valid IP format: {address}")
            return None
        return address
    return None


def find_conf_files(root: Path) -> List[Path]:
    """All *.conf files below root, sorted for a stable import order."""
    if not root.is_dir():
        raise ImportDirectoryError(f"Import directory not found: {root}")
    try:
        return sorted(p for p in root.rglob("*.conf") if p.is_file())
    except OSError as e:
        logger.error(f"Error scanning import directory {root}: {e}")
        raise ImportDirectoryError()


class ImportService:
    """Imports peer configs from a directory as available peers."""

    def __init__(self, db: Session, audit: Optional[AuditTrail] = None):
        self.db = db
        self.audit = audit or AuditTrail(db)

    def import_configs(
        self,
        ctx: AuthContext,
        import_dir: Optional[str] = None,
        encryption_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Encrypt and store every new peer config found under import_dir.

        Returns {"files_imported", "batch_id", "skipped"}. Files already imported
        (same Address) count as skipped; unparsable files are logged and ignored.
        """
        import_dir = import_dir or settings.IMPORT_DIR
        encryption_key = encryption_key or settings.ENCRYPTION_KEY
        if not import_dir:
            raise ConfigError("IMPORT_DIR not configured")
        if not encryption_key or not encryption_key.strip():
            raise ConfigError("ENCRYPTION_KEY not configured")
        # Fail before touching the database if the key is unusable
        crypto_service.normalize_key(encryption_key)

        conf_files = find_conf_files(Path(import_dir))
        if not conf_files:
            logger.info(f"No .conf files found in {import_dir}")
            return {"files_imported": 0, "batch_id": "", "skipped": 0}

        try:
            batch = ImportBatch(files_imported=0, imported_by=ctx.user_id)
            self.db.add(batch)
            self.db.flush()

            known = {row[0] for row in self.db.query(Peer.public_key).all()}
            imported = 0
            skipped = 0

            for path in conf_files:
                try:
                    content = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.error(f"Error reading {path}: {e}")
                    continue

                address = parse_peer_address(content)
                if not address:
                    logger.warning(f"Skipping {path}: no Address found in [Interface] section")
                    continue
                if address in known:
                    logger.debug(f"Skipping duplicate peer from {path}: {address}")
                    skipped += 1
                    continue

                self.db.add(Peer(
                    public_key=address,
                    config_ciphertext=crypto_service.encrypt(content, encryption_key),
                    status=PeerStatus.AVAILABLE,
                    imported_at=utcnow(),
                    import_batch_id=batch.id,
                ))
                known.add(address)
                imported += 1

            batch.files_imported = imported
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error importing configs from {import_dir}: {e}", exc_info=True)
            raise StorageError()

        logger.info(
            f"Import batch {batch.id}: {imported} imported, {skipped} skipped, {len(conf_files)} files scanned"
        )

        self.audit.record(
            AuditEventType.IMPORT,
            actor_id=ctx.user_id,
            subject_table=SubjectTable.IMPORT_BATCHES,
            subject_id=batch.id,
            metadata={
                "batch_id": batch.id,
                "files_imported": imported,
                "files_skipped": skipped,
                "total_files": len(conf_files),
            },
        )
        return {"files_imported": imported, "batch_id": batch.id, "skipped": skipped}
