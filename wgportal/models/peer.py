"""
Peer model for imported WireGuard configurations.
"""
import enum
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from wgportal.core.database import Base


class PeerStatus(str, enum.Enum):
    """Peer lifecycle states."""
    AVAILABLE = "available"
    ACTIVE = "active"
    INACTIVE = "inactive"


class Peer(Base):
    """
    A WireGuard peer configuration.

    Created as available by the importer, moved to active by claim/assign and to
    inactive by revoke. Rows are never deleted; owner_id is kept after revoke.
    """
    __tablename__ = "peers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Address of the [Interface] section; the server public key is shared by every peer file
    public_key = Column(String(255), nullable=False, unique=True, index=True)
    status = Column(
        Enum(PeerStatus, name="peer_status_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PeerStatus.AVAILABLE,
        index=True,
    )
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    friendly_name = Column(String(63), nullable=True, unique=True)
    config_ciphertext = Column(Text, nullable=False)

    # Lifecycle timestamps
    imported_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    import_batch_id = Column(String(36), ForeignKey("import_batches.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", foreign_keys=[owner_id])
    import_batch = relationship("ImportBatch", back_populates="peers")
