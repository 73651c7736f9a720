"""Import batch model grouping peers created by one import run."""
import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from wgportal.core.database import Base


class ImportBatch(Base):
    """One run of the config importer."""
    __tablename__ = "import_batches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    files_imported = Column(Integer, nullable=False, default=0)
    imported_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    peers = relationship("Peer", back_populates="import_batch")
