"""System configuration key/value model."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func

from wgportal.core.database import Base


class ConfigEntry(Base):
    """Runtime configuration exposed read-only to administrators."""
    __tablename__ = "config_kv"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
