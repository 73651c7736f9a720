"""Accepted e-mail domain model."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from wgportal.core.database import Base


class AcceptedDomain(Base):
    """E-mail domain whose addresses may be provisioned as portal users."""
    __tablename__ = "accepted_domains"

    domain = Column(String(255), primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
