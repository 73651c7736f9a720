"""History of peer limit changes made by administrators."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func

from wgportal.core.database import Base


class UserLimitHistory(Base):
    __tablename__ = "user_limit_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    old_limit = Column(Integer, nullable=False)
    new_limit = Column(Integer, nullable=False)
    changed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
