"""
User model, roles and the user-role association.
"""
import enum
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Table, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from wgportal.core.database import Base


class UserStatus(str, enum.Enum):
    """Account status."""
    ACTIVE = "active"
    INACTIVE = "inactive"


# Association table for many-to-many relationship between User and RoleDefinition
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
    Column("granted_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)


class RoleDefinition(Base):
    """Named role that can be granted to users (e.g. user, admin)."""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True)


class User(Base):
    """Portal account with a peer quota."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True, index=True)
    status = Column(
        Enum(UserStatus, name="user_status_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserStatus.ACTIVE,
        index=True,
    )
    peer_limit = Column(Integer, nullable=False, default=3)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    roles = relationship("RoleDefinition", secondary=user_roles, lazy="selectin")

    @property
    def role_names(self):
        return sorted(role.name for role in self.roles)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE
