"""Schemas for portal users."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from wgportal.core.roles import VALID_ROLES
from wgportal.models.user import UserStatus


class UserResponse(BaseModel):
    """User profile with role names."""
    id: str
    email: str
    status: UserStatus
    peer_limit: int
    created_at: datetime
    roles: List[str] = Field(default_factory=list, validation_alias="role_names")

    model_config = {"from_attributes": True, "populate_by_name": True}


class UserListResponse(BaseModel):
    items: List[UserResponse]
    page: int
    size: int
    total: int


class UserUpdateRequest(BaseModel):
    """Request schema for admin user updates."""
    peer_limit: Optional[int] = Field(None, ge=0, description="New peer limit")
    status: Optional[UserStatus] = None


class UserCreateRequest(BaseModel):
    """Request schema for provisioning a user known to the identity provider."""
    email: str = Field(..., min_length=3, max_length=255)
    roles: Optional[List[str]] = None
    peer_limit: Optional[int] = Field(None, ge=0)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        local, sep, domain = v.strip().rpartition("@")
        if not sep or not local or "." not in domain:
            raise ValueError("Invalid e-mail address")
        return v.strip().lower()

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        normalized = [r.lower().strip() for r in v]
        unknown = [r for r in normalized if r not in VALID_ROLES]
        if unknown:
            raise ValueError(f"Unknown roles: {', '.join(unknown)}")
        return normalized
