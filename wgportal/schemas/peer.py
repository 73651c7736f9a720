"""Schemas for peers."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from wgportal.models.peer import PeerStatus
from wgportal.services.peer_service import FRIENDLY_NAME_PATTERN


class PeerResponse(BaseModel):
    """Peer DTO returned to owners and admins."""
    id: str
    public_key: str
    status: PeerStatus
    friendly_name: Optional[str] = None
    claimed_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AdminPeerResponse(PeerResponse):
    """Peer row in the admin list, joined with the owner."""
    owner_id: Optional[str] = None
    owner_email: Optional[str] = None


class PeerListResponse(BaseModel):
    items: List[PeerResponse]
    page: int
    size: int
    total: int


class AdminPeerListResponse(BaseModel):
    items: List[AdminPeerResponse]
    page: int
    size: int
    total: int


class PeerUpdateRequest(BaseModel):
    """Request schema for renaming a peer."""
    friendly_name: str = Field(
        ...,
        min_length=1,
        max_length=63,
        pattern=FRIENDLY_NAME_PATTERN,
        description="Lowercase letters, numbers and hyphens",
    )


class PeerAssignRequest(BaseModel):
    """Request schema for assigning a peer to a user."""
    user_id: str = Field(..., min_length=1, max_length=36, description="Target user id")
