"""
Admin endpoints for the peer pool.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from wgportal.api.deps import parse_id
from wgportal.core.auth import AuthContext, require_role
from wgportal.core.database import get_db
from wgportal.core.exceptions import PortalError
from wgportal.models.peer import PeerStatus
from wgportal.schemas.peer import (
    AdminPeerListResponse,
    AdminPeerResponse,
    PeerAssignRequest,
    PeerResponse,
)
from wgportal.services import peer_service
from wgportal.services.peer_service import PeerAllocationEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=AdminPeerListResponse)
async def list_all_peers(
    status_filter: Optional[PeerStatus] = Query(None, alias="status", description="Filter by peer status"),
    owner_id: Optional[str] = Query(None, description="Filter by owner user id"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    List every peer with its owner's e-mail, newest import first.
    """
    if owner_id:
        owner_id = parse_id(owner_id, "user")
    try:
        rows, total = peer_service.list_all(db, ctx, status_filter, owner_id, page, size)
        items = []
        for peer, email in rows:
            item = AdminPeerResponse.model_validate(peer)
            item.owner_id = peer.owner_id
            item.owner_email = email
            items.append(item)
        return AdminPeerListResponse(items=items, page=page, size=size, total=total)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error listing all peers: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch peers"
        )


@router.post("/{peer_id}/assign", response_model=PeerResponse)
async def assign_peer(
    peer_id: str,
    request: PeerAssignRequest,
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    Assign an available or inactive peer to a user, respecting the user's limit.
    """
    peer_id = parse_id(peer_id)
    user_id = parse_id(request.user_id, "user")
    try:
        peer = PeerAllocationEngine(db).assign(ctx, peer_id, user_id)
        return PeerResponse.model_validate(peer)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error assigning peer {peer_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign peer"
        )


@router.delete("/{peer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_revoke_peer(
    peer_id: str,
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Revoke any user's peer."""
    peer_id = parse_id(peer_id)
    try:
        PeerAllocationEngine(db).revoke(ctx, peer_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error revoking peer {peer_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to revoke peer"
        )
