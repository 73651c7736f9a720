"""
Peer endpoints for end users (claim, list, rename, download, revoke).
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.orm import Session

from wgportal.api.deps import parse_id
from wgportal.core.auth import AuthContext, require_role
from wgportal.core.database import get_db
from wgportal.core.exceptions import Forbidden, NotFound, PortalError
from wgportal.models.peer import PeerStatus
from wgportal.schemas.peer import PeerListResponse, PeerResponse, PeerUpdateRequest
from wgportal.services import peer_service
from wgportal.services.peer_service import PeerAllocationEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=PeerListResponse)
async def list_my_peers(
    status_filter: Optional[PeerStatus] = Query(None, alias="status", description="Filter by peer status"),
    page: int = Query(1, ge=1, description="1-based page number"),
    size: int = Query(20, ge=1, le=100, description="Page size"),
    ctx: AuthContext = Depends(require_role("user")),
    db: Session = Depends(get_db),
):
    """
    List the caller's own peers, most recently claimed first.
    """
    if not ctx.user_id:
        raise Forbidden("Listing own peers requires a portal user account")
    try:
        items, total = peer_service.list_for_owner(db, ctx, ctx.user_id, status_filter, page, size)
        return PeerListResponse(
            items=[PeerResponse.model_validate(p) for p in items],
            page=page,
            size=size,
            total=total,
        )
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error fetching peers: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch peers"
        )


@router.post("/claim", response_model=PeerResponse)
async def claim_peer(
    ctx: AuthContext = Depends(require_role("user")),
    db: Session = Depends(get_db),
):
    """
    Claim the next available peer (FIFO by import time).

    400 when the caller's peer limit is reached, 404 when no peer is available.
    """
    try:
        peer = PeerAllocationEngine(db).claim_next(ctx)
        return PeerResponse.model_validate(peer)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error claiming peer: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to claim peer"
        )


@router.get("/{peer_id}", response_model=PeerResponse)
async def get_peer(
    peer_id: str,
    ctx: AuthContext = Depends(require_role("user")),
    db: Session = Depends(get_db),
):
    """
    Get a single peer owned by the caller (admins may read any peer).
    """
    peer_id = parse_id(peer_id)
    peer = peer_service.find_by_id(db, ctx, peer_id)
    if peer is None:
        raise NotFound()
    return PeerResponse.model_validate(peer)


@router.patch("/{peer_id}", response_model=PeerResponse)
async def update_peer(
    peer_id: str,
    request: PeerUpdateRequest,
    ctx: AuthContext = Depends(require_role("user")),
    db: Session = Depends(get_db),
):
    """
    Rename a peer. Friendly names are unique across all peers (409 on conflict).
    """
    peer_id = parse_id(peer_id)
    try:
        peer = PeerAllocationEngine(db).rename(ctx, peer_id, request.friendly_name)
        return PeerResponse.model_validate(peer)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error updating peer: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update peer"
        )


@router.delete("/{peer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_peer(
    peer_id: str,
    ctx: AuthContext = Depends(require_role("user")),
    db: Session = Depends(get_db),
):
    """
    Revoke one of the caller's peers. The peer keeps its owner for history.
    """
    peer_id = parse_id(peer_id)
    try:
        PeerAllocationEngine(db).revoke(ctx, peer_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error revoking peer: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to revoke peer"
        )


@router.get("/{peer_id}/download", response_class=PlainTextResponse)
async def download_peer_config(
    peer_id: str,
    ctx: AuthContext = Depends(require_role("user")),
    db: Session = Depends(get_db),
):
    """
    Download the decrypted WireGuard configuration as a .conf attachment.
    """
    peer_id = parse_id(peer_id)
    filename, content = PeerAllocationEngine(db).download(ctx, peer_id)
    return PlainTextResponse(
        content,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Security-Policy": "default-src 'none';",
            "X-Content-Type-Options": "nosniff",
        },
    )
