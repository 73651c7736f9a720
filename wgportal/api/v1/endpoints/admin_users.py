"""
Admin endpoints for portal users.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from wgportal.api.deps import get_domain_cache, parse_id
from wgportal.core.auth import AuthContext, require_role
from wgportal.core.database import get_db
from wgportal.core.exceptions import PortalError
from wgportal.models.user import UserStatus
from wgportal.schemas.user import (
    UserCreateRequest,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from wgportal.services import user_service
from wgportal.services.domain_service import AcceptedDomainCache
from wgportal.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=UserListResponse)
async def list_users(
    status_filter: Optional[UserStatus] = Query(None, alias="status"),
    domain: Optional[str] = Query(None, description="Filter by e-mail domain"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    sort: Optional[str] = Query(None, pattern=r"^[a-z_]+(:(asc|desc))?$", description="column:asc|desc"),
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """List users with role names."""
    try:
        items, total = user_service.list_users(db, status_filter, domain, page, size, sort)
        return UserListResponse(
            items=[UserResponse.model_validate(u) for u in items],
            page=page,
            size=size,
            total=total,
        )
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error listing users: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch users"
        )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: UserCreateRequest,
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
    domain_cache: AcceptedDomainCache = Depends(get_domain_cache),
):
    """
    Provision a portal user. The e-mail domain must be in the accepted list.
    """
    try:
        user = UserService(db).provision_user(
            ctx,
            request.email,
            domain_cache,
            roles=request.roles,
            peer_limit=request.peer_limit,
        )
        return UserResponse.model_validate(user)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error creating user: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user"
        )


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    Change a user's peer limit or status.

    The limit may not drop below the user's current number of active peers.
    """
    user_id = parse_id(user_id, "user")
    try:
        user = UserService(db).update_user(ctx, user_id, peer_limit=request.peer_limit, status=request.status)
        return UserResponse.model_validate(user)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user"
        )
