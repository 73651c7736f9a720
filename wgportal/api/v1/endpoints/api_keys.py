"""
API key management endpoints.

Each key authenticates as one portal user; the raw key is returned once on creation.
"""
import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wgportal.api.deps import parse_id
from wgportal.core.auth import AuthContext, hash_api_key, require_role
from wgportal.core.database import get_db
from wgportal.core.exceptions import UserNotFound
from wgportal.models.api_key import APIKey
from wgportal.models.user import User
from wgportal.schemas.api_key import (
    APIKeyCreateRequest,
    APIKeyCreateResponse,
    APIKeyListResponse,
    APIKeyResponse,
    APIKeyUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def generate_api_key() -> str:
    """Generate a secure random API key."""
    return f"wgp_{secrets.token_urlsafe(32)}"


def _mask(key_hash: str) -> str:
    return f"{key_hash[:8]}..." if len(key_hash) > 8 else "***"


def _to_response(db_key: APIKey) -> APIKeyResponse:
    return APIKeyResponse(
        id=db_key.id,
        name=db_key.label,
        user_id=db_key.user_id,
        is_active=db_key.is_active,
        created_at=db_key.created_at,
        last_used_at=db_key.last_used_at,
        key_masked=_mask(db_key.key_hash),
    )


@router.get("/", response_model=APIKeyListResponse)
async def list_api_keys(
    _ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    List all API keys (admin only).

    Returns safe fields only (masked key).
    """
    try:
        keys = db.query(APIKey).order_by(APIKey.created_at.desc(), APIKey.id.desc()).all()
        items = [_to_response(key) for key in keys]
        logger.info(f"Listed {len(items)} API keys")
        return APIKeyListResponse(items=items, total=len(items))
    except Exception as e:
        logger.error(f"Error listing API keys: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list API keys"
        )


@router.post("/", response_model=APIKeyCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    request: APIKeyCreateRequest,
    _ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    Issue a new API key for a portal user (admin only).

    Returns the full key once in the response. Only the hash is stored.
    """
    user_id = parse_id(request.user_id, "user")
    if db.get(User, user_id) is None:
        raise UserNotFound()

    try:
        new_key = generate_api_key()
        key_hash = hash_api_key(new_key)

        # Collisions are practically impossible; retry once anyway
        if db.query(APIKey).filter(APIKey.key_hash == key_hash).first():
            new_key = generate_api_key()
            key_hash = hash_api_key(new_key)
            if db.query(APIKey).filter(APIKey.key_hash == key_hash).first():
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Failed to generate unique API key"
                )

        db_key = APIKey(
            key_hash=key_hash,
            label=request.name,
            user_id=user_id,
            is_active=True,
        )
        db.add(db_key)
        db.commit()
        db.refresh(db_key)

        logger.info(f"Created API key: id={db_key.id}, label={request.name}, user={user_id}")

        return APIKeyCreateResponse(
            id=db_key.id,
            name=db_key.label,
            user_id=db_key.user_id,
            is_active=db_key.is_active,
            created_at=db_key.created_at,
            key=new_key,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating API key: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create API key"
        )


@router.patch("/{key_id}", response_model=APIKeyResponse)
async def update_api_key(
    key_id: int,
    request: APIKeyUpdateRequest,
    _ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Update an API key's label or active flag (admin only)."""
    try:
        db_key = db.query(APIKey).filter(APIKey.id == key_id).first()
        if not db_key:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"API key with id {key_id} not found"
            )

        if request.label is not None:
            db_key.label = request.label
        if request.is_active is not None:
            db_key.is_active = request.is_active

        db.commit()
        db.refresh(db_key)
        logger.info(f"Updated API key: id={key_id}")
        return _to_response(db_key)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating API key: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update API key"
        )


@router.delete("/{key_id}", status_code=status.HTTP_200_OK)
async def delete_api_key(
    key_id: int,
    _ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    Soft-delete an API key (admin only).

    Sets is_active=False. The key can no longer be used for authentication.
    """
    try:
        db_key = db.query(APIKey).filter(APIKey.id == key_id).first()
        if not db_key:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"API key with id {key_id} not found"
            )

        db_key.is_active = False
        db.commit()
        logger.info(f"Deleted (deactivated) API key: id={key_id}")
        return {"message": "API key deleted successfully", "id": key_id, "is_active": False}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting API key: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete API key"
        )
