"""
API key authentication and RBAC for protected endpoints.

The portal does not authenticate people itself. An API key issued to a portal
user stands in for the identity provider; every request is resolved to an
AuthContext that is passed explicitly into the service layer.
"""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Optional, List

from fastapi import HTTPException, status, Security, Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from wgportal.core.config import settings
from wgportal.core.database import get_db
from wgportal.core.roles import Role, highest_role, has_permission, normalize_role
from wgportal.models.api_key import APIKey

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class AuthContext:
    """Identity and roles of the caller, threaded through every service call."""
    def __init__(
        self,
        source: str,
        roles: List[str],
        user_id: Optional[str] = None,
        api_key_id: Optional[int] = None,
    ):
        self.source = source  # "static" or "db"
        self.roles = sorted({normalize_role(r) for r in roles}) or [Role.USER.value]
        self.user_id = user_id  # Portal user id; None for the static admin key
        self.api_key_id = api_key_id

    @property
    def role(self) -> str:
        return highest_role(self.roles)

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN.value in self.roles

    def can_access_owner(self, owner_id: Optional[str]) -> bool:
        """Admins see every row; users only rows they own."""
        if self.is_admin:
            return True
        return owner_id is not None and owner_id == self.user_id

    @classmethod
    def system(cls) -> "AuthContext":
        return cls(source="static", roles=[Role.ADMIN.value])


def hash_api_key(key: str) -> str:
    """Hash an API key using SHA-256 with the configured salt."""
    return hashlib.sha256(f"{settings.API_KEY_SALT}{key}".encode()).hexdigest()


def verify_api_key_hash(raw_key: str, key_hash: str) -> bool:
    """Verify a raw API key against its hash."""
    return hash_api_key(raw_key) == key_hash


def get_auth_context(
    api_key: Optional[str] = Security(api_key_header),
    db: Session = Depends(get_db)
) -> AuthContext:
    """
    Dependency to verify the API key and return the caller's AuthContext.

    Supports two modes:
    1. Static API key from environment (config.API_KEY), acting as admin without a portal user
    2. Database-backed API keys, each bound to a portal user

    If config.API_KEY is not set, authentication is disabled (for testing/dev).
    """
    if not settings.API_KEY or settings.API_KEY.strip() == "":
        logger.debug("API_KEY not configured - authentication is disabled (TESTING mode)")
        return AuthContext.system()

    if not api_key:
        logger.warning("API key missing from request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key == settings.API_KEY:
        logger.debug("Authenticated with static API key")
        return AuthContext.system()

    db_key = (
        db.query(APIKey)
        .filter(APIKey.key_hash == hash_api_key(api_key), APIKey.is_active == True)  # noqa: E712
        .first()
    )
    if not db_key:
        logger.warning(f"Invalid API key attempted: {api_key[:4]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    user = db_key.user
    if user is None or not user.is_active:
        logger.warning(f"API key {db_key.id} belongs to a missing or deactivated user")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    db_key.last_used_at = datetime.now(timezone.utc)
    db.commit()

    logger.debug(f"Authenticated user {user.id} via API key {db_key.label or db_key.id}")
    return AuthContext(source="db", roles=user.role_names, user_id=user.id, api_key_id=db_key.id)


def require_role(min_role: str = "user"):
    """
    Dependency factory for role-based access control.

    Args:
        min_role: Minimum required role (user, admin)

    Returns:
        Dependency function that checks role permissions
    """
    def check_role(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not has_permission(ctx.role, min_role):
            normalized_min = normalize_role(min_role)
            logger.warning(
                f"Access denied: caller role '{ctx.role}' does not meet minimum requirement '{normalized_min}'"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {normalized_min}",
            )
        return ctx

    return check_role
