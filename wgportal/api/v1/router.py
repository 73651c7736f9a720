"""
API v1 router.
"""
from fastapi import APIRouter

from wgportal.api.v1.endpoints import (
    admin_audit,
    admin_peers,
    admin_system,
    admin_users,
    api_keys,
    health,
    peers,
    users,
)

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/v1/health)
api_router.include_router(health.router, tags=["health"])

api_router.include_router(peers.router, prefix="/peers", tags=["peers"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(admin_peers.router, prefix="/admin/peers", tags=["admin"])
api_router.include_router(admin_users.router, prefix="/admin/users", tags=["admin"])
api_router.include_router(admin_audit.router, prefix="/admin/audit", tags=["admin"])
api_router.include_router(admin_system.import_router, prefix="/admin/import", tags=["admin"])
api_router.include_router(admin_system.config_router, prefix="/admin/config", tags=["admin"])
api_router.include_router(api_keys.router, prefix="/api-keys", tags=["api-keys"])
