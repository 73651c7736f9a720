"""
Admin endpoints for peer import and system configuration.
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wgportal.core.auth import AuthContext, require_role
from wgportal.core.database import get_db
from wgportal.core.exceptions import PortalError
from wgportal.schemas.imports import ImportResultResponse
from wgportal.services.config_service import get_all_config
from wgportal.services.import_service import ImportService

logger = logging.getLogger(__name__)

import_router = APIRouter()
config_router = APIRouter()


@import_router.post("", response_model=ImportResultResponse)
async def import_peers(
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    Import every new .conf file under IMPORT_DIR as an available peer.
    """
    try:
        result = ImportService(db).import_configs(ctx)
        return ImportResultResponse(**result)
    except (HTTPException, PortalError):
        raise
    except Exception as e:
        logger.error(f"Error importing peers: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to import peers"
        )


@config_router.get("", response_model=Dict[str, str])
async def get_config(
    ctx: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """All system configuration entries as a key/value map."""
    return get_all_config(db)
