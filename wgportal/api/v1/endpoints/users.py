"""
Endpoints for the calling user's own profile.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from wgportal.core.auth import AuthContext, get_auth_context
from wgportal.core.database import get_db
from wgportal.core.exceptions import UserNotFound
from wgportal.schemas.user import UserResponse
from wgportal.services.user_service import get_profile

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_me(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """
    Current user's profile with roles and peer limit.

    Static-key callers have no portal user and get 404.
    """
    if not ctx.user_id:
        raise UserNotFound("No portal user is bound to this API key")
    user = get_profile(db, ctx.user_id)
    if user is None:
        raise UserNotFound()
    return UserResponse.model_validate(user)
