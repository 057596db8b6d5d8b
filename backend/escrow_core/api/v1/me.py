"""
Current user (me) API endpoints
"""

from fastapi import APIRouter, Depends

from escrow_core.auth.dependencies import get_current_user
from escrow_core.core.users.models import User
from escrow_core.schemas.auth import MeResponse

router = APIRouter()


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user info",
    description="Get the authenticated user, provisioning it from the token on first use.",
)
def get_me(user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(
        user_id=str(user.id),
        email=user.email,
        name=user.name,
        phone=user.phone,
        role=user.role.value,
        status=user.status.value,
    )
