"""Member directory endpoints for the admin console."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request

from enigma_api.app.core.security import require_roles
from enigma_api.app.schemas.member import MemberRead
from enigma_api.app.services.member_service import MemberService

router = APIRouter()


@router.get("/", response_model=List[MemberRead])
async def list_members(
    request: Request,
    current_user: Dict[str, Any] = Depends(require_roles("admin", "moderator")),
) -> List[MemberRead]:
    """List member profiles.  Administrators and moderators only."""
    return await MemberService.list_members(request.app.state.db)
