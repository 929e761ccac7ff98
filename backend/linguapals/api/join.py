"""
Join link entry point - ``/join/{group_id}`` as shared with friends.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, RedirectResponse

from ..config import settings
from ..models import JoinOutcome
from ..services import GroupService, JoinFlowController, get_group_service
from ..utils.auth import get_optional_user_id
from .groups import join_response

router = APIRouter(tags=["groups"])


@router.get("/join/{group_id}")
async def join_from_link(
    group_id: str,
    user_id: Optional[str] = Depends(get_optional_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """
    Join the linked group and redirect to the app.

    Joined or already-member callers are redirected to the default view,
    which opens the group through the active group pointer. Every other
    outcome except missing authentication is reported as one
    "unavailable" response, since the user cannot act on the difference.
    """
    result = await JoinFlowController(groups).join(group_id, user_id)

    if result.succeeded:
        return RedirectResponse(settings.app_default_path, status_code=status.HTTP_303_SEE_OTHER)
    if result.outcome == JoinOutcome.AUTHENTICATION_REQUIRED:
        return join_response(result)

    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={
            "outcome": result.outcome.value,
            "groupId": group_id,
            "detail": "This group is unavailable.",
            "redirect": settings.app_default_path,
        }
    )
