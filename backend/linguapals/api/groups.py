"""
Group Chat API endpoints - shared sessions, membership and the live change feed.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse

from ..config import settings
from ..core.exceptions import GroupNotFoundError, NotGroupMemberError
from ..llm.factory import create_llm_provider
from ..models import (
    GroupChat,
    GroupCreate,
    GroupMessage,
    GroupMessageCreate,
    JoinOutcome,
    JoinResult,
    TopicUpdate,
)
from ..models.group import now_ms
from ..services import GroupService, JoinFlowController, PartnerReplyService, get_group_service
from ..storage import get_user_storage
from ..utils.auth import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])

JOIN_STATUS_CODES = {
    JoinOutcome.JOINED: status.HTTP_200_OK,
    JoinOutcome.ALREADY_MEMBER: status.HTTP_200_OK,
    JoinOutcome.AUTHENTICATION_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    JoinOutcome.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    JoinOutcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    JoinOutcome.FULL: status.HTTP_409_CONFLICT,
    JoinOutcome.FAILED: status.HTTP_404_NOT_FOUND,
}

AUDIO_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/mp4": "mp4",
    "audio/wav": "wav",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
}
MAX_AUDIO_BYTES = 10 * 1024 * 1024

# Seconds between keep-alive comments on an idle change feed
KEEPALIVE_INTERVAL = 15.0


def get_partner_reply_service() -> PartnerReplyService:
    """Build the partner reply service from the configured LLM provider."""
    provider = create_llm_provider(
        provider=settings.llm_provider,
        api_key=settings.llm_api_key or "",
        model=settings.llm_model,
        base_url=settings.llm_base_url,
    )
    return PartnerReplyService(provider)


async def _require_member(groups: GroupService, group_id: str, user_id: str) -> GroupChat:
    group = await groups.get_group(group_id)
    if group is None:
        raise GroupNotFoundError(group_id)
    if not group.is_member(user_id):
        raise NotGroupMemberError(group_id, user_id)
    return group


async def _attributed(draft: GroupMessageCreate, user_id: str) -> GroupMessage:
    """Turn a member's draft into a message attributed to that member."""
    message = GroupMessage(**draft.model_dump())
    if message.sender == "user":
        user = await get_user_storage().get_user(user_id)
        message.sender_id = user_id
        message.sender_name = (user.display_name or user.username) if user else None
    return message


def join_response(result: JoinResult) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if result.outcome == JoinOutcome.AUTHENTICATION_REQUIRED else None
    return JSONResponse(
        status_code=JOIN_STATUS_CODES[result.outcome],
        content=result.model_dump(mode="json", by_alias=True),
        headers=headers,
    )


@router.post("", response_model=GroupChat, status_code=status.HTTP_201_CREATED)
async def create_group(
    request: GroupCreate,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """
    Open a new group with the caller as its only member.

    Raises:
        HTTPException: 409 if the caller is already in a group
    """
    current = await groups.get_active_group(user_id)
    if current is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Leave your current group before starting a new one"
        )

    seed = await _attributed(request.seed_message, user_id)
    return await groups.create_group(user_id, seed, partner=request.partner)


@router.get("/active", response_model=GroupChat)
async def get_active_group(
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Get the group the caller is currently in."""
    group = await groups.get_active_group(user_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active group")
    return group


@router.get("/{group_id}", response_model=GroupChat)
async def get_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Get a group the caller belongs to."""
    return await _require_member(groups, group_id, user_id)


@router.post("/{group_id}/messages", response_model=GroupMessage, status_code=status.HTTP_201_CREATED)
async def add_message(
    group_id: str,
    draft: GroupMessageCreate,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Append a message to the group log."""
    await _require_member(groups, group_id, user_id)
    message = await _attributed(draft, user_id)
    return await groups.add_message(group_id, message)


@router.put("/{group_id}/topic")
async def update_topic(
    group_id: str,
    update: TopicUpdate,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Set the shared learning topic."""
    await _require_member(groups, group_id, user_id)
    await groups.update_topic(group_id, update.topic)
    return {"status": "success", "topic": update.topic}


@router.post("/{group_id}/join")
async def join_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Join a group by id; the body reports the join outcome."""
    result = await JoinFlowController(groups).join(group_id, user_id)
    return join_response(result)


@router.post("/{group_id}/leave")
async def leave_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """
    Leave a group; the last member out deletes it.

    Leaving a group that is already gone only clears a pointer to it.

    Raises:
        NotGroupMemberError: If the group exists and the caller is not in it
    """
    group = await groups.get_group(group_id)
    if group is not None and not group.is_member(user_id):
        raise NotGroupMemberError(group_id, user_id)
    deleted = await groups.leave_group(group_id, user_id)
    return {"status": "success", "deleted": deleted}


@router.post("/{group_id}/bot-reply", response_model=GroupMessage, status_code=status.HTTP_201_CREATED)
async def bot_reply(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service),
    partner: PartnerReplyService = Depends(get_partner_reply_service)
):
    """Have the group's AI partner answer and append its reply."""
    group = await _require_member(groups, group_id, user_id)
    reply = await partner.reply(group)
    return await groups.add_message(group_id, reply)


@router.post("/{group_id}/audio", status_code=status.HTTP_201_CREATED)
async def upload_audio(
    group_id: str,
    audio: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """
    Store an audio clip for use as a message's ``audioUrl``.

    Returns:
        Storage path of the clip
    """
    await _require_member(groups, group_id, user_id)
    if groups.blobs is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Audio storage unavailable")

    content_type = (audio.content_type or "").split(";")[0]
    extension = AUDIO_EXTENSIONS.get(content_type)
    if extension is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported audio type: {audio.content_type}"
        )

    data = await audio.read()
    if len(data) > MAX_AUDIO_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Audio clip too large")

    path = f"audio_messages/{group_id}/{user_id}_{now_ms()}.{extension}"
    if not await groups.blobs.save(path, data):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not store audio clip")
    return {"audioUrl": path}


@router.get("/{group_id}/audio/{filename}")
async def download_audio(
    group_id: str,
    filename: str,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Fetch an audio clip belonging to a group."""
    await _require_member(groups, group_id, user_id)
    extension = filename.rsplit(".", 1)[-1]
    media_types = {ext: mime for mime, ext in AUDIO_EXTENSIONS.items()}
    if groups.blobs is None or extension not in media_types or "/" in filename:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audio clip not found")

    data = await groups.blobs.load(f"audio_messages/{group_id}/{filename}")
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audio clip not found")
    return Response(content=data, media_type=media_types[extension],
                    headers={"Cache-Control": "private, max-age=86400"})


@router.get("/{group_id}/events")
async def group_events(
    group_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """
    Server-Sent Events stream of the full group state.

    Emits the current state at once and after every change; emits
    ``data: null`` and ends when the group is deleted, and ends when the
    caller is no longer a member.
    """
    await _require_member(groups, group_id, user_id)

    queue: asyncio.Queue[Optional[GroupChat]] = asyncio.Queue()
    unsubscribe = await groups.subscribe(group_id, queue.put_nowait)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    return
                try:
                    group = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_INTERVAL)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue

                # Coalesce a burst of changes into the latest state
                while not queue.empty():
                    group = queue.get_nowait()

                if group is None:
                    yield "data: null\n\n"
                    return
                yield f"data: {json.dumps(group.to_document(), ensure_ascii=False)}\n\n"
                if not group.is_member(user_id):
                    return
        finally:
            unsubscribe()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        }
    )
