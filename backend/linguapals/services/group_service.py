"""
Group Chat Service - shared sessions with membership, message log and topic.

A group document lives in the ``groupChats`` collection. Its ``members``
list is the source of truth for membership; each user's ``activeGroupId``
is a denormalized pointer kept in step by join/leave:

- join adds the member first, then sets the pointer
- leave clears the pointer first, then removes the member

so a pointer is never set for a user who is not in ``members``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from uuid import uuid4

from ..core.exceptions import DocumentNotFoundError, GroupFullError, GroupNotFoundError
from ..core.logging_config import ContextLoggerAdapter
from ..models import MAX_GROUP_MEMBERS, GroupChat, GroupMessage, Partner
from ..models.group import now_ms
from ..storage.blob_storage import BlobStorage
from ..storage.interface import DELETE, ArrayUnion, DocumentStore, Unsubscribe
from ..storage.user_storage import USERS_COLLECTION, UserStorage

logger = logging.getLogger(__name__)

GROUPS_COLLECTION = "groupChats"

GroupCallback = Callable[[Optional[GroupChat]], Union[None, Awaitable[None]]]


class GroupService:
    """Session store, membership gate and change feed for group chats."""

    def __init__(
        self,
        store: DocumentStore,
        users: UserStorage,
        blobs: Optional[BlobStorage] = None,
        public_base_url: str = "",
        capacity: int = MAX_GROUP_MEMBERS
    ):
        """
        Args:
            store: Document store holding group documents
            users: User storage holding the activeGroupId pointers
            blobs: Blob storage for audio messages, cleaned up on group deletion
            public_base_url: Base URL used to build share links
            capacity: Maximum number of members per group
        """
        self.store = store
        self.users = users
        self.blobs = blobs
        self.public_base_url = public_base_url.rstrip("/")
        self.capacity = capacity

    def _log(self, group_id: str) -> ContextLoggerAdapter:
        return ContextLoggerAdapter(logger, {"group_id": group_id})

    def share_link(self, group_id: str) -> str:
        return f"{self.public_base_url}/join/{group_id}"

    async def _require_profile(self, user_id: str) -> None:
        # Profile must exist before any group write.
        if await self.users.get_user(user_id) is None:
            raise DocumentNotFoundError(USERS_COLLECTION, user_id)

    async def create_group(
        self,
        creator_id: str,
        seed_message: GroupMessage,
        partner: Optional[Partner] = None,
        group_id: Optional[str] = None
    ) -> GroupChat:
        """
        Open a new group with the creator as its only member.

        The group document is written before the creator's pointer so a
        reader of the pointer never finds a group that does not exist yet.

        Args:
            creator_id: User opening the group
            seed_message: First message of the log
            partner: AI partner persona for the group
            group_id: Explicit id; a random one is generated when omitted

        Returns:
            GroupChat: The created group
        """
        await self._require_profile(creator_id)
        group_id = group_id or uuid4().hex
        if seed_message.timestamp is None:
            seed_message = seed_message.model_copy(update={"timestamp": now_ms()})

        group = GroupChat(
            id=group_id,
            creator_id=creator_id,
            partner=partner,
            topic=None,
            share_link=self.share_link(group_id),
            members=[creator_id],
            messages=[seed_message],
            created_at=datetime.now(timezone.utc),
        )
        await self.store.set(GROUPS_COLLECTION, group_id, group.to_document())
        await self.users.set_active_group(creator_id, group_id)

        self._log(group_id).info("Group created", extra={"extra_fields": {"user_id": creator_id}})
        return group

    async def get_group(self, group_id: str) -> Optional[GroupChat]:
        """Look up a group; returns None when it does not exist."""
        document = await self.store.get(GROUPS_COLLECTION, group_id)
        if document is None:
            return None
        return GroupChat.from_document(document)

    async def add_message(self, group_id: str, message: GroupMessage) -> GroupMessage:
        """
        Append a message to the group log as one atomic array union.

        Raises:
            GroupNotFoundError: If the group no longer exists
        """
        if message.timestamp is None:
            message = message.model_copy(update={"timestamp": now_ms()})
        try:
            await self.store.update(
                GROUPS_COLLECTION, group_id, {"messages": ArrayUnion([message.to_document()])}
            )
        except DocumentNotFoundError as e:
            raise GroupNotFoundError(group_id) from e
        return message

    async def update_topic(self, group_id: str, topic: Optional[str]) -> None:
        """
        Replace the shared topic (last write wins).

        Raises:
            GroupNotFoundError: If the group no longer exists
        """
        try:
            await self.store.update(GROUPS_COLLECTION, group_id, {"topic": topic})
        except DocumentNotFoundError as e:
            raise GroupNotFoundError(group_id) from e
        self._log(group_id).info("Group topic updated")

    async def join_group(self, group_id: str, user_id: str) -> bool:
        """
        Add a member and point their profile at the group.

        Capacity is checked inside the same atomic mutation that adds the
        member, so concurrent joins cannot push a group past its capacity.
        Joining as an existing member only re-sets the pointer.

        Returns:
            bool: True if the user was newly added

        Raises:
            DocumentNotFoundError: If the user has no profile
            GroupNotFoundError: If the group does not exist
            GroupFullError: If the group is already at capacity
        """
        await self._require_profile(user_id)
        added = False

        def _add_member(document: Optional[Dict[str, Any]]):
            nonlocal added
            added = False
            if document is None:
                raise GroupNotFoundError(group_id)
            members = list(document.get("members") or [])
            if user_id in members:
                return None
            if len(members) >= self.capacity:
                raise GroupFullError(group_id, self.capacity)
            document["members"] = members + [user_id]
            added = True
            return document

        await self.store.mutate(GROUPS_COLLECTION, group_id, _add_member)
        await self.users.set_active_group(user_id, group_id)

        if added:
            self._log(group_id).info("Member joined", extra={"extra_fields": {"user_id": user_id}})
        return added

    async def leave_group(self, group_id: str, user_id: str) -> bool:
        """
        Remove a member; the group is deleted when its last member leaves.

        Removing the member and deleting an emptied group happen in a single
        atomic mutation, so a member joining concurrently either lands in a
        group that survives or finds it already gone.

        The user's pointer is cleared only when it names this group, so
        leaving some other group never detaches them from their own.

        Returns:
            bool: True if the group was deleted
        """
        user = await self.users.get_user(user_id)
        if user is not None and user.active_group_id == group_id:
            await self.users.set_active_group(user_id, None)

        deleted_group: Optional[Dict[str, Any]] = None

        def _remove_member(document: Optional[Dict[str, Any]]):
            nonlocal deleted_group
            deleted_group = None
            if document is None:
                return None
            members = [m for m in (document.get("members") or []) if m != user_id]
            if not members:
                deleted_group = document
                return DELETE
            if len(members) == len(document.get("members") or []):
                return None
            document["members"] = members
            return document

        await self.store.mutate(GROUPS_COLLECTION, group_id, _remove_member)

        log = self._log(group_id)
        if deleted_group is None:
            log.info("Member left", extra={"extra_fields": {"user_id": user_id}})
            return False

        log.info("Last member left, group deleted", extra={"extra_fields": {"user_id": user_id}})
        await self._delete_audio(GroupChat.from_document(deleted_group))
        return True

    async def _delete_audio(self, group: GroupChat) -> None:
        """Best-effort removal of audio clips referenced by a deleted group."""
        if self.blobs is None:
            return
        for message in group.messages:
            if not message.audio_url:
                continue
            if not await self.blobs.delete(message.audio_url):
                self._log(group.id).warning(f"Could not delete audio clip {message.audio_url}")

    async def get_active_group(self, user_id: str) -> Optional[GroupChat]:
        """
        Follow a user's pointer to their current group.

        A pointer to a group that is gone, or that no longer lists the user,
        is cleared and None is returned.
        """
        user = await self.users.get_user(user_id)
        if user is None or not user.active_group_id:
            return None

        group = await self.get_group(user.active_group_id)
        if group is not None and group.is_member(user_id):
            return group

        logger.warning(
            "Clearing stale active group pointer",
            extra={"extra_fields": {"user_id": user_id, "group_id": user.active_group_id}}
        )
        await self.users.set_active_group(user_id, None)
        return None

    async def subscribe(self, group_id: str, on_change: GroupCallback) -> Unsubscribe:
        """
        Watch a group.

        ``on_change`` receives the full current group right away and after
        every committed change, or None once the group no longer exists.

        Returns:
            Unsubscribe: Callable that stops further callbacks
        """
        def _forward(document: Optional[Dict[str, Any]]):
            return on_change(GroupChat.from_document(document) if document is not None else None)

        return await self.store.subscribe(GROUPS_COLLECTION, group_id, _forward)


# Global group service instance
_group_service: Optional[GroupService] = None


def init_group_service(service: GroupService) -> GroupService:
    """Install the global group service instance."""
    global _group_service
    _group_service = service
    return _group_service


def get_group_service() -> GroupService:
    """
    Get the global group service instance.

    Raises:
        RuntimeError: If the group service has not been initialized
    """
    if _group_service is None:
        raise RuntimeError("Group service not initialized. Call init_group_service() first.")
    return _group_service
