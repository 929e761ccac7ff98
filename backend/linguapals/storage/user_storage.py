"""
User Storage - user profile documents in the ``customers`` collection.
Usernames are reserved in a ``usernames`` collection so that two
concurrent registrations cannot claim the same name.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from ..core.exceptions import StorageError
from ..models import UserInDB
from .interface import DELETE, DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "customers"
USERNAMES_COLLECTION = "usernames"


class UsernameTakenError(StorageError):
    """The requested username is already registered."""


class UserStorage:
    """Manages persistent storage of user profiles."""

    def __init__(self, store: DocumentStore):
        """
        Args:
            store: DocumentStore implementation shared with the group service
        """
        self.store = store

    async def get_user(self, user_id: str) -> Optional[UserInDB]:
        """
        Get user by user_id.

        Returns:
            Optional[UserInDB]: User data or None if not found
        """
        document = await self.store.get(USERS_COLLECTION, user_id)
        if document is None:
            return None
        return UserInDB.model_validate(document)

    async def get_user_by_username(self, username: str) -> Optional[UserInDB]:
        """Get user by username, or None if the name is not registered."""
        entry = await self.store.get(USERNAMES_COLLECTION, username)
        if entry is None:
            return None
        return await self.get_user(entry["uid"])

    async def create_user(
        self,
        user_id: str,
        username: str,
        hashed_password: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None
    ) -> UserInDB:
        """
        Create a new user.

        Raises:
            UsernameTakenError: If the username is already registered
        """
        def _reserve(entry: Optional[Dict[str, Any]]):
            if entry is not None:
                raise UsernameTakenError(f"Username {username} already registered")
            return {"uid": user_id}

        await self.store.mutate(USERNAMES_COLLECTION, username, _reserve)

        now = datetime.now(timezone.utc)
        user = UserInDB(
            uid=user_id,
            username=username,
            email=email,
            display_name=display_name or username,
            hashed_password=hashed_password,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.store.set(USERS_COLLECTION, user_id, user.model_dump(mode="json", by_alias=True))
        except StorageError:
            await self.store.mutate(USERNAMES_COLLECTION, username, lambda _: DELETE)
            raise

        logger.info(f"User created: {username}", extra={"extra_fields": {"user_id": user_id}})
        return user

    async def update_user(self, user_id: str, updates: Dict[str, Any]) -> None:
        """
        Update profile fields (document keys, e.g. ``displayName``).

        Raises:
            DocumentNotFoundError: If the user does not exist
        """
        fields = dict(updates)
        fields["updatedAt"] = datetime.now(timezone.utc).isoformat()
        await self.store.update(USERS_COLLECTION, user_id, fields)

    async def set_active_group(self, user_id: str, group_id: Optional[str]) -> None:
        """Point the user's profile at a group chat, or clear it with None."""
        await self.update_user(user_id, {"activeGroupId": group_id})


# Global user storage instance
_user_storage: Optional[UserStorage] = None


def init_user_storage(store: DocumentStore) -> UserStorage:
    """Initialize the global user storage instance."""
    global _user_storage
    _user_storage = UserStorage(store)
    return _user_storage


def get_user_storage() -> UserStorage:
    """
    Get the global user storage instance.

    Raises:
        RuntimeError: If user storage has not been initialized
    """
    if _user_storage is None:
        raise RuntimeError("User storage not initialized. Call init_user_storage() first.")
    return _user_storage
