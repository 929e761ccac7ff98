"""
Exception hierarchy for storage and group chat operations.

Services raise these; API routers translate them to HTTP responses.
"""

from typing import Optional


class StorageError(Exception):
    """The document store was unreachable or rejected the operation."""


class DocumentNotFoundError(StorageError):
    """An update targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document {collection}/{doc_id} does not exist")


class GroupError(Exception):
    """Base class for group chat failures."""

    def __init__(self, group_id: str, message: Optional[str] = None):
        self.group_id = group_id
        super().__init__(message or f"Group {group_id} error")


class GroupNotFoundError(GroupError):
    """The group does not exist or is unavailable."""

    def __init__(self, group_id: str):
        super().__init__(group_id, f"Group {group_id} does not exist or is unavailable")


class GroupFullError(GroupError):
    """The group already holds the maximum number of members."""

    def __init__(self, group_id: str, capacity: int):
        self.capacity = capacity
        super().__init__(group_id, f"Group {group_id} is full ({capacity} members)")


class NotGroupMemberError(GroupError):
    """The caller is not a member of the group."""

    def __init__(self, group_id: str, user_id: str):
        self.user_id = user_id
        super().__init__(group_id, f"User {user_id} is not a member of group {group_id}")
