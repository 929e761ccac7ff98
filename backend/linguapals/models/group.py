"""
Group Chat Models - shared sessions between up to three learners and an AI partner.

Documents are persisted with camelCase keys (``creatorId``, ``activeGroupId``...)
so the same records can be read by the web client.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

MAX_GROUP_MEMBERS = 3


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class Partner(BaseModel):
    """The AI conversation partner attached to a group."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    avatar: str = ""
    native_language: str = Field("", alias="nativeLanguage")
    learning_language: str = Field("", alias="learningLanguage")
    interests: List[str] = Field(default_factory=list)


class GroupMessage(BaseModel):
    """
    A message in a group log. Never edited or removed once appended.

    ``id`` makes every message distinct so that appends through an
    atomic array union never collapse two identical texts.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    sender: Literal["user", "ai"]
    sender_id: Optional[str] = Field(None, alias="senderId")
    sender_name: Optional[str] = Field(None, alias="senderName")
    text: str
    correction: Optional[str] = None
    translation: Optional[str] = None
    audio_url: Optional[str] = Field(None, alias="audioUrl")
    audio_duration: Optional[float] = Field(None, alias="audioDuration")
    timestamp: Optional[int] = None  # epoch ms

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GroupChat(BaseModel):
    """A group chat session."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    creator_id: str = Field(..., alias="creatorId")
    partner: Optional[Partner] = None
    topic: Optional[str] = None
    share_link: str = Field("", alias="shareLink")
    members: List[str] = Field(default_factory=list)
    messages: List[GroupMessage] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "GroupChat":
        return cls.model_validate(document)


class GroupMessageCreate(BaseModel):
    """Message payload sent by a member; attribution is filled in server-side."""
    model_config = ConfigDict(populate_by_name=True)

    sender: Literal["user", "ai"] = "user"
    text: str = Field(..., min_length=1, max_length=4000)
    correction: Optional[str] = None
    translation: Optional[str] = None
    audio_url: Optional[str] = Field(None, alias="audioUrl")
    audio_duration: Optional[float] = Field(None, alias="audioDuration")


class GroupCreate(BaseModel):
    """Request to open a new group."""
    model_config = ConfigDict(populate_by_name=True)

    partner: Optional[Partner] = None
    seed_message: GroupMessageCreate = Field(..., alias="seedMessage")


class TopicUpdate(BaseModel):
    """Request to change the shared learning topic."""
    topic: str = Field(..., min_length=1, max_length=200)


class JoinOutcome(str, Enum):
    """Terminal states of a join attempt."""
    AUTHENTICATION_REQUIRED = "authentication_required"
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    ALREADY_MEMBER = "already_member"
    FULL = "full"
    JOINED = "joined"
    FAILED = "failed"


class JoinResult(BaseModel):
    """Result of a join attempt."""
    model_config = ConfigDict(populate_by_name=True)

    outcome: JoinOutcome
    group_id: Optional[str] = Field(None, alias="groupId")
    detail: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (JoinOutcome.JOINED, JoinOutcome.ALREADY_MEMBER)
