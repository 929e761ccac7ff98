"""Models module."""

from .user import User, UserCreate, UserInDB, Token, TokenData
from .group import (
    MAX_GROUP_MEMBERS,
    Partner,
    GroupMessage,
    GroupMessageCreate,
    GroupChat,
    GroupCreate,
    TopicUpdate,
    JoinOutcome,
    JoinResult,
)

__all__ = [
    'User', 'UserCreate', 'UserInDB', 'Token', 'TokenData',
    'MAX_GROUP_MEMBERS', 'Partner', 'GroupMessage', 'GroupMessageCreate',
    'GroupChat', 'GroupCreate', 'TopicUpdate', 'JoinOutcome', 'JoinResult',
]
