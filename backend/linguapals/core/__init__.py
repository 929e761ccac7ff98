"""Core module - exception taxonomy and logging setup."""

from .exceptions import (
    StorageError,
    DocumentNotFoundError,
    GroupError,
    GroupNotFoundError,
    GroupFullError,
    NotGroupMemberError,
)

__all__ = [
    'StorageError', 'DocumentNotFoundError', 'GroupError',
    'GroupNotFoundError', 'GroupFullError', 'NotGroupMemberError',
]
