"""API module."""

from .auth import router as auth_router
from .groups import router as groups_router
from .join import router as join_router

__all__ = ['auth_router', 'groups_router', 'join_router']
