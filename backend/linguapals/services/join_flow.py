"""
Join Flow - handles a request to join a group from a shared link.

Each attempt runs the whole check sequence once and ends in exactly one
JoinOutcome; nothing is retried or cached between attempts.
"""

import logging
from typing import Optional

from ..core.exceptions import GroupFullError, GroupNotFoundError
from ..models import JoinOutcome, JoinResult
from .group_service import GroupService

logger = logging.getLogger(__name__)


class JoinFlowController:
    """Runs join attempts against a GroupService."""

    def __init__(self, groups: GroupService):
        self.groups = groups

    async def join(self, group_id: Optional[str], caller_id: Optional[str]) -> JoinResult:
        """
        Attempt to add the caller to a group.

        Checks, in order: caller identity, group id, group existence,
        existing membership, capacity. Unexpected errors become FAILED.

        Args:
            group_id: Id taken from the join link
            caller_id: Authenticated user id, or None when signed out

        Returns:
            JoinResult: The terminal outcome of this attempt
        """
        if not caller_id:
            return JoinResult(outcome=JoinOutcome.AUTHENTICATION_REQUIRED, group_id=group_id,
                              detail="Sign in to join this group.")
        if not group_id:
            return JoinResult(outcome=JoinOutcome.INVALID_REQUEST,
                              detail="No group ID was provided in the link.")

        try:
            group = await self.groups.get_group(group_id)
            if group is None:
                return self._not_found(group_id)

            if group.is_member(caller_id):
                # Re-points the caller's profile; membership is unchanged.
                await self.groups.join_group(group_id, caller_id)
                return JoinResult(outcome=JoinOutcome.ALREADY_MEMBER, group_id=group_id)

            if len(group.members) >= self.groups.capacity:
                return self._full(group_id)

            await self.groups.join_group(group_id, caller_id)
            return JoinResult(outcome=JoinOutcome.JOINED, group_id=group_id)

        # The group can fill up or disappear between the lookup and the join.
        except GroupNotFoundError:
            return self._not_found(group_id)
        except GroupFullError:
            return self._full(group_id)
        except Exception:
            logger.error(
                "Error checking or joining group",
                exc_info=True,
                extra={"extra_fields": {"group_id": group_id, "user_id": caller_id}}
            )
            return JoinResult(outcome=JoinOutcome.FAILED, group_id=group_id,
                              detail="An error occurred. Please try again.")

    @staticmethod
    def _not_found(group_id: str) -> JoinResult:
        return JoinResult(outcome=JoinOutcome.NOT_FOUND, group_id=group_id,
                          detail="This group does not exist or is unavailable.")

    @staticmethod
    def _full(group_id: str) -> JoinResult:
        return JoinResult(outcome=JoinOutcome.FULL, group_id=group_id,
                          detail="This group is full.")
