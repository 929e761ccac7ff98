"""
Unit tests for the join flow controller.
"""

import pytest
from unittest.mock import AsyncMock, patch

from linguapals.core.exceptions import GroupFullError, GroupNotFoundError, StorageError
from linguapals.models import JoinOutcome
from linguapals.services import JoinFlowController


async def _group_with_members(groups, seed_message, *members):
    await groups.create_group(members[0], seed_message, group_id="abc123")
    for member in members[1:]:
        await groups.join_group("abc123", member)


class TestJoinFlow:
    """Outcome of each join attempt."""

    @pytest.mark.asyncio
    async def test_missing_group_not_found(self, groups, add_users):
        await add_users("D")
        result = await JoinFlowController(groups).join("abc123", "D")
        assert result.outcome == JoinOutcome.NOT_FOUND
        assert not result.succeeded

    @pytest.mark.asyncio
    async def test_full_group(self, groups, add_users, seed_message):
        await add_users("A", "B", "C", "D")
        await _group_with_members(groups, seed_message, "A", "B", "C")

        result = await JoinFlowController(groups).join("abc123", "D")

        assert result.outcome == JoinOutcome.FULL
        assert sorted((await groups.get_group("abc123")).members) == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_joins_open_group(self, groups, users, add_users, seed_message):
        await add_users("A", "B")
        await _group_with_members(groups, seed_message, "A")

        result = await JoinFlowController(groups).join("abc123", "B")

        assert result.outcome == JoinOutcome.JOINED
        assert result.succeeded
        assert sorted((await groups.get_group("abc123")).members) == ["A", "B"]
        assert (await users.get_user("B")).active_group_id == "abc123"

    @pytest.mark.asyncio
    async def test_existing_member_already_member(self, groups, users, add_users, seed_message):
        await add_users("A")
        await _group_with_members(groups, seed_message, "A")
        await users.set_active_group("A", None)

        result = await JoinFlowController(groups).join("abc123", "A")

        assert result.outcome == JoinOutcome.ALREADY_MEMBER
        assert result.succeeded
        assert (await groups.get_group("abc123")).members == ["A"]
        assert (await users.get_user("A")).active_group_id == "abc123"

    @pytest.mark.asyncio
    async def test_caller_without_profile_fails_without_joining(self, groups, add_users, seed_message):
        await add_users("A")
        await _group_with_members(groups, seed_message, "A")

        result = await JoinFlowController(groups).join("abc123", "ghost")

        assert result.outcome == JoinOutcome.FAILED
        assert (await groups.get_group("abc123")).members == ["A"]

    @pytest.mark.asyncio
    async def test_member_of_full_group_is_already_member(self, groups, add_users, seed_message):
        await add_users("A", "B", "C")
        await _group_with_members(groups, seed_message, "A", "B", "C")

        result = await JoinFlowController(groups).join("abc123", "C")

        assert result.outcome == JoinOutcome.ALREADY_MEMBER

    @pytest.mark.asyncio
    async def test_unauthenticated(self, groups):
        result = await JoinFlowController(groups).join("abc123", None)
        assert result.outcome == JoinOutcome.AUTHENTICATION_REQUIRED

    @pytest.mark.asyncio
    async def test_missing_id_invalid_request(self, groups):
        result = await JoinFlowController(groups).join("", "A")
        assert result.outcome == JoinOutcome.INVALID_REQUEST
        assert result.detail == "No group ID was provided in the link."

    @pytest.mark.asyncio
    async def test_authentication_checked_before_id(self, groups):
        result = await JoinFlowController(groups).join(None, None)
        assert result.outcome == JoinOutcome.AUTHENTICATION_REQUIRED

    @pytest.mark.asyncio
    async def test_storage_failure_is_generic_failure(self, groups):
        with patch.object(groups, "get_group", AsyncMock(side_effect=StorageError("unreachable"))):
            result = await JoinFlowController(groups).join("abc123", "A")
        assert result.outcome == JoinOutcome.FAILED
        assert not result.succeeded

    @pytest.mark.asyncio
    async def test_group_filled_between_check_and_join(self, groups, add_users, seed_message):
        await add_users("A", "B")
        await _group_with_members(groups, seed_message, "A")

        with patch.object(groups, "join_group", AsyncMock(side_effect=GroupFullError("abc123", 3))):
            result = await JoinFlowController(groups).join("abc123", "B")
        assert result.outcome == JoinOutcome.FULL

    @pytest.mark.asyncio
    async def test_group_deleted_between_check_and_join(self, groups, add_users, seed_message):
        await add_users("A", "B")
        await _group_with_members(groups, seed_message, "A")

        with patch.object(groups, "join_group", AsyncMock(side_effect=GroupNotFoundError("abc123"))):
            result = await JoinFlowController(groups).join("abc123", "B")
        assert result.outcome == JoinOutcome.NOT_FOUND
