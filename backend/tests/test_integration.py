"""
Integration tests for the auth and group chat API.
"""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from linguapals.api.groups import get_partner_reply_service
from linguapals.llm.base import LLMResponse
from linguapals.main import app
from linguapals.services import PartnerReplyService, get_group_service


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _signup(client, username):
    """Register and log in a user; returns (auth headers, user id)."""
    response = client.post("/auth/register", json={"username": username, "password": "secret123"})
    assert response.status_code == 201
    user_id = response.json()["uid"]
    token = client.post("/auth/login", params={"username": username, "password": "secret123"}).json()
    return {"Authorization": f"Bearer {token['access_token']}"}, user_id


def _create_group(client, headers):
    response = client.post(
        "/groups",
        json={
            "partner": {"name": "Lucía", "nativeLanguage": "Spanish", "learningLanguage": "English"},
            "seedMessage": {"sender": "ai", "text": "¡Hola a todos!"},
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


class TestAuthAPI:
    """Integration tests for auth endpoints."""

    def test_register_login_me(self, client):
        headers, user_id = _signup(client, "maria")
        response = client.get("/auth/me", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["uid"] == user_id
        assert data["activeGroupId"] is None
        assert "hashedPassword" not in data

    def test_duplicate_username(self, client):
        _signup(client, "maria")
        response = client.post("/auth/register", json={"username": "maria", "password": "secret123"})
        assert response.status_code == 400

    def test_bad_password(self, client):
        _signup(client, "maria")
        response = client.post("/auth/login", params={"username": "maria", "password": "wrong-pass"})
        assert response.status_code == 401

    def test_unauthorized(self, client):
        response = client.get("/groups/active")
        assert response.status_code in (401, 403)


class TestGroupAPI:
    """Integration tests for group endpoints."""

    def test_create_group(self, client):
        headers, user_id = _signup(client, "maria")
        group = _create_group(client, headers)

        assert group["members"] == [user_id]
        assert group["creatorId"] == user_id
        assert group["topic"] is None
        assert group["shareLink"].endswith(f"/join/{group['id']}")
        assert client.get("/auth/me", headers=headers).json()["activeGroupId"] == group["id"]
        assert client.get("/groups/active", headers=headers).json()["id"] == group["id"]

    def test_cannot_create_second_group(self, client):
        headers, _ = _signup(client, "maria")
        _create_group(client, headers)
        response = client.post(
            "/groups", json={"seedMessage": {"sender": "ai", "text": "hi"}}, headers=headers
        )
        assert response.status_code == 409

    def test_messages_are_attributed(self, client):
        headers, user_id = _signup(client, "maria")
        group = _create_group(client, headers)

        response = client.post(f"/groups/{group['id']}/messages", json={"text": "Hola"}, headers=headers)

        assert response.status_code == 201
        message = response.json()
        assert message["senderId"] == user_id
        assert message["senderName"] == "maria"
        assert message["timestamp"] is not None
        log = client.get(f"/groups/{group['id']}", headers=headers).json()["messages"]
        assert [m["text"] for m in log] == ["¡Hola a todos!", "Hola"]

    def test_topic(self, client):
        headers, _ = _signup(client, "maria")
        group = _create_group(client, headers)
        response = client.put(f"/groups/{group['id']}/topic", json={"topic": "ordering food"}, headers=headers)
        assert response.status_code == 200
        assert client.get(f"/groups/{group['id']}", headers=headers).json()["topic"] == "ordering food"

    def test_non_member_forbidden(self, client):
        owner, _ = _signup(client, "maria")
        stranger, _ = _signup(client, "pedro")
        group = _create_group(client, owner)

        assert client.get(f"/groups/{group['id']}", headers=stranger).status_code == 403
        response = client.post(f"/groups/{group['id']}/messages", json={"text": "hi"}, headers=stranger)
        assert response.status_code == 403

    def test_missing_group(self, client):
        headers, _ = _signup(client, "maria")
        assert client.get("/groups/abc123", headers=headers).status_code == 404

    def test_leave_last_member_deletes(self, client):
        headers, _ = _signup(client, "maria")
        group = _create_group(client, headers)

        response = client.post(f"/groups/{group['id']}/leave", headers=headers)

        assert response.json() == {"status": "success", "deleted": True}
        assert client.get(f"/groups/{group['id']}", headers=headers).status_code == 404
        assert client.get("/auth/me", headers=headers).json()["activeGroupId"] is None

    def test_leave_someone_elses_group_forbidden(self, client):
        owner, _ = _signup(client, "maria")
        stranger, _ = _signup(client, "pedro")
        group = _create_group(client, owner)
        own_group = _create_group(client, stranger)

        response = client.post(f"/groups/{group['id']}/leave", headers=stranger)

        assert response.status_code == 403
        assert client.get("/groups/active", headers=stranger).json()["id"] == own_group["id"]
        assert client.get(f"/groups/{group['id']}", headers=owner).status_code == 200

    def test_leave_missing_group_is_allowed(self, client):
        headers, _ = _signup(client, "maria")
        response = client.post("/groups/abc123/leave", headers=headers)
        assert response.json() == {"status": "success", "deleted": False}

    def test_bot_reply(self, client):
        headers, _ = _signup(client, "maria")
        group = _create_group(client, headers)
        client.post(f"/groups/{group['id']}/messages", json={"text": "¿Qué tal?"}, headers=headers)

        provider = AsyncMock()
        provider.chat_completion.return_value = LLMResponse(content="¡Muy bien!")
        app.dependency_overrides[get_partner_reply_service] = lambda: PartnerReplyService(provider)

        response = client.post(f"/groups/{group['id']}/bot-reply", headers=headers)

        assert response.status_code == 201
        assert response.json()["sender"] == "ai"
        assert response.json()["text"] == "¡Muy bien!"
        log = client.get(f"/groups/{group['id']}", headers=headers).json()["messages"]
        assert log[-1]["text"] == "¡Muy bien!"

    def test_bot_reply_without_llm(self, client):
        headers, _ = _signup(client, "maria")
        group = _create_group(client, headers)
        client.post(f"/groups/{group['id']}/messages", json={"text": "Hello"}, headers=headers)
        app.dependency_overrides[get_partner_reply_service] = lambda: PartnerReplyService(None)

        response = client.post(f"/groups/{group['id']}/bot-reply", headers=headers)

        assert response.json()["text"] == "Sorry, I'm having trouble connecting right now."

    def test_audio_upload_and_download(self, client):
        headers, _ = _signup(client, "maria")
        group = _create_group(client, headers)

        response = client.post(
            f"/groups/{group['id']}/audio",
            files=[("audio", ("clip.webm", b"\x1a\x45\xdf\xa3", "audio/webm"))],
            headers=headers,
        )
        assert response.status_code == 201
        audio_url = response.json()["audioUrl"]
        assert audio_url.startswith(f"audio_messages/{group['id']}/")

        filename = audio_url.rsplit("/", 1)[-1]
        download = client.get(f"/groups/{group['id']}/audio/{filename}", headers=headers)
        assert download.status_code == 200
        assert download.content == b"\x1a\x45\xdf\xa3"

    def test_audio_rejects_other_types(self, client):
        headers, _ = _signup(client, "maria")
        group = _create_group(client, headers)
        response = client.post(
            f"/groups/{group['id']}/audio",
            files=[("audio", ("notes.txt", b"hello", "text/plain"))],
            headers=headers,
        )
        assert response.status_code == 400


class TestJoinAPI:
    """Integration tests for joining groups."""

    def test_join_by_id(self, client):
        owner, owner_id = _signup(client, "maria")
        guest, guest_id = _signup(client, "pedro")
        group = _create_group(client, owner)

        response = client.post(f"/groups/{group['id']}/join", headers=guest)
        assert response.status_code == 200
        assert response.json()["outcome"] == "joined"

        again = client.post(f"/groups/{group['id']}/join", headers=guest)
        assert again.json()["outcome"] == "already_member"

        members = client.get(f"/groups/{group['id']}", headers=guest).json()["members"]
        assert sorted(members) == sorted([owner_id, guest_id])

    def test_join_full_group(self, client):
        owner, _ = _signup(client, "maria")
        group = _create_group(client, owner)
        for name in ["pedro", "sofia"]:
            headers, _ = _signup(client, name)
            client.post(f"/groups/{group['id']}/join", headers=headers)
        late, _ = _signup(client, "diego")

        response = client.post(f"/groups/{group['id']}/join", headers=late)

        assert response.status_code == 409
        assert response.json()["outcome"] == "full"

    def test_join_missing_group(self, client):
        headers, _ = _signup(client, "maria")
        response = client.post("/groups/abc123/join", headers=headers)
        assert response.status_code == 404
        assert response.json()["outcome"] == "not_found"

    def test_link_redirects_on_join(self, client):
        owner, _ = _signup(client, "maria")
        guest, _ = _signup(client, "pedro")
        group = _create_group(client, owner)

        response = client.get(f"/join/{group['id']}", headers=guest, follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/"
        assert client.get("/auth/me", headers=guest).json()["activeGroupId"] == group["id"]

    def test_link_requires_authentication(self, client):
        response = client.get("/join/abc123", follow_redirects=False)
        assert response.status_code == 401
        assert response.json()["outcome"] == "authentication_required"

    def test_link_unavailable(self, client):
        headers, _ = _signup(client, "maria")
        response = client.get("/join/abc123", headers=headers, follow_redirects=False)
        assert response.status_code == 404
        assert response.json()["detail"] == "This group is unavailable."


class TestChangeFeedAPI:
    """Integration tests for the server-sent change feed."""

    def test_stream_emits_state_then_deletion(self, client):
        headers, user_id = _signup(client, "maria")
        group = _create_group(client, headers)
        service = get_group_service()

        async def fake_subscribe(group_id, on_change):
            on_change(await service.get_group(group_id))
            asyncio.get_running_loop().call_later(0.05, on_change, None)
            return lambda: None

        with patch.object(service, "subscribe", fake_subscribe):
            with client.stream("GET", f"/groups/{group['id']}/events", headers=headers) as response:
                assert response.headers["content-type"].startswith("text/event-stream")
                events = [line[len("data: "):] for line in response.iter_lines() if line.startswith("data: ")]

        assert json.loads(events[0])["members"] == [user_id]
        assert events[-1] == "null"

    def test_stream_requires_membership(self, client):
        owner, _ = _signup(client, "maria")
        stranger, _ = _signup(client, "pedro")
        group = _create_group(client, owner)
        response = client.get(f"/groups/{group['id']}/events", headers=stranger)
        assert response.status_code == 403
