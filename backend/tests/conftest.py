"""
Shared test fixtures and configuration.
"""

import os
import tempfile

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORAGE_TYPE", "memory")
os.environ.setdefault("LOCAL_STORAGE_PATH", tempfile.mkdtemp(prefix="linguapals_test_"))
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LLM_API_KEY", "")

from linguapals.models import GroupMessage, Partner  # noqa: E402
from linguapals.services import GroupService  # noqa: E402
from linguapals.storage import LocalBlobStorage, MemoryDocumentStore, UserStorage  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def users(store):
    return UserStorage(store)


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStorage(str(tmp_path / "blobs"))


@pytest.fixture
def groups(store, users, blobs):
    return GroupService(store, users, blobs=blobs, public_base_url="https://pals.example")


@pytest.fixture
def add_users(users):
    """Register profiles for the given user ids."""
    async def _add(*user_ids):
        for user_id in user_ids:
            await users.create_user(user_id, f"user_{user_id}", "not-a-real-hash")
    return _add


@pytest.fixture
def partner():
    return Partner(
        name="Lucía",
        native_language="Spanish",
        learning_language="English",
        interests=["music", "football"],
    )


@pytest.fixture
def seed_message():
    return GroupMessage(sender="ai", text="¡Hola a todos!")
