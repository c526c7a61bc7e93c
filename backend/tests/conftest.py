import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from teentalk.infra import postgres
from teentalk.infra.docstore import InMemoryDocumentStore
from teentalk.main import app
from teentalk.moderation.domain import container
from teentalk.moderation.domain.policy import ModerationPolicy
from teentalk.notifications.sender import NoopPushSender
from teentalk.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from teentalk.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""API tests authenticate via X-User-Id/X-User-Roles headers, which are only accepted in dev."""
	original_env = settings.environment
	original_threshold = settings.report_threshold
	settings.environment = "test"
	settings.report_threshold = None
	try:
		yield
	finally:
		settings.environment = original_env
		settings.report_threshold = original_threshold


@pytest.fixture
def store() -> InMemoryDocumentStore:
	return InMemoryDocumentStore()


@pytest.fixture(autouse=True)
def moderation_container(store):
	container.configure(store=store, policy=ModerationPolicy(), sender=NoopPushSender())
	yield container


@pytest.fixture
def make_user(store):
	async def _make(user_id: str, **fields) -> None:
		await store.set("users", user_id, {"id": user_id, **fields})

	return _make


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
