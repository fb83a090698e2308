import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from rapport.infra import postgres
from rapport.infra.redis import redis_client, set_redis_client
from rapport.main import app
from rapport.reputation.domain import container
from rapport.reputation.domain.config import default_reputation_config
from rapport.reputation.domain.gate import MessagingGate
from rapport.reputation.domain.messaging import MessageActivityRecorder
from rapport.reputation.domain.recalculator import ReputationRecalculator
from rapport.reputation.domain.reports import ReportService
from rapport.reputation.domain.repository import (
	InMemoryBlockDirectory,
	InMemoryConversationDirectory,
	InMemoryReportRepository,
	InMemoryReputationStore,
)
from rapport.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
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
	"""API tests authenticate via X-User-Id headers, which are only accepted in dev mode."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@dataclass
class ReputationEnv:
	store: InMemoryReputationStore
	reports: InMemoryReportRepository
	blocks: InMemoryBlockDirectory
	conversations: InMemoryConversationDirectory
	recalculator: ReputationRecalculator
	gate: MessagingGate
	recorder: MessageActivityRecorder
	report_service: ReportService


@pytest.fixture
def reputation_env(fake_redis) -> ReputationEnv:
	store = InMemoryReputationStore()
	reports = InMemoryReportRepository()
	blocks = InMemoryBlockDirectory()
	conversations = InMemoryConversationDirectory()
	container.configure(
		store=store,
		report_repository=reports,
		blocks=blocks,
		conversations=conversations,
		redis_proxy=redis_client,
		config=default_reputation_config(),
	)
	return ReputationEnv(
		store=store,
		reports=reports,
		blocks=blocks,
		conversations=conversations,
		recalculator=container.get_recalculator(),
		gate=container.get_gate(),
		recorder=container.get_recorder(),
		report_service=container.get_report_service(),
	)


@pytest.fixture
def fixed_now() -> datetime:
	return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def api_client(reputation_env):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
