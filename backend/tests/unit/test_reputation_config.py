from pathlib import Path
from unittest.mock import MagicMock

import asyncpg
import pytest
from fakeredis.aioredis import FakeRedis

from rapport.infra.redis import RedisProxy, redis_client
from rapport.reputation.domain import container
from rapport.reputation.domain.config import (
    BurstConfig,
    load_reputation_config,
    parse_reputation_config,
    resolve_reputation_config,
)
from rapport.reputation.domain.exceptions import ReputationConfigError
from rapport.reputation.domain.repository import (
    InMemoryBlockDirectory,
    InMemoryConversationDirectory,
    InMemoryReportRepository,
    InMemoryReputationStore,
)
from rapport.reputation.infra.postgres_repo import PostgresReportRepository, PostgresReputationStore
from rapport.settings import settings

SHIPPED_CONFIG = Path(__file__).resolve().parents[2] / "config" / "reputation.yml"


def test_shipped_yaml_matches_defaults() -> None:
    config = load_reputation_config(SHIPPED_CONFIG)
    assert config.burst == BurstConfig()
    assert config.burst.retained == 15
    assert config.reports.abuse_dismissal_threshold == 0.5
    assert config.batch.chunk_size == 50
    assert config.batch.timeout_seconds == 540.0


def test_partial_yaml_keeps_other_defaults(tmp_path) -> None:
    path = tmp_path / "reputation.yml"
    path.write_text("burst:\n  max_messages: 4\nbatch:\n  chunk_size: 7\n", encoding="utf-8")

    config = load_reputation_config(path)

    assert config.burst.max_messages == 4
    assert config.burst.window_ms == 60_000
    assert config.batch.chunk_size == 7
    assert config.reports.lock_ttl_seconds == 10


def test_invalid_values_fall_back_to_defaults() -> None:
    config = parse_reputation_config(
        {"burst": {"window_ms": 0, "max_messages": "many"}, "reports": "nope", "batch": {"timeout_seconds": -3}}
    )
    assert config.burst.window_ms == 60_000
    assert config.burst.max_messages == 10
    assert config.reports.duplicate_window_hours == 24
    assert config.batch.timeout_seconds == settings.reputation_batch_timeout_seconds


def test_non_mapping_yaml_rejected(tmp_path) -> None:
    path = tmp_path / "reputation.yml"
    path.write_text("- one\n- two\n", encoding="utf-8")
    with pytest.raises(ReputationConfigError):
        load_reputation_config(path)


def test_resolve_without_path_uses_defaults(monkeypatch) -> None:
    monkeypatch.setattr(settings, "reputation_config_path", None)
    config = resolve_reputation_config()
    assert config.reports.weekly_window_days == 7


def test_configure_postgres_wires_postgres_repositories(tmp_path) -> None:
    path = tmp_path / "reputation.yml"
    path.write_text("reports:\n  lock_ttl_seconds: 3\n", encoding="utf-8")
    pool = MagicMock(spec=asyncpg.Pool)
    try:
        container.configure_postgres(pool, RedisProxy(FakeRedis(decode_responses=True)), reputation_config_path=str(path))

        assert isinstance(container.get_store(), PostgresReputationStore)
        assert isinstance(container.get_report_repository(), PostgresReportRepository)
        assert container.get_config().reports.lock_ttl_seconds == 3
    finally:
        container.configure(
            store=InMemoryReputationStore(),
            report_repository=InMemoryReportRepository(),
            blocks=InMemoryBlockDirectory(),
            conversations=InMemoryConversationDirectory(),
            redis_proxy=redis_client,
            config=parse_reputation_config({}),
        )
