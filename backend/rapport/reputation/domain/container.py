"""Lightweight service container shared by reputation modules."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import asyncpg
from redis.asyncio import Redis

from rapport.infra.redis import RedisProxy, redis_client
from rapport.reputation.domain.burst import BurstDetector
from rapport.reputation.domain.config import ReputationConfig, default_reputation_config, resolve_reputation_config
from rapport.reputation.domain.gate import MessagingGate
from rapport.reputation.domain.messaging import MessageActivityRecorder
from rapport.reputation.domain.recalculator import ReputationRecalculator
from rapport.reputation.domain.reports import ReportService
from rapport.reputation.domain.repository import (
    BlockDirectory,
    ConversationDirectory,
    InMemoryBlockDirectory,
    InMemoryConversationDirectory,
    InMemoryReportRepository,
    InMemoryReputationStore,
    ReportRepository,
    ReputationStore,
)
from rapport.reputation.infra.postgres_repo import (
    PostgresBlockDirectory,
    PostgresConversationDirectory,
    PostgresReportRepository,
    PostgresReputationStore,
)
from rapport.reputation.jobs import daily_recalc

_store: ReputationStore = InMemoryReputationStore()
_report_repository: ReportRepository = InMemoryReportRepository()
_blocks: BlockDirectory = InMemoryBlockDirectory()
_conversations: ConversationDirectory = InMemoryConversationDirectory()
_redis_proxy: RedisProxy = redis_client
_config: ReputationConfig = default_reputation_config()
_recalculator = ReputationRecalculator(_store)
_burst = BurstDetector(_redis_proxy, _config.burst)
_gate = MessagingGate(store=_store, blocks=_blocks, conversations=_conversations, recalculator=_recalculator)
_recorder = MessageActivityRecorder(store=_store, burst=_burst, recalculator=_recalculator)
_report_service = ReportService(
    store=_store,
    reports=_report_repository,
    recalculator=_recalculator,
    redis=_redis_proxy,
    config=_config.reports,
)


def configure(
    *,
    store: Optional[ReputationStore] = None,
    report_repository: Optional[ReportRepository] = None,
    blocks: Optional[BlockDirectory] = None,
    conversations: Optional[ConversationDirectory] = None,
    redis_proxy: Optional[RedisProxy] = None,
    config: Optional[ReputationConfig] = None,
) -> None:
    global _store, _report_repository, _blocks, _conversations, _redis_proxy, _config
    global _recalculator, _burst, _gate, _recorder, _report_service
    if store is not None:
        _store = store
    if report_repository is not None:
        _report_repository = report_repository
    if blocks is not None:
        _blocks = blocks
    if conversations is not None:
        _conversations = conversations
    if config is not None:
        _config = config
    _redis_proxy = redis_proxy or _redis_proxy
    _recalculator = ReputationRecalculator(_store)
    _burst = BurstDetector(_redis_proxy, _config.burst)
    _gate = MessagingGate(store=_store, blocks=_blocks, conversations=_conversations, recalculator=_recalculator)
    _recorder = MessageActivityRecorder(store=_store, burst=_burst, recalculator=_recalculator)
    _report_service = ReportService(
        store=_store,
        reports=_report_repository,
        recalculator=_recalculator,
        redis=_redis_proxy,
        config=_config.reports,
    )


def configure_postgres(
    pool: asyncpg.Pool,
    redis_conn: Redis | RedisProxy,
    *,
    reputation_config_path: Optional[str] = None,
) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    configure(
        store=PostgresReputationStore(pool),
        report_repository=PostgresReportRepository(pool),
        blocks=PostgresBlockDirectory(pool),
        conversations=PostgresConversationDirectory(pool),
        redis_proxy=proxy,
        config=resolve_reputation_config(reputation_config_path),
    )


def get_store() -> ReputationStore:
    return _store


def get_report_repository() -> ReportRepository:
    return _report_repository


def get_config() -> ReputationConfig:
    return _config


def get_recalculator() -> ReputationRecalculator:
    return _recalculator


def get_gate() -> MessagingGate:
    return _gate


def get_recorder() -> MessageActivityRecorder:
    return _recorder


def get_report_service() -> ReportService:
    return _report_service


async def run_daily_batch(*, now: datetime | None = None) -> daily_recalc.BatchResult:
    return await daily_recalc.run(_store, _recalculator, config=_config.batch, now=now)
