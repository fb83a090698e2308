"""PostgreSQL-backed stores for reputation data.

The engine owns the ``user_reputation``, ``user_message_metrics``,
``user_trust_counters`` and ``user_reports`` tables. ``users``, ``blocks``
and ``conversations`` belong to the profile and chat subsystems and are read
here, apart from the denormalised ``users.reputation_tier`` column.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Sequence

import asyncpg

from rapport.reputation.domain.models import (
    MessageMetrics,
    Report,
    ReportReason,
    ReportStatus,
    ReputationData,
    ReputationSignals,
    TrustCounters,
    UserRecord,
)
from rapport.reputation.domain.repository import (
    BlockDirectory,
    ConversationDirectory,
    ReportRepository,
    ReputationStore,
)
from rapport.reputation.domain.tiers import Tier, parse_tier

SCHEMA = """
CREATE TABLE IF NOT EXISTS user_reputation (
    user_id TEXT PRIMARY KEY,
    tier TEXT,
    score INTEGER,
    last_calculated_at TIMESTAMPTZ,
    tier_changed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    daily_quota INTEGER NOT NULL DEFAULT 0,
    minimum_tier_required TEXT,
    signals JSONB,
    conversations_today INTEGER NOT NULL DEFAULT 0,
    last_counter_date DATE
);
CREATE TABLE IF NOT EXISTS user_message_metrics (
    user_id TEXT PRIMARY KEY,
    message_count INTEGER NOT NULL DEFAULT 0,
    total_message_length BIGINT NOT NULL DEFAULT 0,
    sent_today INTEGER NOT NULL DEFAULT 0,
    last_sent_date DATE,
    recent_send_timestamps BIGINT[] NOT NULL DEFAULT '{}',
    conversations_started INTEGER NOT NULL DEFAULT 0,
    conversations_with_replies INTEGER NOT NULL DEFAULT 0,
    received INTEGER NOT NULL DEFAULT 0,
    replied INTEGER NOT NULL DEFAULT 0,
    pending_responses INTEGER NOT NULL DEFAULT 0 CHECK (pending_responses >= 0),
    last_received_at TIMESTAMPTZ
);
CREATE TABLE IF NOT EXISTS user_trust_counters (
    user_id TEXT PRIMARY KEY,
    blocks_received INTEGER NOT NULL DEFAULT 0,
    reports_received INTEGER NOT NULL DEFAULT 0,
    last_reported_at TIMESTAMPTZ,
    burst_score DOUBLE PRECISION,
    reports_submitted INTEGER NOT NULL DEFAULT 0,
    reports_dismissed INTEGER NOT NULL DEFAULT 0,
    last_report_at TIMESTAMPTZ
);
CREATE TABLE IF NOT EXISTS user_reports (
    id TEXT PRIMARY KEY,
    reporter_id TEXT NOT NULL,
    reported_user_id TEXT NOT NULL,
    reporter_tier TEXT NOT NULL,
    reason TEXT NOT NULL,
    details TEXT,
    conversation_id TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    reviewed_by TEXT,
    action_taken TEXT
);
CREATE INDEX IF NOT EXISTS idx_user_reports_reporter_created ON user_reports(reporter_id, created_at);
CREATE INDEX IF NOT EXISTS idx_user_reports_pair_created ON user_reports(reporter_id, reported_user_id, created_at);
"""

_REPUTATION_COLUMNS = (
    "tier, score, last_calculated_at, tier_changed_at, created_at, daily_quota, "
    "minimum_tier_required, signals, conversations_today, last_counter_date"
)
_REPORT_COLUMNS = (
    "id, reporter_id, reported_user_id, reporter_tier, reason, details, conversation_id, "
    "status, created_at, updated_at, reviewed_by, action_taken"
)


async def ensure_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA)


def _load_json(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _row_to_reputation(row: asyncpg.Record) -> ReputationData | None:
    # rows missing computed fields are treated as never calculated
    if row["tier"] is None or row["score"] is None or row["last_calculated_at"] is None:
        return None
    minimum = row["minimum_tier_required"]
    return ReputationData(
        tier=parse_tier(row["tier"]),
        score=int(row["score"]),
        last_calculated_at=row["last_calculated_at"],
        tier_changed_at=row["tier_changed_at"] or row["last_calculated_at"],
        created_at=row["created_at"],
        daily_quota=int(row["daily_quota"]),
        minimum_tier_required=parse_tier(minimum) if minimum else None,
        signals=ReputationSignals.from_mapping(_load_json(row["signals"])),
        conversations_today=int(row["conversations_today"] or 0),
        last_counter_date=row["last_counter_date"],
    )


def _row_to_metrics(row: asyncpg.Record) -> MessageMetrics:
    return MessageMetrics(
        message_count=int(row["message_count"]),
        total_message_length=int(row["total_message_length"]),
        sent_today=int(row["sent_today"]),
        last_sent_date=row["last_sent_date"],
        recent_send_timestamps=[int(value) for value in row["recent_send_timestamps"] or []],
        conversations_started=int(row["conversations_started"]),
        conversations_with_replies=int(row["conversations_with_replies"]),
        received=int(row["received"]),
        replied=int(row["replied"]),
        pending_responses=int(row["pending_responses"]),
        last_received_at=row["last_received_at"],
    )


def _row_to_counters(row: asyncpg.Record) -> TrustCounters:
    burst = row["burst_score"]
    return TrustCounters(
        blocks_received=int(row["blocks_received"]),
        reports_received=int(row["reports_received"]),
        last_reported_at=row["last_reported_at"],
        burst_score=float(burst) if burst is not None else None,
        reports_submitted=int(row["reports_submitted"]),
        reports_dismissed=int(row["reports_dismissed"]),
        last_report_at=row["last_report_at"],
    )


def _row_to_report(row: asyncpg.Record) -> Report:
    return Report(
        report_id=str(row["id"]),
        reporter_id=str(row["reporter_id"]),
        reported_user_id=str(row["reported_user_id"]),
        reporter_tier=parse_tier(row["reporter_tier"]),
        reason=ReportReason(str(row["reason"])),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        details=row["details"],
        conversation_id=row["conversation_id"],
        status=ReportStatus(str(row["status"])),
        reviewed_by=row["reviewed_by"],
        action_taken=row["action_taken"],
    )


class PostgresReputationStore(ReputationStore):
    """Persists reputation documents using asyncpg; increments are single statements."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_user(self, user_id: str) -> UserRecord | None:
        row = await self._pool.fetchrow(
            """
            SELECT id, created_at, onboarding_completed, identity_verified, profile_completion,
                   is_premium, reputation_tier
            FROM users
            WHERE id = $1
            """,
            user_id,
        )
        if row is None:
            return None
        tier = row["reputation_tier"]
        return UserRecord(
            user_id=str(row["id"]),
            created_at=row["created_at"],
            onboarding_completed=bool(row["onboarding_completed"]),
            identity_verified=bool(row["identity_verified"]),
            profile_completion=int(row["profile_completion"] or 0),
            is_premium=bool(row["is_premium"]),
            reputation_tier=parse_tier(tier) if tier else None,
        )

    async def set_user_tier(self, user_id: str, tier: Tier) -> None:
        await self._pool.execute("UPDATE users SET reputation_tier = $2 WHERE id = $1", user_id, tier.value)

    async def list_onboarded_user_ids(self) -> Sequence[str]:
        rows = await self._pool.fetch("SELECT id FROM users WHERE onboarding_completed ORDER BY id")
        return [str(row["id"]) for row in rows]

    async def initialize(self, user_id: str, reputation: ReputationData) -> None:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    f"""
                    INSERT INTO user_reputation (user_id, {_REPUTATION_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, 0, $10)
                    ON CONFLICT (user_id) DO NOTHING
                    """,
                    user_id,
                    reputation.tier.value,
                    reputation.score,
                    reputation.last_calculated_at,
                    reputation.tier_changed_at,
                    reputation.created_at,
                    reputation.daily_quota,
                    reputation.minimum_tier_required.value if reputation.minimum_tier_required else None,
                    reputation.signals.as_dict() if reputation.signals else {},
                    reputation.last_counter_date,
                )
                await conn.execute(
                    "INSERT INTO user_message_metrics (user_id) VALUES ($1) ON CONFLICT (user_id) DO NOTHING",
                    user_id,
                )
                await conn.execute(
                    "INSERT INTO user_trust_counters (user_id) VALUES ($1) ON CONFLICT (user_id) DO NOTHING",
                    user_id,
                )

    async def get_reputation(self, user_id: str) -> ReputationData | None:
        row = await self._pool.fetchrow(
            f"SELECT {_REPUTATION_COLUMNS} FROM user_reputation WHERE user_id = $1",
            user_id,
        )
        if row is None:
            return None
        return _row_to_reputation(row)

    async def save_reputation(self, user_id: str, data: ReputationData) -> None:
        await self._pool.execute(
            """
            INSERT INTO user_reputation AS r (
                user_id, tier, score, last_calculated_at, tier_changed_at, created_at,
                daily_quota, minimum_tier_required, signals
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
            ON CONFLICT (user_id) DO UPDATE SET
                tier = EXCLUDED.tier,
                score = EXCLUDED.score,
                last_calculated_at = EXCLUDED.last_calculated_at,
                tier_changed_at = EXCLUDED.tier_changed_at,
                daily_quota = EXCLUDED.daily_quota,
                minimum_tier_required = EXCLUDED.minimum_tier_required,
                signals = EXCLUDED.signals
            """,
            user_id,
            data.tier.value,
            data.score,
            data.last_calculated_at,
            data.tier_changed_at,
            data.created_at,
            data.daily_quota,
            data.minimum_tier_required.value if data.minimum_tier_required else None,
            data.signals.as_dict() if data.signals else {},
        )

    async def claim_conversation_slot(self, user_id: str, *, today: date, limit: int | None) -> int | None:
        row = await self._pool.fetchrow(
            """
            UPDATE user_reputation
            SET conversations_today = CASE WHEN last_counter_date = $2 THEN conversations_today + 1 ELSE 1 END,
                last_counter_date = $2
            WHERE user_id = $1
              AND (
                $3::int IS NULL
                OR (CASE WHEN last_counter_date = $2 THEN conversations_today ELSE 0 END) < $3::int
              )
            RETURNING conversations_today
            """,
            user_id,
            today,
            limit,
        )
        if row is None:
            return None
        return int(row["conversations_today"])

    async def get_message_metrics(self, user_id: str) -> MessageMetrics:
        row = await self._pool.fetchrow("SELECT * FROM user_message_metrics WHERE user_id = $1", user_id)
        return _row_to_metrics(row) if row is not None else MessageMetrics()

    async def record_message_sent(
        self,
        user_id: str,
        *,
        message_length: int,
        today: date,
        first_in_conversation: bool,
        recent_send_timestamps: Sequence[int],
    ) -> None:
        await self._pool.execute(
            """
            INSERT INTO user_message_metrics AS m (
                user_id, message_count, total_message_length, sent_today, last_sent_date,
                recent_send_timestamps, conversations_started
            )
            VALUES ($1, 1, $2, 1, $3, $4::bigint[], $5)
            ON CONFLICT (user_id) DO UPDATE SET
                message_count = m.message_count + 1,
                total_message_length = m.total_message_length + EXCLUDED.total_message_length,
                sent_today = CASE WHEN m.last_sent_date = EXCLUDED.last_sent_date THEN m.sent_today + 1 ELSE 1 END,
                last_sent_date = EXCLUDED.last_sent_date,
                recent_send_timestamps = EXCLUDED.recent_send_timestamps,
                conversations_started = m.conversations_started + EXCLUDED.conversations_started
            """,
            user_id,
            max(0, message_length),
            today,
            list(recent_send_timestamps),
            1 if first_in_conversation else 0,
        )

    async def record_message_received(self, user_id: str, *, at: datetime) -> None:
        await self._pool.execute(
            """
            INSERT INTO user_message_metrics AS m (user_id, received, pending_responses, last_received_at)
            VALUES ($1, 1, 1, $2)
            ON CONFLICT (user_id) DO UPDATE SET
                received = m.received + 1,
                pending_responses = m.pending_responses + 1,
                last_received_at = EXCLUDED.last_received_at
            """,
            user_id,
            at,
        )

    async def record_reply(self, user_id: str, *, other_user_id: str, first_reply: bool) -> None:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO user_message_metrics AS m (user_id, replied)
                    VALUES ($1, 1)
                    ON CONFLICT (user_id) DO UPDATE SET
                        replied = m.replied + 1,
                        pending_responses = GREATEST(m.pending_responses - 1, 0)
                    """,
                    user_id,
                )
                if first_reply:
                    await conn.execute(
                        """
                        INSERT INTO user_message_metrics AS m (user_id, conversations_with_replies)
                        VALUES ($1, 1)
                        ON CONFLICT (user_id) DO UPDATE SET
                            conversations_with_replies = m.conversations_with_replies + 1
                        """,
                        other_user_id,
                    )

    async def get_trust_counters(self, user_id: str) -> TrustCounters:
        row = await self._pool.fetchrow("SELECT * FROM user_trust_counters WHERE user_id = $1", user_id)
        return _row_to_counters(row) if row is not None else TrustCounters()

    async def _bump_counter(self, user_id: str, column: str, *, stamp_column: str | None = None, at: datetime | None = None) -> None:
        stamp_insert = f", {stamp_column}" if stamp_column else ""
        stamp_value = ", $2" if stamp_column else ""
        stamp_update = f", {stamp_column} = EXCLUDED.{stamp_column}" if stamp_column else ""
        args: list[Any] = [user_id]
        if stamp_column:
            args.append(at)
        await self._pool.execute(
            f"""
            INSERT INTO user_trust_counters AS c (user_id, {column}{stamp_insert})
            VALUES ($1, 1{stamp_value})
            ON CONFLICT (user_id) DO UPDATE SET {column} = c.{column} + 1{stamp_update}
            """,
            *args,
        )

    async def increment_blocks_received(self, user_id: str) -> None:
        await self._bump_counter(user_id, "blocks_received")

    async def increment_reports_received(self, user_id: str, *, at: datetime) -> None:
        await self._bump_counter(user_id, "reports_received", stamp_column="last_reported_at", at=at)

    async def increment_reports_submitted(self, user_id: str, *, at: datetime) -> None:
        await self._bump_counter(user_id, "reports_submitted", stamp_column="last_report_at", at=at)

    async def increment_reports_dismissed(self, user_id: str) -> None:
        await self._bump_counter(user_id, "reports_dismissed")

    async def set_burst_score(self, user_id: str, score: float) -> None:
        await self._pool.execute(
            """
            INSERT INTO user_trust_counters (user_id, burst_score)
            VALUES ($1, $2)
            ON CONFLICT (user_id) DO UPDATE SET burst_score = EXCLUDED.burst_score
            """,
            user_id,
            score,
        )

    async def reset_daily_state(self, user_id: str, *, today: date) -> None:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO user_message_metrics (user_id, sent_today, last_sent_date)
                    VALUES ($1, 0, $2)
                    ON CONFLICT (user_id) DO UPDATE SET sent_today = 0, last_sent_date = EXCLUDED.last_sent_date
                    """,
                    user_id,
                    today,
                )
                await conn.execute(
                    "UPDATE user_reputation SET conversations_today = 0, last_counter_date = $2 WHERE user_id = $1",
                    user_id,
                    today,
                )
                await conn.execute(
                    "UPDATE user_trust_counters SET burst_score = NULL WHERE user_id = $1",
                    user_id,
                )


class PostgresReportRepository(ReportRepository):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def create(self, report: Report) -> Report:
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO user_reports ({_REPORT_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING {_REPORT_COLUMNS}
            """,
            report.report_id,
            report.reporter_id,
            report.reported_user_id,
            report.reporter_tier.value,
            report.reason.value,
            report.details,
            report.conversation_id,
            report.status.value,
            report.created_at,
            report.updated_at,
            report.reviewed_by,
            report.action_taken,
        )
        if row is None:  # pragma: no cover - asyncpg always returns a row for RETURNING
            raise RuntimeError("Failed to insert user_reports row")
        return _row_to_report(row)

    async def get(self, report_id: str) -> Report | None:
        row = await self._pool.fetchrow(f"SELECT {_REPORT_COLUMNS} FROM user_reports WHERE id = $1", report_id)
        return _row_to_report(row) if row is not None else None

    async def exists_for_pair_since(self, reporter_id: str, reported_user_id: str, since: datetime) -> bool:
        row = await self._pool.fetchrow(
            """
            SELECT 1
            FROM user_reports
            WHERE reporter_id = $1
              AND reported_user_id = $2
              AND created_at > $3
            LIMIT 1
            """,
            reporter_id,
            reported_user_id,
            since,
        )
        return row is not None

    async def count_by_reporter_since(self, reporter_id: str, since: datetime) -> int:
        value = await self._pool.fetchval(
            "SELECT COUNT(*) FROM user_reports WHERE reporter_id = $1 AND created_at > $2",
            reporter_id,
            since,
        )
        return int(value or 0)

    async def update_review(
        self,
        report_id: str,
        *,
        status: ReportStatus,
        reviewed_by: str,
        action_taken: str | None,
        at: datetime,
    ) -> Report:
        row = await self._pool.fetchrow(
            f"""
            UPDATE user_reports
            SET status = $2, reviewed_by = $3, action_taken = $4, updated_at = $5
            WHERE id = $1
            RETURNING {_REPORT_COLUMNS}
            """,
            report_id,
            status.value,
            reviewed_by,
            action_taken,
            at,
        )
        if row is None:
            raise KeyError(report_id)
        return _row_to_report(row)


class PostgresBlockDirectory(BlockDirectory):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def is_blocked(self, user_a: str, user_b: str) -> bool:
        row = await self._pool.fetchrow(
            """
            SELECT 1
            FROM blocks
            WHERE (user_id = $1 AND blocked_id = $2)
               OR (user_id = $2 AND blocked_id = $1)
            LIMIT 1
            """,
            user_a,
            user_b,
        )
        return row is not None


class PostgresConversationDirectory(ConversationDirectory):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def exists(self, user_a: str, user_b: str) -> bool:
        row = await self._pool.fetchrow(
            """
            SELECT 1
            FROM conversations
            WHERE (user_a = $1 AND user_b = $2)
               OR (user_a = $2 AND user_b = $1)
            LIMIT 1
            """,
            user_a,
            user_b,
        )
        return row is not None
