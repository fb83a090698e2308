"""Storage contracts consumed by the reputation engine.

The document store, block list and conversation index belong to other
subsystems; the engine only depends on the protocols below. In-memory
implementations back tests and local development.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date, datetime
from typing import Protocol, Sequence

from rapport.reputation.domain.models import (
    MessageMetrics,
    Report,
    ReportStatus,
    ReputationData,
    Tier,
    TrustCounters,
    UserRecord,
)


class ReputationStore(Protocol):
    """Per-user documents: primary record, reputation, metrics, counters.

    Every mutation is a field-level merge; increments must be atomic with
    respect to concurrent writers of the same user.
    """

    async def get_user(self, user_id: str) -> UserRecord | None:
        ...

    async def set_user_tier(self, user_id: str, tier: Tier) -> None:
        ...

    async def list_onboarded_user_ids(self) -> Sequence[str]:
        ...

    async def initialize(self, user_id: str, reputation: ReputationData) -> None:
        ...

    async def get_reputation(self, user_id: str) -> ReputationData | None:
        ...

    async def save_reputation(self, user_id: str, data: ReputationData) -> None:
        """Merge the computed fields; throttle counters are left untouched."""
        ...

    async def claim_conversation_slot(self, user_id: str, *, today: date, limit: int | None) -> int | None:
        """Atomically bump today's higher-tier conversation counter.

        Returns the new count, or ``None`` when ``limit`` is already reached.
        ``limit=None`` increments unconditionally.
        """
        ...

    async def get_message_metrics(self, user_id: str) -> MessageMetrics:
        ...

    async def record_message_sent(
        self,
        user_id: str,
        *,
        message_length: int,
        today: date,
        first_in_conversation: bool,
        recent_send_timestamps: Sequence[int],
    ) -> None:
        ...

    async def record_message_received(self, user_id: str, *, at: datetime) -> None:
        ...

    async def record_reply(self, user_id: str, *, other_user_id: str, first_reply: bool) -> None:
        ...

    async def get_trust_counters(self, user_id: str) -> TrustCounters:
        ...

    async def increment_blocks_received(self, user_id: str) -> None:
        ...

    async def increment_reports_received(self, user_id: str, *, at: datetime) -> None:
        ...

    async def increment_reports_submitted(self, user_id: str, *, at: datetime) -> None:
        ...

    async def increment_reports_dismissed(self, user_id: str) -> None:
        ...

    async def set_burst_score(self, user_id: str, score: float) -> None:
        ...

    async def reset_daily_state(self, user_id: str, *, today: date) -> None:
        """Zero the daily counters for ``today`` and drop the burst override."""
        ...


class ReportRepository(Protocol):
    async def create(self, report: Report) -> Report:
        ...

    async def get(self, report_id: str) -> Report | None:
        ...

    async def exists_for_pair_since(self, reporter_id: str, reported_user_id: str, since: datetime) -> bool:
        ...

    async def count_by_reporter_since(self, reporter_id: str, since: datetime) -> int:
        ...

    async def update_review(
        self,
        report_id: str,
        *,
        status: ReportStatus,
        reviewed_by: str,
        action_taken: str | None,
        at: datetime,
    ) -> Report:
        ...


class BlockDirectory(Protocol):
    async def is_blocked(self, user_a: str, user_b: str) -> bool:
        """True when either user has blocked the other."""
        ...


class ConversationDirectory(Protocol):
    async def exists(self, user_a: str, user_b: str) -> bool:
        ...


class InMemoryReputationStore(ReputationStore):
    """Reference store used in tests and developer environments."""

    def __init__(self) -> None:
        self.users: dict[str, UserRecord] = {}
        self.reputations: dict[str, ReputationData] = {}
        self.metrics: dict[str, MessageMetrics] = {}
        self.counters: dict[str, TrustCounters] = {}
        self._lock = asyncio.Lock()

    def add_user(self, record: UserRecord) -> UserRecord:
        self.users[record.user_id] = record
        return record

    async def get_user(self, user_id: str) -> UserRecord | None:
        return self.users.get(user_id)

    async def set_user_tier(self, user_id: str, tier: Tier) -> None:
        user = self.users.get(user_id)
        if user is not None:
            user.reputation_tier = tier

    async def list_onboarded_user_ids(self) -> Sequence[str]:
        return [user_id for user_id, user in self.users.items() if user.onboarding_completed]

    async def initialize(self, user_id: str, reputation: ReputationData) -> None:
        async with self._lock:
            self.reputations[user_id] = replace(reputation)
            self.metrics[user_id] = MessageMetrics()
            self.counters[user_id] = TrustCounters()

    async def get_reputation(self, user_id: str) -> ReputationData | None:
        stored = self.reputations.get(user_id)
        return replace(stored) if stored is not None else None

    async def save_reputation(self, user_id: str, data: ReputationData) -> None:
        async with self._lock:
            existing = self.reputations.get(user_id)
            merged = replace(data)
            if existing is not None:
                merged.conversations_today = existing.conversations_today
                merged.last_counter_date = existing.last_counter_date
            else:
                merged.conversations_today = 0
                merged.last_counter_date = None
            self.reputations[user_id] = merged

    async def claim_conversation_slot(self, user_id: str, *, today: date, limit: int | None) -> int | None:
        async with self._lock:
            reputation = self.reputations.get(user_id)
            if reputation is None:
                return None
            current = reputation.conversations_on(today)
            if limit is not None and current >= limit:
                return None
            reputation.conversations_today = current + 1
            reputation.last_counter_date = today
            return reputation.conversations_today

    async def get_message_metrics(self, user_id: str) -> MessageMetrics:
        stored = self.metrics.get(user_id)
        if stored is None:
            return MessageMetrics()
        return replace(stored, recent_send_timestamps=list(stored.recent_send_timestamps))

    async def record_message_sent(
        self,
        user_id: str,
        *,
        message_length: int,
        today: date,
        first_in_conversation: bool,
        recent_send_timestamps: Sequence[int],
    ) -> None:
        async with self._lock:
            metrics = self.metrics.setdefault(user_id, MessageMetrics())
            metrics.message_count += 1
            metrics.total_message_length += max(0, message_length)
            metrics.sent_today = metrics.sent_on(today) + 1
            metrics.last_sent_date = today
            metrics.recent_send_timestamps = list(recent_send_timestamps)
            if first_in_conversation:
                metrics.conversations_started += 1

    async def record_message_received(self, user_id: str, *, at: datetime) -> None:
        async with self._lock:
            metrics = self.metrics.setdefault(user_id, MessageMetrics())
            metrics.received += 1
            metrics.pending_responses += 1
            metrics.last_received_at = at

    async def record_reply(self, user_id: str, *, other_user_id: str, first_reply: bool) -> None:
        async with self._lock:
            metrics = self.metrics.setdefault(user_id, MessageMetrics())
            metrics.replied += 1
            metrics.pending_responses = max(0, metrics.pending_responses - 1)
            if first_reply:
                other = self.metrics.setdefault(other_user_id, MessageMetrics())
                other.conversations_with_replies += 1

    async def get_trust_counters(self, user_id: str) -> TrustCounters:
        stored = self.counters.get(user_id)
        return replace(stored) if stored is not None else TrustCounters()

    async def increment_blocks_received(self, user_id: str) -> None:
        async with self._lock:
            self.counters.setdefault(user_id, TrustCounters()).blocks_received += 1

    async def increment_reports_received(self, user_id: str, *, at: datetime) -> None:
        async with self._lock:
            counters = self.counters.setdefault(user_id, TrustCounters())
            counters.reports_received += 1
            counters.last_reported_at = at

    async def increment_reports_submitted(self, user_id: str, *, at: datetime) -> None:
        async with self._lock:
            counters = self.counters.setdefault(user_id, TrustCounters())
            counters.reports_submitted += 1
            counters.last_report_at = at

    async def increment_reports_dismissed(self, user_id: str) -> None:
        async with self._lock:
            self.counters.setdefault(user_id, TrustCounters()).reports_dismissed += 1

    async def set_burst_score(self, user_id: str, score: float) -> None:
        async with self._lock:
            self.counters.setdefault(user_id, TrustCounters()).burst_score = score

    async def reset_daily_state(self, user_id: str, *, today: date) -> None:
        async with self._lock:
            metrics = self.metrics.setdefault(user_id, MessageMetrics())
            metrics.sent_today = 0
            metrics.last_sent_date = today
            reputation = self.reputations.get(user_id)
            if reputation is not None:
                reputation.conversations_today = 0
                reputation.last_counter_date = today
            counters = self.counters.get(user_id)
            if counters is not None:
                counters.burst_score = None


class InMemoryReportRepository(ReportRepository):
    def __init__(self) -> None:
        self.reports: dict[str, Report] = {}

    async def create(self, report: Report) -> Report:
        self.reports[report.report_id] = report
        return report

    async def get(self, report_id: str) -> Report | None:
        return self.reports.get(report_id)

    async def exists_for_pair_since(self, reporter_id: str, reported_user_id: str, since: datetime) -> bool:
        return any(
            report.reporter_id == reporter_id
            and report.reported_user_id == reported_user_id
            and report.created_at > since
            for report in self.reports.values()
        )

    async def count_by_reporter_since(self, reporter_id: str, since: datetime) -> int:
        return sum(
            1 for report in self.reports.values() if report.reporter_id == reporter_id and report.created_at > since
        )

    async def update_review(
        self,
        report_id: str,
        *,
        status: ReportStatus,
        reviewed_by: str,
        action_taken: str | None,
        at: datetime,
    ) -> Report:
        existing = self.reports[report_id]
        updated = replace(existing, status=status, reviewed_by=reviewed_by, action_taken=action_taken, updated_at=at)
        self.reports[report_id] = updated
        return updated


class InMemoryBlockDirectory(BlockDirectory):
    def __init__(self) -> None:
        self.blocks: set[tuple[str, str]] = set()

    def block(self, blocker_id: str, blocked_id: str) -> None:
        self.blocks.add((blocker_id, blocked_id))

    def unblock(self, blocker_id: str, blocked_id: str) -> None:
        self.blocks.discard((blocker_id, blocked_id))

    async def is_blocked(self, user_a: str, user_b: str) -> bool:
        return (user_a, user_b) in self.blocks or (user_b, user_a) in self.blocks


class InMemoryConversationDirectory(ConversationDirectory):
    def __init__(self) -> None:
        self.pairs: set[frozenset[str]] = set()

    def add(self, user_a: str, user_b: str) -> None:
        self.pairs.add(frozenset((user_a, user_b)))

    async def exists(self, user_a: str, user_b: str) -> bool:
        return frozenset((user_a, user_b)) in self.pairs
