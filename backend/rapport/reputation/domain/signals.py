"""Signal aggregation: raw per-user counters into a normalised vector."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from rapport.reputation.domain.models import MessageMetrics, ReputationSignals, TrustCounters, UserRecord, clamp_ratio
from rapport.reputation.domain.repository import ReputationStore

logger = logging.getLogger(__name__)

QUALITY_TARGET_LENGTH = 100


def _ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return clamp_ratio(numerator / denominator)


def account_age_days(created_at: datetime | None, now: datetime) -> int:
    if created_at is None:
        return 0
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0, (now - created_at).days)


def derive_signals(
    user: UserRecord,
    metrics: MessageMetrics,
    counters: TrustCounters,
    *,
    now: datetime,
) -> ReputationSignals:
    """Pure derivation used by :class:`SignalAggregator`."""

    average_length = (
        metrics.total_message_length / metrics.message_count if metrics.message_count > 0 else 0.0
    )
    ghosted = metrics.conversations_started - metrics.conversations_with_replies
    interactions = metrics.received + metrics.conversations_started
    return ReputationSignals(
        profile_completion=user.profile_completion,
        identity_verified=user.identity_verified,
        account_age_days=account_age_days(user.created_at, now),
        response_rate=_ratio(metrics.replied, metrics.received),
        conversation_quality=min(average_length / QUALITY_TARGET_LENGTH, 1.0),
        block_ratio=_ratio(counters.blocks_received, interactions),
        report_ratio=_ratio(counters.reports_received, interactions),
        ghost_rate=_ratio(max(0, ghosted), metrics.conversations_started),
        burst_score=counters.burst_score if counters.burst_score is not None else 0.0,
    )


class SignalAggregator:
    def __init__(self, store: ReputationStore) -> None:
        self._store = store

    async def gather(self, user_id: str, *, now: datetime | None = None) -> ReputationSignals:
        """Read the user's documents and derive signals; never writes."""

        current = now or datetime.now(timezone.utc)
        user = await self._store.get_user(user_id)
        if user is None:
            logger.warning("reputation signals requested for unknown user", extra={"user_id": user_id})
            return ReputationSignals()
        metrics = await self._store.get_message_metrics(user_id)
        counters = await self._store.get_trust_counters(user_id)
        return derive_signals(user, metrics, counters, now=current)
