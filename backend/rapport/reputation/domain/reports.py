"""Report filing with anti-abuse rate limiting, plus the moderator review hook."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from redis.asyncio import Redis
from redis.exceptions import WatchError

from rapport.infra.redis import RedisProxy
from rapport.infra.redis import key as redis_key
from rapport.obs import metrics as obs_metrics
from rapport.reputation.domain.config import ReportConfig
from rapport.reputation.domain.exceptions import InvalidRequestError, ReportNotFound, require_id
from rapport.reputation.domain.models import Report, ReportOutcome, ReportReason, ReportStatus
from rapport.reputation.domain.recalculator import MODE_REALTIME, ReputationRecalculator
from rapport.reputation.domain.repository import ReportRepository, ReputationStore
from rapport.reputation.domain.tiers import Tier, parse_tier, policy_for

logger = logging.getLogger(__name__)

DENIED_SELF = "self"
DENIED_RESTRICTED = "restricted"
DENIED_DUPLICATE = "duplicate"
DENIED_DAILY_LIMIT = "daily_limit"
DENIED_WEEKLY_LIMIT = "weekly_limit"
DENIED_IN_PROGRESS = "in_progress"


def _parse_reason(value: object) -> ReportReason:
    try:
        return ReportReason(value)
    except ValueError as exc:
        raise InvalidRequestError("invalid_reason") from exc


def _parse_review_status(value: object) -> ReportStatus:
    try:
        status = ReportStatus(value)
    except ValueError as exc:
        raise InvalidRequestError("invalid_status") from exc
    if status is ReportStatus.PENDING:
        raise InvalidRequestError("invalid_status")
    return status


class ReportService:
    """Files reports against users and throttles abusive reporters.

    Checks and creation for one reporter are serialised with a Redis lock so
    two concurrent submissions cannot both slip under a cap.
    """

    def __init__(
        self,
        *,
        store: ReputationStore,
        reports: ReportRepository,
        recalculator: ReputationRecalculator,
        redis: Redis | RedisProxy,
        config: ReportConfig | None = None,
    ) -> None:
        self._store = store
        self._reports = reports
        self._recalculator = recalculator
        self._redis = redis
        self._config = config or ReportConfig()

    @staticmethod
    def _lock_key(reporter_id: str) -> str:
        return redis_key("report", "lock", reporter_id)

    async def _acquire_lock(self, reporter_id: str) -> str | None:
        token = uuid.uuid4().hex
        ok = await self._redis.set(self._lock_key(reporter_id), token, nx=True, ex=self._config.lock_ttl_seconds)
        return token if ok else None

    async def _release_lock(self, reporter_id: str, token: str) -> None:
        """Delete the lock only while it still holds ``token``.

        A lock that expired mid-check may already belong to another submission.
        """

        key = self._lock_key(reporter_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                if await pipe.get(key) != token:
                    return
                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
            except WatchError:
                logger.info("report lock changed before release", extra={"reporter_id": reporter_id})

    async def _reporter_tier(self, reporter_id: str) -> Tier:
        reputation = await self._store.get_reputation(reporter_id)
        if reputation is not None:
            return reputation.tier
        user = await self._store.get_user(reporter_id)
        return parse_tier(user.reputation_tier if user is not None else None)

    async def file_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        reason: ReportReason | str,
        details: str | None = None,
        conversation_id: str | None = None,
        *,
        now: datetime | None = None,
    ) -> ReportOutcome:
        reporter_id = require_id(reporter_id, "reporter_id")
        reported_user_id = require_id(reported_user_id, "reported_user_id")
        report_reason = _parse_reason(reason)
        current = now or datetime.now(timezone.utc)

        if reporter_id == reported_user_id:
            return self._denied(DENIED_SELF)
        lock_token = await self._acquire_lock(reporter_id)
        if lock_token is None:
            return self._denied(DENIED_IN_PROGRESS)
        try:
            outcome = await self._check_and_create(
                reporter_id,
                reported_user_id,
                report_reason,
                details=details,
                conversation_id=conversation_id,
                now=current,
            )
        finally:
            await self._release_lock(reporter_id, lock_token)
        if not outcome.success:
            return outcome

        await self._recalculator.recalculate(reported_user_id, mode=MODE_REALTIME, now=current)
        obs_metrics.report_result("filed")
        logger.info(
            "report filed",
            extra={
                "report_id": outcome.report_id,
                "reporter_id": reporter_id,
                "reported_user_id": reported_user_id,
                "reason": report_reason.value,
            },
        )
        return outcome

    async def _check_and_create(
        self,
        reporter_id: str,
        reported_user_id: str,
        reason: ReportReason,
        *,
        details: str | None,
        conversation_id: str | None,
        now: datetime,
    ) -> ReportOutcome:
        cfg = self._config
        counters = await self._store.get_trust_counters(reporter_id)
        if counters.reports_submitted >= cfg.abuse_min_reports and counters.dismissal_rate > cfg.abuse_dismissal_threshold:
            return self._denied(DENIED_RESTRICTED)

        duplicate_since = now - timedelta(hours=cfg.duplicate_window_hours)
        if await self._reports.exists_for_pair_since(reporter_id, reported_user_id, duplicate_since):
            return self._denied(DENIED_DUPLICATE)

        tier = await self._reporter_tier(reporter_id)
        limits = policy_for(tier).report_limits
        daily = await self._reports.count_by_reporter_since(reporter_id, now - timedelta(hours=cfg.daily_window_hours))
        if daily >= limits.daily:
            return self._denied(DENIED_DAILY_LIMIT, limit=limits.daily)
        weekly = await self._reports.count_by_reporter_since(reporter_id, now - timedelta(days=cfg.weekly_window_days))
        if weekly >= limits.weekly:
            return self._denied(DENIED_WEEKLY_LIMIT, limit=limits.weekly)

        report = Report(
            report_id=str(uuid.uuid4()),
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            reporter_tier=tier,
            reason=reason,
            created_at=now,
            updated_at=now,
            details=details,
            conversation_id=conversation_id,
        )
        await self._reports.create(report)
        await self._store.increment_reports_received(reported_user_id, at=now)
        await self._store.increment_reports_submitted(reporter_id, at=now)
        return ReportOutcome(success=True, report_id=report.report_id)

    @staticmethod
    def _denied(reason: str, *, limit: int | None = None) -> ReportOutcome:
        obs_metrics.report_result(reason)
        return ReportOutcome.denied(reason, limit=limit)

    async def review(
        self,
        report_id: str,
        status: ReportStatus | str,
        reviewed_by: str,
        action_taken: str | None = None,
        *,
        now: datetime | None = None,
    ) -> Report:
        """Apply a moderator decision; a fresh dismissal counts against the reporter."""

        report_id = require_id(report_id, "report_id")
        reviewed_by = require_id(reviewed_by, "reviewed_by")
        new_status = _parse_review_status(status)
        current = now or datetime.now(timezone.utc)

        existing = await self._reports.get(report_id)
        if existing is None:
            raise ReportNotFound()
        updated = await self._reports.update_review(
            report_id,
            status=new_status,
            reviewed_by=reviewed_by,
            action_taken=action_taken,
            at=current,
        )
        if new_status is ReportStatus.DISMISSED and existing.status is not ReportStatus.DISMISSED:
            await self._store.increment_reports_dismissed(existing.reporter_id)
        logger.info(
            "report reviewed",
            extra={"report_id": report_id, "status": new_status.value, "reviewed_by": reviewed_by},
        )
        return updated
