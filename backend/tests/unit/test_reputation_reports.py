from datetime import timedelta

import pytest

from rapport.reputation.domain.exceptions import InvalidRequestError, ReportNotFound
from rapport.reputation.domain.models import (
    MessageMetrics,
    Report,
    ReportOutcome,
    ReportReason,
    ReportStatus,
    TrustCounters,
    UserRecord,
)
from rapport.reputation.domain.tiers import Tier


def _past_report(report_id: str, reporter_id: str, target: str, created_at) -> Report:
    return Report(
        report_id=report_id,
        reporter_id=reporter_id,
        reported_user_id=target,
        reporter_tier=Tier.NEW,
        reason=ReportReason.SPAM,
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.mark.asyncio
async def test_file_report_creates_record_and_recalculates_target(reputation_env, fixed_now) -> None:
    env = reputation_env
    env.store.add_user(UserRecord(user_id="t1"))
    env.store.metrics["t1"] = MessageMetrics(received=4)
    outcome = await env.report_service.file_report("r1", "t1", "harassment", details="rude", now=fixed_now)

    assert outcome.success
    report = env.reports.reports[outcome.report_id]
    assert report.status is ReportStatus.PENDING
    assert report.reporter_tier is Tier.NEW
    assert report.details == "rude"
    target_counters = await env.store.get_trust_counters("t1")
    assert target_counters.reports_received == 1
    assert target_counters.last_reported_at == fixed_now
    reporter_counters = await env.store.get_trust_counters("r1")
    assert reporter_counters.reports_submitted == 1
    target = await env.store.get_reputation("t1")
    assert target is not None
    assert target.signals is not None and target.signals.report_ratio == pytest.approx(0.25)


@pytest.mark.asyncio
async def test_duplicate_report_within_a_day_denied(reputation_env, fixed_now) -> None:
    env = reputation_env
    first = await env.report_service.file_report("r1", "t1", ReportReason.SPAM, now=fixed_now)
    second = await env.report_service.file_report(
        "r1", "t1", ReportReason.HARASSMENT, now=fixed_now + timedelta(hours=2)
    )

    assert first.success
    assert not second.success
    assert second.reason == "duplicate"
    assert len(env.reports.reports) == 1
    assert (await env.store.get_trust_counters("t1")).reports_received == 1


@pytest.mark.asyncio
async def test_self_report_denied(reputation_env, fixed_now) -> None:
    outcome = await reputation_env.report_service.file_report("r1", "r1", "spam", now=fixed_now)
    assert outcome.reason == "self"
    assert reputation_env.reports.reports == {}


@pytest.mark.asyncio
async def test_reporter_with_mostly_dismissed_reports_is_restricted(reputation_env, fixed_now) -> None:
    reputation_env.store.counters["r1"] = TrustCounters(reports_submitted=5, reports_dismissed=3)
    outcome = await reputation_env.report_service.file_report("r1", "t1", "spam", now=fixed_now)
    assert outcome.reason == "restricted"


@pytest.mark.asyncio
async def test_exactly_half_dismissed_is_not_restricted(reputation_env, fixed_now) -> None:
    reputation_env.store.counters["r1"] = TrustCounters(reports_submitted=6, reports_dismissed=3)
    outcome = await reputation_env.report_service.file_report("r1", "t1", "spam", now=fixed_now)
    assert outcome.success


@pytest.mark.asyncio
async def test_daily_cap_by_reporter_tier(reputation_env, fixed_now) -> None:
    service = reputation_env.report_service
    assert (await service.file_report("r1", "t1", "spam", now=fixed_now)).success
    assert (await service.file_report("r1", "t2", "spam", now=fixed_now)).success

    denied = await service.file_report("r1", "t3", "spam", now=fixed_now)

    assert denied.reason == "daily_limit"
    assert denied.limit == 2


@pytest.mark.asyncio
async def test_weekly_cap_by_reporter_tier(reputation_env, fixed_now) -> None:
    env = reputation_env
    for idx in range(5):
        await env.reports.create(_past_report(f"old{idx}", "r1", f"x{idx}", fixed_now - timedelta(days=2)))

    denied = await env.report_service.file_report("r1", "t1", "spam", now=fixed_now)

    assert denied.reason == "weekly_limit"
    assert denied.limit == 5


@pytest.mark.asyncio
async def test_higher_tier_reporter_gets_higher_caps(reputation_env, fixed_now) -> None:
    env = reputation_env
    env.store.add_user(UserRecord(user_id="r1", profile_completion=100, identity_verified=True))
    await env.recalculator.recalculate("r1", now=fixed_now)
    for idx in range(2):
        await env.reports.create(_past_report(f"old{idx}", "r1", f"x{idx}", fixed_now - timedelta(hours=1)))

    outcome = await env.report_service.file_report("r1", "t1", "spam", now=fixed_now)

    assert outcome.success
    assert env.reports.reports[outcome.report_id].reporter_tier is Tier.TRUSTED


@pytest.mark.asyncio
async def test_concurrent_submission_is_rejected_while_locked(reputation_env, fake_redis, fixed_now) -> None:
    await fake_redis.set("rep:report:lock:r1", "1")
    outcome = await reputation_env.report_service.file_report("r1", "t1", "spam", now=fixed_now)
    assert outcome.reason == "in_progress"
    assert reputation_env.reports.reports == {}


@pytest.mark.asyncio
async def test_lock_released_after_filing(reputation_env, fake_redis, fixed_now) -> None:
    await reputation_env.report_service.file_report("r1", "t1", "spam", now=fixed_now)
    assert await fake_redis.get("rep:report:lock:r1") is None


@pytest.mark.asyncio
async def test_release_keeps_lock_taken_over_by_another_submission(
    reputation_env, fake_redis, fixed_now, monkeypatch
) -> None:
    service = reputation_env.report_service

    async def _slow_check(*args, **kwargs) -> ReportOutcome:
        # our lock expired and a second submission acquired it
        await fake_redis.set("rep:report:lock:r1", "other")
        return ReportOutcome.denied("daily_limit", limit=2)

    monkeypatch.setattr(service, "_check_and_create", _slow_check)

    outcome = await service.file_report("r1", "t1", "spam", now=fixed_now)

    assert outcome.reason == "daily_limit"
    assert await fake_redis.get("rep:report:lock:r1") == "other"


@pytest.mark.asyncio
async def test_invalid_reason_rejected(reputation_env) -> None:
    with pytest.raises(InvalidRequestError) as exc:
        await reputation_env.report_service.file_report("r1", "t1", "rudeness")
    assert exc.value.reason == "invalid_reason"


@pytest.mark.asyncio
async def test_dismissal_counts_against_reporter_once(reputation_env, fixed_now) -> None:
    env = reputation_env
    outcome = await env.report_service.file_report("r1", "t1", "spam", now=fixed_now)

    reviewed = await env.report_service.review(outcome.report_id, "dismissed", "mod1", now=fixed_now)
    await env.report_service.review(outcome.report_id, ReportStatus.DISMISSED, "mod2", now=fixed_now)

    assert reviewed.status is ReportStatus.DISMISSED
    assert reviewed.reviewed_by == "mod1"
    assert (await env.store.get_trust_counters("r1")).reports_dismissed == 1


@pytest.mark.asyncio
async def test_review_validation(reputation_env, fixed_now) -> None:
    env = reputation_env
    outcome = await env.report_service.file_report("r1", "t1", "spam", now=fixed_now)
    with pytest.raises(InvalidRequestError):
        await env.report_service.review(outcome.report_id, "pending", "mod1")
    with pytest.raises(ReportNotFound):
        await env.report_service.review("missing", "actioned", "mod1")
