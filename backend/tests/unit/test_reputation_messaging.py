from datetime import timedelta

import pytest

from rapport.reputation.domain.burst import BurstDetector
from rapport.reputation.domain.config import BurstConfig
from rapport.reputation.domain.exceptions import InvalidRequestError
from rapport.reputation.domain.models import MessageMetrics, UserRecord
from rapport.reputation.domain.tiers import Tier


@pytest.mark.asyncio
async def test_burst_window_trims_expired_entries(fake_redis) -> None:
    detector = BurstDetector(fake_redis, BurstConfig(window_ms=60_000, max_messages=10, slack=5))
    start = 1_700_000_000_000
    for offset in range(10):
        observation = await detector.observe("u1", now_ms=start + offset)
        assert not observation.is_burst

    later = await detector.observe("u1", now_ms=start + 61_000)

    assert later.count == 1
    assert later.timestamps == [start + 61_000]


@pytest.mark.asyncio
async def test_burst_window_keeps_most_recent_entries(fake_redis) -> None:
    detector = BurstDetector(fake_redis, BurstConfig(window_ms=60_000, max_messages=10, slack=5))
    start = 1_700_000_000_000
    for offset in range(20):
        observation = await detector.observe("u1", now_ms=start + offset * 100)

    assert observation.count == 15
    assert observation.is_burst
    assert observation.timestamps[0] == start + 5 * 100
    assert observation.timestamps[-1] == start + 19 * 100


@pytest.mark.asyncio
async def test_eleventh_send_in_a_minute_is_a_burst_and_drops_tier(reputation_env, fixed_now) -> None:
    env = reputation_env
    env.store.add_user(UserRecord(user_id="s", profile_completion=90, identity_verified=True))
    before = await env.recalculator.recalculate("s", now=fixed_now)
    assert before.tier is Tier.TRUSTED

    results = []
    for idx in range(11):
        sent_at = fixed_now + timedelta(seconds=idx)
        results.append(await env.recorder.record_message_sent("s", "r", 0, False, now=sent_at))

    assert not any(result.burst_detected for result in results[:10])
    burst = results[10]
    assert burst.burst_detected
    assert burst.window_count == 11
    assert burst.reputation is not None
    assert burst.reputation.tier is Tier.ESTABLISHED
    assert burst.reputation.signals is not None and burst.reputation.signals.burst_score == 1.0
    counters = await env.store.get_trust_counters("s")
    assert counters.burst_score == 1.0
    assert env.store.users["s"].reputation_tier is Tier.ESTABLISHED


@pytest.mark.asyncio
async def test_record_message_sent_updates_both_sides(reputation_env, fixed_now) -> None:
    env = reputation_env
    await env.recorder.record_message_sent("s", "r", 120, True, now=fixed_now)
    await env.recorder.record_message_sent("s", "r", 30, False, now=fixed_now + timedelta(seconds=5))

    sender = await env.store.get_message_metrics("s")
    assert sender.message_count == 2
    assert sender.total_message_length == 150
    assert sender.sent_on(fixed_now.date()) == 2
    assert sender.conversations_started == 1
    assert len(sender.recent_send_timestamps) == 2

    recipient = await env.store.get_message_metrics("r")
    assert recipient.received == 2
    assert recipient.pending_responses == 2
    assert recipient.last_received_at == fixed_now + timedelta(seconds=5)


@pytest.mark.asyncio
async def test_sent_today_rolls_over(reputation_env, fixed_now) -> None:
    env = reputation_env
    await env.recorder.record_message_sent("s", "r", 10, False, now=fixed_now)
    await env.recorder.record_message_sent("s", "r", 10, False, now=fixed_now + timedelta(days=1))
    metrics = await env.store.get_message_metrics("s")
    assert metrics.sent_today == 1
    assert metrics.last_sent_date == (fixed_now + timedelta(days=1)).date()


@pytest.mark.asyncio
async def test_record_reply_tracks_responses(reputation_env, fixed_now) -> None:
    env = reputation_env
    await env.recorder.record_message_sent("a", "b", 40, True, now=fixed_now)
    await env.recorder.record_reply("b", "a", True)
    await env.recorder.record_reply("b", "a", False)

    replier = await env.store.get_message_metrics("b")
    assert replier.replied == 2
    assert replier.pending_responses == 0
    starter = await env.store.get_message_metrics("a")
    assert starter.conversations_with_replies == 1


@pytest.mark.asyncio
async def test_record_block_recalculates_blocked_user(reputation_env, fixed_now) -> None:
    env = reputation_env
    env.store.add_user(UserRecord(user_id="victim"))
    env.store.add_user(UserRecord(user_id="offender"))
    env.store.metrics["offender"] = MessageMetrics(received=4)
    before = await env.recalculator.recalculate("offender", now=fixed_now)

    after = await env.recorder.record_block("victim", "offender", now=fixed_now)

    counters = await env.store.get_trust_counters("offender")
    assert counters.blocks_received == 1
    assert before.score == 350
    assert after.signals is not None and after.signals.block_ratio == pytest.approx(0.25)
    assert after.score == 313


@pytest.mark.asyncio
async def test_invalid_message_inputs_rejected(reputation_env) -> None:
    with pytest.raises(InvalidRequestError):
        await reputation_env.recorder.record_message_sent("s", "s", 10, False)
    with pytest.raises(InvalidRequestError):
        await reputation_env.recorder.record_message_sent("s", "r", -1, False)
    with pytest.raises(InvalidRequestError):
        await reputation_env.recorder.record_block("x", "x")
