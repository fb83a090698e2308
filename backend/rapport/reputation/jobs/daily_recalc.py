"""Nightly sweep recalculating every onboarded user and resetting daily counters."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from rapport.obs import logging as obs_logging
from rapport.obs import metrics as obs_metrics
from rapport.reputation.domain.config import BatchConfig
from rapport.reputation.domain.recalculator import MODE_BATCH, ReputationRecalculator
from rapport.reputation.domain.repository import ReputationStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchResult:
    total: int
    processed: int
    errors: int
    skipped: int
    timed_out: bool
    duration_seconds: float
    run_id: str = ""


async def run(
    store: ReputationStore,
    recalculator: ReputationRecalculator,
    *,
    config: BatchConfig | None = None,
    now: datetime | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> BatchResult:
    """Run one sweep; per-user failures are counted and never abort the job.

    The wall-clock ceiling is checked before each chunk and bounds the wait on
    the chunk in flight. Users not reached are reported as skipped. Every log
    line emitted during the sweep carries the same ``run_id``.
    """

    run_id = uuid.uuid4().hex[:12]
    token = obs_logging.bind_context(job="reputation_daily", run_id=run_id)
    try:
        result = await _sweep(store, recalculator, config=config, now=now, clock=clock)
    finally:
        obs_logging.reset_context(token)
    result.run_id = run_id
    return result


async def _sweep(
    store: ReputationStore,
    recalculator: ReputationRecalculator,
    *,
    config: BatchConfig | None = None,
    now: datetime | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> BatchResult:
    cfg = config or BatchConfig()
    now = now or datetime.now(timezone.utc)
    today = now.date()
    started = clock()
    deadline = started + cfg.timeout_seconds
    semaphore = asyncio.Semaphore(max(1, cfg.concurrency))

    async def _process(user_id: str) -> bool:
        async with semaphore:
            try:
                await store.reset_daily_state(user_id, today=today)
                await recalculator.recalculate(user_id, mode=MODE_BATCH, now=now)
            except Exception:
                logger.exception("reputation batch user failed", extra={"subject_id": user_id})
                return False
            return True

    user_ids = list(await store.list_onboarded_user_ids())
    processed = 0
    errors = 0
    timed_out = False
    chunk_size = max(1, cfg.chunk_size)

    for offset in range(0, len(user_ids), chunk_size):
        remaining = deadline - clock()
        if remaining <= 0:
            timed_out = True
            break
        tasks = [asyncio.create_task(_process(user_id)) for user_id in user_ids[offset : offset + chunk_size]]
        done, pending = await asyncio.wait(tasks, timeout=remaining)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if task.result():
                processed += 1
            else:
                errors += 1
        if pending:
            timed_out = True
            break

    skipped = len(user_ids) - processed - errors
    duration = clock() - started
    obs_metrics.batch_user("processed", processed)
    obs_metrics.batch_user("error", errors)
    obs_metrics.batch_user("skipped", skipped)
    obs_metrics.batch_duration(duration)

    summary = {
        "total": len(user_ids),
        "processed": processed,
        "errors": errors,
        "skipped": skipped,
        "duration_seconds": round(duration, 3),
    }
    if timed_out:
        logger.warning("reputation batch stopped at deadline", extra=summary)
    else:
        logger.info("reputation batch complete", extra=summary)
    return BatchResult(
        total=len(user_ids),
        processed=processed,
        errors=errors,
        skipped=skipped,
        timed_out=timed_out,
        duration_seconds=duration,
    )
