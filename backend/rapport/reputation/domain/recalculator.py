"""Reputation recalculation: signals to score to tier, persisted."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from rapport.obs import metrics as obs_metrics
from rapport.reputation.domain.exceptions import InvalidRequestError, require_id
from rapport.reputation.domain.models import ReputationData, ReputationSignals
from rapport.reputation.domain.repository import ReputationStore
from rapport.reputation.domain.scoring import calculate_score
from rapport.reputation.domain.signals import SignalAggregator
from rapport.reputation.domain.tiers import Tier, compare_tiers, policy_for, score_to_tier

logger = logging.getLogger(__name__)

MODE_REALTIME = "realtime"
MODE_BATCH = "batch"
MODE_MANUAL = "manual"
MODE_ON_DEMAND = "on_demand"


def _validate_overrides(overrides: Mapping[str, Any] | None) -> None:
    try:
        ReputationSignals().with_overrides(overrides)
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc


class ReputationRecalculator:
    """Sole writer of computed reputation fields.

    The conversation throttle counter shares the stored document but is never
    written here; the store merges computed fields only.
    """

    def __init__(self, store: ReputationStore, aggregator: SignalAggregator | None = None) -> None:
        self._store = store
        self._aggregator = aggregator or SignalAggregator(store)

    async def recalculate(
        self,
        user_id: str,
        overrides: Mapping[str, Any] | None = None,
        *,
        mode: str = MODE_REALTIME,
        now: datetime | None = None,
    ) -> ReputationData:
        user_id = require_id(user_id, "user_id")
        _validate_overrides(overrides)
        current = now or datetime.now(timezone.utc)

        signals = (await self._aggregator.gather(user_id, now=current)).with_overrides(overrides)
        score = calculate_score(signals)
        tier = score_to_tier(score)
        policy = policy_for(tier)

        previous = await self._store.get_reputation(user_id)
        changed = previous is None or previous.tier != tier
        data = ReputationData(
            tier=tier,
            score=score,
            last_calculated_at=current,
            tier_changed_at=current if previous is None or changed else previous.tier_changed_at,
            created_at=previous.created_at if previous is not None else current,
            daily_quota=policy.daily_quota,
            minimum_tier_required=policy.minimum_tier_required,
            signals=signals,
        )
        await self._store.save_reputation(user_id, data)
        await self._store.set_user_tier(user_id, tier)

        obs_metrics.recalculation(mode)
        if previous is not None and changed:
            direction = "up" if compare_tiers(tier, previous.tier) > 0 else "down"
            obs_metrics.tier_changed(direction)
            logger.info(
                "reputation tier changed",
                extra={
                    "subject_id": user_id,
                    "from_tier": previous.tier.value,
                    "to_tier": tier.value,
                    "mode": mode,
                },
            )
        return data

    async def initialize(self, user_id: str, *, now: datetime | None = None) -> ReputationData:
        """Create onboarding defaults: lowest tier, zero score, zeroed counters."""

        user_id = require_id(user_id, "user_id")
        current = now or datetime.now(timezone.utc)
        data = ReputationData.initial(current, policy_for(Tier.NEW))
        await self._store.initialize(user_id, data)
        await self._store.set_user_tier(user_id, Tier.NEW)
        return data

    async def refresh(self, user_id: str, *, now: datetime | None = None) -> ReputationData:
        return await self.recalculate(user_id, mode=MODE_MANUAL, now=now)
