"""Messaging permission gate for starting conversations across tiers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from rapport.obs import metrics as obs_metrics
from rapport.reputation.domain.exceptions import require_id
from rapport.reputation.domain.models import PermissionResult, ReputationData, ReputationStatus
from rapport.reputation.domain.recalculator import MODE_ON_DEMAND, ReputationRecalculator
from rapport.reputation.domain.repository import BlockDirectory, ConversationDirectory, ReputationStore
from rapport.reputation.domain.tiers import UNLIMITED, Tier, compare_tiers, policy_for

logger = logging.getLogger(__name__)

REASON_SELF = "self"
REASON_BLOCKED = "blocked"
REASON_LIMIT_REACHED = "higher_tier_limit_reached"
REASON_PREMIUM = "premium"
REASON_EXISTING_CONVERSATION = "existing_conversation"
REASON_NOT_HIGHER_TIER = "not_higher_tier"
REASON_WITHIN_QUOTA = "within_quota"
REASON_UNLIMITED = "unlimited"


class MessagingGate:
    """Decides whether a sender may open a conversation with a recipient.

    ``check`` is the read-only pre-flight variant; ``authorize`` consumes a
    quota slot when the decision depends on one.
    """

    def __init__(
        self,
        *,
        store: ReputationStore,
        blocks: BlockDirectory,
        conversations: ConversationDirectory,
        recalculator: ReputationRecalculator,
    ) -> None:
        self._store = store
        self._blocks = blocks
        self._conversations = conversations
        self._recalculator = recalculator

    async def check(self, sender_id: str, recipient_id: str, *, now: datetime | None = None) -> PermissionResult:
        result = await self._evaluate(sender_id, recipient_id, now=now, claim=False)
        obs_metrics.permission_decision("check", result.allowed, result.reason)
        return result

    async def authorize(self, sender_id: str, recipient_id: str, *, now: datetime | None = None) -> PermissionResult:
        result = await self._evaluate(sender_id, recipient_id, now=now, claim=True)
        obs_metrics.permission_decision("authorize", result.allowed, result.reason)
        if not result.allowed:
            logger.info(
                "message permission denied",
                extra={"sender_id": sender_id, "recipient_id": recipient_id, "reason": result.reason},
            )
        return result

    async def status(self, user_id: str, *, now: datetime | None = None) -> ReputationStatus:
        user_id = require_id(user_id, "user_id")
        current = now or datetime.now(timezone.utc)
        reputation = await self._reputation(user_id, current)
        user = await self._store.get_user(user_id)
        used = reputation.conversations_on(current.date())
        if reputation.daily_quota == UNLIMITED:
            remaining = UNLIMITED
        else:
            remaining = max(0, reputation.daily_quota - used)
        return ReputationStatus(
            tier=reputation.tier,
            daily_quota=reputation.daily_quota,
            used_today=used,
            remaining=remaining,
            is_premium=bool(user and user.is_premium),
        )

    async def _reputation(self, user_id: str, now: datetime, *, persist: bool = True) -> ReputationData:
        stored = await self._store.get_reputation(user_id)
        if stored is not None:
            return stored
        if not persist:
            # unseen users are treated as NEW with zero counters until first write
            return ReputationData.initial(now, policy_for(Tier.NEW))
        return await self._recalculator.recalculate(user_id, mode=MODE_ON_DEMAND, now=now)

    async def _evaluate(
        self,
        sender_id: str,
        recipient_id: str,
        *,
        now: datetime | None,
        claim: bool,
    ) -> PermissionResult:
        sender_id = require_id(sender_id, "sender_id")
        recipient_id = require_id(recipient_id, "recipient_id")
        current = now or datetime.now(timezone.utc)

        if sender_id == recipient_id:
            return PermissionResult(allowed=False, reason=REASON_SELF)
        if await self._blocks.is_blocked(sender_id, recipient_id):
            return PermissionResult(allowed=False, reason=REASON_BLOCKED)

        sender_rep = await self._reputation(sender_id, current, persist=claim)
        recipient_rep = await self._reputation(recipient_id, current, persist=claim)
        sender_tier = sender_rep.tier
        recipient_tier = recipient_rep.tier
        existing = await self._conversations.exists(sender_id, recipient_id)

        sender = await self._store.get_user(sender_id)
        if sender is not None and sender.is_premium:
            return PermissionResult(
                allowed=True,
                reason=REASON_PREMIUM,
                sender_tier=sender_tier,
                recipient_tier=recipient_tier,
                is_new_conversation=not existing,
                is_higher_tier=compare_tiers(recipient_tier, sender_tier) > 0,
                is_premium=True,
            )

        if existing:
            return PermissionResult(
                allowed=True,
                reason=REASON_EXISTING_CONVERSATION,
                sender_tier=sender_tier,
                recipient_tier=recipient_tier,
                is_new_conversation=False,
            )

        if compare_tiers(recipient_tier, sender_tier) <= 0:
            return PermissionResult(
                allowed=True,
                reason=REASON_NOT_HIGHER_TIER,
                sender_tier=sender_tier,
                recipient_tier=recipient_tier,
                is_new_conversation=True,
            )

        today = current.date()
        quota = sender_rep.daily_quota
        used = sender_rep.conversations_on(today)

        if quota == UNLIMITED:
            if claim:
                claimed = await self._store.claim_conversation_slot(sender_id, today=today, limit=None)
                used = claimed if claimed is not None else used
            return PermissionResult(
                allowed=True,
                reason=REASON_UNLIMITED,
                sender_tier=sender_tier,
                recipient_tier=recipient_tier,
                is_new_conversation=True,
                is_higher_tier=True,
                quota_limit=UNLIMITED,
                quota_used_today=used,
                quota_remaining=UNLIMITED,
            )

        if used < quota:
            if not claim:
                return self._within_quota(sender_rep, recipient_tier, quota, used)
            claimed = await self._store.claim_conversation_slot(sender_id, today=today, limit=quota)
            if claimed is not None:
                return self._within_quota(sender_rep, recipient_tier, quota, claimed)
            # lost the race for the last slot
            used = quota

        return PermissionResult(
            allowed=False,
            reason=REASON_LIMIT_REACHED,
            sender_tier=sender_tier,
            recipient_tier=recipient_tier,
            is_new_conversation=True,
            is_higher_tier=True,
            quota_limit=quota,
            quota_used_today=used,
            quota_remaining=0,
        )

    @staticmethod
    def _within_quota(sender_rep: ReputationData, recipient_tier: Tier, quota: int, used: int) -> PermissionResult:
        return PermissionResult(
            allowed=True,
            reason=REASON_WITHIN_QUOTA,
            sender_tier=sender_rep.tier,
            recipient_tier=recipient_tier,
            is_new_conversation=True,
            is_higher_tier=True,
            quota_limit=quota,
            quota_used_today=used,
            quota_remaining=max(0, quota - used),
        )
