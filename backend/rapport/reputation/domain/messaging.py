"""Message activity recording: the write path feeding reputation signals."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from rapport.obs import metrics as obs_metrics
from rapport.reputation.domain.burst import BURST_SCORE, BurstDetector
from rapport.reputation.domain.exceptions import InvalidRequestError, require_id
from rapport.reputation.domain.models import MessageRecordResult, ReputationData
from rapport.reputation.domain.recalculator import MODE_REALTIME, ReputationRecalculator
from rapport.reputation.domain.repository import ReputationStore

logger = logging.getLogger(__name__)


class MessageActivityRecorder:
    def __init__(
        self,
        *,
        store: ReputationStore,
        burst: BurstDetector,
        recalculator: ReputationRecalculator,
    ) -> None:
        self._store = store
        self._burst = burst
        self._recalculator = recalculator

    async def record_message_sent(
        self,
        sender_id: str,
        recipient_id: str,
        message_length: int,
        is_first_message: bool,
        *,
        now: datetime | None = None,
    ) -> MessageRecordResult:
        """Update sender and recipient metrics, then react to a send burst.

        A burst persists the transient burst override and recalculates the
        sender before returning.
        """

        sender_id = require_id(sender_id, "sender_id")
        recipient_id = require_id(recipient_id, "recipient_id")
        if sender_id == recipient_id:
            raise InvalidRequestError("recipient_must_differ")
        if message_length is None or int(message_length) < 0:
            raise InvalidRequestError("message_length_invalid")
        current = now or datetime.now(timezone.utc)

        observation = await self._burst.observe(sender_id, now_ms=int(current.timestamp() * 1000))
        await self._store.record_message_sent(
            sender_id,
            message_length=int(message_length),
            today=current.date(),
            first_in_conversation=bool(is_first_message),
            recent_send_timestamps=observation.timestamps,
        )
        await self._store.record_message_received(recipient_id, at=current)

        reputation: ReputationData | None = None
        if observation.is_burst:
            obs_metrics.burst_detected()
            logger.warning(
                "message burst detected",
                extra={"sender_id": sender_id, "window_count": observation.count},
            )
            await self._store.set_burst_score(sender_id, BURST_SCORE)
            reputation = await self._recalculator.recalculate(sender_id, mode=MODE_REALTIME, now=current)
        return MessageRecordResult(
            burst_detected=observation.is_burst,
            window_count=observation.count,
            reputation=reputation,
        )

    async def record_reply(self, replier_id: str, other_user_id: str, is_first_reply: bool) -> None:
        replier_id = require_id(replier_id, "replier_id")
        other_user_id = require_id(other_user_id, "other_user_id")
        if replier_id == other_user_id:
            raise InvalidRequestError("recipient_must_differ")
        await self._store.record_reply(replier_id, other_user_id=other_user_id, first_reply=bool(is_first_reply))

    async def record_block(self, blocker_id: str, blocked_id: str, *, now: datetime | None = None) -> ReputationData:
        blocker_id = require_id(blocker_id, "blocker_id")
        blocked_id = require_id(blocked_id, "blocked_id")
        if blocker_id == blocked_id:
            raise InvalidRequestError("cannot_block_self")
        await self._store.increment_blocks_received(blocked_id)
        return await self._recalculator.recalculate(blocked_id, mode=MODE_REALTIME, now=now)
