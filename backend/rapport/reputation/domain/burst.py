"""Sliding-window burst detection for outgoing messages."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from redis.asyncio import Redis

from rapport.infra.redis import RedisProxy
from rapport.infra.redis import key as redis_key
from rapport.reputation.domain.config import BurstConfig

BURST_SCORE = 1.0


@dataclass(slots=True)
class BurstObservation:
    """Window state after recording one send."""

    timestamps: list[int]
    max_messages: int

    @property
    def count(self) -> int:
        return len(self.timestamps)

    @property
    def is_burst(self) -> bool:
        return self.count > self.max_messages


class BurstDetector:
    """Per-sender window kept in a Redis sorted set scored by epoch millis.

    Trim, append and cap run inside one MULTI/EXEC so concurrent sends by the
    same user never lose an entry.
    """

    def __init__(
        self,
        redis: Redis | RedisProxy,
        config: BurstConfig | None = None,
    ) -> None:
        self._redis = redis
        self._config = config or BurstConfig()

    @property
    def config(self) -> BurstConfig:
        return self._config

    def _key(self, user_id: str) -> str:
        return redis_key("burst", user_id)

    async def observe(self, user_id: str, *, now_ms: int) -> BurstObservation:
        key = self._key(user_id)
        cutoff = now_ms - self._config.window_ms
        member = f"{now_ms}:{uuid.uuid4().hex[:8]}"
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, "-inf", cutoff)
        pipe.zadd(key, {member: now_ms})
        pipe.zremrangebyrank(key, 0, -(self._config.retained + 1))
        pipe.zrange(key, 0, -1, withscores=True)
        pipe.pexpire(key, self._config.window_ms)
        results = await pipe.execute()
        timestamps = [int(score) for _, score in results[3]]
        return BurstObservation(timestamps=timestamps, max_messages=self._config.max_messages)

    async def reset(self, user_id: str) -> None:
        await self._redis.delete(self._key(user_id))
