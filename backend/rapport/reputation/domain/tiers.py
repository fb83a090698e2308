"""Reputation tiers and the per-tier policy table."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

MIN_SCORE = 0
MAX_SCORE = 1000
UNLIMITED = -1


class Tier(str, Enum):
    """Ordered reputation tiers shown to users as status badges."""

    NEW = "new"
    ACTIVE = "active"
    ESTABLISHED = "established"
    TRUSTED = "trusted"
    DISTINGUISHED = "distinguished"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)


TIER_ORDER: tuple[Tier, ...] = (
    Tier.NEW,
    Tier.ACTIVE,
    Tier.ESTABLISHED,
    Tier.TRUSTED,
    Tier.DISTINGUISHED,
)


@dataclass(frozen=True, slots=True)
class ReportLimits:
    daily: int
    weekly: int


@dataclass(frozen=True, slots=True)
class TierPolicy:
    """Static policy attached to a tier.

    ``daily_quota`` caps new conversations started with higher-tier users per
    day (``UNLIMITED`` for no cap). ``minimum_tier_required`` is the tier a
    sender must hold to message a member of this tier, ``None`` meaning any.
    """

    tier: Tier
    min_score: int
    daily_quota: int
    minimum_tier_required: Tier | None
    report_limits: ReportLimits

    @property
    def is_unlimited(self) -> bool:
        return self.daily_quota == UNLIMITED


TIER_POLICIES: Mapping[Tier, TierPolicy] = MappingProxyType(
    {
        Tier.NEW: TierPolicy(
            tier=Tier.NEW,
            min_score=0,
            daily_quota=3,
            minimum_tier_required=None,
            report_limits=ReportLimits(daily=2, weekly=5),
        ),
        Tier.ACTIVE: TierPolicy(
            tier=Tier.ACTIVE,
            min_score=200,
            daily_quota=5,
            minimum_tier_required=None,
            report_limits=ReportLimits(daily=3, weekly=10),
        ),
        Tier.ESTABLISHED: TierPolicy(
            tier=Tier.ESTABLISHED,
            min_score=400,
            daily_quota=8,
            minimum_tier_required=None,
            report_limits=ReportLimits(daily=5, weekly=15),
        ),
        Tier.TRUSTED: TierPolicy(
            tier=Tier.TRUSTED,
            min_score=600,
            daily_quota=12,
            minimum_tier_required=None,
            report_limits=ReportLimits(daily=7, weekly=20),
        ),
        Tier.DISTINGUISHED: TierPolicy(
            tier=Tier.DISTINGUISHED,
            min_score=800,
            daily_quota=UNLIMITED,
            minimum_tier_required=None,
            report_limits=ReportLimits(daily=10, weekly=30),
        ),
    }
)


def policy_for(tier: Tier) -> TierPolicy:
    return TIER_POLICIES[tier]


def score_to_tier(score: int) -> Tier:
    """Map a score to the highest tier whose threshold it reaches."""

    bounded = max(MIN_SCORE, min(MAX_SCORE, int(score)))
    for tier in reversed(TIER_ORDER):
        if bounded >= TIER_POLICIES[tier].min_score:
            return tier
    return Tier.NEW


def compare_tiers(left: Tier, right: Tier) -> int:
    """Positive when ``left`` ranks above ``right``."""

    return left.rank - right.rank


def parse_tier(value: object, default: Tier = Tier.NEW) -> Tier:
    """Lenient tier parsing for stored values; unknown values map to ``default``."""

    if isinstance(value, Tier):
        return value
    try:
        return Tier(str(value))
    except ValueError:
        return default
