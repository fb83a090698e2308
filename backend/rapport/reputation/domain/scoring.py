"""Weighted trust score over normalised reputation signals."""

from __future__ import annotations

import math

from rapport.reputation.domain.models import ReputationSignals
from rapport.reputation.domain.tiers import MAX_SCORE, MIN_SCORE

# Per-mille weights; a user with every contribution at 1.0 scores MAX_SCORE.
PROFILE_COMPLETION_WEIGHT = 100
IDENTITY_VERIFIED_WEIGHT = 200
ACCOUNT_AGE_WEIGHT = 100
RESPONSE_RATE_WEIGHT = 150
CONVERSATION_QUALITY_WEIGHT = 100
BLOCK_RATIO_WEIGHT = 150
REPORT_RATIO_WEIGHT = 100
GHOST_RATE_WEIGHT = 50
BURST_SCORE_WEIGHT = 50

SCORE_WEIGHTS: dict[str, int] = {
    "profile_completion": PROFILE_COMPLETION_WEIGHT,
    "identity_verified": IDENTITY_VERIFIED_WEIGHT,
    "account_age": ACCOUNT_AGE_WEIGHT,
    "response_rate": RESPONSE_RATE_WEIGHT,
    "conversation_quality": CONVERSATION_QUALITY_WEIGHT,
    "block_ratio": BLOCK_RATIO_WEIGHT,
    "report_ratio": REPORT_RATIO_WEIGHT,
    "ghost_rate": GHOST_RATE_WEIGHT,
    "burst_score": BURST_SCORE_WEIGHT,
}

ACCOUNT_AGE_FULL_BONUS_DAYS = 365


def contributions(signals: ReputationSignals) -> dict[str, float]:
    """Each signal mapped onto [0, 1] where 1 is the most trustworthy value."""

    return {
        "profile_completion": signals.profile_completion / 100.0,
        "identity_verified": 1.0 if signals.identity_verified else 0.0,
        "account_age": min(signals.account_age_days / ACCOUNT_AGE_FULL_BONUS_DAYS, 1.0),
        "response_rate": signals.response_rate,
        "conversation_quality": signals.conversation_quality,
        "block_ratio": 1.0 - signals.block_ratio,
        "report_ratio": 1.0 - signals.report_ratio,
        "ghost_rate": 1.0 - signals.ghost_rate,
        "burst_score": 1.0 - signals.burst_score,
    }


def calculate_score(signals: ReputationSignals) -> int:
    """Return the internal score in ``[MIN_SCORE, MAX_SCORE]``."""

    parts = contributions(signals)
    total = sum(SCORE_WEIGHTS[name] * value for name, value in parts.items())
    return int(max(MIN_SCORE, min(MAX_SCORE, math.floor(total + 0.5))))
