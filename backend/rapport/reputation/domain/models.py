"""Domain records for the reputation engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

from rapport.reputation.domain.tiers import UNLIMITED, Tier, TierPolicy


def clamp_ratio(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True, slots=True)
class ReputationSignals:
    """Normalised behaviour vector consumed by the score calculator."""

    profile_completion: float = 0.0
    identity_verified: bool = False
    account_age_days: int = 0
    response_rate: float = 0.0
    conversation_quality: float = 0.0
    block_ratio: float = 0.0
    report_ratio: float = 0.0
    ghost_rate: float = 0.0
    burst_score: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "profile_completion", max(0.0, min(100.0, float(self.profile_completion))))
        object.__setattr__(self, "identity_verified", bool(self.identity_verified))
        object.__setattr__(self, "account_age_days", max(0, int(self.account_age_days)))
        for name in ("response_rate", "conversation_quality", "block_ratio", "report_ratio", "ghost_rate", "burst_score"):
            object.__setattr__(self, name, clamp_ratio(getattr(self, name)))

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> "ReputationSignals":
        """Return a copy with forced values applied; values are re-clamped."""

        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"unknown_signal:{','.join(sorted(unknown))}")
        return replace(self, **dict(overrides))

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ReputationSignals":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(slots=True)
class UserRecord:
    """Primary user record owned by the profile subsystem."""

    user_id: str
    created_at: datetime | None = None
    onboarding_completed: bool = False
    identity_verified: bool = False
    profile_completion: int = 0
    is_premium: bool = False
    reputation_tier: Tier | None = None


@dataclass(slots=True)
class MessageMetrics:
    """Per-user messaging counters written by the send path."""

    message_count: int = 0
    total_message_length: int = 0
    sent_today: int = 0
    last_sent_date: date | None = None
    recent_send_timestamps: list[int] = field(default_factory=list)
    conversations_started: int = 0
    conversations_with_replies: int = 0
    received: int = 0
    replied: int = 0
    pending_responses: int = 0
    last_received_at: datetime | None = None

    def sent_on(self, today: date) -> int:
        return self.sent_today if self.last_sent_date == today else 0


@dataclass(slots=True)
class TrustCounters:
    """Moderation counters kept beside the reputation document."""

    blocks_received: int = 0
    reports_received: int = 0
    last_reported_at: datetime | None = None
    burst_score: float | None = None
    reports_submitted: int = 0
    reports_dismissed: int = 0
    last_report_at: datetime | None = None

    @property
    def dismissal_rate(self) -> float:
        if self.reports_submitted <= 0:
            return 0.0
        return self.reports_dismissed / self.reports_submitted


@dataclass(slots=True)
class ReputationData:
    """Persisted outcome of a reputation calculation plus the throttle counter.

    ``score`` is internal and must never be returned to clients.
    """

    tier: Tier
    score: int
    last_calculated_at: datetime
    tier_changed_at: datetime
    created_at: datetime
    daily_quota: int
    minimum_tier_required: Tier | None = None
    signals: ReputationSignals | None = None
    conversations_today: int = 0
    last_counter_date: date | None = None

    def conversations_on(self, today: date) -> int:
        """Counter value for ``today``; a counter from another day reads as zero."""

        if self.last_counter_date != today:
            return 0
        return max(0, self.conversations_today)

    @classmethod
    def initial(cls, now: datetime, policy: TierPolicy) -> "ReputationData":
        return cls(
            tier=policy.tier,
            score=0,
            last_calculated_at=now,
            tier_changed_at=now,
            created_at=now,
            daily_quota=policy.daily_quota,
            minimum_tier_required=policy.minimum_tier_required,
            signals=ReputationSignals(),
            conversations_today=0,
            last_counter_date=now.date(),
        )


class ReportReason(str, Enum):
    HARASSMENT = "harassment"
    SPAM = "spam"
    FAKE_PROFILE = "fake_profile"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SOLICITATION = "solicitation"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    DISMISSED = "dismissed"
    ACTIONED = "actioned"


@dataclass(frozen=True, slots=True)
class Report:
    """A filed report; only the status and review fields ever change."""

    report_id: str
    reporter_id: str
    reported_user_id: str
    reporter_tier: Tier
    reason: ReportReason
    created_at: datetime
    updated_at: datetime
    details: str | None = None
    conversation_id: str | None = None
    status: ReportStatus = ReportStatus.PENDING
    reviewed_by: str | None = None
    action_taken: str | None = None


@dataclass(frozen=True, slots=True)
class PermissionResult:
    """Outcome of a messaging gate evaluation."""

    allowed: bool
    reason: str | None
    sender_tier: Tier | None = None
    recipient_tier: Tier | None = None
    is_premium: bool = False
    is_new_conversation: bool = False
    is_higher_tier: bool = False
    quota_limit: int = UNLIMITED
    quota_used_today: int = 0
    quota_remaining: int = UNLIMITED


@dataclass(frozen=True, slots=True)
class ReputationStatus:
    """Client-facing view of a user's reputation; carries no score."""

    tier: Tier
    daily_quota: int
    used_today: int
    remaining: int
    is_premium: bool = False

    @property
    def is_unlimited(self) -> bool:
        return self.daily_quota == UNLIMITED


@dataclass(frozen=True, slots=True)
class ReportOutcome:
    success: bool
    report_id: str | None = None
    reason: str | None = None
    limit: int | None = None

    @classmethod
    def denied(cls, reason: str, *, limit: int | None = None) -> "ReportOutcome":
        return cls(success=False, reason=reason, limit=limit)


@dataclass(frozen=True, slots=True)
class MessageRecordResult:
    burst_detected: bool
    window_count: int
    reputation: ReputationData | None = None
