"""Pydantic request/response models for the reputation API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from rapport.reputation.domain.models import (
    PermissionResult,
    Report,
    ReportOutcome,
    ReportReason,
    ReportStatus,
    ReputationStatus,
)
from rapport.reputation.domain.tiers import Tier


class PermissionIn(BaseModel):
    recipient_id: str = Field(..., min_length=1)


class PermissionOut(BaseModel):
    allowed: bool
    reason: str | None = None
    sender_tier: Tier | None = None
    recipient_tier: Tier | None = None
    is_premium: bool = False
    is_new_conversation: bool = False
    is_higher_tier: bool = False
    quota_limit: int
    quota_used_today: int
    quota_remaining: int

    @classmethod
    def from_result(cls, result: PermissionResult) -> "PermissionOut":
        return cls(
            allowed=result.allowed,
            reason=result.reason,
            sender_tier=result.sender_tier,
            recipient_tier=result.recipient_tier,
            is_premium=result.is_premium,
            is_new_conversation=result.is_new_conversation,
            is_higher_tier=result.is_higher_tier,
            quota_limit=result.quota_limit,
            quota_used_today=result.quota_used_today,
            quota_remaining=result.quota_remaining,
        )


class MessageSentIn(BaseModel):
    sender_id: str = Field(..., min_length=1)
    recipient_id: str = Field(..., min_length=1)
    message_length: int = Field(..., ge=0)
    is_first_message: bool = False


class MessageSentOut(BaseModel):
    burst_detected: bool
    window_count: int
    tier: Tier | None = None


class ReplyIn(BaseModel):
    replier_id: str = Field(..., min_length=1)
    other_user_id: str = Field(..., min_length=1)
    is_first_reply: bool = False


class BlockIn(BaseModel):
    blocker_id: str = Field(..., min_length=1)
    blocked_id: str = Field(..., min_length=1)


class BlockOut(BaseModel):
    user_id: str
    tier: Tier


class ReportIn(BaseModel):
    reported_user_id: str = Field(..., min_length=1)
    reason: ReportReason
    details: str | None = Field(default=None, max_length=1000)
    conversation_id: str | None = None


class ReportResultOut(BaseModel):
    success: bool
    report_id: str | None = None
    reason: str | None = None
    limit: int | None = None

    @classmethod
    def from_outcome(cls, outcome: ReportOutcome) -> "ReportResultOut":
        return cls(success=outcome.success, report_id=outcome.report_id, reason=outcome.reason, limit=outcome.limit)


class ReviewIn(BaseModel):
    status: ReportStatus
    action_taken: str | None = Field(default=None, max_length=200)


class ReportOut(BaseModel):
    report_id: str
    reporter_id: str
    reported_user_id: str
    reason: ReportReason
    status: ReportStatus
    reviewed_by: str | None = None
    action_taken: str | None = None

    @classmethod
    def from_report(cls, report: Report) -> "ReportOut":
        return cls(
            report_id=report.report_id,
            reporter_id=report.reporter_id,
            reported_user_id=report.reported_user_id,
            reason=report.reason,
            status=report.status,
            reviewed_by=report.reviewed_by,
            action_taken=report.action_taken,
        )


class StatusOut(BaseModel):
    tier: Tier
    daily_quota: int
    used_today: int
    remaining: int
    is_premium: bool
    is_unlimited: bool

    @classmethod
    def from_status(cls, status: ReputationStatus) -> "StatusOut":
        return cls(
            tier=status.tier,
            daily_quota=status.daily_quota,
            used_today=status.used_today,
            remaining=status.remaining,
            is_premium=status.is_premium,
            is_unlimited=status.is_unlimited,
        )
