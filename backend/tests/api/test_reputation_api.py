"""API surface tests for the reputation endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rapport.infra.jwt import encode_access
from rapport.reputation.domain.models import ReputationData, UserRecord
from rapport.reputation.domain.tiers import Tier, policy_for
from rapport.settings import settings

SERVICE_HEADERS = {"X-User-Id": "pipeline", "X-User-Roles": "service"}


def _headers(user_id: str) -> dict[str, str]:
	return {"X-User-Id": user_id}


async def _seed(env, user_id: str, tier: Tier) -> None:
	now = datetime.now(timezone.utc)
	env.store.add_user(UserRecord(user_id=user_id, onboarding_completed=True))
	policy = policy_for(tier)
	await env.store.initialize(
		user_id,
		ReputationData(
			tier=tier,
			score=policy.min_score,
			last_calculated_at=now,
			tier_changed_at=now,
			created_at=now,
			daily_quota=policy.daily_quota,
		),
	)


@pytest.mark.asyncio
async def test_me_hides_score_and_calculates_on_demand(api_client, reputation_env):
	resp = await api_client.get("/api/reputation/v1/me", headers=_headers("fresh"))
	assert resp.status_code == 200
	body = resp.json()
	assert body["tier"] == "active"
	assert body["daily_quota"] == 5
	assert body["remaining"] == 5
	assert "score" not in body


@pytest.mark.asyncio
async def test_requests_without_credentials_rejected(api_client, reputation_env):
	resp = await api_client.get("/api/reputation/v1/me")
	assert resp.status_code == 401
	assert resp.json()["detail"] == "invalid_token"
	assert "request_id" in resp.json()


@pytest.mark.asyncio
async def test_bearer_token_authenticates(api_client, reputation_env):
	token = encode_access({"sub": "jwt-user"})
	resp = await api_client.get("/api/reputation/v1/me", headers={"Authorization": f"Bearer {token}"})
	assert resp.status_code == 200
	assert resp.json()["tier"] == "active"


@pytest.mark.asyncio
async def test_permission_self_denied(api_client, reputation_env):
	resp = await api_client.post(
		"/api/reputation/v1/permission",
		json={"recipient_id": "u1"},
		headers=_headers("u1"),
	)
	assert resp.status_code == 200
	assert resp.json()["allowed"] is False
	assert resp.json()["reason"] == "self"


@pytest.mark.asyncio
async def test_claim_consumes_quota_until_denied(api_client, reputation_env):
	await _seed(reputation_env, "newbie", Tier.NEW)
	await _seed(reputation_env, "star", Tier.DISTINGUISHED)

	check = await api_client.post(
		"/api/reputation/v1/permission", json={"recipient_id": "star"}, headers=_headers("newbie")
	)
	assert check.json()["quota_remaining"] == 3

	remaining = []
	for _ in range(3):
		resp = await api_client.post(
			"/api/reputation/v1/permission/claim", json={"recipient_id": "star"}, headers=_headers("newbie")
		)
		assert resp.json()["allowed"] is True
		remaining.append(resp.json()["quota_remaining"])
	assert remaining == [2, 1, 0]

	denied = await api_client.post(
		"/api/reputation/v1/permission/claim", json={"recipient_id": "star"}, headers=_headers("newbie")
	)
	body = denied.json()
	assert body["allowed"] is False
	assert body["reason"] == "higher_tier_limit_reached"
	assert body["sender_tier"] == "new"
	assert body["recipient_tier"] == "distinguished"

	status = await api_client.get("/api/reputation/v1/me", headers=_headers("newbie"))
	assert status.json()["used_today"] == 3
	assert status.json()["remaining"] == 0


@pytest.mark.asyncio
async def test_report_created_then_duplicate_denied(api_client, reputation_env):
	payload = {"reported_user_id": "target", "reason": "spam", "details": "link farm"}
	first = await api_client.post("/api/reputation/v1/reports", json=payload, headers=_headers("r1"))
	assert first.status_code == 201
	assert first.json()["success"] is True
	assert first.json()["report_id"]

	second = await api_client.post("/api/reputation/v1/reports", json=payload, headers=_headers("r1"))
	assert second.status_code == 200
	assert second.json() == {"success": False, "report_id": None, "reason": "duplicate", "limit": None}


@pytest.mark.asyncio
async def test_report_with_unknown_reason_is_validation_error(api_client, reputation_env):
	resp = await api_client.post(
		"/api/reputation/v1/reports",
		json={"reported_user_id": "target", "reason": "rudeness"},
		headers=_headers("r1"),
	)
	assert resp.status_code == 422
	assert resp.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_review_requires_service_role_and_counts_dismissal(api_client, reputation_env):
	filed = await api_client.post(
		"/api/reputation/v1/reports",
		json={"reported_user_id": "target", "reason": "harassment"},
		headers=_headers("r1"),
	)
	report_id = filed.json()["report_id"]

	forbidden = await api_client.post(
		f"/api/reputation/v1/reports/{report_id}/review", json={"status": "dismissed"}, headers=_headers("r1")
	)
	assert forbidden.status_code == 403

	reviewed = await api_client.post(
		f"/api/reputation/v1/reports/{report_id}/review", json={"status": "dismissed"}, headers=SERVICE_HEADERS
	)
	assert reviewed.status_code == 200
	assert reviewed.json()["status"] == "dismissed"
	assert reviewed.json()["reviewed_by"] == "pipeline"
	assert (await reputation_env.store.get_trust_counters("r1")).reports_dismissed == 1

	missing = await api_client.post(
		"/api/reputation/v1/reports/nope/review", json={"status": "actioned"}, headers=SERVICE_HEADERS
	)
	assert missing.status_code == 404


@pytest.mark.asyncio
async def test_activity_hooks_require_service_role(api_client, reputation_env):
	payload = {"sender_id": "s", "recipient_id": "r", "message_length": 42, "is_first_message": True}
	forbidden = await api_client.post("/api/reputation/v1/messages", json=payload, headers=_headers("s"))
	assert forbidden.status_code == 403

	resp = await api_client.post("/api/reputation/v1/messages", json=payload, headers=SERVICE_HEADERS)
	assert resp.status_code == 200
	assert resp.json()["burst_detected"] is False
	assert resp.json()["window_count"] == 1
	metrics = await reputation_env.store.get_message_metrics("s")
	assert metrics.conversations_started == 1

	reply = await api_client.post(
		"/api/reputation/v1/messages/replies",
		json={"replier_id": "r", "other_user_id": "s", "is_first_reply": True},
		headers=SERVICE_HEADERS,
	)
	assert reply.status_code == 204


@pytest.mark.asyncio
async def test_block_hook_recalculates_blocked_user(api_client, reputation_env):
	resp = await api_client.post(
		"/api/reputation/v1/blocks",
		json={"blocker_id": "victim", "blocked_id": "offender"},
		headers=SERVICE_HEADERS,
	)
	assert resp.status_code == 200
	assert resp.json() == {"user_id": "offender", "tier": "active"}

	self_block = await api_client.post(
		"/api/reputation/v1/blocks",
		json={"blocker_id": "victim", "blocked_id": "victim"},
		headers=SERVICE_HEADERS,
	)
	assert self_block.status_code == 400
	assert self_block.json()["detail"] == "cannot_block_self"


@pytest.mark.asyncio
async def test_refresh_only_in_dev(api_client, reputation_env, monkeypatch):
	reputation_env.store.add_user(UserRecord(user_id="u1", profile_completion=90, identity_verified=True))
	resp = await api_client.post("/api/reputation/v1/me/refresh", headers=_headers("u1"))
	assert resp.status_code == 200
	assert resp.json()["tier"] == "trusted"

	monkeypatch.setattr(settings, "environment", "production")
	token = encode_access({"sub": "u1"})
	hidden = await api_client.post("/api/reputation/v1/me/refresh", headers={"Authorization": f"Bearer {token}"})
	assert hidden.status_code == 404


@pytest.mark.asyncio
async def test_ops_endpoints(api_client, reputation_env, monkeypatch):
	live = await api_client.get("/health/live")
	assert live.json() == {"status": "ok"}

	monkeypatch.setattr(settings, "obs_admin_token", "ops-secret")
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	assert (await api_client.get("/metrics")).status_code == 403
	metrics = await api_client.get("/metrics", headers={"X-Admin-Token": "ops-secret"})
	assert metrics.status_code == 200

	reputation_env.store.add_user(UserRecord(user_id="u1", onboarding_completed=True))
	batch = await api_client.post("/ops/reputation/batch", headers={"X-Admin-Token": "ops-secret"})
	assert batch.status_code == 200
	assert batch.json()["processed"] == 1
	assert batch.json()["timed_out"] is False
