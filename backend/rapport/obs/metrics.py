"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


REQUEST_COUNTER = Counter(
	"rapport_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"rapport_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

REPUTATION_RECALCULATIONS_TOTAL = Counter(
	"rapport_reputation_recalculations_total",
	"Reputation recalculations by trigger",
	["mode"],
)

REPUTATION_TIER_CHANGES_TOTAL = Counter(
	"rapport_reputation_tier_changes_total",
	"Tier transitions observed by the recalculator",
	["direction"],
)

MESSAGE_PERMISSION_DECISIONS_TOTAL = Counter(
	"rapport_message_permission_decisions_total",
	"Messaging gate decisions",
	["mode", "outcome", "reason"],
)

BURST_DETECTIONS_TOTAL = Counter(
	"rapport_burst_detections_total",
	"Senders flagged for burst messaging",
)

REPORTS_TOTAL = Counter(
	"rapport_reports_total",
	"Report submissions by result",
	["result"],
)

REPUTATION_BATCH_USERS_TOTAL = Counter(
	"rapport_reputation_batch_users_total",
	"Users handled by the daily reputation sweep",
	["result"],
)

REPUTATION_BATCH_DURATION_SECONDS = Histogram(
	"rapport_reputation_batch_duration_seconds",
	"Daily reputation sweep duration",
	buckets=(1, 5, 15, 30, 60, 120, 300, 540, 900),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def recalculation(mode: str) -> None:
	REPUTATION_RECALCULATIONS_TOTAL.labels(mode=mode).inc()


def tier_changed(direction: str) -> None:
	REPUTATION_TIER_CHANGES_TOTAL.labels(direction=direction).inc()


def permission_decision(mode: str, allowed: bool, reason: str | None) -> None:
	outcome = "allowed" if allowed else "denied"
	MESSAGE_PERMISSION_DECISIONS_TOTAL.labels(mode=mode, outcome=outcome, reason=reason or "none").inc()


def burst_detected() -> None:
	BURST_DETECTIONS_TOTAL.inc()


def report_result(result: str) -> None:
	REPORTS_TOTAL.labels(result=result).inc()


def batch_user(result: str, count: int = 1) -> None:
	if count > 0:
		REPUTATION_BATCH_USERS_TOTAL.labels(result=result).inc(count)


def batch_duration(seconds: float) -> None:
	REPUTATION_BATCH_DURATION_SECONDS.observe(seconds)
