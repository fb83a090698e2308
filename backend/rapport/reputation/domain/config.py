"""Utilities for loading tunable reputation engine parameters."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from rapport.reputation.domain.exceptions import ReputationConfigError
from rapport.settings import settings


@dataclass(slots=True)
class BurstConfig:
    window_ms: int = 60_000
    max_messages: int = 10
    slack: int = 5

    @property
    def retained(self) -> int:
        return self.max_messages + self.slack


@dataclass(slots=True)
class ReportConfig:
    duplicate_window_hours: int = 24
    daily_window_hours: int = 24
    weekly_window_days: int = 7
    abuse_min_reports: int = 5
    abuse_dismissal_threshold: float = 0.5
    lock_ttl_seconds: int = 10


@dataclass(slots=True)
class BatchConfig:
    chunk_size: int = 50
    concurrency: int = 10
    timeout_seconds: float = 540.0


@dataclass(slots=True)
class ReputationConfig:
    burst: BurstConfig
    reports: ReportConfig
    batch: BatchConfig


def default_reputation_config() -> ReputationConfig:
    return ReputationConfig(
        burst=BurstConfig(),
        reports=ReportConfig(),
        batch=BatchConfig(
            chunk_size=settings.reputation_batch_chunk_size,
            timeout_seconds=settings.reputation_batch_timeout_seconds,
        ),
    )


def _section(data: Mapping[str, object], key: str) -> Mapping[str, object]:
    section = data.get(key, {})
    return section if isinstance(section, dict) else {}


def _int(section: Mapping[str, object], key: str, default: int, *, minimum: int = 0) -> int:
    if key not in section:
        return default
    try:
        value = int(section[key])  # type: ignore[arg-type]
    except (TypeError, ValueError):  # pragma: no cover - invalid values fall back
        return default
    return value if value >= minimum else default


def _float(section: Mapping[str, object], key: str, default: float) -> float:
    if key not in section:
        return default
    try:
        value = float(section[key])  # type: ignore[arg-type]
    except (TypeError, ValueError):  # pragma: no cover - invalid values fall back
        return default
    return value if value >= 0 else default


def parse_reputation_config(data: Mapping[str, object]) -> ReputationConfig:
    defaults = default_reputation_config()
    burst_cfg = _section(data, "burst")
    reports_cfg = _section(data, "reports")
    batch_cfg = _section(data, "batch")

    burst = BurstConfig(
        window_ms=_int(burst_cfg, "window_ms", defaults.burst.window_ms, minimum=1),
        max_messages=_int(burst_cfg, "max_messages", defaults.burst.max_messages, minimum=1),
        slack=_int(burst_cfg, "slack", defaults.burst.slack),
    )
    reports = ReportConfig(
        duplicate_window_hours=_int(reports_cfg, "duplicate_window_hours", defaults.reports.duplicate_window_hours),
        daily_window_hours=_int(reports_cfg, "daily_window_hours", defaults.reports.daily_window_hours, minimum=1),
        weekly_window_days=_int(reports_cfg, "weekly_window_days", defaults.reports.weekly_window_days, minimum=1),
        abuse_min_reports=_int(reports_cfg, "abuse_min_reports", defaults.reports.abuse_min_reports, minimum=1),
        abuse_dismissal_threshold=min(
            1.0, _float(reports_cfg, "abuse_dismissal_threshold", defaults.reports.abuse_dismissal_threshold)
        ),
        lock_ttl_seconds=_int(reports_cfg, "lock_ttl_seconds", defaults.reports.lock_ttl_seconds, minimum=1),
    )
    batch = BatchConfig(
        chunk_size=_int(batch_cfg, "chunk_size", defaults.batch.chunk_size, minimum=1),
        concurrency=_int(batch_cfg, "concurrency", defaults.batch.concurrency, minimum=1),
        timeout_seconds=_float(batch_cfg, "timeout_seconds", defaults.batch.timeout_seconds),
    )
    return ReputationConfig(burst=burst, reports=reports, batch=batch)


def load_reputation_config(path: str | Path) -> ReputationConfig:
    with open(path, "r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ReputationConfigError("reputation config must be a mapping")
    return parse_reputation_config(loaded)


def resolve_reputation_config(path: str | None = None) -> ReputationConfig:
    """Load the configured YAML file, or the built-in defaults when unset."""

    target = path if path is not None else settings.reputation_config_path
    if not target:
        return default_reputation_config()
    return load_reputation_config(target)
