"""Domain-level exceptions for the reputation engine.

Policy denials are returned as result objects; only caller mistakes and
storage faults surface as exceptions.
"""

from __future__ import annotations


class ReputationError(Exception):
    """Base class for reputation feature errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class InvalidRequestError(ReputationError, ValueError):
    """Raised before any read when identifiers or enums are malformed."""

    reason = "invalid_request"


class ReportNotFound(ReputationError):
    reason = "report_not_found"


class ReputationConfigError(ReputationError, ValueError):
    reason = "invalid_config"


def require_id(value: object, name: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise InvalidRequestError(f"{name}_required")
    return text
