"""Reputation package integration helpers exposed to the application."""

from rapport.reputation.api import router
from rapport.reputation.domain.container import configure, configure_postgres

__all__ = ["router", "configure", "configure_postgres"]
