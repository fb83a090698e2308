"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from rapport.api import ops
from rapport.api.errors import install_error_handlers
from rapport.infra import postgres
from rapport.infra.redis import redis_client
from rapport.obs import init as obs_init
from rapport.reputation import configure_postgres as configure_reputation
from rapport.reputation import router as reputation_router
from rapport.reputation.infra.postgres_repo import ensure_schema
from rapport.settings import settings


def _reputation_config_path() -> str | None:
	if settings.reputation_config_path:
		return settings.reputation_config_path
	default_path = Path(__file__).resolve().parent.parent / "config" / "reputation.yml"
	return str(default_path) if default_path.exists() else None


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if pool is not None:
		await ensure_schema(pool)
		configure_reputation(pool, redis_client, reputation_config_path=_reputation_config_path())
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="Rapport Reputation Engine", lifespan=lifespan)
install_error_handlers(app)
obs_init(app)

app.include_router(ops.router)
app.include_router(reputation_router, tags=["reputation"])
