"""Operations endpoints providing health checks, metrics, and the batch trigger."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rapport.infra import postgres
from rapport.infra.redis import redis_client
from rapport.reputation.domain import container
from rapport.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ops"])


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_admin(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	token = settings.obs_admin_token
	if not token:
		# no configured token means no admin access
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if _resolve_token(x_admin_token, authorization) != token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	await require_admin(x_admin_token=x_admin_token, authorization=authorization)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		return {"ok": True}
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def _postgres_status(timeout: float = 0.3) -> Dict[str, Any]:
	try:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
		return {"ok": True}
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Postgres readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def health_ready() -> Response:
	checks = {"redis": await _redis_status(), "postgres": await _postgres_status()}
	ready = all(check["ok"] for check in checks.values())
	payload = {"status": "ok" if ready else "degraded", "checks": checks}
	return JSONResponse(content=payload, status_code=200 if ready else 503)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


@router.post("/ops/reputation/batch")
async def run_reputation_batch(_: None = Depends(require_admin)) -> dict[str, Any]:
	"""Entry point for the external nightly scheduler."""

	result = await container.run_daily_batch()
	return {
		"run_id": result.run_id,
		"total": result.total,
		"processed": result.processed,
		"errors": result.errors,
		"skipped": result.skipped,
		"timed_out": result.timed_out,
		"duration_seconds": round(result.duration_seconds, 3),
	}
