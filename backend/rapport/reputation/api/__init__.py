"""Reputation API routers."""

from fastapi import APIRouter

from . import activity, me, permission, reports

router = APIRouter()
router.include_router(permission.router)
router.include_router(activity.router)
router.include_router(reports.router)
router.include_router(me.router)

__all__ = ["router"]
