from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from rapport.infra.auth import AuthenticatedUser, get_current_user
from rapport.reputation.api.permission import get_gate_dep
from rapport.reputation.api.schemas import StatusOut
from rapport.reputation.domain.container import get_recalculator
from rapport.reputation.domain.gate import MessagingGate
from rapport.reputation.domain.recalculator import ReputationRecalculator
from rapport.settings import settings

router = APIRouter(prefix="/api/reputation/v1", tags=["reputation-me"])


def get_recalculator_dep() -> ReputationRecalculator:
    return get_recalculator()


@router.get("/me", response_model=StatusOut)
async def get_my_status(
    gate: MessagingGate = Depends(get_gate_dep),
    user: AuthenticatedUser = Depends(get_current_user),
) -> StatusOut:
    return StatusOut.from_status(await gate.status(user.id))


@router.post("/me/refresh", response_model=StatusOut)
async def refresh_my_status(
    gate: MessagingGate = Depends(get_gate_dep),
    recalculator: ReputationRecalculator = Depends(get_recalculator_dep),
    user: AuthenticatedUser = Depends(get_current_user),
) -> StatusOut:
    # Manual recalculation is a development aid only
    if not settings.is_dev():
        raise HTTPException(status_code=404, detail="not_found")
    await recalculator.refresh(user.id)
    return StatusOut.from_status(await gate.status(user.id))
