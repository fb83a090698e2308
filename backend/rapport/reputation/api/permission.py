"""Messaging permission endpoints consumed before a conversation starts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from rapport.infra.auth import AuthenticatedUser, get_current_user
from rapport.reputation.api.schemas import PermissionIn, PermissionOut
from rapport.reputation.domain.container import get_gate
from rapport.reputation.domain.exceptions import InvalidRequestError
from rapport.reputation.domain.gate import MessagingGate

router = APIRouter(prefix="/api/reputation/v1/permission", tags=["reputation-permission"])


def get_gate_dep() -> MessagingGate:
    return get_gate()


@router.post("", response_model=PermissionOut)
async def check_permission(
    payload: PermissionIn,
    gate: MessagingGate = Depends(get_gate_dep),
    user: AuthenticatedUser = Depends(get_current_user),
) -> PermissionOut:
    try:
        result = await gate.check(user.id, payload.recipient_id)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    return PermissionOut.from_result(result)


@router.post("/claim", response_model=PermissionOut)
async def claim_permission(
    payload: PermissionIn,
    gate: MessagingGate = Depends(get_gate_dep),
    user: AuthenticatedUser = Depends(get_current_user),
) -> PermissionOut:
    try:
        result = await gate.authorize(user.id, payload.recipient_id)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    return PermissionOut.from_result(result)
