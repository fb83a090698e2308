"""Internal activity hooks called by the message pipeline and block flow."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from rapport.infra.auth import AuthenticatedUser, get_service_user
from rapport.reputation.api.schemas import BlockIn, BlockOut, MessageSentIn, MessageSentOut, ReplyIn
from rapport.reputation.domain.container import get_recorder
from rapport.reputation.domain.exceptions import InvalidRequestError
from rapport.reputation.domain.messaging import MessageActivityRecorder

router = APIRouter(prefix="/api/reputation/v1", tags=["reputation-activity"])


def get_recorder_dep() -> MessageActivityRecorder:
    return get_recorder()


@router.post("/messages", response_model=MessageSentOut)
async def record_message(
    payload: MessageSentIn,
    recorder: MessageActivityRecorder = Depends(get_recorder_dep),
    _: AuthenticatedUser = Depends(get_service_user),
) -> MessageSentOut:
    try:
        result = await recorder.record_message_sent(
            payload.sender_id,
            payload.recipient_id,
            payload.message_length,
            payload.is_first_message,
        )
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    return MessageSentOut(
        burst_detected=result.burst_detected,
        window_count=result.window_count,
        tier=result.reputation.tier if result.reputation is not None else None,
    )


@router.post("/messages/replies", status_code=status.HTTP_204_NO_CONTENT)
async def record_reply(
    payload: ReplyIn,
    recorder: MessageActivityRecorder = Depends(get_recorder_dep),
    _: AuthenticatedUser = Depends(get_service_user),
) -> Response:
    try:
        await recorder.record_reply(payload.replier_id, payload.other_user_id, payload.is_first_reply)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/blocks", response_model=BlockOut)
async def record_block(
    payload: BlockIn,
    recorder: MessageActivityRecorder = Depends(get_recorder_dep),
    _: AuthenticatedUser = Depends(get_service_user),
) -> BlockOut:
    try:
        reputation = await recorder.record_block(payload.blocker_id, payload.blocked_id)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    return BlockOut(user_id=payload.blocked_id, tier=reputation.tier)
