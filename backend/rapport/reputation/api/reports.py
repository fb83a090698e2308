"""Report filing and moderator review endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from rapport.infra.auth import AuthenticatedUser, get_current_user, get_service_user
from rapport.reputation.api.schemas import ReportIn, ReportOut, ReportResultOut, ReviewIn
from rapport.reputation.domain.container import get_report_service
from rapport.reputation.domain.exceptions import InvalidRequestError, ReportNotFound
from rapport.reputation.domain.reports import ReportService

router = APIRouter(prefix="/api/reputation/v1/reports", tags=["reputation-reports"])


def get_report_service_dep() -> ReportService:
    return get_report_service()


@router.post("", response_model=ReportResultOut)
async def file_report(
    payload: ReportIn,
    response: Response,
    service: ReportService = Depends(get_report_service_dep),
    reporter: AuthenticatedUser = Depends(get_current_user),
) -> ReportResultOut:
    try:
        outcome = await service.file_report(
            reporter.id,
            payload.reported_user_id,
            payload.reason,
            details=payload.details,
            conversation_id=payload.conversation_id,
        )
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    if outcome.success:
        response.status_code = status.HTTP_201_CREATED
    return ReportResultOut.from_outcome(outcome)


@router.post("/{report_id}/review", response_model=ReportOut)
async def review_report(
    report_id: str,
    payload: ReviewIn,
    service: ReportService = Depends(get_report_service_dep),
    moderator: AuthenticatedUser = Depends(get_service_user),
) -> ReportOut:
    try:
        report = await service.review(report_id, payload.status, moderator.id, payload.action_taken)
    except ReportNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.reason) from exc
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    return ReportOut.from_report(report)
