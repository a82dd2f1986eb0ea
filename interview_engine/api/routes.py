# interview_engine/api/routes.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response

from interview_engine.config import Settings
from interview_engine.security.invitations import INVITATION_SESSION_COOKIE, get_request_ip
from interview_engine.services.interview_service import InterviewService, RequestContext
from .deps import get_app_settings, get_interview_service
from .schemas import (
    ErrorResponse,
    InterviewRequest,
    OpenInvitationRequest,
    OpenInvitationResponse,
)

router = APIRouter()

INTERVIEW_ERRORS = {
    status: {"model": ErrorResponse} for status in (400, 401, 403, 422, 429, 502, 503)
}


def _request_context(request: Request) -> RequestContext:
    peer = request.client.host if request.client else None
    return RequestContext(
        session_cookie=request.cookies.get(INVITATION_SESSION_COOKIE),
        ip_address=get_request_ip(request.headers, peer),
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


@router.post("/interview", responses=INTERVIEW_ERRORS)
def interview_turn(
    payload: InterviewRequest,
    request: Request,
    service: InterviewService = Depends(get_interview_service),
) -> Dict[str, Any]:
    """
    Next interview turn for the replayed transcript: either a question or
    the final summary.
    """
    return service.handle(payload, _request_context(request))


@router.post(
    "/invitations/open",
    response_model=OpenInvitationResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def open_invitation(
    payload: OpenInvitationRequest,
    request: Request,
    response: Response,
    service: InterviewService = Depends(get_interview_service),
    settings: Settings = Depends(get_app_settings),
) -> OpenInvitationResponse:
    """
    Exchange the raw token from an invite link for an invitation session
    cookie.
    """
    context = _request_context(request)
    opened = service.open_invitation(payload.token, context.ip_address, context.user_agent)

    response.set_cookie(
        key=INVITATION_SESSION_COOKIE,
        value=opened.cookie_value,
        max_age=settings.invitation_session_ttl_hours * 3600,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
    return OpenInvitationResponse(
        invitation_id=opened.invitation_id,
        expires_at=opened.expires_at,
    )
