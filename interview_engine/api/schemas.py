# interview_engine/api/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from interview_engine.interview.schema import (  # noqa: F401
    InterviewRequest,
    QuestionTurn,
    SummaryTurn,
)


class OpenInvitationRequest(BaseModel):
    token: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=16, max_length=256)
    ]


class OpenInvitationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invitation_id: str = Field(..., alias="invitationId")
    expires_at: datetime = Field(..., alias="expiresAt")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error: str
    message: Optional[str] = None
    retry_after_seconds: Optional[int] = Field(None, alias="retryAfterSeconds")
    hipaa_mode: Optional[bool] = Field(None, alias="hipaaMode")
