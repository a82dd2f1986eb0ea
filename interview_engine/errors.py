# interview_engine/errors.py
"""
Error taxonomy for the interview endpoint.

Every error carries the HTTP status it maps to and a message that is safe to
show to a patient. Raw model output never goes into these messages.
"""
from __future__ import annotations

from typing import Any, Dict


class InterviewError(Exception):
    status_code: int = 500
    default_message: str = "Unable to continue the interview right now."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message}


class InvalidRequestError(InterviewError):
    status_code = 400
    default_message = "Invalid payload."

    def __init__(self, message: str | None = None, details: str | None = None):
        super().__init__(message)
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.details:
            payload["message"] = self.details
        return payload


class InvitationRequiredError(InterviewError):
    status_code = 401
    default_message = "Invitation verification is required."


class InvitationForbiddenError(InterviewError):
    status_code = 403
    default_message = "You weren't invited to complete this form."


class TurnOrderError(InterviewError):
    status_code = 422
    default_message = "Provide a patient response before requesting another turn."


class RateLimitedError(InterviewError):
    status_code = 429
    default_message = "Too many interview requests. Please wait and try again."

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retryAfterSeconds"] = self.retry_after_seconds
        return payload


class UpstreamQuotaError(InterviewError):
    status_code = 429
    default_message = (
        "The AI service has reached its request limit. Please try again later "
        "or contact your physician for assistance."
    )


class UpstreamServiceError(InterviewError):
    status_code = 502


class UpstreamFormatError(InterviewError):
    """
    The completion service answered, but nothing in its text could be
    recovered into a valid interview turn.
    """

    status_code = 502

    def __init__(self, stage: str, text_length: int, reason: str | None = None):
        super().__init__()
        self.stage = stage
        self.text_length = text_length
        self.reason = reason

    def __str__(self) -> str:
        detail = f"unrecoverable model output at stage '{self.stage}' ({self.text_length} chars)"
        if self.reason:
            detail = f"{detail}: {self.reason}"
        return detail


class ServiceDisabledError(InterviewError):
    status_code = 503
    default_message = (
        "Interview generation is disabled in HIPAA mode (external AI blocked)."
    )

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["hipaaMode"] = True
        return payload
