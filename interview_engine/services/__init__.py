# interview_engine/services/__init__.py
from .interview_service import InterviewService, OpenedInvitation, RequestContext

__all__ = ["InterviewService", "OpenedInvitation", "RequestContext"]
