# interview_engine/interview/__init__.py
from .schema import (
    InterviewMessage,
    InterviewRequest,
    PatientProfile,
    QuestionTurn,
    SummaryTurn,
    InterviewTurn,
)

__all__ = [
    "InterviewMessage",
    "InterviewRequest",
    "PatientProfile",
    "QuestionTurn",
    "SummaryTurn",
    "InterviewTurn",
]
