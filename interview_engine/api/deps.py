# interview_engine/api/deps.py
"""Shared dependencies for API routes."""
from __future__ import annotations

from functools import lru_cache

from interview_engine.config import Settings, get_settings
from interview_engine.security.store import InvitationStore, SqlAlchemyInvitationStore
from interview_engine.services.interview_service import InterviewService


@lru_cache(maxsize=1)
def get_invitation_store() -> InvitationStore:
    return SqlAlchemyInvitationStore()


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def get_interview_service() -> InterviewService:
    """Dependency: the interview service. The completion client is created on first use."""
    return InterviewService(store=get_invitation_store(), settings=get_settings())
