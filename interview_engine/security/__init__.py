# interview_engine/security/__init__.py
from .invitations import (
    INVITATION_SESSION_COOKIE,
    InvitationRecord,
    get_request_ip,
    hash_value,
)
from .store import (
    InvitationStore,
    InMemoryInvitationStore,
    SqlAlchemyInvitationStore,
    RateLimitDecision,
)

__all__ = [
    "INVITATION_SESSION_COOKIE",
    "InvitationRecord",
    "get_request_ip",
    "hash_value",
    "InvitationStore",
    "InMemoryInvitationStore",
    "SqlAlchemyInvitationStore",
    "RateLimitDecision",
]
