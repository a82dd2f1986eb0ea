# interview_engine/security/invitations.py
"""
Invitation tokens, the signed invitation-session cookie and the small
request helpers the interview route needs.

Raw invite tokens and session tokens never touch the database; only their
HMAC-SHA256 hashes are stored.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from interview_engine.config import Settings

logger = logging.getLogger(__name__)

INVITATION_SESSION_COOKIE = "invitation_session"
DEV_SESSION_SECRET = "dev-only-invitation-secret-change-me"


@dataclass
class InvitationRecord:
    """Snapshot of one patient_invitations row."""

    id: str
    physician_id: str
    patient_email: str
    patient_name: Optional[str] = None
    token_hash: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    form_summary: Optional[str] = None
    patient_background: Optional[str] = None
    interview_guidance: Optional[str] = None


@dataclass(frozen=True)
class SessionCookie:
    invitation_id: str
    session_token: str
    exp: int  # epoch milliseconds


def get_session_secret(settings: Settings) -> str:
    if settings.invitation_session_secret:
        return settings.invitation_session_secret
    if settings.is_production:
        raise RuntimeError("INVITATION_SESSION_SECRET is required in production.")
    return DEV_SESSION_SECRET


def hash_value(value: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _sign(payload_b64: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload_b64.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def create_session_token() -> str:
    return secrets.token_hex(32)


def create_session_cookie(
    invitation_id: str,
    session_token: str,
    expires_at_ms: int,
    secret: str,
) -> str:
    payload = json.dumps(
        {"invitationId": invitation_id, "sessionToken": session_token, "exp": expires_at_ms},
        separators=(",", ":"),
    )
    payload_b64 = _b64url_encode(payload.encode("utf-8"))
    return f"{payload_b64}.{_sign(payload_b64, secret)}"


def parse_session_cookie(value: Optional[str], secret: str, now_ms: int) -> Optional[SessionCookie]:
    """
    None for anything that is missing, tampered with, malformed or expired.
    """
    if not value or "." not in value:
        return None
    payload_b64, _, signature = value.partition(".")
    if not payload_b64 or not signature:
        return None
    if not hmac.compare_digest(_sign(payload_b64, secret), signature):
        return None

    try:
        data = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.warning("Invitation session cookie had a valid signature but unreadable payload")
        return None
    if not isinstance(data, dict):
        return None

    invitation_id = data.get("invitationId")
    session_token = data.get("sessionToken")
    exp = data.get("exp")
    if not invitation_id or not session_token or not isinstance(exp, int):
        return None
    if exp < now_ms:
        return None
    return SessionCookie(invitation_id=invitation_id, session_token=session_token, exp=exp)


def is_invitation_openable(invite: InvitationRecord, now: datetime) -> bool:
    """
    A fresh open is allowed only for an unrevoked, unexpired, unused invite.
    """
    if invite.revoked_at is not None or invite.used_at is not None:
        return False
    expiry = invite.token_expires_at or invite.expires_at
    return expiry is None or expiry > now


def is_invitation_active(invite: InvitationRecord, now: datetime) -> bool:
    """
    An already-bound session may keep going after used_at is set, as long as
    the invitation itself is neither revoked nor expired.
    """
    if invite.revoked_at is not None:
        return False
    return invite.expires_at is None or invite.expires_at > now


def get_request_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return peer or "unknown"


def rate_limit_key(invitation_id: str, ip_address: str) -> str:
    return f"invite-interview:{invitation_id}:{ip_address}"


def identity_mismatches(
    invite: InvitationRecord,
    patient_email: Optional[str],
    physician_id: Optional[str],
) -> list[str]:
    """
    Names of the client-supplied identity hints that disagree with the
    invitation. Email compares case-insensitively, physician id exactly.
    """
    mismatched = []
    if patient_email and patient_email.strip():
        if patient_email.strip().lower() != (invite.patient_email or "").lower():
            mismatched.append("patientEmail")
    if physician_id and physician_id.strip():
        if physician_id.strip() != invite.physician_id:
            mismatched.append("physicianId")
    return mismatched
