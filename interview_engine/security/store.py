# interview_engine/security/store.py
"""
Storage for invitations, invitation sessions, rate-limit buckets and the
audit log.

The two shared counters (invitation `used_at` and rate-limit buckets) are
only ever changed through single conditional writes, so concurrent requests
cannot both win.
"""
from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, delete, select, update
from sqlalchemy.dialects import postgresql, sqlite

from interview_engine.db import SessionLocal, db_session
from interview_engine.models import (
    InvitationAuditLog,
    InvitationRateLimit,
    InvitationSession,
    PatientInvitation,
)
from interview_engine.security.invitations import InvitationRecord


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int


@dataclass
class AuditEvent:
    invitation_id: Optional[str]
    event_type: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


def _retry_after(expires_at: datetime, now: datetime) -> int:
    return max(0, math.ceil((expires_at - now).total_seconds()))


class InvitationStore(ABC):
    @abstractmethod
    def get_invitation(self, invitation_id: str) -> Optional[InvitationRecord]:
        ...

    @abstractmethod
    def find_invitation_by_token_hash(self, token_hash: str) -> Optional[InvitationRecord]:
        ...

    @abstractmethod
    def add_invitation(self, record: InvitationRecord) -> InvitationRecord:
        ...

    @abstractmethod
    def create_session(
        self,
        invitation_id: str,
        session_token_hash: str,
        expires_at: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
    ) -> None:
        ...

    @abstractmethod
    def session_is_active(self, invitation_id: str, session_token_hash: str, now: datetime) -> bool:
        """True when the session exists and has not expired; touches last_accessed_at."""
        ...

    @abstractmethod
    def try_consume_once(self, invitation_id: str, now: datetime) -> bool:
        """Set used_at if it is still empty. True only for the caller that set it."""
        ...

    @abstractmethod
    def try_acquire_rate_slot(
        self,
        key: str,
        limit: int,
        window_seconds: int,
        now: datetime,
    ) -> RateLimitDecision:
        ...

    @abstractmethod
    def append_audit(
        self,
        invitation_id: Optional[str],
        event_type: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        ...


@dataclass
class _SessionRow:
    invitation_id: str
    expires_at: datetime
    ip_address: Optional[str]
    user_agent: Optional[str]
    last_accessed_at: datetime


@dataclass
class _Bucket:
    attempt_count: int
    window_start: datetime
    expires_at: datetime


class InMemoryInvitationStore(InvitationStore):
    """
    Thread-safe store for tests and local development. One lock guards every
    read-modify-write, standing in for the database's row-level atomicity.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._invitations: Dict[str, InvitationRecord] = {}
        self._sessions: Dict[str, _SessionRow] = {}
        self._buckets: Dict[str, _Bucket] = {}
        self.audit_events: List[AuditEvent] = []

    def get_invitation(self, invitation_id):
        with self._lock:
            record = self._invitations.get(invitation_id)
            return replace(record) if record else None

    def find_invitation_by_token_hash(self, token_hash):
        with self._lock:
            for record in self._invitations.values():
                if record.token_hash == token_hash:
                    return replace(record)
            return None

    def add_invitation(self, record):
        with self._lock:
            self._invitations[record.id] = replace(record)
        return record

    def create_session(self, invitation_id, session_token_hash, expires_at, ip_address, user_agent, now):
        with self._lock:
            self._sessions[session_token_hash] = _SessionRow(
                invitation_id=invitation_id,
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=user_agent,
                last_accessed_at=now,
            )

    def session_is_active(self, invitation_id, session_token_hash, now):
        with self._lock:
            row = self._sessions.get(session_token_hash)
            if row is None or row.invitation_id != invitation_id or row.expires_at <= now:
                return False
            row.last_accessed_at = now
            return True

    def try_consume_once(self, invitation_id, now):
        with self._lock:
            record = self._invitations.get(invitation_id)
            if record is None or record.used_at is not None:
                return False
            record.used_at = now
            return True

    def try_acquire_rate_slot(self, key, limit, window_seconds, now):
        window = timedelta(seconds=window_seconds)
        with self._lock:
            for stale in [k for k, b in self._buckets.items() if b.expires_at <= now and k != key]:
                del self._buckets[stale]
            bucket = self._buckets.get(key)
            if bucket is None or bucket.expires_at <= now:
                bucket = _Bucket(attempt_count=1, window_start=now, expires_at=now + window)
                self._buckets[key] = bucket
            else:
                bucket.attempt_count += 1
            return RateLimitDecision(
                allowed=bucket.attempt_count <= limit,
                retry_after_seconds=_retry_after(bucket.expires_at, now),
            )

    def append_audit(self, invitation_id, event_type, ip_address=None, user_agent=None, metadata=None, now=None):
        with self._lock:
            self.audit_events.append(
                AuditEvent(
                    invitation_id=invitation_id,
                    event_type=event_type,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    metadata=dict(metadata) if metadata else None,
                    created_at=now,
                )
            )

    def events_of_type(self, event_type: str) -> List[AuditEvent]:
        with self._lock:
            return [e for e in self.audit_events if e.event_type == event_type]


def _to_record(row: PatientInvitation) -> InvitationRecord:
    return InvitationRecord(
        id=row.id,
        physician_id=row.physician_id,
        patient_email=row.patient_email,
        patient_name=row.patient_name,
        token_hash=row.token_hash,
        token_expires_at=row.token_expires_at,
        expires_at=row.expires_at,
        revoked_at=row.revoked_at,
        used_at=row.used_at,
        form_summary=row.form_summary,
        patient_background=row.patient_background,
        interview_guidance=row.interview_guidance,
    )


class SqlAlchemyInvitationStore(InvitationStore):
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get_invitation(self, invitation_id):
        with db_session(self.session_factory) as db:
            row = db.get(PatientInvitation, invitation_id)
            return _to_record(row) if row else None

    def find_invitation_by_token_hash(self, token_hash):
        with db_session(self.session_factory) as db:
            stmt = (
                select(PatientInvitation)
                .where(PatientInvitation.token_hash == token_hash)
                .order_by(PatientInvitation.created_at.desc())
                .limit(1)
            )
            row = db.scalars(stmt).first()
            return _to_record(row) if row else None

    def add_invitation(self, record):
        with db_session(self.session_factory) as db:
            db.add(
                PatientInvitation(
                    id=record.id,
                    physician_id=record.physician_id,
                    patient_email=record.patient_email,
                    patient_name=record.patient_name,
                    token_hash=record.token_hash,
                    token_expires_at=record.token_expires_at,
                    expires_at=record.expires_at,
                    revoked_at=record.revoked_at,
                    used_at=record.used_at,
                    form_summary=record.form_summary,
                    patient_background=record.patient_background,
                    interview_guidance=record.interview_guidance,
                )
            )
        return record

    def create_session(self, invitation_id, session_token_hash, expires_at, ip_address, user_agent, now):
        with db_session(self.session_factory) as db:
            db.add(
                InvitationSession(
                    invitation_id=invitation_id,
                    session_token_hash=session_token_hash,
                    expires_at=expires_at,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=now,
                    last_accessed_at=now,
                )
            )

    def session_is_active(self, invitation_id, session_token_hash, now):
        with db_session(self.session_factory) as db:
            result = db.execute(
                update(InvitationSession)
                .where(
                    InvitationSession.invitation_id == invitation_id,
                    InvitationSession.session_token_hash == session_token_hash,
                    InvitationSession.expires_at > now,
                )
                .values(last_accessed_at=now)
            )
            return result.rowcount == 1

    def try_consume_once(self, invitation_id, now):
        with db_session(self.session_factory) as db:
            result = db.execute(
                update(PatientInvitation)
                .where(
                    PatientInvitation.id == invitation_id,
                    PatientInvitation.used_at.is_(None),
                )
                .values(used_at=now)
            )
            return result.rowcount == 1

    def _insert(self, db):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise NotImplementedError(f"Rate limiting is not supported on {dialect!r}")

    def try_acquire_rate_slot(self, key, limit, window_seconds, now):
        table = InvitationRateLimit.__table__
        new_expiry = now + timedelta(seconds=window_seconds)

        with db_session(self.session_factory) as db:
            db.execute(
                delete(table).where(table.c.expires_at <= now, table.c.bucket_key != key)
            )
            insert = self._insert(db)
            window_over = table.c.expires_at <= now
            stmt = insert(table).values(
                bucket_key=key,
                attempt_count=1,
                window_start=now,
                expires_at=new_expiry,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.bucket_key],
                set_={
                    "attempt_count": case(
                        (window_over, 1), else_=table.c.attempt_count + 1
                    ),
                    "window_start": case(
                        (window_over, now), else_=table.c.window_start
                    ),
                    "expires_at": case(
                        (window_over, new_expiry), else_=table.c.expires_at
                    ),
                },
            ).returning(table.c.attempt_count, table.c.expires_at)
            attempt_count, expires_at = db.execute(stmt).one()

        return RateLimitDecision(
            allowed=attempt_count <= limit,
            retry_after_seconds=_retry_after(expires_at, now),
        )

    def append_audit(self, invitation_id, event_type, ip_address=None, user_agent=None, metadata=None, now=None):
        with db_session(self.session_factory) as db:
            entry = InvitationAuditLog(
                invitation_id=invitation_id,
                event_type=event_type,
                ip_address=ip_address,
                user_agent=user_agent,
                event_metadata=metadata,
            )
            if now is not None:
                entry.created_at = now
            db.add(entry)
