"""
SqlAlchemyInvitationStore against a throwaway SQLite database.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from interview_engine.db import init_db
from interview_engine.models import InvitationAuditLog, InvitationRateLimit
from interview_engine.security.invitations import InvitationRecord
from interview_engine.security.store import SqlAlchemyInvitationStore

NOW = datetime(2026, 1, 5, 9, 0, 0)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'store.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    store = SqlAlchemyInvitationStore(session_factory=session_factory)
    store.add_invitation(
        InvitationRecord(
            id="inv-1",
            physician_id="phys-1",
            patient_email="pat@example.com",
            token_hash="hash-1",
            expires_at=NOW + timedelta(days=7),
            form_summary="WSIB claim form",
        )
    )
    return store


def test_get_and_find(sql_store):
    record = sql_store.get_invitation("inv-1")
    assert record.patient_email == "pat@example.com"
    assert record.form_summary == "WSIB claim form"
    assert record.used_at is None

    assert sql_store.find_invitation_by_token_hash("hash-1").id == "inv-1"
    assert sql_store.find_invitation_by_token_hash("missing") is None
    assert sql_store.get_invitation("missing") is None


def test_consume_once(sql_store):
    assert sql_store.try_consume_once("inv-1", NOW)
    assert not sql_store.try_consume_once("inv-1", NOW + timedelta(minutes=1))
    assert sql_store.get_invitation("inv-1").used_at == NOW


def test_consume_unknown_invitation(sql_store):
    assert not sql_store.try_consume_once("missing", NOW)


def test_rate_limit_boundary_and_reset(sql_store):
    for _ in range(3):
        assert sql_store.try_acquire_rate_slot("k", 3, 60, NOW).allowed

    blocked = sql_store.try_acquire_rate_slot("k", 3, 60, NOW + timedelta(seconds=10))
    assert not blocked.allowed
    assert blocked.retry_after_seconds == 50

    reset = sql_store.try_acquire_rate_slot("k", 3, 60, NOW + timedelta(seconds=60))
    assert reset.allowed
    assert reset.retry_after_seconds == 60


def test_session_lookup(sql_store):
    sql_store.create_session("inv-1", "session-hash", NOW + timedelta(hours=1), "10.0.0.1", "pytest", NOW)

    assert sql_store.session_is_active("inv-1", "session-hash", NOW + timedelta(minutes=5))
    assert not sql_store.session_is_active("inv-2", "session-hash", NOW)
    assert not sql_store.session_is_active("inv-1", "other-hash", NOW)
    assert not sql_store.session_is_active("inv-1", "session-hash", NOW + timedelta(hours=1))


def test_audit_metadata_is_stored(sql_store, session_factory):
    sql_store.append_audit(
        "inv-1",
        "identity_override_attempt",
        ip_address="10.0.0.1",
        metadata={"route": "/api/interview", "fields": ["patientEmail"]},
        now=NOW,
    )

    with session_factory() as db:
        entry = db.scalars(select(InvitationAuditLog)).one()
    assert entry.event_type == "identity_override_attempt"
    assert entry.event_metadata == {"route": "/api/interview", "fields": ["patientEmail"]}
    assert entry.created_at == NOW


def test_expired_rate_buckets_are_pruned(sql_store, session_factory):
    assert sql_store.try_acquire_rate_slot("a", 5, 60, NOW).allowed
    assert sql_store.try_acquire_rate_slot("b", 5, 60, NOW + timedelta(seconds=61)).allowed

    with session_factory() as db:
        keys = db.scalars(select(InvitationRateLimit.bucket_key)).all()
    assert keys == ["b"]
